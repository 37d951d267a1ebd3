"""
Timeout supervision for sandboxed execution.

Protection has two layers:
1. Loop/recursion counters injected into the submitted source raise a fault
   from inside the host once a ceiling is exceeded.
2. An external watchdog owned by the supervisor fires after a wall-clock
   deadline and tears the host down if no terminal message arrived. A host
   wedged in an uninstrumented loop cannot service its own timers, so this
   timer must live outside it.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from enum import Enum


class ConfigRangeError(ValueError):
    """Raised when a timeout setting falls outside its valid range."""


class FaultKind(str, Enum):
    LOOP = "loop"
    RECURSION = "recursion"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Fault:
    kind: FaultKind
    iterations: int | None = None
    depth: int | None = None
    elapsed_ms: int | None = None

    @classmethod
    def loop(cls, iterations: int) -> Fault:
        return cls(FaultKind.LOOP, iterations=iterations)

    @classmethod
    def recursion(cls, depth: int) -> Fault:
        return cls(FaultKind.RECURSION, depth=depth)

    @classmethod
    def external(cls, elapsed_ms: int) -> Fault:
        return cls(FaultKind.EXTERNAL, elapsed_ms=elapsed_ms)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"kind": self.kind.value}
        if self.iterations is not None:
            data["iterations"] = self.iterations
        if self.depth is not None:
            data["depth"] = self.depth
        if self.elapsed_ms is not None:
            data["elapsedMs"] = self.elapsed_ms
        return data


# field name -> (minimum, maximum, unit suffix used in messages)
_BOUNDS: dict[str, tuple[int, int, str]] = {
    "max_loop_iterations": (1, 10_000_000, ""),
    "max_recursion_depth": (1, 10_000, ""),
    "external_timeout_ms": (100, 60_000, "ms"),
}


@dataclass(frozen=True)
class TimeoutConfig:
    max_loop_iterations: int = 100_000
    max_recursion_depth: int = 1_000
    external_timeout_ms: int = 5_000
    enable_loop_injection: bool = True
    enable_recursion_tracking: bool = True

    def __post_init__(self) -> None:
        for name, (low, high, unit) in _BOUNDS.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigRangeError(f"{name} must be an integer, got {value!r}")
            if value < low or value > high:
                raise ConfigRangeError(
                    f"{name} must be between {low:,}{unit} and {high:,}{unit} (got {value:,})"
                )
        for name in ("enable_loop_injection", "enable_recursion_tracking"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ConfigRangeError(f"{name} must be a boolean, got {value!r}")

    def to_dict(self) -> dict[str, object]:
        return {field.name: getattr(self, field.name) for field in fields(self)}

    @property
    def external_timeout_s(self) -> float:
        return self.external_timeout_ms / 1000.0


DEFAULT_TIMEOUT_CONFIG = TimeoutConfig()

_FIELD_NAMES = {field.name for field in fields(TimeoutConfig)}


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def validate_timeout_config(overrides: Mapping[str, object] | None = None) -> TimeoutConfig:
    """Build a validated TimeoutConfig from partial overrides.

    Keys may be snake_case (``max_loop_iterations``) or camelCase
    (``maxLoopIterations``). Missing keys fall back to the defaults.

    Raises:
        ConfigRangeError: for unknown keys or out-of-range values
    """
    values: dict[str, object] = {}
    for key, value in (overrides or {}).items():
        name = _snake_case(str(key))
        if name not in _FIELD_NAMES:
            raise ConfigRangeError(f"Unknown timeout setting: {key}")
        if value is None:
            continue
        values[name] = value
    return TimeoutConfig(**values)  # type: ignore[arg-type]


class Watchdog:
    """
    Cancellable one-shot timer reporting an ``external`` fault.

    The callback runs on the timer thread. ``cancel()`` and the firing path
    share a lock, so a cancel that returns before the deadline guarantees
    the callback never runs, and a cancel after firing changes nothing.
    """

    def __init__(self, timeout_ms: int, on_timeout: Callable[[Fault], None]) -> None:
        self.timeout_ms = timeout_ms
        self._on_timeout = on_timeout
        self._lock = threading.Lock()
        self._fired = False
        self._cancelled = False
        self._timer = threading.Timer(timeout_ms / 1000.0, self._fire)
        self._timer.daemon = True

    def start(self) -> Watchdog:
        self._timer.start()
        return self

    def cancel(self) -> None:
        with self._lock:
            if self._fired:
                return
            self._cancelled = True
        self._timer.cancel()

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _fire(self) -> None:
        with self._lock:
            if self._cancelled or self._fired:
                return
            self._fired = True
        self._on_timeout(Fault.external(self.timeout_ms))


def create_external_timeout(timeout_ms: int, on_timeout: Callable[[Fault], None]) -> Watchdog:
    """Arm and return a watchdog that reports after ``timeout_ms``."""
    return Watchdog(timeout_ms, on_timeout).start()


def format_fault(fault: Fault) -> str:
    """Render a fault as an actionable message for the person who wrote the code."""
    if fault.kind is FaultKind.LOOP:
        count = f"{fault.iterations:,}" if fault.iterations is not None else "many"
        return f"Infinite loop detected after {count} iterations. Check your loop conditions."
    if fault.kind is FaultKind.RECURSION:
        depth = f"{fault.depth:,}" if fault.depth is not None else "the maximum"
        return f"Maximum recursion depth ({depth}) exceeded. Check for infinite recursion."
    return (
        f"Execution timed out after {fault.elapsed_ms}ms. "
        "Your code may have an infinite loop or be too slow."
    )


def is_infinite_loop_error(error: Fault | str | None) -> bool:
    if error is None:
        return False
    if isinstance(error, Fault):
        return error.kind in (FaultKind.LOOP, FaultKind.EXTERNAL)
    return any(
        marker in error
        for marker in ("Infinite loop detected", "Execution timed out", "maximum recursion depth")
    )
