"""
Child process entry point for the sandbox host.

The supervisor spawns ``python -c CHILD_TEMPLATE``, writes one ``start``
message to stdin and reads newline-delimited JSON messages from stdout.
Everything the submitted code prints is rerouted into ``console-log``
messages so the channel only ever carries protocol frames.
"""

from __future__ import annotations

import io
import math
import sys
import time
import traceback
import warnings
from collections.abc import Callable
from typing import Any, TextIO, cast

from sandbox import policy
from sandbox.guards import HostFault, LoopGuard, RecursionGuard
from sandbox.instrument import LOOP_GUARD_NAME, RECURSION_GUARD_NAME
from sandbox.messages import (
    CaptureStepMessage,
    ConsoleLogMessage,
    ExecutionCompleteMessage,
    ExecutionErrorMessage,
    FaultPayload,
    StartMessage,
    TestResultMessage,
    WireMessage,
)
from sandbox.timeouts import format_fault
from tracking.base import TrackedContainer
from tracking.registry import ContainerRegistry, create_default_registry
from tracking.schemas import Step

CHILD_TEMPLATE = """
from sandbox.host import host_main
host_main()
""".strip()

_MAX_JSON_DEPTH = 32


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


def to_jsonable(value: Any, _depth: int = 0) -> Any:
    """Convert a result or console argument into plain JSON-compatible data."""
    if _depth > _MAX_JSON_DEPTH:
        return repr(value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, TrackedContainer):
        return [to_jsonable(item, _depth + 1) for item in value.to_list()]
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item, _depth + 1) for item in value]
    if isinstance(value, dict):
        return {str(key): to_jsonable(item, _depth + 1) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        items = [to_jsonable(item, _depth + 1) for item in value]
        try:
            return sorted(items)
        except TypeError:
            return items
    return repr(value)


class HostChannel:
    """Writes protocol messages to the supervisor, one JSON object per line."""

    def __init__(self, stream: TextIO, correlation_id: str | None, sender: str | None) -> None:
        self._stream = stream
        self.correlation_id = correlation_id
        self.sender = sender

    def _stamp(self) -> dict[str, Any]:
        stamp: dict[str, Any] = {}
        if self.correlation_id is not None:
            stamp["correlation_id"] = self.correlation_id
        if self.sender is not None:
            stamp["sender"] = self.sender
        return stamp

    def post(self, message: WireMessage) -> None:
        _ = self._stream.write(message.to_line() + "\n")
        self._stream.flush()

    def step(self, step: Step) -> None:
        self.post(CaptureStepMessage(step=step, **self._stamp()))

    def console(self, level: str, args: list[Any]) -> None:
        self.post(ConsoleLogMessage(level=level, args=[to_jsonable(arg) for arg in args], **self._stamp()))

    def complete(self, result: Any, execution_time: float) -> None:
        """Post the terminal success frame.

        Steps already went out as ``capture-step`` frames, so terminal frames
        carry an empty ``steps`` list whatever the length of the step log.
        """
        self.post(
            ExecutionCompleteMessage(
                result=to_jsonable(result),
                steps=[],
                execution_time=execution_time,
                **self._stamp(),
            )
        )

    def test_result(
        self,
        test_id: str,
        passed: bool,
        execution_time: float,
        error: str | None = None,
    ) -> None:
        self.post(
            TestResultMessage(
                test_id=test_id,
                passed=passed,
                execution_time=execution_time,
                steps=[],
                error=error,
                **self._stamp(),
            )
        )

    def error(self, exc: BaseException) -> None:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if isinstance(exc, HostFault):
            self.post(
                ExecutionErrorMessage(
                    error=format_fault(exc.fault),
                    stack=stack,
                    fault=FaultPayload.from_dict(exc.fault.to_dict()),
                    **self._stamp(),
                )
            )
            return
        self.post(ExecutionErrorMessage(error=_format_error(exc), stack=stack, **self._stamp()))


class ConsoleStream(io.TextIOBase):
    """Line-buffered text stream forwarding each line as a console-log message."""

    def __init__(self, channel: HostChannel, level: str) -> None:
        super().__init__()
        self._channel = channel
        self._level = level
        self._buffer = ""

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._buffer += str(text)
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self._channel.console(self._level, [line])
        return len(text)

    def flush(self) -> None:
        if self._buffer:
            line, self._buffer = self._buffer, ""
            self._channel.console(self._level, [line])


def _make_print(channel: HostChannel) -> Callable[..., None]:
    def sandbox_print(*args: Any, sep: str | None = " ", end: str | None = "\n", file: Any = None, flush: bool = False) -> None:
        if file is not None and file is not sys.stdout:
            print(*args, sep=sep, end=end, file=file, flush=flush)
            return
        channel.console("log", list(args))

    return sandbox_print


def _install_console(channel: HostChannel) -> None:
    sys.stdout = ConsoleStream(channel, "log")
    sys.stderr = ConsoleStream(channel, "error")

    def show_warning(message: Any, category: type[Warning], filename: str, lineno: int, file: Any = None, line: Any = None) -> None:
        channel.console("warn", [f"{category.__name__}: {message}"])

    warnings.showwarning = show_warning


def _build_namespace(
    start: StartMessage,
    channel: HostChannel,
    registry: ContainerRegistry,
    on_step: Callable[[Step], None],
) -> dict[str, Any]:
    restricted = policy.build_restricted_builtins(allowed_modules=start.allowed_modules)
    restricted["print"] = _make_print(channel)

    def track(kind: str, data: Any = None) -> TrackedContainer:
        return registry.create(kind, data, observer=on_step)

    return {
        "__builtins__": restricted,
        "__name__": "__sandbox__",
        LOOP_GUARD_NAME: LoopGuard(start.max_loop_iterations),
        RECURSION_GUARD_NAME: RecursionGuard(start.max_recursion_depth),
        "track": track,
    }


def run_start_message(start: StartMessage, channel: HostChannel, registry: ContainerRegistry | None = None) -> None:
    """Execute one start request and post exactly one terminal message."""
    registry = registry or create_default_registry()
    on_step = channel.step

    # each tracked call costs two interpreter frames
    sys.setrecursionlimit(max(sys.getrecursionlimit(), start.max_recursion_depth * 3 + 200))
    namespace = _build_namespace(start, channel, registry, on_step)
    started = time.perf_counter()
    try:
        exec(compile(start.source, "<submission>", "exec"), namespace)

        args = list(start.args)
        container = start.entry_point.container
        if container:
            initial = args[0] if args else None
            tracked = registry.create(container, initial, observer=on_step)
            args = [tracked, *args[1:]]

        function_name = start.entry_point.function
        if function_name:
            func = namespace.get(function_name)
            if not callable(func):
                raise RuntimeError(f"{function_name} function not defined")
            result = cast(Callable[..., Any], func)(*args)
        else:
            result = namespace.get("result")

        if start.assertions is None:
            elapsed = (time.perf_counter() - started) * 1000
            channel.complete(result, elapsed)
            return

        namespace["result"] = result
        namespace["data"] = args[0] if args else None
        passed = True
        failure: str | None = None
        try:
            exec(compile(start.assertions, "<assertions>", "exec"), namespace)
        except AssertionError as exc:
            passed = False
            failure = f"Assertion failed: {exc}" if str(exc) else "Assertion failed"
        elapsed = (time.perf_counter() - started) * 1000
        channel.test_result(
            start.test_id or start.correlation_id or "test",
            passed,
            elapsed,
            error=failure,
        )
    except BaseException as exc:  # noqa: BLE001 - capture all child errors
        channel.error(exc)


def host_main() -> None:
    """Entry point for the sandbox child process."""
    stream = sys.stdout
    raw = sys.stdin.readline()
    try:
        start = StartMessage.from_json(raw)
    except ValueError as exc:
        channel = HostChannel(stream, None, None)
        channel.post(ExecutionErrorMessage(error=f"Invalid start message: {exc}"))
        return

    channel = HostChannel(stream, start.correlation_id, start.sender)
    _install_console(channel)
    try:
        run_start_message(start, channel)
    finally:
        sys.stdout.flush()
        sys.stderr.flush()


if __name__ == "__main__":
    host_main()
