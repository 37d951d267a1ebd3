"""Tests for timeout configuration, the watchdog and fault messages."""

from __future__ import annotations

import threading
import time

import pytest

from sandbox.timeouts import (
    DEFAULT_TIMEOUT_CONFIG,
    ConfigRangeError,
    Fault,
    FaultKind,
    TimeoutConfig,
    Watchdog,
    create_external_timeout,
    format_fault,
    is_infinite_loop_error,
    validate_timeout_config,
)


class TestTimeoutConfig:
    def test_defaults(self) -> None:
        assert validate_timeout_config({}) == DEFAULT_TIMEOUT_CONFIG
        assert validate_timeout_config(None) == TimeoutConfig(
            max_loop_iterations=100_000,
            max_recursion_depth=1_000,
            external_timeout_ms=5_000,
            enable_loop_injection=True,
            enable_recursion_tracking=True,
        )

    def test_partial_override(self) -> None:
        config = validate_timeout_config({"max_loop_iterations": 50})
        assert config.max_loop_iterations == 50
        assert config.max_recursion_depth == 1_000
        assert config.external_timeout_s == 5.0

    def test_camel_case_keys(self) -> None:
        config = validate_timeout_config({"maxRecursionDepth": 20, "externalTimeoutMs": 250})
        assert config.max_recursion_depth == 20
        assert config.external_timeout_ms == 250

    @pytest.mark.parametrize(
        ("name", "value", "message"),
        [
            ("max_loop_iterations", 0, "max_loop_iterations must be between 1 and 10,000,000 (got 0)"),
            ("max_loop_iterations", 10_000_001, "max_loop_iterations must be between 1 and 10,000,000"),
            ("max_recursion_depth", 0, "max_recursion_depth must be between 1 and 10,000 (got 0)"),
            ("max_recursion_depth", 10_001, "max_recursion_depth must be between 1 and 10,000"),
            ("external_timeout_ms", 99, "external_timeout_ms must be between 100ms and 60,000ms (got 99)"),
            ("external_timeout_ms", 60_001, "external_timeout_ms must be between 100ms and 60,000ms"),
        ],
    )
    def test_out_of_range_names_field_and_range(self, name: str, value: int, message: str) -> None:
        with pytest.raises(ConfigRangeError) as excinfo:
            validate_timeout_config({name: value})
        assert message in str(excinfo.value)

    def test_bounds_are_inclusive(self) -> None:
        config = validate_timeout_config(
            {"max_loop_iterations": 1, "max_recursion_depth": 10_000, "external_timeout_ms": 100}
        )
        assert config.max_loop_iterations == 1

    def test_rejects_non_integers(self) -> None:
        with pytest.raises(ConfigRangeError):
            TimeoutConfig(max_loop_iterations=True)
        with pytest.raises(ConfigRangeError):
            TimeoutConfig(external_timeout_ms=1.5)  # type: ignore[arg-type]
        with pytest.raises(ConfigRangeError):
            TimeoutConfig(enable_loop_injection="yes")  # type: ignore[arg-type]

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigRangeError, match="Unknown timeout setting"):
            validate_timeout_config({"max_loops": 5})

    def test_config_range_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            TimeoutConfig(max_recursion_depth=-1)


class TestWatchdog:
    def test_fires_once_with_elapsed(self) -> None:
        fired: list[Fault] = []
        done = threading.Event()

        def on_timeout(fault: Fault) -> None:
            fired.append(fault)
            done.set()

        watchdog = create_external_timeout(100, on_timeout)
        assert done.wait(2.0)
        time.sleep(0.1)

        assert watchdog.fired is True
        assert fired == [Fault(FaultKind.EXTERNAL, elapsed_ms=100)]

    def test_cancel_before_deadline(self) -> None:
        calls: list[Fault] = []
        watchdog = create_external_timeout(100, calls.append)

        watchdog.cancel()
        time.sleep(0.25)

        assert calls == []
        assert watchdog.cancelled is True
        assert watchdog.fired is False

    def test_cancel_after_fire_is_noop(self) -> None:
        calls: list[Fault] = []
        watchdog = Watchdog(100, calls.append)

        watchdog._fire()
        watchdog.cancel()
        watchdog._fire()

        assert len(calls) == 1
        assert watchdog.cancelled is False

    def test_cancel_is_idempotent(self) -> None:
        watchdog = create_external_timeout(1_000, lambda fault: None)
        watchdog.cancel()
        watchdog.cancel()
        assert watchdog.cancelled is True


class TestFaultMessages:
    def test_loop(self) -> None:
        message = format_fault(Fault.loop(100_000))
        assert message == "Infinite loop detected after 100,000 iterations. Check your loop conditions."

    def test_recursion(self) -> None:
        message = format_fault(Fault.recursion(1_000))
        assert message == "Maximum recursion depth (1,000) exceeded. Check for infinite recursion."

    def test_external(self) -> None:
        message = format_fault(Fault.external(5_000))
        assert message.startswith("Execution timed out after 5000ms.")

    def test_fault_to_dict(self) -> None:
        assert Fault.loop(3).to_dict() == {"kind": "loop", "iterations": 3}
        assert Fault.external(7).to_dict() == {"kind": "external", "elapsedMs": 7}

    def test_is_infinite_loop_error(self) -> None:
        assert is_infinite_loop_error(Fault.loop(1)) is True
        assert is_infinite_loop_error(Fault.external(1)) is True
        assert is_infinite_loop_error(Fault.recursion(1)) is False
        assert is_infinite_loop_error(format_fault(Fault.external(10))) is True
        assert is_infinite_loop_error("NameError: x") is False
        assert is_infinite_loop_error(None) is False
