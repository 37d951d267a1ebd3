"""
Closed message protocol between the supervisor and the sandbox host.

Messages travel as newline-delimited JSON objects with camelCase field
names. Inbound messages (host -> supervisor) are only trusted after
``validate_message`` narrows them to one of the five known kinds; anything
else is "no match" and the caller drops it.
"""

from __future__ import annotations

import json
import secrets
import threading
import time
from collections.abc import Callable, Mapping
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr, TypeAdapter

from tracking.schemas import BaseSchema, Step

TERMINAL_TYPES = frozenset({"execution-complete", "execution-error", "test-result"})


class WireMessage(BaseSchema):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    correlation_id: StrictStr | None = Field(default=None, alias="correlationId")
    sender: StrictStr | None = None

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire names, keeping only fields that were actually set."""
        data = self.model_dump(by_alias=True, exclude_unset=True)
        data["type"] = getattr(self, "type")
        return data

    def to_line(self) -> str:
        return json.dumps(self.to_wire(), default=repr)


class FaultPayload(BaseSchema):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    kind: Literal["loop", "recursion", "external"]
    iterations: StrictInt | None = None
    depth: StrictInt | None = None
    elapsed_ms: StrictInt | None = Field(default=None, alias="elapsedMs")


class ExecutionCompleteMessage(WireMessage):
    type: Literal["execution-complete"] = "execution-complete"
    result: Any
    steps: list[Any]
    execution_time: StrictInt | StrictFloat = Field(alias="executionTime")


class ExecutionErrorMessage(WireMessage):
    type: Literal["execution-error"] = "execution-error"
    error: StrictStr
    stack: StrictStr | None = None
    fault: FaultPayload | None = None


class TestResultMessage(WireMessage):
    __test__ = False

    type: Literal["test-result"] = "test-result"
    test_id: StrictStr = Field(alias="testId")
    passed: StrictBool
    execution_time: StrictInt | StrictFloat = Field(alias="executionTime")
    steps: list[Any]
    error: StrictStr | None = None


class CaptureStepMessage(WireMessage):
    type: Literal["capture-step"] = "capture-step"
    step: Step


class ConsoleLogMessage(WireMessage):
    type: Literal["console-log"] = "console-log"
    level: StrictStr
    args: list[Any]


InboundMessage = Annotated[
    Union[
        ExecutionCompleteMessage,
        ExecutionErrorMessage,
        TestResultMessage,
        CaptureStepMessage,
        ConsoleLogMessage,
    ],
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter[Any] = TypeAdapter(InboundMessage)


class EntryPoint(BaseSchema):
    """Which function to call and how to wrap its first argument."""

    model_config = ConfigDict(frozen=True)

    function: str | None = None
    container: str | None = None


class StartMessage(WireMessage):
    """The single invoke message the supervisor sends to a fresh host."""

    type: Literal["start"] = "start"
    source: StrictStr
    entry_point: EntryPoint = Field(default_factory=EntryPoint, alias="entryPoint")
    args: list[Any] = Field(default_factory=list)
    assertions: StrictStr | None = None
    test_id: StrictStr | None = Field(default=None, alias="testId")
    max_loop_iterations: StrictInt = Field(alias="maxLoopIterations")
    max_recursion_depth: StrictInt = Field(alias="maxRecursionDepth")
    allowed_modules: list[StrictStr] | None = Field(default=None, alias="allowedModules")

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data["type"] = self.type
        return data


def validate_message(payload: object, expected_sender: str | None = None) -> InboundMessage | None:
    """Narrow an untrusted payload to a known inbound message, or return None.

    Never raises. A payload matches only if it is a mapping with a known
    ``type``, every required field for that kind is present with the right
    type (no coercion), and, when ``expected_sender`` is given, its
    ``sender`` equals it.
    """
    if not isinstance(payload, Mapping):
        return None
    try:
        message = _INBOUND_ADAPTER.validate_python(dict(payload))
    except Exception:  # noqa: BLE001 - validation is total by contract
        return None
    if expected_sender is not None and message.sender != expected_sender:
        return None
    return message


def parse_message_line(line: str | bytes, expected_sender: str | None = None) -> InboundMessage | None:
    """Decode one JSON line from the host and validate it."""
    try:
        payload = json.loads(line)
    except (ValueError, TypeError):
        return None
    return validate_message(payload, expected_sender)


def is_terminal(message: WireMessage) -> bool:
    return getattr(message, "type", None) in TERMINAL_TYPES


class CorrelationIdGenerator:
    """
    Thread-safe source of unique, time-sortable identifiers.

    Format: ``<13-digit ms>-<8-hex sequence>-<6-hex random>``. The millisecond
    prefix never moves backwards within one generator and the sequence is
    strictly increasing, so string order matches issue order.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last_ms = 0
        self._sequence = 0

    def next_id(self) -> str:
        with self._lock:
            now = max(int(self._clock()), self._last_ms)
            self._last_ms = now
            self._sequence += 1
            sequence = self._sequence
        return f"{now:013d}-{sequence:08x}-{secrets.token_hex(3)}"


_default_generator = CorrelationIdGenerator()


def generate_correlation_id() -> str:
    return _default_generator.next_id()
