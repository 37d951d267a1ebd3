"""
Subprocess-based sandbox executor for untrusted code.

One call to ``SandboxExecutor.execute_async`` is one request/response cycle:
instrument the source, spawn a fresh host process, arm the external
watchdog, send the start message, then wait for the first valid terminal
message or the watchdog, whichever comes first. Every outcome, including
timeouts and host crashes, is returned as an ``ExecutionResult``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import sys
import time
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError

from sandbox import policy
from sandbox.host import CHILD_TEMPLATE
from sandbox.instrument import extract_entry_function, instrument_source
from sandbox.messages import (
    CaptureStepMessage,
    ConsoleLogMessage,
    EntryPoint,
    ExecutionCompleteMessage,
    ExecutionErrorMessage,
    FaultPayload,
    InboundMessage,
    StartMessage,
    TestResultMessage,
    generate_correlation_id,
    parse_message_line,
)
from sandbox.timeouts import (
    DEFAULT_TIMEOUT_CONFIG,
    Fault,
    FaultKind,
    TimeoutConfig,
    create_external_timeout,
    format_fault,
)
from tracking.schemas import BaseSchema, Step

logger = logging.getLogger(__name__)


class ExecutionRequest(BaseSchema):
    source: str
    entry_point: EntryPoint = Field(default_factory=EntryPoint)
    args: list[Any] = Field(default_factory=list)
    assertions: str | None = None
    test_id: str | None = None


@dataclass(frozen=True)
class ConsoleLog:
    level: str
    args: list[Any]
    timestamp: int


@dataclass(frozen=True)
class TestOutcome:
    __test__ = False

    test_id: str
    passed: bool
    error: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    success: bool
    result: Any = None
    steps: tuple[Step, ...] = ()
    error: str | None = None
    execution_time_ms: float = 0.0
    console_logs: tuple[ConsoleLog, ...] = ()
    fault: Fault | None = None
    test: TestOutcome | None = None
    correlation_id: str | None = None

    @property
    def timed_out(self) -> bool:
        return self.fault is not None and self.fault.kind is FaultKind.EXTERNAL

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "result": self.result,
            "steps": [step.to_dict() for step in self.steps],
            "error": self.error,
            "executionTime": self.execution_time_ms,
            "consoleLogs": [
                {"level": log.level, "args": log.args, "timestamp": log.timestamp}
                for log in self.console_logs
            ],
            "fault": self.fault.to_dict() if self.fault else None,
            "test": (
                {"testId": self.test.test_id, "passed": self.test.passed, "error": self.test.error}
                if self.test
                else None
            ),
            "correlationId": self.correlation_id,
        }


@dataclass
class _Accumulator:
    """Non-terminal output collected while a request is in flight."""

    steps: list[Step] = field(default_factory=list)
    console_logs: list[ConsoleLog] = field(default_factory=list)
    dropped: int = 0
    oversized: int = 0


async def iter_frames(
    reader: asyncio.StreamReader,
    max_frame_bytes: int,
    chunk_size: int = 1 << 16,
) -> AsyncIterator[bytes | None]:
    """Yield newline-delimited frames from ``reader`` until EOF.

    A frame longer than ``max_frame_bytes`` is skipped through its newline
    and reported once as ``None``; reading resumes with the next frame. A
    final frame with no trailing newline is still yielded.
    """
    buffer = bytearray()
    scanned = 0
    skipping = False
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        buffer += chunk
        while True:
            newline = buffer.find(b"\n", scanned)
            if newline < 0:
                scanned = len(buffer)
                break
            if skipping:
                skipping = False
            else:
                yield bytes(buffer[:newline]) if newline <= max_frame_bytes else None
            del buffer[: newline + 1]
            scanned = 0
        if len(buffer) > max_frame_bytes:
            if not skipping:
                skipping = True
                yield None
            buffer.clear()
            scanned = 0
    if buffer and not skipping:
        yield bytes(buffer)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _coerce_steps(raw_steps: Iterable[object]) -> list[Step]:
    steps: list[Step] = []
    for raw in raw_steps:
        try:
            steps.append(Step.model_validate(raw))
        except ValidationError:
            logger.debug("Dropped malformed step in terminal message")
    return steps


def _fault_from_payload(payload: FaultPayload | None) -> Fault | None:
    if payload is None:
        return None
    return Fault(
        FaultKind(payload.kind),
        iterations=payload.iterations,
        depth=payload.depth,
        elapsed_ms=payload.elapsed_ms,
    )


class SandboxExecutor:
    """
    Execute untrusted code in a subprocess with best-effort limits.

    On Unix platforms, CPU and memory limits are enforced via resource.setrlimit.
    On Windows, these limits degrade gracefully and only the watchdog applies.
    Requests are processed one at a time; each gets its own host and watchdog.
    """

    DEFAULT_MEMORY_LIMIT_MB: int = 1024
    MAX_FRAME_BYTES: int = 64 * 1024 * 1024

    def __init__(
        self,
        timeout_config: TimeoutConfig | None = None,
        memory_limit_mb: int | None = None,
        allowed_modules: Sequence[str] | None = None,
        host_command: Sequence[str] | None = None,
    ) -> None:
        self.timeout_config: TimeoutConfig = timeout_config or DEFAULT_TIMEOUT_CONFIG
        self.memory_limit_mb: int = memory_limit_mb or self.DEFAULT_MEMORY_LIMIT_MB
        self.allowed_modules: list[str] = list(allowed_modules or policy.ALLOWED_MODULES)
        self.host_command: list[str] = list(host_command or [sys.executable, "-c", CHILD_TEMPLATE])

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Blocking wrapper around ``execute_async``."""
        return asyncio.run(self.execute_async(request))

    def execute_batch(self, requests: Iterable[ExecutionRequest]) -> list[ExecutionResult]:
        """Run requests strictly one after another."""

        async def run_all() -> list[ExecutionResult]:
            results: list[ExecutionResult] = []
            for request in requests:
                results.append(await self.execute_async(request))
            return results

        return asyncio.run(run_all())

    async def execute_async(self, request: ExecutionRequest) -> ExecutionResult:
        correlation_id = generate_correlation_id()
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - started) * 1000

        def failure(error: str) -> ExecutionResult:
            return ExecutionResult(
                success=False,
                error=error,
                execution_time_ms=elapsed_ms(),
                correlation_id=correlation_id,
            )

        instrumented = instrument_source(request.source, self.timeout_config)
        if instrumented.error:
            return failure(instrumented.error)

        assertions: str | None = None
        if request.assertions is not None:
            instrumented_assertions = instrument_source(request.assertions, self.timeout_config)
            if instrumented_assertions.error:
                return failure(f"Invalid assertions: {instrumented_assertions.error}")
            assertions = instrumented_assertions.code

        entry_point = EntryPoint(
            function=request.entry_point.function or extract_entry_function(request.source),
            container=request.entry_point.container,
        )
        sender = secrets.token_hex(8)
        start = StartMessage(
            correlation_id=correlation_id,
            sender=sender,
            source=instrumented.code,
            entry_point=entry_point,
            args=list(request.args),
            assertions=assertions,
            test_id=request.test_id,
            max_loop_iterations=self.timeout_config.max_loop_iterations,
            max_recursion_depth=self.timeout_config.max_recursion_depth,
            allowed_modules=self.allowed_modules,
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *self.host_command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._host_env(),
                preexec_fn=self._limit_resources() if os.name != "nt" else None,
            )
        except OSError as exc:
            logger.warning(f"Failed to start sandbox host: {exc}")
            return failure(f"Failed to start sandbox host: {exc}")

        loop = asyncio.get_running_loop()
        expired: asyncio.Future[Fault] = loop.create_future()

        def resolve_expired(fault: Fault) -> None:
            if not expired.done():
                expired.set_result(fault)

        def on_timeout(fault: Fault) -> None:
            # runs on the watchdog thread
            loop.call_soon_threadsafe(resolve_expired, fault)

        collected = _Accumulator()
        watchdog = create_external_timeout(self.timeout_config.external_timeout_ms, on_timeout)
        reader: asyncio.Future[InboundMessage | None] | None = None
        try:
            await self._send_start(process, start)
            reader = asyncio.ensure_future(self._read_until_terminal(process, sender, correlation_id, collected))
            done, _ = await asyncio.wait({reader, expired}, return_when=asyncio.FIRST_COMPLETED)

            if reader in done:
                watchdog.cancel()
                terminal = reader.result()
                if terminal is None:
                    error = self._frame_limit_error(collected) or await self._describe_crash(process)
                    logger.warning(f"Sandbox host {correlation_id} exited without a result: {error}")
                    return self._build_result(collected, elapsed_ms(), correlation_id, success=False, error=error)
                return self._from_terminal(terminal, collected, elapsed_ms(), correlation_id)

            fault = expired.result()
            logger.warning(f"Sandbox host {correlation_id} killed by watchdog after {fault.elapsed_ms}ms")
            return self._build_result(
                collected,
                elapsed_ms(),
                correlation_id,
                success=False,
                error=format_fault(fault),
                fault=fault,
            )
        finally:
            watchdog.cancel()
            if reader is not None and not reader.done():
                reader.cancel()
            await self._teardown(process)
            if collected.dropped:
                logger.debug(f"Dropped {collected.dropped} invalid message(s) from sandbox host {correlation_id}")

    def _from_terminal(
        self,
        message: InboundMessage,
        collected: _Accumulator,
        execution_time_ms: float,
        correlation_id: str,
    ) -> ExecutionResult:
        if isinstance(message, ExecutionCompleteMessage):
            if not collected.steps:
                collected.steps.extend(_coerce_steps(message.steps))
            return self._build_result(
                collected, execution_time_ms, correlation_id, success=True, result=message.result
            )
        if isinstance(message, TestResultMessage):
            if not collected.steps:
                collected.steps.extend(_coerce_steps(message.steps))
            return self._build_result(
                collected,
                execution_time_ms,
                correlation_id,
                success=message.passed,
                error=message.error,
                test=TestOutcome(test_id=message.test_id, passed=message.passed, error=message.error),
            )
        assert isinstance(message, ExecutionErrorMessage)
        return self._build_result(
            collected,
            execution_time_ms,
            correlation_id,
            success=False,
            error=message.error,
            fault=_fault_from_payload(message.fault),
        )

    @staticmethod
    def _build_result(
        collected: _Accumulator,
        execution_time_ms: float,
        correlation_id: str,
        *,
        success: bool,
        result: Any = None,
        error: str | None = None,
        fault: Fault | None = None,
        test: TestOutcome | None = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            success=success,
            result=result,
            steps=tuple(collected.steps),
            error=error,
            execution_time_ms=execution_time_ms,
            console_logs=tuple(collected.console_logs),
            fault=fault,
            test=test,
            correlation_id=correlation_id,
        )

    async def _send_start(self, process: asyncio.subprocess.Process, start: StartMessage) -> None:
        if process.stdin is None:
            return
        try:
            process.stdin.write((start.to_line() + "\n").encode("utf-8"))
            await process.stdin.drain()
            process.stdin.close()
        except (BrokenPipeError, ConnectionResetError) as exc:
            # the host died before reading; the reader reports it as a crash
            logger.debug(f"Sandbox host closed stdin early: {exc}")

    async def _read_until_terminal(
        self,
        process: asyncio.subprocess.Process,
        sender: str,
        correlation_id: str,
        collected: _Accumulator,
    ) -> InboundMessage | None:
        """Accumulate steps and logs until a terminal message or EOF."""
        if process.stdout is None:
            return None
        async with aclosing(iter_frames(process.stdout, self.MAX_FRAME_BYTES)) as frames:
            async for frame in frames:
                if frame is None:
                    collected.oversized += 1
                    collected.dropped += 1
                    continue
                if not frame.strip():
                    continue
                message = parse_message_line(frame, expected_sender=sender)
                if message is None or (
                    message.correlation_id is not None and message.correlation_id != correlation_id
                ):
                    collected.dropped += 1
                    continue
                if isinstance(message, CaptureStepMessage):
                    collected.steps.append(message.step)
                elif isinstance(message, ConsoleLogMessage):
                    collected.console_logs.append(
                        ConsoleLog(level=message.level, args=list(message.args), timestamp=_now_ms())
                    )
                else:
                    return message
        return None

    def _frame_limit_error(self, collected: _Accumulator) -> str | None:
        if not collected.oversized:
            return None
        return f"Sandbox host message exceeded the frame limit of {self.MAX_FRAME_BYTES:,} bytes"

    async def _describe_crash(self, process: asyncio.subprocess.Process) -> str:
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            returncode = None
        stderr_text = ""
        if process.stderr is not None and returncode is not None:
            stderr_text = (await process.stderr.read()).decode("utf-8", errors="replace").strip()
        if stderr_text:
            return stderr_text.splitlines()[-1]
        if returncode is not None:
            return f"Sandbox host exited with code {returncode} before reporting a result"
        return "Empty response from sandbox"

    async def _teardown(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        _ = await process.wait()

    def _host_env(self) -> dict[str, str]:
        env = os.environ.copy()
        project_root = str(Path(__file__).resolve().parents[1])
        existing_pythonpath = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{project_root}{os.pathsep}{existing_pythonpath}"
            if existing_pythonpath
            else project_root
        )
        env["PYTHONUNBUFFERED"] = "1"
        return env

    def _limit_resources(self):
        """Return a preexec_fn to enforce resource limits on Unix."""
        timeout_seconds = self.timeout_config.external_timeout_s

        def _apply_limits():
            try:
                import resource
            except ImportError:
                return
            cpu_seconds = max(1, int(timeout_seconds) + 1)
            memory_bytes = int(self.memory_limit_mb * 1024 * 1024)
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1))
            if hasattr(resource, "RLIMIT_AS"):
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            elif hasattr(resource, "RLIMIT_DATA"):
                resource.setrlimit(resource.RLIMIT_DATA, (memory_bytes, memory_bytes))

        return _apply_limits
