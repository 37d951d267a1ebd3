"""Failure classification and analysis."""

from enum import Enum

from sandbox.executor import ExecutionResult
from sandbox.timeouts import FaultKind


class FailureType(str, Enum):
    TIMEOUT = "timeout"
    LOOP_LIMIT = "loop_limit"
    RECURSION_LIMIT = "recursion_limit"
    IMPORT_BLOCKED = "import_blocked"
    SYNTAX_ERROR = "syntax_error"
    ASSERTION_FAILED = "assertion_failed"
    HOST_CRASH = "host_crash"
    RUNTIME_ERROR = "runtime_error"
    OTHER = "other"


_FAULT_TYPES = {
    FaultKind.EXTERNAL: FailureType.TIMEOUT,
    FaultKind.LOOP: FailureType.LOOP_LIMIT,
    FaultKind.RECURSION: FailureType.RECURSION_LIMIT,
}


class FailureAnalyzer:
    def __init__(self):
        self.failures: dict[FailureType, int] = {ft: 0 for ft in FailureType}

    def classify_error(self, error_msg: str) -> FailureType:
        error_lower = error_msg.lower()

        if 'timed out' in error_lower or 'timeout' in error_lower:
            return FailureType.TIMEOUT
        elif 'infinite loop' in error_lower:
            return FailureType.LOOP_LIMIT
        elif 'recursion depth' in error_lower:
            return FailureType.RECURSION_LIMIT
        elif 'import' in error_lower and ('blocked' in error_lower or 'not allowlisted' in error_lower):
            return FailureType.IMPORT_BLOCKED
        elif 'syntaxerror' in error_lower or 'invalid syntax' in error_lower:
            return FailureType.SYNTAX_ERROR
        elif 'assertion failed' in error_lower:
            return FailureType.ASSERTION_FAILED
        elif any(err in error_lower for err in ['sandbox host exited', 'empty response from sandbox', 'frame limit']):
            return FailureType.HOST_CRASH
        elif any(err in error_lower for err in ['error', 'exception', 'failed']):
            return FailureType.RUNTIME_ERROR
        else:
            return FailureType.OTHER

    def classify(self, result: ExecutionResult) -> FailureType | None:
        """Classify a failed result; None for successes."""
        if result.success:
            return None
        if result.fault is not None:
            return _FAULT_TYPES[result.fault.kind]
        if result.test is not None and not result.test.passed:
            return FailureType.ASSERTION_FAILED
        return self.classify_error(result.error or "")

    def record_failure(self, error_msg: str) -> None:
        failure_type = self.classify_error(error_msg)
        self.failures[failure_type] += 1

    def record(self, result: ExecutionResult) -> FailureType | None:
        failure_type = self.classify(result)
        if failure_type is not None:
            self.failures[failure_type] += 1
        return failure_type

    def get_failure_stats(self) -> dict[FailureType, int]:
        return dict(self.failures)

    def get_top_failures(self, n: int = 5) -> list[tuple[str, int]]:
        sorted_failures = sorted(
            self.failures.items(),
            key=lambda x: x[1],
            reverse=True
        )
        return [(ft.value, count) for ft, count in sorted_failures[:n]]
