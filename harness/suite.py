"""Sequential test-suite runner built on the sandbox executor."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from tqdm import tqdm

from harness.cases import TestCase
from harness.failure_taxonomy import FailureAnalyzer
from sandbox.executor import ExecutionRequest, ExecutionResult, SandboxExecutor, TestOutcome
from sandbox.instrument import extract_entry_function, validate_syntax
from sandbox.messages import EntryPoint

logger = logging.getLogger(__name__)


def validate_user_code(source: str) -> tuple[bool, str | None]:
    """Cheap pre-flight check before spending a host process on ``source``."""
    if not source.strip():
        return False, "Code is empty. Please write some code to test."
    valid, error = validate_syntax(source)
    if not valid:
        return False, error
    if extract_entry_function(source) is None:
        return False, "No function found. Please define a function to test."
    return True, None


class SuiteRunner:
    """Runs test cases one at a time, each in its own sandbox host."""

    def __init__(self, executor: SandboxExecutor | None = None) -> None:
        self.executor = executor or SandboxExecutor()
        self.analyzer = FailureAnalyzer()

    def build_request(self, source: str, case: TestCase, with_assertions: bool = True) -> ExecutionRequest:
        return ExecutionRequest(
            source=source,
            entry_point=EntryPoint(function=case.function, container=case.container),
            args=case.call_args(),
            assertions=case.assertions if with_assertions and case.assertions.strip() else None,
            test_id=case.id,
        )

    def run_test(self, source: str, case: TestCase) -> ExecutionResult:
        valid, error = validate_user_code(source)
        if not valid:
            result = ExecutionResult(success=False, error=error)
        else:
            result = self.executor.execute(self.build_request(source, case))
            result = self.check_expected_output(result, case)
        failure = self.analyzer.record(result)
        if failure is not None:
            logger.info(f"Test {case.id} failed ({failure.value}): {result.error}")
        return result

    @staticmethod
    def check_expected_output(result: ExecutionResult, case: TestCase) -> ExecutionResult:
        """Judge a successful run against ``case.expected_output``.

        Only applies to cases without assertions; assertions take precedence.
        """
        if case.assertions.strip() or case.expected_output is None or not result.success:
            return result
        if result.result == case.expected_output:
            return replace(result, test=TestOutcome(test_id=case.id, passed=True))
        error = f"Assertion failed: expected {case.expected_output!r} but got {result.result!r}"
        return replace(
            result,
            success=False,
            error=error,
            test=TestOutcome(test_id=case.id, passed=False, error=error),
        )

    def run_tests(
        self,
        source: str,
        cases: Iterable[TestCase],
        progress: bool = False,
    ) -> list[ExecutionResult]:
        case_list = list(cases)
        iterator = tqdm(case_list, desc="Running tests", unit="test") if progress else case_list
        return [self.run_test(source, case) for case in iterator]

    def run_by_difficulty(
        self,
        source: str,
        cases: Iterable[TestCase],
        difficulty: str,
        progress: bool = False,
    ) -> list[ExecutionResult]:
        filtered = [case for case in cases if case.difficulty == difficulty]
        return self.run_tests(source, filtered, progress=progress)

    def run_reference_solution(self, case: TestCase) -> ExecutionResult:
        """Run the case's reference solution to record the expected step log."""
        if not case.reference_solution.strip():
            return ExecutionResult(success=False, error=f"Test case {case.id} has no reference solution")
        request = self.build_request(case.reference_solution, case, with_assertions=False)
        return self.executor.execute(request)
