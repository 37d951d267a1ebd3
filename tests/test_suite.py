"""Tests for test-case loading and the suite runner."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from harness.cases import TestCase, load_cases
from harness.failure_taxonomy import FailureType
from harness.suite import SuiteRunner, validate_user_code
from sandbox.executor import ExecutionRequest, ExecutionResult, SandboxExecutor, TestOutcome

SOLUTION = """
def reverse_in_place(arr):
    i, j = 0, arr.length - 1
    while i < j:
        arr.swap(i, j)
        i += 1
        j -= 1
    return arr
"""


class FakeExecutor:
    def __init__(self, results: list[ExecutionResult]) -> None:
        self.results = list(results)
        self.requests: list[ExecutionRequest] = []

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        self.requests.append(request)
        return self.results.pop(0)


def _case(**overrides) -> TestCase:
    data = {
        "id": "rev-1",
        "name": "Reverse",
        "difficulty": "easy",
        "container": "array",
        "function": "reverse_in_place",
        "initial_data": [1, 2, 3],
        "assertions": "assert result.to_list() == [3, 2, 1]",
    }
    data.update(overrides)
    return TestCase.from_dict(data)


def test_validate_user_code() -> None:
    assert validate_user_code(SOLUTION) == (True, None)
    assert validate_user_code("   ") == (False, "Code is empty. Please write some code to test.")
    assert validate_user_code("x = 1") == (False, "No function found. Please define a function to test.")
    ok, error = validate_user_code("def f(:")
    assert ok is False
    assert error.startswith("SyntaxError")


def test_build_request() -> None:
    runner = SuiteRunner(FakeExecutor([]))
    case = _case(additional_args=[5])
    request = runner.build_request(SOLUTION, case)

    assert request.entry_point.function == "reverse_in_place"
    assert request.entry_point.container == "array"
    assert request.args == [[1, 2, 3], 5]
    assert request.assertions == "assert result.to_list() == [3, 2, 1]"
    assert request.test_id == "rev-1"

    without = runner.build_request(SOLUTION, _case(assertions="  "))
    assert without.assertions is None


def test_run_tests_records_failures() -> None:
    fake = FakeExecutor(
        [
            ExecutionResult(success=True),
            ExecutionResult(
                success=False,
                error="Assertion failed",
                test=TestOutcome(test_id="rev-2", passed=False, error="Assertion failed"),
            ),
        ]
    )
    runner = SuiteRunner(fake)

    results = runner.run_tests(SOLUTION, [_case(), _case(id="rev-2")])

    assert [r.success for r in results] == [True, False]
    assert [r.test_id for r in fake.requests] == ["rev-1", "rev-2"]
    assert runner.analyzer.get_failure_stats()[FailureType.ASSERTION_FAILED] == 1


def test_invalid_code_never_reaches_executor() -> None:
    fake = FakeExecutor([])
    runner = SuiteRunner(fake)

    result = runner.run_test("x = 1", _case())

    assert result.success is False
    assert fake.requests == []


def test_run_by_difficulty_filters() -> None:
    fake = FakeExecutor([ExecutionResult(success=True)])
    runner = SuiteRunner(fake)

    results = runner.run_by_difficulty(
        SOLUTION, [_case(), _case(id="hard-1", difficulty="hard")], "hard"
    )

    assert len(results) == 1
    assert fake.requests[0].test_id == "hard-1"


def test_reference_solution_runs_without_assertions() -> None:
    fake = FakeExecutor([ExecutionResult(success=True, result=[3, 2, 1])])
    runner = SuiteRunner(fake)

    result = runner.run_reference_solution(_case(reference_solution=SOLUTION))

    assert result.result == [3, 2, 1]
    assert fake.requests[0].assertions is None
    assert runner.run_reference_solution(_case()).success is False


def test_expected_output_judges_cases_without_assertions() -> None:
    fake = FakeExecutor(
        [
            ExecutionResult(success=True, result=[3, 2, 1]),
            ExecutionResult(success=True, result=[1, 2, 3]),
        ]
    )
    runner = SuiteRunner(fake)
    case = _case(assertions="", expected_output=[3, 2, 1])

    passed, failed = runner.run_tests(SOLUTION, [case, case])

    assert fake.requests[0].assertions is None
    assert passed.success is True
    assert passed.test == TestOutcome(test_id="rev-1", passed=True)
    assert failed.success is False
    assert failed.error == "Assertion failed: expected [3, 2, 1] but got [1, 2, 3]"
    assert failed.test.passed is False
    assert runner.analyzer.get_failure_stats()[FailureType.ASSERTION_FAILED] == 1


def test_assertions_take_precedence_over_expected_output() -> None:
    fake = FakeExecutor([ExecutionResult(success=True, result="anything")])
    runner = SuiteRunner(fake)

    result = runner.run_test(SOLUTION, _case(expected_output=[3, 2, 1]))

    assert result.success is True
    assert result.test is None


def test_expected_output_ignored_for_failed_runs() -> None:
    crashed = ExecutionResult(success=False, error="ValueError: boom")
    runner = SuiteRunner(FakeExecutor([crashed]))

    result = runner.run_test(SOLUTION, _case(assertions="", expected_output=1))

    assert result is crashed


def test_load_cases(tmp_path: Path) -> None:
    path = tmp_path / "cases.yaml"
    with open(path, "w") as f:
        yaml.dump({"cases": [_case().to_dict(), _case(id="rev-2", hints=["use two pointers"]).to_dict()]}, f)

    cases = load_cases(path)

    assert [case.id for case in cases] == ["rev-1", "rev-2"]
    assert cases[1].hints == ["use two pointers"]
    assert cases[0].call_args() == [[1, 2, 3]]


def test_load_cases_rejects_bad_entries(tmp_path: Path) -> None:
    path = tmp_path / "cases.yaml"
    path.write_text("- id: ok\n- name: missing id\n")
    with pytest.raises(ValueError, match="#1"):
        load_cases(path)

    path.write_text("just a string\n")
    with pytest.raises(ValueError):
        load_cases(path)


def test_suite_runs_in_real_sandbox() -> None:
    runner = SuiteRunner(SandboxExecutor())
    results = runner.run_tests(
        SOLUTION,
        [_case(), _case(id="rev-bad", assertions="assert result.to_list() == [1, 2, 3]")],
    )

    assert results[0].success is True
    assert [step.type for step in results[0].steps] == ["swap"]
    assert results[1].success is False
    assert runner.analyzer.get_top_failures(1) == [("assertion_failed", 1)]
