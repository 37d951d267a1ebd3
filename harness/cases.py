"""Exercise test cases loaded from YAML catalogs."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field

from tracking.schemas import BaseSchema


class TestCase(BaseSchema):
    """One exercise check: input data, assertions and a reference solution.

    ``initial_data`` is passed as the first argument (wrapped in the tracked
    container named by ``container``) and ``additional_args`` follow it.
    ``assertions`` is Python source evaluated after the call with ``result``
    and ``data`` in scope.
    """

    __test__ = False

    id: str
    name: str = ""
    difficulty: Literal["easy", "medium", "hard"] = "easy"
    description: str = ""
    container: str | None = None
    function: str | None = None
    initial_data: Any = None
    additional_args: list[Any] = Field(default_factory=list)
    expected_output: Any = None
    assertions: str = ""
    reference_solution: str = ""
    hints: list[str] = Field(default_factory=list)

    def call_args(self) -> list[Any]:
        return [self.initial_data, *self.additional_args]


def load_cases(yaml_path: str | Path) -> list[TestCase]:
    """Load a list of test cases from a YAML file.

    The file may hold a list of cases or a mapping with a ``cases`` key.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the YAML is not a list of valid cases
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Cases file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("cases")
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of test cases in {yaml_path}")

    cases: list[TestCase] = []
    for index, raw in enumerate(data):
        try:
            cases.append(TestCase.from_dict(raw))
        except Exception as e:
            raise ValueError(f"Invalid test case #{index} in {yaml_path}: {e}") from e
    return cases
