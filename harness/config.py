"""Runner configuration with YAML support."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator

from sandbox import policy
from sandbox.executor import SandboxExecutor
from sandbox.timeouts import TimeoutConfig, validate_timeout_config
from tracking.schemas import BaseSchema


class RunnerConfig(BaseSchema):
    """Settings for building a SandboxExecutor."""

    # Timeout overrides, snake_case or camelCase keys
    timeouts: dict[str, Any] = Field(default_factory=dict)

    memory_limit_mb: int = Field(default=SandboxExecutor.DEFAULT_MEMORY_LIMIT_MB, ge=64)
    allowed_modules: list[str] = Field(default_factory=lambda: list(policy.ALLOWED_MODULES))

    show_progress: bool = False

    @field_validator("timeouts")
    @classmethod
    def timeouts_in_range(cls, value: dict[str, Any]) -> dict[str, Any]:
        # ConfigRangeError is a ValueError, so pydantic reports it as a validation error
        _ = validate_timeout_config(value)
        return value

    def timeout_config(self) -> TimeoutConfig:
        return validate_timeout_config(self.timeouts)

    def build_executor(self) -> SandboxExecutor:
        return SandboxExecutor(
            timeout_config=self.timeout_config(),
            memory_limit_mb=self.memory_limit_mb,
            allowed_modules=self.allowed_modules,
        )


def load_config(yaml_path: str | Path) -> RunnerConfig:
    """Load runner configuration from YAML file.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        RunnerConfig instance

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If YAML is invalid or a setting is out of range
    """
    yaml_path = Path(yaml_path)

    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {yaml_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {yaml_path}")

    try:
        return RunnerConfig.from_dict(data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {yaml_path}: {e}") from e


def save_config(config: RunnerConfig, yaml_path: str | Path) -> None:
    """Save runner configuration to YAML file.

    Args:
        config: RunnerConfig to save
        yaml_path: Path where to save YAML file
    """
    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)

    data = config.to_dict()

    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)
