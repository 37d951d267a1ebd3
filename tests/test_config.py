"""Tests for runner configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from harness.config import RunnerConfig, load_config, save_config
from sandbox.executor import SandboxExecutor
from sandbox.policy import ALLOWED_MODULES


class TestRunnerConfig:
    def test_defaults(self) -> None:
        config = RunnerConfig()
        assert config.timeouts == {}
        assert config.memory_limit_mb == SandboxExecutor.DEFAULT_MEMORY_LIMIT_MB
        assert config.allowed_modules == list(ALLOWED_MODULES)
        assert config.timeout_config().max_loop_iterations == 100_000

    def test_load_config_from_yaml(self, tmp_path: Path) -> None:
        config_path = tmp_path / "runner.yaml"
        with open(config_path, "w") as f:
            yaml.dump(
                {
                    "timeouts": {"maxLoopIterations": 500, "external_timeout_ms": 2_000},
                    "memory_limit_mb": 512,
                    "allowed_modules": ["math"],
                    "show_progress": True,
                },
                f,
            )

        config = load_config(config_path)

        assert config.memory_limit_mb == 512
        assert config.show_progress is True
        timeouts = config.timeout_config()
        assert timeouts.max_loop_iterations == 500
        assert timeouts.external_timeout_ms == 2_000

        executor = config.build_executor()
        assert executor.timeout_config == timeouts
        assert executor.memory_limit_mb == 512
        assert executor.allowed_modules == ["math"]

    def test_load_config_missing_file(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        config_path = tmp_path / "empty.yaml"
        config_path.write_text("")
        assert load_config(config_path).to_dict() == RunnerConfig().to_dict()

    def test_out_of_range_timeout(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("timeouts:\n  max_recursion_depth: 0\n")
        with pytest.raises(ValueError, match="max_recursion_depth must be between 1 and 10,000"):
            load_config(config_path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config_path = tmp_path / "broken.yaml"
        config_path.write_text("timeouts: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(config_path)

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        config_path = tmp_path / "list.yaml"
        config_path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(config_path)

    def test_save_and_reload(self, tmp_path: Path) -> None:
        config = RunnerConfig(timeouts={"max_loop_iterations": 42}, memory_limit_mb=256)
        path = tmp_path / "nested" / "saved.yaml"

        save_config(config, path)
        reloaded = load_config(path)

        assert reloaded.to_dict() == config.to_dict()
        assert reloaded.timeout_config().max_loop_iterations == 42
