"""CLI interface for running submissions in the sandbox."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from harness.cases import load_cases
from harness.config import RunnerConfig, load_config
from harness.suite import SuiteRunner
from sandbox.executor import ExecutionRequest
from sandbox.instrument import instrument_source
from sandbox.messages import EntryPoint

app = typer.Typer(help="Tracked sandbox CLI")


def _load_runner_config(config_path: Optional[str]) -> RunnerConfig:
    if config_path is None:
        return RunnerConfig()
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        typer.secho(f"❌ Config file not found: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _read_source(source_path: str) -> str:
    path = Path(source_path)
    if not path.exists():
        typer.secho(f"❌ Source file not found: {source_path}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run(
    source_path: str = typer.Argument(..., help="Python file to execute"),
    function: Optional[str] = typer.Option(None, help="Entry function (defaults to the first def)"),
    container: Optional[str] = typer.Option(None, help="Wrap the first argument: array, linkedlist, stack, queue"),
    args: str = typer.Option("[]", help="JSON list of arguments"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Runner YAML config"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
) -> None:
    """Execute a source file and print its step log."""
    source = _read_source(source_path)
    try:
        call_args = json.loads(args)
    except json.JSONDecodeError as e:
        typer.secho(f"❌ --args is not valid JSON: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if not isinstance(call_args, list):
        typer.secho("❌ --args must be a JSON list", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    executor = _load_runner_config(config_path).build_executor()
    request = ExecutionRequest(
        source=source,
        entry_point=EntryPoint(function=function, container=container),
        args=call_args,
    )
    result = executor.execute(request)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, default=repr))
    else:
        for log in result.console_logs:
            typer.echo(f"[{log.level}] " + " ".join(str(arg) for arg in log.args))
        for index, step in enumerate(result.steps):
            typer.echo(f"  {index:>4} {step.target}.{step.type}{tuple(step.args)} -> {step.result}")
        if result.success:
            typer.secho(f"✅ Result: {result.result!r} ({result.execution_time_ms:.0f}ms)", fg=typer.colors.GREEN)
        else:
            typer.secho(f"❌ {result.error}", fg=typer.colors.RED, err=True)

    if not result.success:
        raise typer.Exit(1)


@app.command()
def test(
    source_path: str = typer.Argument(..., help="Python file with the solution"),
    cases_path: str = typer.Argument(..., help="YAML file with test cases"),
    difficulty: Optional[str] = typer.Option(None, help="Only run easy, medium or hard cases"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Runner YAML config"),
) -> None:
    """Run a solution against a test-case catalog."""
    source = _read_source(source_path)
    try:
        cases = load_cases(cases_path)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = _load_runner_config(config_path)
    runner = SuiteRunner(config.build_executor())
    if difficulty:
        results = runner.run_by_difficulty(source, cases, difficulty, progress=config.show_progress)
        cases = [case for case in cases if case.difficulty == difficulty]
    else:
        results = runner.run_tests(source, cases, progress=config.show_progress)

    passed = 0
    for case, result in zip(cases, results):
        if result.success:
            passed += 1
            typer.secho(f"  ✓ {case.id} ({len(result.steps)} steps)", fg=typer.colors.GREEN)
        else:
            typer.secho(f"  ✗ {case.id}: {result.error}", fg=typer.colors.RED)

    typer.echo(f"\n{passed}/{len(results)} passed")
    top = [(name, count) for name, count in runner.analyzer.get_top_failures() if count]
    if top:
        typer.secho("Failures:", fg=typer.colors.YELLOW)
        for name, count in top:
            typer.echo(f"   - {name}: {count}")
    if passed != len(results):
        raise typer.Exit(1)


@app.command()
def instrument(
    source_path: str = typer.Argument(..., help="Python file to instrument"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Runner YAML config"),
) -> None:
    """Print the instrumented form of a source file."""
    source = _read_source(source_path)
    result = instrument_source(source, _load_runner_config(config_path).timeout_config())
    if result.error:
        typer.secho(f"❌ {result.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(result.code)


@app.command()
def check_config(
    config_path: str = typer.Argument(..., help="Runner YAML config"),
) -> None:
    """Validate a runner config and print the effective timeouts."""
    config = _load_runner_config(config_path)
    typer.secho("✅ Config is valid", fg=typer.colors.GREEN)
    for name, value in config.timeout_config().to_dict().items():
        typer.echo(f"   {name}: {value}")


if __name__ == "__main__":
    app()
