"""Entry point for the run-tracker command line."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
import yaml

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "run_tracker"

from .config import TrackerSettings
from .console_reporter import StatusReporter
from .errors import TrackerError
from .logging_utils import configure_logging
from .models import CamelModel
from .output_config import log_format_for
from .schemas import ProjectStatus
from .tools import RunTracker, call_tool, invoke_tool, list_tools

app = typer.Typer(help="Track scenario runs, step results and evidence in a project directory.")


@dataclass
class CliState:
    settings: TrackerSettings
    tracker: RunTracker
    reporter: StatusReporter


def _state(ctx: typer.Context) -> CliState:
    return ctx.find_object(CliState)


def _load_document(path: Path) -> Any:
    """YAML or JSON file contents (JSON is valid YAML)."""

    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise typer.BadParameter(f"{path} is not valid YAML/JSON: {exc}") from exc


def _load_steps(path: Path) -> list[Any]:
    payload = _load_document(path)
    if isinstance(payload, dict):
        payload = payload.get("steps")
    if not isinstance(payload, list):
        raise typer.BadParameter(f"{path} must contain a list of steps or a mapping with a 'steps' list")
    return payload


def _invoke(ctx: typer.Context, tool: str, params: dict[str, Any]) -> CamelModel:
    try:
        return invoke_tool(_state(ctx).tracker, tool, params)
    except TrackerError as exc:
        typer.secho(f"Error: {exc.message}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def _milliseconds(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


def _without_none(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


@app.callback()
def main(
    ctx: typer.Context,
    project_dir: Optional[Path] = typer.Option(
        None,
        "--project-dir",
        help="Project root (default: $RUN_TRACKER_PROJECT_DIR or ./.harshJudge).",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (default: $RUN_TRACKER_LOG_LEVEL or WARNING).",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        help="Console output: auto, rich, plain or json (default: $CONSOLE_OUTPUT_FORMAT or auto).",
    ),
) -> None:
    """Resolve settings and configure logging for every command."""

    try:
        settings = TrackerSettings.resolve(project_dir=project_dir, log_level=log_level, output_format=output_format)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    configure_logging(settings.log_level, log_format_for(settings.output_format))
    ctx.obj = CliState(
        settings=settings,
        tracker=RunTracker(settings.project_dir),
        reporter=StatusReporter(settings.output_format),
    )


@app.command()
def init(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Project name stored in config.yaml."),
    base_url: Optional[str] = typer.Option(None, help="Base URL of the application under test."),
) -> None:
    """Create the project directory."""

    result = _invoke(ctx, "initProject", _without_none({"projectName": name, "baseUrl": base_url}))
    _state(ctx).reporter.show_result("Project initialized", result.as_serializable())


@app.command("create-scenario")
def create_scenario(
    ctx: typer.Context,
    slug: str = typer.Argument(..., help="Scenario slug (lowercase letters, digits and dashes)."),
    title: str = typer.Option(..., help="Human readable scenario title."),
    steps_file: Path = typer.Option(
        ...,
        exists=True,
        readable=True,
        help="YAML/JSON file with the step list (title, description, preconditions, actions, expectedOutcome).",
    ),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Tag to attach; repeat for several."),
    estimated_duration: int = typer.Option(60, help="Estimated duration in seconds."),
    starred: bool = typer.Option(False, "--starred", help="Mark the scenario as starred."),
) -> None:
    """Create or update a scenario definition."""

    params = {
        "slug": slug,
        "title": title,
        "steps": _load_steps(steps_file),
        "tags": tag,
        "estimatedDuration": estimated_duration,
        "starred": starred,
    }
    result = _invoke(ctx, "createScenario", params)
    _state(ctx).reporter.show_result("Scenario saved", result.as_serializable())


@app.command("start-run")
def start_run(
    ctx: typer.Context,
    scenario: str = typer.Argument(..., help="Scenario slug to run."),
) -> None:
    """Start a new run and print its id."""

    result = _invoke(ctx, "startRun", {"scenarioSlug": scenario})
    _state(ctx).reporter.show_result("Run started", result.as_serializable())


@app.command("complete-step")
def complete_step(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run identifier returned by start-run."),
    step_id: str = typer.Argument(..., help="Step id, e.g. 01."),
    status: str = typer.Option(..., help="pass, fail or skipped."),
    duration: float = typer.Option(0, help="Step duration in milliseconds."),
    error: Optional[str] = typer.Option(None, help="Error message for a failed step."),
) -> None:
    """Record the outcome of one step."""

    params = _without_none(
        {"runId": run_id, "stepId": step_id, "status": status, "duration": _milliseconds(duration), "error": error}
    )
    result = _invoke(ctx, "completeStep", params)
    _state(ctx).reporter.show_result("Step recorded", result.as_serializable())


@app.command("record-evidence")
def record_evidence(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run identifier returned by start-run."),
    step: str = typer.Option(..., help="Step id the evidence belongs to."),
    evidence_type: str = typer.Option(..., "--type", help="screenshot, db_snapshot, console_log, ..."),
    name: str = typer.Option(..., help="Evidence name (file stem)."),
    data: Optional[str] = typer.Option(None, help="Content, or an absolute image path for screenshots."),
    data_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, help="Read text content from this file instead of --data."
    ),
    metadata: Optional[str] = typer.Option(None, help="JSON object stored alongside the evidence."),
) -> None:
    """Store an evidence artifact for a step."""

    if (data is None) == (data_file is None):
        raise typer.BadParameter("Provide exactly one of --data or --data-file")
    content = data if data is not None else data_file.read_text(encoding="utf-8")

    extra: Optional[dict[str, Any]] = None
    if metadata is not None:
        try:
            extra = json.loads(metadata)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"--metadata is not valid JSON: {exc}") from exc

    params = _without_none(
        {
            "runId": run_id,
            "step": step,
            "type": evidence_type,
            "name": name,
            "data": content,
            "metadata": extra,
        }
    )
    result = _invoke(ctx, "recordEvidence", params)
    _state(ctx).reporter.show_result("Evidence recorded", result.as_serializable())


@app.command("complete-run")
def complete_run(
    ctx: typer.Context,
    run_id: str = typer.Argument(..., help="Run identifier returned by start-run."),
    status: str = typer.Option(..., help="pass or fail."),
    duration: float = typer.Option(..., help="Run duration in milliseconds."),
    failed_step: Optional[str] = typer.Option(None, help="Id of the step that failed."),
    error_message: Optional[str] = typer.Option(None, help="Failure description."),
    steps_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, help="YAML/JSON file with explicit step results."
    ),
) -> None:
    """Finalize a run and update scenario statistics."""

    params = _without_none(
        {
            "runId": run_id,
            "status": status,
            "duration": _milliseconds(duration),
            "failedStep": failed_step,
            "errorMessage": error_message,
            "steps": _load_steps(steps_file) if steps_file else None,
        }
    )
    result = _invoke(ctx, "completeRun", params)
    _state(ctx).reporter.show_result("Run completed", result.as_serializable())


@app.command()
def star(
    ctx: typer.Context,
    scenario: str = typer.Argument(..., help="Scenario slug."),
    starred: Optional[bool] = typer.Option(None, "--on/--off", help="Set explicitly instead of toggling."),
) -> None:
    """Toggle or set the starred flag of a scenario."""

    result = _invoke(ctx, "toggleStar", _without_none({"scenarioSlug": scenario, "starred": starred}))
    _state(ctx).reporter.show_result("Scenario updated", result.as_serializable())


@app.command()
def status(
    ctx: typer.Context,
    scenario: Optional[str] = typer.Argument(None, help="Show one scenario with its recent runs."),
    starred_only: bool = typer.Option(False, "--starred-only", help="Only list starred scenarios."),
) -> None:
    """Show project or scenario status."""

    result = _invoke(ctx, "getStatus", _without_none({"scenarioSlug": scenario, "starredOnly": starred_only}))
    reporter = _state(ctx).reporter
    if isinstance(result, ProjectStatus):
        reporter.show_project_status(result)
    else:
        reporter.show_scenario_detail(result)


@app.command()
def tools() -> None:
    """Print every tool with its parameter JSON schema."""

    typer.echo(json.dumps(list_tools(), indent=2))


@app.command()
def call(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="Tool name, e.g. startRun."),
    params: str = typer.Option("{}", help="JSON object with the tool parameters."),
    params_file: Optional[Path] = typer.Option(
        None, exists=True, readable=True, help="Read the parameters from a YAML/JSON file."
    ),
) -> None:
    """Invoke a tool by name and print its JSON envelope."""

    if params_file is not None:
        payload = _load_document(params_file)
    else:
        try:
            payload = json.loads(params)
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"--params is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise typer.BadParameter("Tool parameters must be a JSON object")

    envelope = call_tool(_state(ctx).tracker, tool, payload)
    typer.echo(json.dumps(envelope, indent=2, ensure_ascii=False))
    if not envelope["success"]:
        raise typer.Exit(code=1)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
