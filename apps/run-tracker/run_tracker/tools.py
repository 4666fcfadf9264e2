"""Named tool entry points with schema-validated parameter objects."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import structlog
from pydantic import ValidationError as SchemaValidationError

from .errors import TrackerError, ValidationError
from .evidence import EvidenceStore
from .lifecycle import RunLifecycleManager, generate_run_id
from .models import CamelModel, utc_now
from .repository import RunRepository
from .scenarios import ScenarioCatalog
from .schemas import (
    CompleteRunParams,
    CompleteStepParams,
    CreateScenarioParams,
    GetStatusParams,
    InitProjectParams,
    RecordEvidenceParams,
    StartRunParams,
    ToggleStarParams,
)
from .stats import ScenarioStatsRepository
from .storage import ProjectStorage

LOGGER = structlog.get_logger("run_tracker")


class RunTracker:
    """Wires storage, the run lifecycle and the scenario catalog around one project root."""

    def __init__(
        self,
        root: Path,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = generate_run_id,
    ) -> None:
        self.storage = ProjectStorage(root)
        self.runs = RunRepository(self.storage)
        self.lifecycle = RunLifecycleManager(
            self.storage,
            runs=self.runs,
            evidence=EvidenceStore(self.storage),
            stats=ScenarioStatsRepository(self.storage),
            clock=clock,
            id_factory=id_factory,
        )
        self.catalog = ScenarioCatalog(self.storage, runs=self.runs, clock=clock)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    params: type[CamelModel]
    handler: Callable[[RunTracker, Any], CamelModel]

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.params.model_json_schema(by_alias=True),
        }


def _init_project(tracker: RunTracker, params: InitProjectParams) -> CamelModel:
    return tracker.catalog.init_project(params.project_name, params.base_url)


def _create_scenario(tracker: RunTracker, params: CreateScenarioParams) -> CamelModel:
    return tracker.catalog.create_scenario(
        params.slug,
        params.title,
        params.steps,
        tags=params.tags,
        estimated_duration=params.estimated_duration,
        starred=params.starred,
    )


def _toggle_star(tracker: RunTracker, params: ToggleStarParams) -> CamelModel:
    return tracker.catalog.toggle_star(params.scenario_slug, params.starred)


def _start_run(tracker: RunTracker, params: StartRunParams) -> CamelModel:
    return tracker.lifecycle.start_run(params.scenario_slug)


def _record_evidence(tracker: RunTracker, params: RecordEvidenceParams) -> CamelModel:
    return tracker.lifecycle.record_evidence(
        params.run_id,
        params.step,
        params.type,
        params.name,
        params.data,
        metadata=params.metadata,
    )


def _complete_step(tracker: RunTracker, params: CompleteStepParams) -> CamelModel:
    return tracker.lifecycle.complete_step(
        params.run_id,
        params.step_id,
        params.status,
        duration=params.duration,
        error=params.error,
    )


def _complete_run(tracker: RunTracker, params: CompleteRunParams) -> CamelModel:
    return tracker.lifecycle.complete_run(
        params.run_id,
        params.status,
        params.duration,
        failed_step=params.failed_step,
        error_message=params.error_message,
        steps=params.steps,
    )


def _get_status(tracker: RunTracker, params: GetStatusParams) -> CamelModel:
    return tracker.catalog.get_status(params.scenario_slug, starred_only=params.starred_only)


TOOL_REGISTRY: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "initProject",
            "Create the project directory with config.yaml and the scenarios folder.",
            InitProjectParams,
            _init_project,
        ),
        ToolSpec(
            "createScenario",
            "Create or update a scenario with its step files; existing statistics are kept.",
            CreateScenarioParams,
            _create_scenario,
        ),
        ToolSpec(
            "toggleStar",
            "Flip a scenario's starred flag, or set it explicitly.",
            ToggleStarParams,
            _toggle_star,
        ),
        ToolSpec(
            "startRun",
            "Start a new run of a scenario and return its id and step list.",
            StartRunParams,
            _start_run,
        ),
        ToolSpec(
            "recordEvidence",
            "Store an evidence artifact for one step of an in-progress run.",
            RecordEvidenceParams,
            _record_evidence,
        ),
        ToolSpec(
            "completeStep",
            "Record the outcome of one step and get the next step id.",
            CompleteStepParams,
            _complete_step,
        ),
        ToolSpec(
            "completeRun",
            "Finalize a run and update the scenario statistics.",
            CompleteRunParams,
            _complete_run,
        ),
        ToolSpec(
            "getStatus",
            "Summarize the project, or detail one scenario with its recent runs.",
            GetStatusParams,
            _get_status,
        ),
    )
}


def list_tools() -> list[dict[str, Any]]:
    return [spec.describe() for spec in TOOL_REGISTRY.values()]


def get_tool(name: str) -> ToolSpec:
    spec = TOOL_REGISTRY.get(name)
    if spec is None:
        raise ValidationError(f"Unknown tool: {name}. Available: {', '.join(TOOL_REGISTRY)}")
    return spec


def describe_validation_error(exc: SchemaValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "params"
        problems.append(f"{location}: {error['msg']}")
    return "Invalid parameters: " + "; ".join(problems)


def invoke_tool(tracker: RunTracker, name: str, params: Optional[Mapping[str, Any]] = None) -> CamelModel:
    """Validate ``params`` against the tool's schema, then run it.

    Validation happens before any filesystem access; failures raise
    :class:`~run_tracker.errors.ValidationError`.
    """

    spec = get_tool(name)
    try:
        validated = spec.params.model_validate(dict(params or {}))
    except SchemaValidationError as exc:
        raise ValidationError(describe_validation_error(exc)) from exc
    LOGGER.debug("tool_invoked", tool=name)
    return spec.handler(tracker, validated)


def call_tool(tracker: RunTracker, name: str, params: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
    """Invoke a tool and wrap the outcome in a ``success`` envelope."""

    try:
        result = invoke_tool(tracker, name, params)
    except TrackerError as exc:
        LOGGER.warning("tool_failed", tool=name, code=exc.code, error=exc.message)
        return {"success": False, "error": exc.as_payload()}
    return {"success": True, **result.as_serializable()}
