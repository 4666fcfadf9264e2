"""Pydantic models for scenarios, runs, step results and evidence."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    NonNegativeFloat,
    NonNegativeInt,
    Tag,
    TypeAdapter,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .step_ids import MAX_STEP, MIN_STEP, StepId

StepStatus = Literal["pass", "fail", "skipped"]
RunStatus = Literal["running", "pass", "fail"]
FinalStatus = Literal["pass", "fail"]
EvidenceType = Literal[
    "screenshot",
    "db_snapshot",
    "console_log",
    "network_log",
    "html_snapshot",
    "custom",
]
Duration = Union[NonNegativeInt, NonNegativeFloat]

TERMINAL_STATUSES = frozenset({"pass", "fail"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase keys on disk and on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def as_serializable(self) -> dict[str, Any]:
        """Return a JSON/YAML friendly payload."""

        return self.model_dump(mode="json", by_alias=True)


class StepDefinition(CamelModel):
    """Step reference stored in a scenario's meta.yaml."""

    model_config = ConfigDict(extra="allow")

    id: StepId
    title: str = ""
    file: Optional[str] = None


class ScenarioStats(CamelModel):
    """Machine-updated counters kept alongside the scenario definition."""

    total_runs: NonNegativeInt = 0
    pass_count: NonNegativeInt = 0
    fail_count: NonNegativeInt = 0
    last_run: Optional[datetime] = None
    last_result: Optional[FinalStatus] = None
    avg_duration: NonNegativeInt = 0

    @field_validator("total_runs", "pass_count", "fail_count", "avg_duration", mode="before")
    @classmethod
    def _coerce_counter(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return round_half_up(value)
        return value

    def summary(self) -> dict[str, int]:
        return {
            "totalRuns": self.total_runs,
            "passCount": self.pass_count,
            "failCount": self.fail_count,
            "avgDuration": self.avg_duration,
        }


class ScenarioMeta(ScenarioStats):
    """Full meta.yaml document. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    slug: Optional[str] = None
    starred: bool = False
    tags: list[str] = Field(default_factory=list)
    estimated_duration: Optional[Duration] = None
    steps: list[StepDefinition] = Field(default_factory=list)

    @field_validator("tags", "steps", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("starred", mode="before")
    @classmethod
    def _none_as_false(cls, value: Any) -> Any:
        return False if value is None else value

    def step_order(self) -> list[int]:
        return [step.id for step in self.steps]

    def stats(self) -> ScenarioStats:
        return ScenarioStats.model_validate(self.model_dump(include=set(ScenarioStats.model_fields)))


class StepResult(CamelModel):
    """Outcome of one step inside a run."""

    model_config = ConfigDict(extra="allow")

    id: StepId
    status: StepStatus
    duration: Duration = 0
    error: Optional[str] = None
    evidence_files: list[str] = Field(default_factory=list)


class RunRecord(CamelModel):
    """Current run result shape: in-progress (``running``) or final."""

    model_config = ConfigDict(extra="allow")

    run_id: str
    scenario_slug: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration: Optional[Duration] = None
    steps: list[StepResult] = Field(default_factory=list)
    failed_step: Optional[StepId] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def upsert_step(self, result: StepResult) -> None:
        """Replace the entry with the same id or insert it, keeping numeric order."""

        steps = [step for step in self.steps if step.id != result.id]
        steps.append(result)
        steps.sort(key=lambda step: step.id)
        self.steps = steps

    def as_serializable(self) -> dict[str, Any]:
        payload = super().as_serializable()
        if self.status == "running":
            for key in ("completedAt", "duration", "failedStep", "errorMessage"):
                if payload.get(key) is None:
                    payload.pop(key, None)
        return payload


class RunStart(CamelModel):
    """Creation record written to run.json when a run starts."""

    model_config = ConfigDict(extra="allow")

    started_at: datetime


class RunResultV1(CamelModel):
    """Legacy result.json written before per-step results existed."""

    model_config = ConfigDict(extra="allow")

    run_id: str
    status: FinalStatus
    duration: Duration = 0
    completed_at: datetime
    failed_step: Optional[int] = None
    error_message: Optional[str] = None
    evidence_count: NonNegativeInt = 0
    step_count: Optional[NonNegativeInt] = None


def _result_shape(value: Any) -> str:
    if isinstance(value, RunResultV1):
        return "v1"
    if isinstance(value, RunRecord):
        return "v2"
    if isinstance(value, dict):
        if "steps" in value or "scenarioSlug" in value or "startedAt" in value:
            return "v2"
        if value.get("status") == "running":
            return "v2"
    return "v1"


StoredRunResult = Annotated[
    Union[Annotated[RunResultV1, Tag("v1")], Annotated[RunRecord, Tag("v2")]],
    Discriminator(_result_shape),
]

_RESULT_ADAPTER: TypeAdapter[Union[RunResultV1, RunRecord]] = TypeAdapter(StoredRunResult)


def upgrade_result(result: RunResultV1, scenario_slug: str) -> RunRecord:
    """Lift a legacy result into the current shape.

    v1 files carry no start time or step list; the start is derived from the
    completion time and duration, and the numeric failed step is kept when it
    is a valid step ordinal.
    """

    failed_step = result.failed_step
    if failed_step is not None and not MIN_STEP <= failed_step <= MAX_STEP:
        failed_step = None
    extra = dict(result.model_extra or {})
    extra["evidenceCount"] = result.evidence_count
    if result.step_count is not None:
        extra["stepCount"] = result.step_count
    return RunRecord.model_validate(
        {
            **extra,
            "runId": result.run_id,
            "scenarioSlug": scenario_slug,
            "status": result.status,
            "startedAt": result.completed_at - timedelta(milliseconds=float(result.duration)),
            "completedAt": result.completed_at,
            "duration": result.duration,
            "steps": [],
            "failedStep": failed_step,
            "errorMessage": result.error_message,
        }
    )


def parse_run_result(payload: Any, scenario_slug: str) -> RunRecord:
    """Validate a stored result.json of either shape and return the current shape."""

    parsed = _RESULT_ADAPTER.validate_python(payload)
    if isinstance(parsed, RunResultV1):
        return upgrade_result(parsed, scenario_slug)
    return parsed


class EvidenceMeta(CamelModel):
    """Sidecar ``<name>.meta.json`` describing one evidence file."""

    run_id: str
    step: StepId
    type: str
    name: str
    captured_at: datetime
    file_size: NonNegativeInt
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProjectConfig(CamelModel):
    """Project-level settings stored in config.yaml."""

    model_config = ConfigDict(extra="allow")

    project_name: str
    base_url: str = ""
    version: str = "1.0"
    created_at: datetime = Field(default_factory=utc_now)


def round_half_up(value: float) -> int:
    """Round halves upwards instead of to the nearest even integer."""

    return math.floor(value + 0.5)
