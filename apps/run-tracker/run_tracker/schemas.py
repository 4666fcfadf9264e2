"""Parameter and result schemas for the tool-facing operations."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import Field, PositiveInt, StringConstraints, field_validator

from .models import (
    CamelModel,
    Duration,
    EvidenceType,
    FinalStatus,
    ScenarioStats,
    StepDefinition,
    StepResult,
    StepStatus,
)
from .step_ids import MAX_STEP, StepId
from .storage import EVIDENCE_META_MARKER

Slug = Annotated[str, StringConstraints(pattern=r"^[a-z0-9-]+$")]
RunIdentifier = Annotated[str, StringConstraints(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")]
EvidenceName = Annotated[str, StringConstraints(min_length=1, max_length=100, pattern=r"^[^/\\]+$")]
HttpUrl = Annotated[str, StringConstraints(pattern=r"^https?://\S+$")]


# parameters


class InitProjectParams(CamelModel):
    project_name: Annotated[str, StringConstraints(min_length=1, max_length=100)]
    base_url: Optional[HttpUrl] = None


class StepInput(CamelModel):
    title: Annotated[str, StringConstraints(min_length=1, max_length=200)]
    description: str = ""
    preconditions: str = ""
    actions: Annotated[str, StringConstraints(min_length=1)]
    expected_outcome: Annotated[str, StringConstraints(min_length=1)]


class CreateScenarioParams(CamelModel):
    slug: Slug
    title: Annotated[str, StringConstraints(min_length=1, max_length=200)]
    steps: list[StepInput] = Field(min_length=1, max_length=MAX_STEP)
    tags: list[str] = Field(default_factory=list)
    estimated_duration: PositiveInt = 60
    starred: bool = False


class ToggleStarParams(CamelModel):
    scenario_slug: Slug
    starred: Optional[bool] = None


class StartRunParams(CamelModel):
    scenario_slug: Slug


class RecordEvidenceParams(CamelModel):
    run_id: RunIdentifier
    step: StepId
    type: EvidenceType
    name: EvidenceName
    data: str
    metadata: Optional[dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def _single_component(cls, value: str) -> str:
        if value in {".", ".."}:
            raise ValueError("name must be a file name, not a relative directory reference")
        if value.endswith(EVIDENCE_META_MARKER):
            raise ValueError(f'name must not end with "{EVIDENCE_META_MARKER}" (reserved for metadata files)')
        return value


class CompleteStepParams(CamelModel):
    run_id: RunIdentifier
    step_id: StepId
    status: StepStatus
    duration: Duration = 0
    error: Optional[str] = None


class CompleteRunParams(CamelModel):
    run_id: RunIdentifier
    status: FinalStatus
    duration: Duration
    failed_step: Optional[StepId] = None
    error_message: Optional[str] = None
    steps: Optional[list[StepResult]] = None


class GetStatusParams(CamelModel):
    scenario_slug: Optional[Slug] = None
    starred_only: bool = False


# results


class InitProjectResult(CamelModel):
    project_path: str
    config_path: str
    scenarios_path: str


class CreateScenarioResult(CamelModel):
    slug: str
    scenario_path: str
    meta_path: str
    steps_path: str
    step_files: list[str]
    is_new: bool


class ToggleStarResult(CamelModel):
    slug: str
    starred: bool


class StartRunResult(CamelModel):
    run_id: str
    run_number: int
    run_path: str
    evidence_path: str
    started_at: datetime
    scenario_slug: str
    scenario_title: Optional[str] = None
    steps: list[StepDefinition] = Field(default_factory=list)


class RecordEvidenceResult(CamelModel):
    file_path: str
    meta_path: str
    file_size: int


class CompleteStepResult(CamelModel):
    run_id: str
    step_id: StepId
    status: StepStatus
    next_step_id: Optional[StepId] = None


class StatsSummary(CamelModel):
    total_runs: int
    pass_count: int
    fail_count: int
    avg_duration: int

    @classmethod
    def from_stats(cls, stats: ScenarioStats) -> "StatsSummary":
        return cls(
            total_runs=stats.total_runs,
            pass_count=stats.pass_count,
            fail_count=stats.fail_count,
            avg_duration=stats.avg_duration,
        )


class CompleteRunResult(CamelModel):
    result_path: str
    updated_meta: StatsSummary


class ScenarioSummary(CamelModel):
    slug: str
    title: str
    starred: bool
    tags: list[str]
    step_count: int
    last_result: Optional[FinalStatus] = None
    last_run: Optional[datetime] = None
    total_runs: int
    pass_rate: int


class ProjectStatus(CamelModel):
    project_name: Optional[str] = None
    scenario_count: int
    passing: int
    failing: int
    never_run: int
    scenarios: list[ScenarioSummary] = Field(default_factory=list)


class RunSummary(CamelModel):
    id: str
    run_number: int
    status: FinalStatus
    duration: Optional[Duration] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class ScenarioDetail(CamelModel):
    slug: str
    title: str
    starred: bool
    tags: list[str]
    step_count: int
    steps: list[StepDefinition] = Field(default_factory=list)
    meta: ScenarioStats
    recent_runs: list[RunSummary] = Field(default_factory=list)
