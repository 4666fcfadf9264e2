"""Project initialisation, scenario definitions, starring and status reporting."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Callable, Optional, Sequence

import structlog
from pydantic import ValidationError as SchemaValidationError

from .errors import InvalidScenarioMetaError, ProjectAlreadyInitializedError, ScenarioNotFoundError
from .models import (
    ProjectConfig,
    RunRecord,
    ScenarioMeta,
    ScenarioStats,
    StepDefinition,
    round_half_up,
    utc_now,
)
from .repository import RunLocation, RunRepository
from .schemas import (
    CreateScenarioResult,
    InitProjectResult,
    ProjectStatus,
    RunSummary,
    ScenarioDetail,
    ScenarioSummary,
    StepInput,
    ToggleStarResult,
)
from .step_ids import format_step_id
from .storage import ProjectStorage

LOGGER = structlog.get_logger("run_tracker")

GITIGNORE_FILE = ".gitignore"
GITIGNORE_CONTENT = """# run-tracker
# Ignore large evidence files in CI
scenarios/*/runs/*/evidence/*.png
scenarios/*/runs/*/evidence/*.html
scenarios/*/runs/*/step-*/evidence/*.png
scenarios/*/runs/*/step-*/evidence/*.html
"""

RECENT_RUNS_LIMIT = 10
UNTITLED = "Untitled"

_STEP_FILE_PATTERN = re.compile(r"^(\d{2})-.*\.md$")
_SLUG_MAX_LENGTH = 50


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:_SLUG_MAX_LENGTH].rstrip("-") or "step"


def render_step_markdown(step_id: str, step: StepInput) -> str:
    sections = [
        f"# Step {step_id}: {step.title}",
        f"## Description\n\n{step.description.strip() or '_None_'}",
        f"## Preconditions\n\n{step.preconditions.strip() or '_None_'}",
        f"## Actions\n\n{step.actions.strip()}",
        f"## Expected Outcome\n\n{step.expected_outcome.strip()}",
    ]
    return "\n\n".join(sections) + "\n"


def pass_rate(pass_count: int, total_runs: int) -> int:
    if total_runs <= 0:
        return 0
    return round_half_up(pass_count / total_runs * 100)


class ScenarioCatalog:
    """Operations on the project and its scenario definitions."""

    def __init__(
        self,
        storage: ProjectStorage,
        *,
        runs: Optional[RunRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self.runs = runs or RunRepository(storage)
        self._clock = clock

    # project

    def init_project(self, project_name: str, base_url: Optional[str] = None) -> InitProjectResult:
        if self.storage.root.exists():
            raise ProjectAlreadyInitializedError()

        self.storage.scenarios_dir.mkdir(parents=True)
        config = ProjectConfig(project_name=project_name, base_url=base_url or "", created_at=self._clock())
        self.storage.write_yaml(self.storage.config_path, config.as_serializable())
        self.storage.write_text(self.storage.root / GITIGNORE_FILE, GITIGNORE_CONTENT)

        LOGGER.info("project_initialized", project=project_name, root=str(self.storage.root))
        return InitProjectResult(
            project_path=self.storage.relative(self.storage.root),
            config_path=self.storage.relative(self.storage.config_path),
            scenarios_path=self.storage.relative(self.storage.scenarios_dir),
        )

    def read_config(self) -> Optional[ProjectConfig]:
        if not self.storage.config_path.exists():
            return None
        return ProjectConfig.model_validate(self.storage.read_yaml(self.storage.config_path) or {})

    # scenarios

    def create_scenario(
        self,
        slug: str,
        title: str,
        steps: Sequence[StepInput],
        tags: Optional[Sequence[str]] = None,
        estimated_duration: int = 60,
        starred: bool = False,
    ) -> CreateScenarioResult:
        """Write step markdown files and meta.yaml; an existing scenario keeps its stats."""

        self.storage.require_initialized()
        scenario_dir = self.storage.scenario_dir(slug)
        steps_dir = self.storage.steps_dir(slug)
        is_new = not scenario_dir.exists()
        steps_dir.mkdir(parents=True, exist_ok=True)

        written: list[str] = []
        references: list[StepDefinition] = []
        for index, step in enumerate(steps, start=1):
            step_id = format_step_id(index)
            filename = f"{step_id}-{slugify(step.title)}.md"
            self.storage.write_text(steps_dir / filename, render_step_markdown(step_id, step))
            written.append(filename)
            references.append(StepDefinition(id=index, title=step.title, file=filename))

        removed = self._remove_stale_step_files(slug, keep=set(written))

        document = {} if is_new else self._read_meta_document(slug)
        definition = {
            "title": title,
            "slug": slug,
            "starred": starred,
            "tags": list(tags or []),
            "estimatedDuration": estimated_duration,
            "steps": [reference.as_serializable() for reference in references],
        }
        try:
            stats = ScenarioStats.model_validate(document).as_serializable()
        except SchemaValidationError as exc:
            raise InvalidScenarioMetaError.from_validation(slug, exc) from exc
        extras = {key: value for key, value in document.items() if key not in definition and key not in stats}
        self.storage.write_yaml(self.storage.meta_path(slug), {**definition, **stats, **extras})

        LOGGER.info(
            "scenario_saved",
            scenario=slug,
            steps=len(written),
            removed_steps=len(removed),
            is_new=is_new,
        )
        return CreateScenarioResult(
            slug=slug,
            scenario_path=self.storage.relative(scenario_dir),
            meta_path=self.storage.relative(self.storage.meta_path(slug)),
            steps_path=self.storage.relative(steps_dir),
            step_files=[self.storage.relative(steps_dir / name) for name in written],
            is_new=is_new,
        )

    def _remove_stale_step_files(self, slug: str, keep: set[str]) -> list[str]:
        steps_dir = self.storage.steps_dir(slug)
        removed = []
        for name in self.storage.list_files(steps_dir):
            if name in keep or not _STEP_FILE_PATTERN.match(name):
                continue
            (steps_dir / name).unlink()
            removed.append(name)
        return removed

    def _read_meta_document(self, slug: str) -> dict:
        path = self.storage.meta_path(slug)
        if not path.exists():
            return {}
        payload = self.storage.read_yaml(path)
        return payload if isinstance(payload, dict) else {}

    def toggle_star(self, scenario_slug: str, starred: Optional[bool] = None) -> ToggleStarResult:
        self.storage.require_initialized()
        if not self.storage.scenario_dir(scenario_slug).is_dir():
            raise ScenarioNotFoundError(scenario_slug)
        if not self.storage.meta_path(scenario_slug).exists():
            raise ScenarioNotFoundError(scenario_slug, detail="has no meta.yaml")

        document = self._read_meta_document(scenario_slug)
        new_value = (not bool(document.get("starred"))) if starred is None else starred
        document["starred"] = new_value
        self.storage.write_yaml(self.storage.meta_path(scenario_slug), document)

        LOGGER.info("scenario_starred", scenario=scenario_slug, starred=new_value)
        return ToggleStarResult(slug=scenario_slug, starred=new_value)

    # status

    def get_status(
        self, scenario_slug: Optional[str] = None, starred_only: bool = False
    ) -> ProjectStatus | ScenarioDetail:
        self.storage.require_initialized()
        if scenario_slug:
            return self.scenario_detail(scenario_slug)
        return self.project_status(starred_only=starred_only)

    def load_meta(self, slug: str) -> ScenarioMeta:
        try:
            return ScenarioMeta.model_validate(self._read_meta_document(slug))
        except SchemaValidationError as exc:
            raise InvalidScenarioMetaError.from_validation(slug, exc) from exc

    def project_status(self, starred_only: bool = False) -> ProjectStatus:
        config = self.read_config()
        summaries: list[ScenarioSummary] = []
        passing = failing = never_run = 0

        for slug in self.storage.list_dirs(self.storage.scenarios_dir):
            meta = self.load_meta(slug)
            if starred_only and not meta.starred:
                continue
            if meta.total_runs == 0:
                never_run += 1
            elif meta.last_result == "pass":
                passing += 1
            else:
                failing += 1
            summaries.append(
                ScenarioSummary(
                    slug=slug,
                    title=meta.title or UNTITLED,
                    starred=meta.starred,
                    tags=meta.tags,
                    step_count=len(meta.steps),
                    last_result=meta.last_result,
                    last_run=meta.last_run,
                    total_runs=meta.total_runs,
                    pass_rate=pass_rate(meta.pass_count, meta.total_runs),
                )
            )

        return ProjectStatus(
            project_name=config.project_name if config else None,
            scenario_count=len(summaries),
            passing=passing,
            failing=failing,
            never_run=never_run,
            scenarios=summaries,
        )

    def scenario_detail(self, slug: str) -> ScenarioDetail:
        if not self.storage.scenario_dir(slug).is_dir():
            raise ScenarioNotFoundError(slug)
        meta = self.load_meta(slug)
        return ScenarioDetail(
            slug=slug,
            title=meta.title or UNTITLED,
            starred=meta.starred,
            tags=meta.tags,
            step_count=len(meta.steps),
            steps=meta.steps,
            meta=meta.stats(),
            recent_runs=self.recent_runs(slug),
        )

    def recent_runs(self, slug: str, limit: int = RECENT_RUNS_LIMIT) -> list[RunSummary]:
        """Completed runs, newest first; runs still in progress are left out."""

        completed: list[tuple[str, RunRecord]] = []
        for run_id in self.storage.list_dirs(self.storage.runs_dir(slug)):
            location = RunLocation(run_id=run_id, scenario_slug=slug, run_dir=self.storage.run_dir(slug, run_id))
            if not self.runs.is_sealed(location):
                continue
            record = self.runs.load_result(location)
            if record is not None and record.completed_at is not None:
                completed.append((run_id, record))

        completed.sort(key=lambda item: item[1].completed_at, reverse=True)
        total = len(completed)
        return [
            RunSummary(
                id=run_id,
                run_number=total - index,
                status=record.status,
                duration=record.duration,
                completed_at=record.completed_at,
                error_message=record.error_message or None,
            )
            for index, (run_id, record) in enumerate(completed[:limit])
        ]
