"""Run lifecycle: start a run, record evidence, complete steps, complete the run."""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

import structlog
from pydantic import ValidationError as SchemaValidationError

from .errors import InvalidScenarioMetaError, ScenarioNotFoundError
from .evidence import EvidenceStore
from .models import (
    FinalStatus,
    RunRecord,
    ScenarioMeta,
    StepResult,
    StepStatus,
    utc_now,
)
from .repository import RunLocation, RunRepository
from .schemas import (
    CompleteRunResult,
    CompleteStepResult,
    RecordEvidenceResult,
    StartRunResult,
    StatsSummary,
)
from .sequencer import next_step_id
from .stats import RunOutcome, ScenarioStatsRepository
from .storage import ProjectStorage

LOGGER = structlog.get_logger("run_tracker")

RUN_ID_LENGTH = 10
_MAX_ID_ATTEMPTS = 20


def generate_run_id() -> str:
    """Short URL-safe identifier (64 bits of entropy before truncation)."""

    return secrets.token_urlsafe(8)[:RUN_ID_LENGTH]


class RunLifecycleManager:
    """Entry points behind the startRun/completeStep/recordEvidence/completeRun tools."""

    def __init__(
        self,
        storage: ProjectStorage,
        *,
        runs: Optional[RunRepository] = None,
        evidence: Optional[EvidenceStore] = None,
        stats: Optional[ScenarioStatsRepository] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = generate_run_id,
    ) -> None:
        self.storage = storage
        self.runs = runs or RunRepository(storage)
        self.evidence = evidence or EvidenceStore(storage)
        self.stats = stats or ScenarioStatsRepository(storage)
        self._clock = clock
        self._id_factory = id_factory

    # start

    def start_run(self, scenario_slug: str) -> StartRunResult:
        self.storage.require_initialized()
        if not self.storage.scenario_dir(scenario_slug).is_dir():
            raise ScenarioNotFoundError(scenario_slug)

        meta = self._load_meta(scenario_slug)
        run_id = self._allocate_run_id()
        started_at = self._clock()
        location, run_number = self.runs.create_run(scenario_slug, run_id, started_at)

        LOGGER.info("run_started", run_id=run_id, scenario=scenario_slug, run_number=run_number)
        return StartRunResult(
            run_id=run_id,
            run_number=run_number,
            run_path=self.storage.relative(location.run_dir),
            evidence_path=self.storage.relative(location.evidence_dir),
            started_at=started_at,
            scenario_slug=scenario_slug,
            scenario_title=meta.title if meta else None,
            steps=list(meta.steps) if meta else [],
        )

    def _allocate_run_id(self) -> str:
        for _ in range(_MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if not self.runs.run_exists(candidate):
                return candidate
        raise RuntimeError(f"Could not allocate a unique run id after {_MAX_ID_ATTEMPTS} attempts")

    # steps

    def complete_step(
        self,
        run_id: str,
        step_id: int,
        status: StepStatus,
        duration: float = 0,
        error: Optional[str] = None,
    ) -> CompleteStepResult:
        location = self.runs.find_run(run_id)
        self.runs.ensure_open(location, "add step results")

        record = self.runs.load_or_create_in_progress(location, self._clock())
        record.upsert_step(
            StepResult(
                id=step_id,
                status=status,
                duration=duration,
                error=error,
                evidence_files=self.evidence.list_step_evidence(location, step_id),
            )
        )
        self.runs.save_in_progress(location, record)

        next_step: Optional[int] = None
        if status != "fail":
            meta = self._load_meta(location.scenario_slug)
            next_step = next_step_id(meta.step_order() if meta else [], step_id)

        LOGGER.info(
            "step_completed",
            run_id=run_id,
            scenario=location.scenario_slug,
            step=step_id,
            status=status,
            next_step=next_step,
        )
        return CompleteStepResult(run_id=run_id, step_id=step_id, status=status, next_step_id=next_step)

    # evidence

    def record_evidence(
        self,
        run_id: str,
        step: int,
        evidence_type: str,
        name: str,
        data: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> RecordEvidenceResult:
        location = self.runs.find_run(run_id)
        self.runs.ensure_open(location, "add evidence")
        stored = self.evidence.write(
            location,
            step=step,
            evidence_type=evidence_type,
            name=name,
            data=data,
            metadata=metadata,
            captured_at=self._clock(),
        )
        return RecordEvidenceResult(
            file_path=self.storage.relative(stored.file_path),
            meta_path=self.storage.relative(stored.meta_path),
            file_size=stored.file_size,
        )

    # completion

    def complete_run(
        self,
        run_id: str,
        status: FinalStatus,
        duration: float,
        failed_step: Optional[int] = None,
        error_message: Optional[str] = None,
        steps: Optional[Sequence[StepResult]] = None,
    ) -> CompleteRunResult:
        location = self.runs.find_run(run_id)
        self.runs.ensure_open(location)

        existing = self.runs.load_result(location)
        completed_at = self._clock()
        resolved = self._resolve_steps(location, existing, steps, failed_step, error_message)
        if failed_step is None:
            failed_step = next((step.id for step in resolved if step.status == "fail"), None)

        if existing is not None:
            started_at = existing.started_at
            carried = dict(existing.model_extra or {})
        else:
            started_at = self.runs.read_started_at(location) or completed_at
            carried = {}

        final = RunRecord.model_validate(
            {
                **carried,
                "runId": run_id,
                "scenarioSlug": location.scenario_slug,
                "status": status,
                "startedAt": started_at,
                "completedAt": completed_at,
                "duration": duration,
                "steps": resolved,
                "failedStep": failed_step,
                "errorMessage": error_message,
            }
        )
        pending = self.stats.prepare(
            location.scenario_slug,
            RunOutcome(status=status, duration=duration),
            completed_at=completed_at,
        )
        result_path = self.runs.finalize(location, final)
        updated = self.stats.commit(location.scenario_slug, pending)

        LOGGER.info(
            "run_completed",
            run_id=run_id,
            scenario=location.scenario_slug,
            status=status,
            duration=duration,
            steps=len(resolved),
            failed_step=failed_step,
        )
        return CompleteRunResult(
            result_path=self.storage.relative(result_path),
            updated_meta=StatsSummary.from_stats(updated),
        )

    def _resolve_steps(
        self,
        location: RunLocation,
        existing: Optional[RunRecord],
        steps: Optional[Sequence[StepResult]],
        failed_step: Optional[int],
        error_message: Optional[str],
    ) -> list[StepResult]:
        """Explicit steps, then steps recorded via complete_step, then step directories."""

        if steps:
            # one entry per id, last submission wins
            latest = {step.id: step for step in steps}
            return sorted(latest.values(), key=lambda step: step.id)
        if existing is not None and existing.steps:
            return list(existing.steps)

        reconstructed = []
        for number in self.runs.list_step_numbers(location):
            failed = number == failed_step
            reconstructed.append(
                StepResult(
                    id=number,
                    status="fail" if failed else "pass",
                    duration=0,
                    error=error_message if failed else None,
                    evidence_files=self.evidence.list_step_evidence(location, number),
                )
            )
        if reconstructed:
            LOGGER.debug("steps_reconstructed", run_id=location.run_id, steps=len(reconstructed))
        return reconstructed

    def _load_meta(self, scenario_slug: str) -> Optional[ScenarioMeta]:
        path = self.storage.meta_path(scenario_slug)
        if not path.exists():
            return None
        try:
            return ScenarioMeta.model_validate(self.storage.read_yaml(path) or {})
        except SchemaValidationError as exc:
            raise InvalidScenarioMetaError.from_validation(scenario_slug, exc) from exc
