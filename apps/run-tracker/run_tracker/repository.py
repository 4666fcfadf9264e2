"""Run directory lookup and result.json persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog

from .errors import RunAlreadyCompletedError, RunNotFoundError
from .models import TERMINAL_STATUSES, RunRecord, RunStart, parse_run_result
from .step_ids import parse_step_dir
from .storage import EVIDENCE_DIR, RESULT_FILE, RUN_FILE, ProjectStorage

LOGGER = structlog.get_logger("run_tracker")


@dataclass(frozen=True)
class RunLocation:
    """Where a run lives on disk and which scenario owns it."""

    run_id: str
    scenario_slug: str
    run_dir: Path

    @property
    def result_path(self) -> Path:
        return self.run_dir / RESULT_FILE

    @property
    def run_file_path(self) -> Path:
        return self.run_dir / RUN_FILE

    @property
    def evidence_dir(self) -> Path:
        return self.run_dir / EVIDENCE_DIR


class RunRepository:
    """Finds runs across scenarios and owns the run's result record.

    Run locations are cached by id. A cached entry whose directory has
    disappeared is dropped and the scenarios are scanned again.
    """

    def __init__(self, storage: ProjectStorage) -> None:
        self._storage = storage
        self._index: dict[str, RunLocation] = {}

    def find_run(self, run_id: str) -> RunLocation:
        self._storage.require_initialized()
        location = self._lookup(run_id)
        if location is None:
            raise RunNotFoundError(run_id)
        return location

    def run_exists(self, run_id: str) -> bool:
        return self._lookup(run_id) is not None

    def invalidate(self, run_id: str | None = None) -> None:
        if run_id is None:
            self._index.clear()
        else:
            self._index.pop(run_id, None)

    def _lookup(self, run_id: str) -> Optional[RunLocation]:
        if not run_id or run_id in {".", ".."} or "/" in run_id or "\\" in run_id:
            return None
        cached = self._index.get(run_id)
        if cached is not None:
            if cached.run_dir.is_dir():
                return cached
            self.invalidate(run_id)
        for slug in self._storage.list_dirs(self._storage.scenarios_dir):
            run_dir = self._storage.run_dir(slug, run_id)
            if run_dir.is_dir():
                location = RunLocation(run_id=run_id, scenario_slug=slug, run_dir=run_dir)
                self._index[run_id] = location
                return location
        return None

    def count_runs(self, scenario_slug: str) -> int:
        return len(self._storage.list_dirs(self._storage.runs_dir(scenario_slug)))

    def create_run(self, scenario_slug: str, run_id: str, started_at: datetime) -> tuple[RunLocation, int]:
        """Create the run directory tree and its run.json; return the location and ordinal."""

        run_number = self.count_runs(scenario_slug) + 1
        run_dir = self._storage.run_dir(scenario_slug, run_id)
        location = RunLocation(run_id=run_id, scenario_slug=scenario_slug, run_dir=run_dir)
        location.evidence_dir.mkdir(parents=True, exist_ok=True)
        self._storage.write_json(location.run_file_path, RunStart(started_at=started_at).as_serializable())
        self._index[run_id] = location
        return location, run_number

    def stored_status(self, location: RunLocation) -> Optional[str]:
        """Status field of result.json, or None when no result exists yet."""

        if not location.result_path.exists():
            return None
        payload = self._storage.read_json(location.result_path)
        if isinstance(payload, dict):
            status = payload.get("status")
            return str(status) if status is not None else None
        return None

    def is_sealed(self, location: RunLocation) -> bool:
        return self.stored_status(location) in TERMINAL_STATUSES

    def ensure_open(self, location: RunLocation, action: str | None = None) -> None:
        if self.is_sealed(location):
            raise RunAlreadyCompletedError(location.run_id, action)

    def load_result(self, location: RunLocation) -> Optional[RunRecord]:
        if not location.result_path.exists():
            return None
        payload = self._storage.read_json(location.result_path)
        return parse_run_result(payload, location.scenario_slug)

    def read_started_at(self, location: RunLocation) -> Optional[datetime]:
        if not location.run_file_path.exists():
            return None
        payload = self._storage.read_json(location.run_file_path)
        return RunStart.model_validate(payload).started_at

    def load_or_create_in_progress(self, location: RunLocation, now: datetime) -> RunRecord:
        existing = self.load_result(location)
        if existing is not None:
            return existing
        started_at = self.read_started_at(location) or now
        return RunRecord(
            run_id=location.run_id,
            scenario_slug=location.scenario_slug,
            status="running",
            started_at=started_at,
        )

    def save_in_progress(self, location: RunLocation, record: RunRecord) -> None:
        if record.is_terminal:
            raise ValueError("save_in_progress() only accepts running records")
        self._storage.write_json(location.result_path, record.as_serializable())

    def finalize(self, location: RunLocation, record: RunRecord) -> Path:
        """Write the final record. A run can be finalized at most once."""

        if not record.is_terminal:
            raise ValueError("finalize() requires a pass/fail record")
        self.ensure_open(location)
        self._storage.write_json(location.result_path, record.as_serializable())
        LOGGER.debug("run_result_written", run_id=location.run_id, path=str(location.result_path))
        return location.result_path

    def list_step_numbers(self, location: RunLocation) -> list[int]:
        """Step ordinals that have a ``step-NN`` directory under the run."""

        numbers = [parse_step_dir(name) for name in self._storage.list_dirs(location.run_dir)]
        return sorted(number for number in numbers if number is not None)
