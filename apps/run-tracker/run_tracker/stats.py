"""Scenario statistics: pure aggregation plus the meta.yaml merge."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError as SchemaValidationError

from .errors import InvalidScenarioMetaError
from .models import FinalStatus, ScenarioStats, round_half_up, utc_now
from .storage import ProjectStorage

LOGGER = structlog.get_logger("run_tracker")

STATS_KEYS = ("totalRuns", "passCount", "failCount", "lastRun", "lastResult", "avgDuration")


@dataclass(frozen=True)
class RunOutcome:
    status: FinalStatus
    duration: float


def apply_completed_run(stats: ScenarioStats, outcome: RunOutcome, completed_at: datetime) -> ScenarioStats:
    """Fold one completed run into the counters.

    The average is a weighted running mean over all runs, so only the mean and
    the run count are needed, not the individual durations.
    """

    total_runs = stats.total_runs + 1
    total_duration = stats.avg_duration * stats.total_runs + outcome.duration
    return ScenarioStats(
        total_runs=total_runs,
        pass_count=stats.pass_count + (1 if outcome.status == "pass" else 0),
        fail_count=stats.fail_count + (1 if outcome.status == "fail" else 0),
        last_run=completed_at,
        last_result=outcome.status,
        avg_duration=round_half_up(total_duration / total_runs),
    )


@dataclass
class PendingStats:
    """Validated meta.yaml document together with the counters to write back."""

    document: dict[str, Any]
    updated: ScenarioStats


class ScenarioStatsRepository:
    """Applies completed runs to ``scenarios/<slug>/meta.yaml``.

    Only the stats keys are rewritten; every other key keeps its value and
    position. ``prepare`` validates the current counters without writing, so
    callers can check meta.yaml before sealing a run and ``commit`` afterwards.
    """

    def __init__(self, storage: ProjectStorage) -> None:
        self._storage = storage

    def read_document(self, slug: str) -> dict[str, Any]:
        path = self._storage.meta_path(slug)
        if not path.exists():
            return {}
        payload = self._storage.read_yaml(path)
        return payload if isinstance(payload, dict) else {}

    def read_stats(self, slug: str) -> ScenarioStats:
        return self._validate(slug, self.read_document(slug))

    def prepare(self, slug: str, outcome: RunOutcome, completed_at: datetime | None = None) -> PendingStats:
        document = self.read_document(slug)
        current = self._validate(slug, document)
        return PendingStats(document=document, updated=apply_completed_run(current, outcome, completed_at or utc_now()))

    def commit(self, slug: str, pending: PendingStats) -> ScenarioStats:
        serialized = pending.updated.as_serializable()
        document = dict(pending.document)
        for key in STATS_KEYS:
            document[key] = serialized[key]
        self._storage.write_yaml(self._storage.meta_path(slug), document)
        LOGGER.info("stats_updated", scenario=slug, **pending.updated.summary())
        return pending.updated

    def apply_completed_run(
        self,
        slug: str,
        outcome: RunOutcome,
        completed_at: datetime | None = None,
    ) -> ScenarioStats:
        return self.commit(slug, self.prepare(slug, outcome, completed_at))

    @staticmethod
    def _validate(slug: str, document: dict[str, Any]) -> ScenarioStats:
        try:
            return ScenarioStats.model_validate(document)
        except SchemaValidationError as exc:
            raise InvalidScenarioMetaError.from_validation(slug, exc) from exc
