"""Test bootstrap and shared fixtures for run-tracker."""

from __future__ import annotations

import itertools
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from run_tracker.schemas import StepInput  # noqa: E402
from run_tracker.tools import RunTracker  # noqa: E402

SCENARIO_SLUG = "login-flow"
STEP_TITLES = ("Open the login page", "Submit credentials", "See the dashboard")


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


def sequential_ids(prefix: str = "run") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter):04d}"


def build_steps(*titles: str) -> list[StepInput]:
    return [
        StepInput(
            title=title,
            description=f"{title} description",
            actions=f"Do: {title.lower()}",
            expected_outcome=f"{title} works",
        )
        for title in titles
    ]


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def make_steps() -> Callable[..., list[StepInput]]:
    return build_steps


@pytest.fixture
def tracker(tmp_path: Path, clock: TickingClock) -> RunTracker:
    return RunTracker(tmp_path / ".harshJudge", clock=clock, id_factory=sequential_ids())


@pytest.fixture
def project(tracker: RunTracker) -> RunTracker:
    tracker.catalog.init_project("Demo shop", "http://localhost:3000")
    return tracker


@pytest.fixture
def scenario(project: RunTracker) -> str:
    project.catalog.create_scenario(
        SCENARIO_SLUG,
        "Login flow",
        build_steps(*STEP_TITLES),
        tags=["smoke", "auth"],
    )
    return SCENARIO_SLUG
