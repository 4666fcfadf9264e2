from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as SchemaValidationError

from run_tracker.models import (
    RunRecord,
    ScenarioMeta,
    StepResult,
    parse_run_result,
    round_half_up,
)
from run_tracker.step_ids import parse_step_dir, parse_step_id, step_dir_name


@pytest.mark.parametrize("value, expected", [(3, 3), ("3", 3), ("03", 3), ("99", 99)])
def test_parse_step_id_accepts_ints_and_digit_strings(value: object, expected: int) -> None:
    assert parse_step_id(value) == expected


@pytest.mark.parametrize("value", [0, 100, "abc", "1.5", "", True, None])
def test_parse_step_id_rejects_invalid_values(value: object) -> None:
    with pytest.raises(ValueError):
        parse_step_id(value)


def test_step_directories_round_trip_through_names() -> None:
    assert step_dir_name(4) == "step-04"
    assert parse_step_dir("step-04") == 4
    assert parse_step_dir("step-00") is None
    assert parse_step_dir("evidence") is None


def test_step_result_serializes_zero_padded_id_and_keeps_extras() -> None:
    result = StepResult.model_validate({"id": 7, "status": "pass", "summary": "Logged in"})

    payload = result.as_serializable()

    assert payload["id"] == "07"
    assert payload["evidenceFiles"] == []
    assert payload["summary"] == "Logged in"


def test_step_result_rejects_unknown_status() -> None:
    with pytest.raises(SchemaValidationError):
        StepResult.model_validate({"id": "01", "status": "flaky"})


def test_upsert_step_replaces_and_sorts_numerically() -> None:
    record = RunRecord(
        run_id="abc",
        scenario_slug="login-flow",
        status="running",
        started_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    record.upsert_step(StepResult(id=10, status="pass"))
    record.upsert_step(StepResult(id=9, status="fail"))
    record.upsert_step(StepResult(id=9, status="pass"))

    assert [step.id for step in record.steps] == [9, 10]
    assert record.steps[0].status == "pass"


def test_running_record_omits_completion_fields() -> None:
    record = RunRecord(
        run_id="abc",
        scenario_slug="login-flow",
        status="running",
        started_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )

    payload = record.as_serializable()

    assert payload["status"] == "running"
    assert "completedAt" not in payload
    assert "failedStep" not in payload
    assert payload["steps"] == []


def test_legacy_result_is_upgraded() -> None:
    payload = {
        "runId": "legacy1",
        "status": "fail",
        "duration": 1000,
        "completedAt": "2025-01-01T00:00:10Z",
        "failedStep": 2,
        "errorMessage": "Button missing",
        "evidenceCount": 3,
    }

    record = parse_run_result(payload, "login-flow")

    assert isinstance(record, RunRecord)
    assert record.scenario_slug == "login-flow"
    assert record.status == "fail"
    assert record.failed_step == 2
    assert record.steps == []
    assert record.completed_at - record.started_at == timedelta(seconds=1)
    assert record.model_extra["evidenceCount"] == 3
    assert record.as_serializable()["failedStep"] == "02"


def test_legacy_out_of_range_failed_step_is_dropped() -> None:
    payload = {"runId": "legacy2", "status": "fail", "completedAt": "2025-01-01T00:00:10Z", "failedStep": 0}

    assert parse_run_result(payload, "login-flow").failed_step is None


def test_current_shape_is_parsed_directly() -> None:
    payload = {
        "runId": "abc",
        "scenarioSlug": "login-flow",
        "status": "running",
        "startedAt": "2025-01-01T00:00:00Z",
        "steps": [{"id": "02", "status": "pass"}, {"id": "01", "status": "pass"}],
    }

    record = parse_run_result(payload, "ignored")

    assert record.scenario_slug == "login-flow"
    assert [step.id for step in record.steps] == [2, 1]


def test_scenario_meta_tolerates_nulls_and_keeps_unknown_keys() -> None:
    meta = ScenarioMeta.model_validate(
        {"title": "Login", "tags": None, "steps": None, "totalRuns": None, "avgDuration": 2.5, "owner": "qa"}
    )

    assert meta.tags == []
    assert meta.steps == []
    assert meta.total_runs == 0
    assert meta.avg_duration == 3
    assert meta.model_extra == {"owner": "qa"}


@pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.4999, 2), (1500.0, 1500)])
def test_round_half_up(value: float, expected: int) -> None:
    assert round_half_up(value) == expected
