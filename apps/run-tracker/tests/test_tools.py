from __future__ import annotations

from pathlib import Path

import pytest

from run_tracker.errors import ValidationError
from run_tracker.tools import RunTracker, call_tool, invoke_tool, list_tools

TOOL_NAMES = {
    "initProject",
    "createScenario",
    "toggleStar",
    "startRun",
    "recordEvidence",
    "completeStep",
    "completeRun",
    "getStatus",
}

STEP = {"title": "Open the login page", "actions": "Navigate to /login", "expectedOutcome": "Form is visible"}


def test_list_tools_exposes_every_tool_schema() -> None:
    tools = list_tools()

    assert {tool["name"] for tool in tools} == TOOL_NAMES
    complete_step = next(tool for tool in tools if tool["name"] == "completeStep")
    schema = complete_step["inputSchema"]
    assert {"runId", "stepId", "status"} <= set(schema["required"])
    assert "anyOf" in schema["properties"]["stepId"]


def test_unknown_tool_is_a_validation_error(tracker: RunTracker) -> None:
    envelope = call_tool(tracker, "deleteEverything", {})

    assert envelope["success"] is False
    assert envelope["error"]["code"] == "validation_error"
    assert "Unknown tool" in envelope["error"]["message"]


def test_parameters_are_validated_before_touching_storage(tracker: RunTracker, tmp_path: Path) -> None:
    with pytest.raises(ValidationError, match="scenarioSlug"):
        invoke_tool(tracker, "startRun", {"scenarioSlug": "Not A Slug"})

    assert not (tmp_path / ".harshJudge").exists()


@pytest.mark.parametrize(
    "params",
    [
        {"runId": "run0001", "step": "01", "type": "console_log", "name": "..", "data": "x"},
        {"runId": "run0001", "step": "01", "type": "console_log", "name": "a/b", "data": "x"},
        {"runId": "run0001", "step": "100", "type": "console_log", "name": "log", "data": "x"},
        {"runId": "../escape", "step": "01", "type": "console_log", "name": "log", "data": "x"},
        {"runId": "run0001", "step": "01", "type": "video", "name": "log", "data": "x"},
        {"runId": "run0001", "step": "01", "type": "custom", "name": "a.meta", "data": "x"},
    ],
)
def test_record_evidence_rejects_bad_parameters(project: RunTracker, params: dict) -> None:
    envelope = call_tool(project, "recordEvidence", params)

    assert envelope["success"] is False
    assert envelope["error"]["code"] == "validation_error"


def test_tracker_errors_become_error_envelopes(tracker: RunTracker) -> None:
    envelope = call_tool(tracker, "getStatus", {})

    assert envelope == {
        "success": False,
        "error": {"code": "not_initialized", "message": "Project not initialized. Run initProject first."},
    }


def test_full_run_through_tools(tracker: RunTracker, tmp_path: Path) -> None:
    assert call_tool(tracker, "initProject", {"projectName": "Demo"})["success"] is True
    created = call_tool(
        tracker,
        "createScenario",
        {"slug": "login", "title": "Login", "steps": [STEP, {**STEP, "title": "Submit"}], "tags": ["smoke"]},
    )
    assert created["success"] is True
    assert created["isNew"] is True

    started = call_tool(tracker, "startRun", {"scenarioSlug": "login"})
    run_id = started["runId"]
    assert started["runNumber"] == 1
    assert [step["id"] for step in started["steps"]] == ["01", "02"]

    evidence = call_tool(
        tracker,
        "recordEvidence",
        {"runId": run_id, "step": "01", "type": "network_log", "name": "requests", "data": "[]"},
    )
    assert evidence["success"] is True
    assert evidence["filePath"].endswith("step-01/evidence/requests.json")
    assert evidence["fileSize"] == 2

    step = call_tool(tracker, "completeStep", {"runId": run_id, "stepId": "01", "status": "pass", "duration": 150})
    assert step == {"success": True, "runId": run_id, "stepId": "01", "status": "pass", "nextStepId": "02"}

    completed = call_tool(tracker, "completeRun", {"runId": run_id, "status": "pass", "duration": 300})
    assert completed["success"] is True
    assert completed["updatedMeta"] == {"totalRuns": 1, "passCount": 1, "failCount": 0, "avgDuration": 300}
    assert (tmp_path / completed["resultPath"]).is_file()

    again = call_tool(tracker, "completeRun", {"runId": run_id, "status": "pass", "duration": 300})
    assert again["error"]["code"] == "run_already_completed"

    status = call_tool(tracker, "getStatus", {"scenarioSlug": "login"})
    assert status["recentRuns"][0]["id"] == run_id
    assert status["meta"]["totalRuns"] == 1


def test_complete_run_accepts_explicit_step_results(scenario: str, project: RunTracker) -> None:
    run = project.lifecycle.start_run(scenario)

    envelope = call_tool(
        project,
        "completeRun",
        {
            "runId": run.run_id,
            "status": "fail",
            "duration": 800,
            "steps": [
                {"id": "01", "status": "pass", "duration": 300, "summary": "ok"},
                {"id": "02", "status": "fail", "duration": 500, "error": "Wrong password"},
            ],
        },
    )

    assert envelope["success"] is True
    record = project.runs.load_result(project.runs.find_run(run.run_id))
    assert record.failed_step == 2
    assert record.steps[0].model_extra == {"summary": "ok"}


def test_evidence_name_cannot_overwrite_metadata_file(scenario: str, project: RunTracker, tmp_path: Path) -> None:
    run = project.lifecycle.start_run(scenario)
    recorded = call_tool(
        project,
        "recordEvidence",
        {"runId": run.run_id, "step": "01", "type": "custom", "name": "a", "data": "{}", "metadata": {"k": "v"}},
    )
    meta_file = tmp_path / recorded["metaPath"]
    before = meta_file.read_text(encoding="utf-8")

    envelope = call_tool(
        project,
        "recordEvidence",
        {"runId": run.run_id, "step": "01", "type": "custom", "name": "a.meta", "data": "CLOBBER"},
    )

    assert envelope["success"] is False
    assert envelope["error"]["code"] == "validation_error"
    assert "reserved for metadata files" in envelope["error"]["message"]
    assert meta_file.read_text(encoding="utf-8") == before


def test_invalid_meta_is_reported_as_error_envelope(scenario: str, project: RunTracker) -> None:
    run = project.lifecycle.start_run(scenario)
    meta_path = project.storage.meta_path(scenario)
    broken = meta_path.read_text(encoding="utf-8").replace("lastResult: null", "lastResult: running")
    meta_path.write_text(broken, encoding="utf-8")

    envelope = call_tool(project, "completeRun", {"runId": run.run_id, "status": "pass", "duration": 10})

    assert envelope["success"] is False
    assert envelope["error"]["code"] == "invalid_meta"
    assert "lastResult" in envelope["error"]["message"]
