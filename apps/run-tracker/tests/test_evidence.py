from __future__ import annotations

import json
from pathlib import Path

import pytest

from run_tracker.errors import EvidencePathError, ValidationError
from run_tracker.evidence import extension_for, is_absolute_file_path
from run_tracker.tools import RunTracker

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(64))


@pytest.mark.parametrize(
    "evidence_type, extension",
    [
        ("screenshot", "png"),
        ("db_snapshot", "json"),
        ("console_log", "txt"),
        ("network_log", "json"),
        ("html_snapshot", "html"),
        ("custom", "json"),
        ("video", "bin"),
    ],
)
def test_extension_map(evidence_type: str, extension: str) -> None:
    assert extension_for(evidence_type) == extension


@pytest.mark.parametrize(
    "value, expected",
    [
        ("/tmp/shot.png", True),
        ("C:\\Users\\qa\\shot.png", True),
        ("c:/Users/qa/shot.png", True),
        ("shots/shot.png", False),
        ("C:shot.png", False),
        ("iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk", False),
    ],
)
def test_absolute_path_detection(value: str, expected: bool) -> None:
    assert is_absolute_file_path(value) is expected


def test_screenshot_copies_source_bytes(scenario: str, project: RunTracker, tmp_path: Path) -> None:
    source = tmp_path / "captured.png"
    source.write_bytes(PNG_BYTES)
    run = project.lifecycle.start_run(scenario)

    result = project.lifecycle.record_evidence(run.run_id, 1, "screenshot", "login-page", str(source))

    destination = tmp_path / result.file_path
    assert result.file_path.endswith("step-01/evidence/login-page.png")
    assert destination.read_bytes() == PNG_BYTES
    assert result.file_size == len(PNG_BYTES)


def test_screenshot_rejects_non_path_data(scenario: str, project: RunTracker) -> None:
    run = project.lifecycle.start_run(scenario)
    base64_payload = "iVBORw0KGgo" * 10

    with pytest.raises(EvidencePathError) as excinfo:
        project.lifecycle.record_evidence(run.run_id, 1, "screenshot", "login-page", base64_payload)

    message = excinfo.value.message
    assert "absolute file path" in message
    assert f'Got: "{base64_payload[:50]}..."' in message
    step_dir = project.storage.run_dir(scenario, run.run_id) / "step-01"
    assert not step_dir.exists()


def test_screenshot_reports_unreadable_source(scenario: str, project: RunTracker, tmp_path: Path) -> None:
    run = project.lifecycle.start_run(scenario)
    missing = tmp_path / "nowhere" / "shot.png"

    with pytest.raises(EvidencePathError, match="Cannot read screenshot file"):
        project.lifecycle.record_evidence(run.run_id, 2, "screenshot", "missing", str(missing))


def test_text_evidence_and_sidecar_metadata(scenario: str, project: RunTracker, tmp_path: Path) -> None:
    run = project.lifecycle.start_run(scenario)

    result = project.lifecycle.record_evidence(
        run.run_id,
        2,
        "console_log",
        "browser-console",
        "héllo",
        metadata={"level": "warn"},
    )

    assert result.file_size == len("héllo".encode("utf-8"))
    assert (tmp_path / result.file_path).read_text(encoding="utf-8") == "héllo"
    meta = json.loads((tmp_path / result.meta_path).read_text(encoding="utf-8"))
    assert result.meta_path.endswith("step-02/evidence/browser-console.meta.json")
    assert meta["runId"] == run.run_id
    assert meta["step"] == "02"
    assert meta["type"] == "console_log"
    assert meta["name"] == "browser-console"
    assert meta["fileSize"] == 6
    assert meta["metadata"] == {"level": "warn"}
    assert "capturedAt" in meta


def test_listing_excludes_sidecars(scenario: str, project: RunTracker) -> None:
    run = project.lifecycle.start_run(scenario)
    project.lifecycle.record_evidence(run.run_id, 1, "console_log", "b-log", "x")
    project.lifecycle.record_evidence(run.run_id, 1, "db_snapshot", "a-users", "{}")

    location = project.runs.find_run(run.run_id)

    assert project.lifecycle.evidence.list_step_evidence(location, 1) == ["a-users.json", "b-log.txt"]


def test_names_ending_in_meta_are_rejected(scenario: str, project: RunTracker, tmp_path: Path) -> None:
    run = project.lifecycle.start_run(scenario)
    first = project.lifecycle.record_evidence(run.run_id, 1, "custom", "a", "{}", metadata={"source": "api"})

    with pytest.raises(ValidationError, match="metadata file"):
        project.lifecycle.record_evidence(run.run_id, 1, "custom", "a.meta", "CLOBBER")

    meta = json.loads((tmp_path / first.meta_path).read_text(encoding="utf-8"))
    assert meta["metadata"] == {"source": "api"}
    location = project.runs.find_run(run.run_id)
    assert project.lifecycle.evidence.list_step_evidence(location, 1) == ["a.json"]
