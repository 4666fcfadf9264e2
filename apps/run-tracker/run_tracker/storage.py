"""Filesystem layout and file helpers for a run-tracker project."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .errors import NotInitializedError
from .step_ids import step_dir_name

SCENARIOS_DIR = "scenarios"
RUNS_DIR = "runs"
STEPS_DIR = "steps"
EVIDENCE_DIR = "evidence"
CONFIG_FILE = "config.yaml"
META_FILE = "meta.yaml"
RUN_FILE = "run.json"
RESULT_FILE = "result.json"
EVIDENCE_META_MARKER = ".meta"
EVIDENCE_META_SUFFIX = f"{EVIDENCE_META_MARKER}.json"


class ProjectStorage:
    """Resolves paths below the project root and reads/writes YAML, JSON and raw files."""

    def __init__(self, root: Path) -> None:
        self.root = root

    # layout

    @property
    def scenarios_dir(self) -> Path:
        return self.root / SCENARIOS_DIR

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    def scenario_dir(self, slug: str) -> Path:
        return self.scenarios_dir / slug

    def meta_path(self, slug: str) -> Path:
        return self.scenario_dir(slug) / META_FILE

    def steps_dir(self, slug: str) -> Path:
        return self.scenario_dir(slug) / STEPS_DIR

    def runs_dir(self, slug: str) -> Path:
        return self.scenario_dir(slug) / RUNS_DIR

    def run_dir(self, slug: str, run_id: str) -> Path:
        return self.runs_dir(slug) / run_id

    @staticmethod
    def step_evidence_dir(run_dir: Path, step: int) -> Path:
        return run_dir / step_dir_name(step) / EVIDENCE_DIR

    # guards

    def is_initialized(self) -> bool:
        return self.root.is_dir()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError()

    # listing

    @staticmethod
    def list_dirs(path: Path) -> list[str]:
        if not path.is_dir():
            return []
        return sorted(entry.name for entry in path.iterdir() if entry.is_dir())

    @staticmethod
    def list_files(path: Path) -> list[str]:
        if not path.is_dir():
            return []
        return sorted(entry.name for entry in path.iterdir() if entry.is_file())

    # serialization

    @staticmethod
    def read_yaml(path: Path) -> Any:
        return yaml.safe_load(path.read_text(encoding="utf-8"))

    @staticmethod
    def write_yaml(path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True), encoding="utf-8")

    @staticmethod
    def read_json(path: Path) -> Any:
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def write_json(path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def write_text(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    @staticmethod
    def write_bytes(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def relative(self, path: Path) -> str:
        """Path as reported back to callers: relative to the root's parent when possible."""

        try:
            return path.relative_to(self.root.parent).as_posix()
        except ValueError:
            return path.as_posix()
