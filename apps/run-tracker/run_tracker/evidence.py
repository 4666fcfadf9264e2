"""Evidence files captured while a run is in progress."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import structlog

from .errors import EvidencePathError, ValidationError
from .models import EvidenceMeta
from .repository import RunLocation
from .storage import EVIDENCE_META_MARKER, EVIDENCE_META_SUFFIX, ProjectStorage

LOGGER = structlog.get_logger("run_tracker")

EVIDENCE_EXTENSIONS = {
    "screenshot": "png",
    "db_snapshot": "json",
    "console_log": "txt",
    "network_log": "json",
    "html_snapshot": "html",
    "custom": "json",
}
DEFAULT_EXTENSION = "bin"

# Types whose data is a path to a file on disk rather than the content itself.
PATH_BACKED_TYPES = frozenset({"screenshot"})

_WINDOWS_ABSOLUTE = re.compile(r"^[A-Za-z]:[/\\]")
_PREVIEW_LENGTH = 50


def extension_for(evidence_type: str) -> str:
    return EVIDENCE_EXTENSIONS.get(evidence_type, DEFAULT_EXTENSION)


def is_absolute_file_path(value: str) -> bool:
    """Windows drive-letter paths and Unix rooted paths, regardless of host OS."""

    return bool(_WINDOWS_ABSOLUTE.match(value)) or value.startswith("/")


def _preview(value: str) -> str:
    if len(value) > _PREVIEW_LENGTH:
        return value[:_PREVIEW_LENGTH] + "..."
    return value


@dataclass
class StoredEvidence:
    file_path: Path
    meta_path: Path
    file_size: int


class EvidenceStore:
    """Writes evidence and its ``.meta.json`` sidecar under ``step-NN/evidence``."""

    def __init__(self, storage: ProjectStorage) -> None:
        self._storage = storage

    def evidence_dir(self, location: RunLocation, step: int) -> Path:
        return self._storage.step_evidence_dir(location.run_dir, step)

    def write(
        self,
        location: RunLocation,
        *,
        step: int,
        evidence_type: str,
        name: str,
        data: str,
        metadata: Optional[dict[str, Any]],
        captured_at: datetime,
    ) -> StoredEvidence:
        if name.endswith(EVIDENCE_META_MARKER):
            raise ValidationError(f'Evidence name "{name}" collides with a metadata file name.')
        content = self._resolve_content(evidence_type, data)
        evidence_dir = self.evidence_dir(location, step)
        file_path = evidence_dir / f"{name}.{extension_for(evidence_type)}"
        meta_path = evidence_dir / f"{name}{EVIDENCE_META_SUFFIX}"

        if isinstance(content, bytes):
            self._storage.write_bytes(file_path, content)
            file_size = len(content)
        else:
            self._storage.write_text(file_path, content)
            file_size = len(content.encode("utf-8"))

        meta = EvidenceMeta(
            run_id=location.run_id,
            step=step,
            type=evidence_type,
            name=name,
            captured_at=captured_at,
            file_size=file_size,
            metadata=metadata or {},
        )
        self._storage.write_json(meta_path, meta.as_serializable())
        LOGGER.info(
            "evidence_recorded",
            run_id=location.run_id,
            step=step,
            type=evidence_type,
            file=file_path.name,
            file_size=file_size,
        )
        return StoredEvidence(file_path=file_path, meta_path=meta_path, file_size=file_size)

    def list_step_evidence(self, location: RunLocation, step: int) -> list[str]:
        """Evidence file names for a step, sidecar metadata excluded."""

        files = self._storage.list_files(self.evidence_dir(location, step))
        return [name for name in files if not name.endswith(EVIDENCE_META_SUFFIX)]

    @staticmethod
    def _resolve_content(evidence_type: str, data: str) -> str | bytes:
        if evidence_type not in PATH_BACKED_TYPES:
            return data
        if not is_absolute_file_path(data):
            raise EvidencePathError(
                f'For type="{evidence_type}", data must be an absolute file path to the image file. '
                f'Got: "{_preview(data)}". '
                "Pass the path of the screenshot file saved by the browser automation tool."
            )
        try:
            return Path(data).read_bytes()
        except OSError as exc:
            raise EvidencePathError(f"Cannot read screenshot file: {data}") from exc
