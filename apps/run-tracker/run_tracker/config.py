"""Runtime settings resolved from CLI options, environment variables and defaults."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, field_validator

from .output_config import OutputFormat, get_output_format

DEFAULT_PROJECT_DIR = ".harshJudge"
DEFAULT_LOG_LEVEL = "WARNING"

PROJECT_DIR_ENV = "RUN_TRACKER_PROJECT_DIR"
LOG_LEVEL_ENV = "RUN_TRACKER_LOG_LEVEL"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class TrackerSettings(BaseModel):
    project_dir: Path = Path(DEFAULT_PROJECT_DIR)
    log_level: str = DEFAULT_LOG_LEVEL
    output_format: OutputFormat = OutputFormat.AUTO

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level {value!r}; expected one of {sorted(_LOG_LEVELS)}")
        return level

    @classmethod
    def resolve(
        cls,
        *,
        project_dir: Optional[Path] = None,
        log_level: Optional[str] = None,
        output_format: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "TrackerSettings":
        """CLI value first, then the environment, then the defaults."""

        env = os.environ if environ is None else environ
        return cls(
            project_dir=project_dir or Path(env.get(PROJECT_DIR_ENV) or DEFAULT_PROJECT_DIR),
            log_level=log_level or env.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL,
            output_format=get_output_format(output_format, environ=env),
        )
