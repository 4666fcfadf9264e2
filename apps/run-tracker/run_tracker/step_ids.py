"""Step identifiers: integer ordinals 1-99, written as two-digit strings on disk."""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer, WithJsonSchema

MIN_STEP = 1
MAX_STEP = 99

_STEP_DIR_PATTERN = re.compile(r"^step-(\d{2})$")


def parse_step_id(value: Any) -> int:
    """Accept 3, "3" or "03" and return the ordinal."""

    if isinstance(value, bool):
        raise ValueError(f"Invalid step id: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise ValueError(f"Invalid step id: {value!r}")
    if not MIN_STEP <= number <= MAX_STEP:
        raise ValueError(f"Step id must be between {MIN_STEP:02d} and {MAX_STEP:02d}, got {value!r}")
    return number


def format_step_id(number: int) -> str:
    return f"{number:02d}"


def step_dir_name(number: int) -> str:
    return f"step-{format_step_id(number)}"


def parse_step_dir(name: str) -> int | None:
    """Return the ordinal encoded in a ``step-NN`` directory name, if any."""

    match = _STEP_DIR_PATTERN.match(name)
    if not match:
        return None
    number = int(match.group(1))
    if not MIN_STEP <= number <= MAX_STEP:
        return None
    return number


StepId = Annotated[
    int,
    BeforeValidator(parse_step_id),
    PlainSerializer(format_step_id, return_type=str),
    WithJsonSchema(
        {
            "anyOf": [
                {"type": "string", "pattern": r"^\d{1,2}$"},
                {"type": "integer", "minimum": MIN_STEP, "maximum": MAX_STEP},
            ],
            "description": "Step id, zero-padded (e.g. \"01\") or numeric",
        }
    ),
]
