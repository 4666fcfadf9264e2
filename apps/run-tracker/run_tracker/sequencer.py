"""Next-step lookup over a scenario's ordered step list."""

from __future__ import annotations

from typing import Optional, Sequence


def next_step_id(step_order: Sequence[int], current: int) -> Optional[int]:
    """Return the step that follows ``current``.

    ``None`` when the list is empty, ``current`` is not in it, or it is the
    last entry.
    """

    try:
        index = list(step_order).index(current)
    except ValueError:
        return None
    if index + 1 >= len(step_order):
        return None
    return step_order[index + 1]
