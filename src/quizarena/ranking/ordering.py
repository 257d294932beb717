"""Deterministic ranking order shared by the global and competition boards.

Entries are ranked by points DESC, then accuracy DESC, then quizzes
completed DESC. The user id ASC is the last resort so that two runs over
the same data always produce the same ranks. No two entries share a rank.
"""

from __future__ import annotations

from typing import Any


def rank_sort_key(entry: dict[str, Any]) -> tuple[int, float, int, int]:
    return (
        -entry.get("points", 0),
        -entry.get("accuracy", 0.0),
        -entry.get("quizzes_completed", 0),
        entry["user_id"],
    )


def rank_entries(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort entries by the tie-break chain and set ``rank`` (1-indexed).

    Input: dicts with ``user_id`` and optionally ``points``, ``accuracy``,
    ``quizzes_completed``. Output: the same dicts, sorted, with ``rank``.
    """
    ranked = sorted(entries, key=rank_sort_key)
    for idx, entry in enumerate(ranked):
        entry["rank"] = idx + 1
    return ranked


def rank_trend(history: list[dict[str, Any]]) -> str:
    """'up', 'down' or 'stable' from the two most recent history entries (oldest first)."""
    if len(history) < 2:
        return "stable"
    current, previous = history[-1]["rank"], history[-2]["rank"]
    if current < previous:
        return "up"
    if current > previous:
        return "down"
    return "stable"


def rank_change(history: list[dict[str, Any]]) -> int:
    """Absolute rank movement between the two most recent history entries."""
    if len(history) < 2:
        return 0
    return abs(history[-1]["rank"] - history[-2]["rank"])
