"""Level curve and computation.

Each level costs more than the last: reaching level L+1 from L costs
floor(BASE_THRESHOLD * GROWTH_FACTOR ** (L - 1)) points. The level is
always re-derived from total points, never maintained incrementally.
"""

from __future__ import annotations

import math

BASE_THRESHOLD = 1000
GROWTH_FACTOR = 1.5
MAX_LEVEL = 100

LEVEL_TITLES: dict[int, str] = {
    1: "Beginner",
    2: "Beginner",
    3: "Beginner",
    4: "Intermediate",
    5: "Intermediate",
    6: "Intermediate",
    7: "Advanced",
    8: "Advanced",
    9: "Advanced",
    10: "Expert",
    11: "Expert",
    12: "Expert",
    13: "Master",
    14: "Master",
    15: "Grand Master",
    16: "Grand Master",
    17: "Grand Master",
    18: "Legend",
    19: "Legend",
    20: "Legend",
}


def level_threshold(level: int) -> int:
    """Points needed to advance from ``level`` to ``level + 1``."""
    return math.floor(BASE_THRESHOLD * GROWTH_FACTOR ** (level - 1))


def get_level_title(level: int) -> str:
    return LEVEL_TITLES.get(level, f"Level {level}")


def compute_level(total_points: int) -> dict:
    """Compute level info from total points.

    Returns a dict with ``level``, ``experience`` (points into the current
    level), ``next_level_threshold`` (cost of the next level) and ``title``.
    """
    level = 1
    experience = total_points
    threshold = BASE_THRESHOLD

    while experience >= threshold and level < MAX_LEVEL:
        experience -= threshold
        level += 1
        threshold = level_threshold(level)

    return {
        "level": level,
        "experience": experience,
        "next_level_threshold": threshold,
        "title": get_level_title(level),
    }
