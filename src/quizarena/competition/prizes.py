"""Prize split for the top ten places of a finished competition."""

from __future__ import annotations

from collections.abc import Sequence

from quizarena.gamification.accuracy import round_half_up

# Share of the prize pool for ranks 1..10.
PRIZE_DISTRIBUTION: tuple[float, ...] = (0.40, 0.25, 0.15, 0.08, 0.05, 0.03, 0.02, 0.01, 0.005, 0.005)
PRIZE_PLACES = len(PRIZE_DISTRIBUTION)


def validate_distribution(distribution: Sequence[float]) -> None:
    """A distribution may pay at most ten places and at most the whole pool."""
    if len(distribution) > PRIZE_PLACES:
        raise ValueError(f"Prize distribution pays at most {PRIZE_PLACES} places")
    if any(pct < 0 for pct in distribution):
        raise ValueError("Prize percentages must be non-negative")
    if sum(distribution) > 1.0 + 1e-9:
        raise ValueError("Prize percentages exceed the pool")


def calculate_prize(
    prize_pool: int,
    rank: int,
    distribution: Sequence[float] | None = None,
) -> int:
    """Prize for ``rank``: round-half-up(pool * share). Ranks past the table get 0."""
    table = PRIZE_DISTRIBUTION if distribution is None else distribution
    if rank < 1 or rank > len(table):
        return 0
    return int(round_half_up(prize_pool * table[rank - 1]))
