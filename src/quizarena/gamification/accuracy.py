"""Accuracy percentage shared by attempts, users and competition entries."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, places: int = 0) -> float:
    """Round like Math.round (half away from zero for positives), not banker's rounding."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def compute_accuracy(correct: int, total: int) -> float:
    """Percentage of correct answers, rounded to 2 decimals. 0 when total is 0."""
    if total == 0:
        return 0.0
    return round_half_up(correct / total * 100, 2)
