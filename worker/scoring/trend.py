"""Ranking trend over monthly position samples.

Lower positions are better, so a falling average position is an upward trend.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

WINDOW = 3
MIN_SAMPLES = WINDOW + 1
STABLE_THRESHOLD = 0.5


class TrendDirection(StrEnum):
    """Direction of a keyword's ranking movement."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass(frozen=True)
class Trend:
    """Comparison of the latest window of positions with the one before it."""

    direction: TrendDirection
    recent_mean: float
    prior_mean: float

    @property
    def delta(self) -> float:
        return self.recent_mean - self.prior_mean

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "recent_mean": round(self.recent_mean, 2),
            "prior_mean": round(self.prior_mean, 2),
            "delta": round(self.delta, 2),
        }


def direction_for_delta(delta: float) -> TrendDirection:
    if delta < -STABLE_THRESHOLD:
        return TrendDirection.UP
    if delta > STABLE_THRESHOLD:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def calculate_trend(positions: Iterable[float | None]) -> Trend | None:
    """
    Compare the mean of the last three positions with up to three before them.

    Args:
        positions: Monthly average positions, oldest first. Months without
            data (None or non-positive) are skipped.

    Returns:
        The trend, or None when fewer than four usable samples exist.

    Example:
        [5, 4, 6, 2, 1, 3] -> recent mean 2, prior mean 5, delta -3, UP
        [6, 5, 2, 1] -> recent mean 2.67, prior mean 6, UP
    """
    samples = [float(p) for p in positions if p is not None and p > 0]
    if len(samples) < MIN_SAMPLES:
        return None

    recent = samples[-WINDOW:]
    prior = samples[-2 * WINDOW : -WINDOW]
    recent_mean = sum(recent) / len(recent)
    prior_mean = sum(prior) / len(prior)
    return Trend(
        direction=direction_for_delta(recent_mean - prior_mean),
        recent_mean=recent_mean,
        prior_mean=prior_mean,
    )
