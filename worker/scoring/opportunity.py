"""Opportunity score: how much there is to gain from working on a page.

Score = position base + open recommendation bonus + search volume bonus,
clamped to 0-100.

Position base (worse rank leaves more room to climb):
    1-3     10
    4-10    30
    11-20   50
    21-50   65
    51+     75
    unknown 40

Recommendation bonus: min(8 * high, 20) + min(3 * medium, 10)

Search volume bonus (optional):
    >= 10000  10
    >= 5000    8
    >= 1000    6
    >= 500     4
    >= 100     2
    > 0        1
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from worker.audit.aggregator import open_recommendations, round_half_up
from worker.audit.models import PageAuditResult, Priority

POSITION_BASE: list[tuple[float, int]] = [
    (3, 10),
    (10, 30),
    (20, 50),
    (50, 65),
]
POSITION_BASE_BEYOND = 75
POSITION_BASE_UNKNOWN = 40

HIGH_POINTS = 8
HIGH_CAP = 20
MEDIUM_POINTS = 3
MEDIUM_CAP = 10

VOLUME_BONUS: list[tuple[int, int]] = [
    (10000, 10),
    (5000, 8),
    (1000, 6),
    (500, 4),
    (100, 2),
    (1, 1),
]

HIGH_OPPORTUNITY_MIN = 70
MODERATE_OPPORTUNITY_MIN = 40


class OpportunityLevel(StrEnum):
    HIGH = "high"
    MODERATE = "moderate"
    LIMITED = "limited"


@dataclass(frozen=True)
class OpportunityScore:
    """Opportunity score with the points each input contributed."""

    score: int
    position_points: int
    recommendation_points: int
    volume_points: int

    @property
    def level(self) -> OpportunityLevel:
        return opportunity_label(self.score)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "level": self.level.value,
            "position_points": self.position_points,
            "recommendation_points": self.recommendation_points,
            "volume_points": self.volume_points,
        }


def position_points(position: float | None) -> int:
    if position is None or position <= 0:
        return POSITION_BASE_UNKNOWN
    for max_position, points in POSITION_BASE:
        if position <= max_position:
            return points
    return POSITION_BASE_BEYOND


def recommendation_points(high: int, medium: int) -> int:
    high_points = min(HIGH_POINTS * max(high, 0), HIGH_CAP)
    medium_points = min(MEDIUM_POINTS * max(medium, 0), MEDIUM_CAP)
    return high_points + medium_points


def volume_points(search_volume: int | None) -> int:
    if not search_volume or search_volume <= 0:
        return 0
    for min_volume, points in VOLUME_BONUS:
        if search_volume >= min_volume:
            return points
    return 0


def opportunity_label(score: int) -> OpportunityLevel:
    if score >= HIGH_OPPORTUNITY_MIN:
        return OpportunityLevel.HIGH
    if score >= MODERATE_OPPORTUNITY_MIN:
        return OpportunityLevel.MODERATE
    return OpportunityLevel.LIMITED


def calculate_opportunity(
    position: float | None,
    high_priority: int = 0,
    medium_priority: int = 0,
    search_volume: int | None = None,
) -> OpportunityScore:
    """
    Score the opportunity of a page or keyword.

    Args:
        position: Current average ranking position (None if unknown)
        high_priority: Open high-priority recommendations
        medium_priority: Open medium-priority recommendations
        search_volume: Monthly search volume, if known
    """
    base = position_points(position)
    recs = recommendation_points(high_priority, medium_priority)
    volume = volume_points(search_volume)
    score = max(0, min(100, round_half_up(base + recs + volume)))
    return OpportunityScore(
        score=score,
        position_points=base,
        recommendation_points=recs,
        volume_points=volume,
    )


def count_open_priorities(
    results: Iterable[PageAuditResult],
    rejected: set[str] | frozenset[str] = frozenset(),
) -> tuple[int, int]:
    """Open (non-rejected) high and medium priority recommendations across results."""
    high = medium = 0
    for _key, _result, rec in open_recommendations(results, rejected):
        if rec.priority == Priority.HIGH:
            high += 1
        elif rec.priority == Priority.MEDIUM:
            medium += 1
    return high, medium
