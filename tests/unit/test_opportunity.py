"""Tests for opportunity scoring."""

from tests.fixtures.audit_service import make_recommendation, make_result
from worker.audit.models import Priority
from worker.scoring.opportunity import (
    OpportunityLevel,
    calculate_opportunity,
    count_open_priorities,
    opportunity_label,
    position_points,
    recommendation_points,
    volume_points,
)


class TestPositionPoints:
    """Tests for the position base."""

    def test_bands(self):
        assert position_points(1) == 10
        assert position_points(3) == 10
        assert position_points(4) == 30
        assert position_points(10) == 30
        assert position_points(15) == 50
        assert position_points(35) == 65
        assert position_points(51) == 75

    def test_unknown_position(self):
        assert position_points(None) == 40
        assert position_points(0) == 40

    def test_better_position_never_scores_higher(self):
        positions = [100, 60, 50, 30, 20, 12, 10, 7, 3, 1]
        points = [position_points(p) for p in positions]
        assert points == sorted(points, reverse=True)


class TestBonuses:
    """Tests for recommendation and volume bonuses."""

    def test_recommendation_caps(self):
        assert recommendation_points(1, 1) == 11
        assert recommendation_points(3, 0) == 20
        assert recommendation_points(0, 4) == 10
        assert recommendation_points(10, 10) == 30

    def test_volume_bands(self):
        assert volume_points(None) == 0
        assert volume_points(0) == 0
        assert volume_points(50) == 1
        assert volume_points(100) == 2
        assert volume_points(999) == 4
        assert volume_points(1000) == 6
        assert volume_points(7500) == 8
        assert volume_points(250000) == 10


class TestCalculateOpportunity:
    """Tests for the combined score."""

    def test_components(self):
        score = calculate_opportunity(
            position=15, high_priority=2, medium_priority=1, search_volume=1200
        )
        assert score.score == 50 + 19 + 6
        assert score.level == OpportunityLevel.HIGH
        assert score.to_dict()["recommendation_points"] == 19

    def test_bounded(self):
        assert calculate_opportunity(200, 50, 50, 10**7).score == 100
        assert calculate_opportunity(1).score == 10

    def test_labels(self):
        assert opportunity_label(70) == OpportunityLevel.HIGH
        assert opportunity_label(69) == OpportunityLevel.MODERATE
        assert opportunity_label(40) == OpportunityLevel.MODERATE
        assert opportunity_label(39) == OpportunityLevel.LIMITED


class TestCountOpenPriorities:
    """Tests for counting open recommendations."""

    def test_rejected_not_counted(self):
        result = make_result(
            "https://example.com/a",
            recommendations=[
                make_recommendation(Priority.HIGH),
                make_recommendation(Priority.HIGH),
                make_recommendation(Priority.MEDIUM),
                make_recommendation(Priority.LOW),
            ],
        )
        rejected = {"seo::https://example.com/a::1"}
        assert count_open_priorities([result], rejected) == (1, 1)
