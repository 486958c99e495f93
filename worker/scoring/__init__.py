"""Scoring engine: ranking trends and opportunity scores."""

from worker.scoring.opportunity import (
    OpportunityLevel,
    OpportunityScore,
    calculate_opportunity,
    count_open_priorities,
    opportunity_label,
)
from worker.scoring.trend import Trend, TrendDirection, calculate_trend

__all__ = [
    # Trend
    "Trend",
    "TrendDirection",
    "calculate_trend",
    # Opportunity
    "OpportunityLevel",
    "OpportunityScore",
    "calculate_opportunity",
    "count_open_priorities",
    "opportunity_label",
]
