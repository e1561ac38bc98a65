"""
Letter tiers derived from a startup's rating.

Thresholds for the top three tiers tighten when a startup has few
comparisons behind it, so a lucky first few votes don't earn an S.
"""

from dataclasses import dataclass
from enum import Enum

from ..models.records import INITIAL_RATING


class Tier(str, Enum):
    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


@dataclass(frozen=True)
class TierInfo:
    tier: Tier
    label: str
    description: str


LOW_SAMPLE = 10
MEDIUM_SAMPLE = 25

C_THRESHOLD = 1450.0
D_THRESHOLD = 1400.0


def _top_thresholds(comparison_count: int) -> tuple[float, float, float]:
    if comparison_count < LOW_SAMPLE:
        return 1750.0, 1650.0, 1600.0
    if comparison_count < MEDIUM_SAMPLE:
        return 1720.0, 1620.0, 1570.0
    return 1700.0, 1600.0, 1550.0


def tier_for_rating(rating: float | None, comparison_count: int = 0) -> TierInfo:
    rating = INITIAL_RATING if rating is None else rating
    low_sample = comparison_count < LOW_SAMPLE
    s_cut, a_cut, b_cut = _top_thresholds(comparison_count)

    if rating >= s_cut:
        return TierInfo(Tier.S, "S Tier", "Elite (Low Sample)" if low_sample else "Elite")
    if rating >= a_cut:
        return TierInfo(Tier.A, "A Tier", "Excellent (Low Sample)" if low_sample else "Excellent")
    if rating >= b_cut:
        return TierInfo(Tier.B, "B Tier", "Good")
    if rating >= C_THRESHOLD:
        return TierInfo(Tier.C, "C Tier", "Average")
    if rating >= D_THRESHOLD:
        return TierInfo(Tier.D, "D Tier", "Below Average")
    return TierInfo(Tier.F, "F Tier", "Needs Improvement")
