from .price import PRICE_DIVISOR, price_for_rating, format_price
from .rating import (
    K_FACTOR,
    DEFAULT_PASSES,
    RatingEngine,
    ComparisonResult,
    RecomputeResult,
    RecomputeStatus,
    expected_score,
    elo_delta,
    update_ratings,
    replay_comparisons,
    assign_ranks,
)
from .selector import (
    SIMILARITY_BAND,
    OpponentSelector,
    PairSelection,
    next_pair_for_user,
    seen_entity_ids,
    comparison_counts,
    duplicates_allowed,
)
from .tiers import Tier, TierInfo, tier_for_rating

__all__ = [
    "PRICE_DIVISOR",
    "price_for_rating",
    "format_price",
    "K_FACTOR",
    "DEFAULT_PASSES",
    "RatingEngine",
    "ComparisonResult",
    "RecomputeResult",
    "RecomputeStatus",
    "expected_score",
    "elo_delta",
    "update_ratings",
    "replay_comparisons",
    "assign_ranks",
    "SIMILARITY_BAND",
    "OpponentSelector",
    "PairSelection",
    "next_pair_for_user",
    "seen_entity_ids",
    "comparison_counts",
    "duplicates_allowed",
    "Tier",
    "TierInfo",
    "tier_for_rating",
]
