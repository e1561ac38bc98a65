from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..engine.selector import comparison_counts
from ..store.base import MarketStore


@dataclass
class VoteStats:
    total_comparisons: int
    unique_voters: int
    latest_comparison_at: Optional[datetime]
    ranked_startups: int
    top_compared: list[tuple[str, int]] = field(default_factory=list)


def get_vote_stats(store: MarketStore, top: int = 10) -> VoteStats:
    comparisons = store.list_comparisons()
    entities = store.list_entities()

    return VoteStats(
        total_comparisons=len(comparisons),
        unique_voters=len({c.user_id for c in comparisons}),
        latest_comparison_at=max((c.created_at for c in comparisons), default=None),
        ranked_startups=sum(1 for e in entities if e.rank is not None),
        top_compared=comparison_counts(comparisons).most_common(top),
    )
