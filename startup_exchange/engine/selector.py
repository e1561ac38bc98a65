"""
Picks the next pair of startups to show a user.

Policy:
1. Prefer startups the user hasn't voted on yet, unless fewer than one
   unseen pair is left, in which case repeats are allowed.
2. Work on a bounded random pool rather than the whole population.
3. Pick a random base startup, then a random opponent within
   SIMILARITY_BAND of its rating. With no such opponent, any other
   startup in the pool will do.
4. Randomly swap the pair so the base isn't always shown first.

The selector never blocks the user: if filtering out seen startups
leaves fewer than two, it falls back to the unfiltered pool.
"""

import logging
import random
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..errors import NoPairAvailable
from ..models.records import ComparisonRecord, Entity
from ..store.base import MarketStore

logger = logging.getLogger(__name__)

SIMILARITY_BAND = 200.0
DEFAULT_POOL_SIZE = 100


def seen_entity_ids(comparisons: Iterable[ComparisonRecord]) -> set[str]:
    """Every startup that appeared on either side of the given votes."""
    seen: set[str] = set()
    for comp in comparisons:
        seen.add(comp.entity_a_id)
        seen.add(comp.entity_b_id)
    return seen


def comparison_counts(comparisons: Iterable[ComparisonRecord]) -> Counter:
    """How many votes each startup has appeared in, on either side."""
    counts: Counter = Counter()
    for comp in comparisons:
        counts[comp.entity_a_id] += 1
        counts[comp.entity_b_id] += 1
    return counts


def duplicates_allowed(population_size: int, seen_count: int) -> bool:
    unseen = population_size - seen_count
    possible_unique_pairs = unseen * (unseen - 1) / 2
    return possible_unique_pairs < 1


class OpponentSelector:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        band: float = SIMILARITY_BAND,
    ):
        if pool_size < 2:
            raise ValueError(f"pool_size must be at least 2, got {pool_size}")
        self.rng = rng or random.Random()
        self.pool_size = pool_size
        self.band = band

    def _draw_pool(self, population: Sequence[Entity]) -> list[Entity]:
        if len(population) <= self.pool_size:
            return list(population)
        return self.rng.sample(list(population), self.pool_size)

    def select_next_pair(
        self,
        population: Sequence[Entity],
        seen_ids: set[str],
    ) -> tuple[Entity, Entity]:
        if len(population) < 2:
            raise NoPairAvailable(len(population))

        # Seen ids outside this population (other batches) don't count
        population_ids = {entity.id for entity in population}
        seen_here = seen_ids & population_ids
        allow_duplicates = duplicates_allowed(len(population_ids), len(seen_here))

        pool = self._draw_pool(population)
        candidates = pool
        if not allow_duplicates and seen_here:
            candidates = [e for e in pool if e.id not in seen_here]
            if len(candidates) < 2:
                candidates = pool

        base = self.rng.choice(candidates)
        others = [e for e in candidates if e.id != base.id]
        similar = [e for e in others if abs(e.rating - base.rating) <= self.band]

        if similar:
            opponent = self.rng.choice(similar)
        else:
            opponent = self.rng.choice(others)

        if self.rng.random() < 0.5:
            return opponent, base
        return base, opponent


@dataclass
class PairSelection:
    left: Entity
    right: Entity
    left_comparisons: int
    right_comparisons: int


def next_pair_for_user(
    store: MarketStore,
    user_id: str,
    selector: OpponentSelector,
    batch: Optional[str] = None,
) -> PairSelection:
    """Select a pair for the user and attach each side's vote count."""
    population = store.list_entities(batch=batch)
    seen = seen_entity_ids(store.list_comparisons(user_id=user_id))
    left, right = selector.select_next_pair(population, seen)

    counts = comparison_counts(store.list_comparisons())

    logger.debug("Next pair for %s: %s vs %s", user_id, left.id, right.id)
    return PairSelection(left, right, counts[left.id], counts[right.id])
