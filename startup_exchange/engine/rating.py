"""
Elo-style rating engine for pairwise comparisons.

Two ways to move ratings:

- apply_comparison: the online update run on every vote. Order
  sensitive: the same votes in a different order give different ratings.
- recompute_all / recompute_subset: replay the whole comparison log a
  fixed number of passes, seeded from the currently stored ratings.
  Repeating the log nudges ratings toward an order-independent point but
  is a heuristic, not a solver. Convergence is neither checked nor
  reported, and the pass count is fixed per run rather than adaptive.

A recompute reads and writes inside one store transaction. On SQL a
vote that commits between the read and the write bumps the startup's
version, so the recompute fails with ConcurrentModification and writes
nothing; the next run replays that vote along with the rest.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from ..errors import ValidationError
from ..models.records import ComparisonRecord, INITIAL_RATING
from ..store.base import MarketStore

logger = logging.getLogger(__name__)

K_FACTOR = 32.0
DEFAULT_PASSES = 3


# =============================================================================
# Pure Elo math
# =============================================================================

def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that A beats B under the logistic Elo model."""
    return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / 400.0))


def elo_delta(rating_a: float, rating_b: float, a_won: bool) -> float:
    """Change to A's rating. B's change is exactly the negation."""
    actual_a = 1.0 if a_won else 0.0
    return K_FACTOR * (actual_a - expected_score(rating_a, rating_b))


def update_ratings(rating_a: float, rating_b: float, a_won: bool) -> tuple[float, float]:
    delta = elo_delta(rating_a, rating_b, a_won)
    return rating_a + delta, rating_b - delta


def replay_comparisons(
    comparisons: Iterable[ComparisonRecord],
    seed_ratings: dict[str, float],
    passes: int = DEFAULT_PASSES,
) -> tuple[dict[str, float], set[str]]:
    """
    Run the comparison log through the Elo update `passes` times.

    Returns the final ratings of every seeded entity plus the ids that
    comparisons referenced but that had no seed. Those unknown ids start
    each pass at INITIAL_RATING and never appear in the returned ratings.
    """
    if passes < 1:
        raise ValidationError(f"passes must be >= 1, got {passes}")

    comparisons = list(comparisons)
    ratings = dict(seed_ratings)
    unknown: set[str] = set()

    for pass_number in range(passes):
        transient: dict[str, float] = {}

        def current(entity_id: str) -> float:
            if entity_id in ratings:
                return ratings[entity_id]
            unknown.add(entity_id)
            return transient.get(entity_id, INITIAL_RATING)

        def put(entity_id: str, rating: float) -> None:
            if entity_id in ratings:
                ratings[entity_id] = rating
            else:
                transient[entity_id] = rating

        for comp in comparisons:
            new_a, new_b = update_ratings(
                current(comp.entity_a_id),
                current(comp.entity_b_id),
                comp.a_won,
            )
            put(comp.entity_a_id, new_a)
            put(comp.entity_b_id, new_b)

        logger.debug("Pass %d/%d over %d comparisons", pass_number + 1, passes, len(comparisons))

    return ratings, unknown


def assign_ranks(ratings: dict[str, float]) -> dict[str, int]:
    """Rank 1 is the highest rating. Equal ratings are ordered by id."""
    ordered = sorted(ratings.items(), key=lambda item: (-item[1], item[0]))
    return {entity_id: rank for rank, (entity_id, _) in enumerate(ordered, start=1)}


# =============================================================================
# Results
# =============================================================================

@dataclass
class ComparisonResult:
    comparison: ComparisonRecord
    old_rating_a: float
    old_rating_b: float
    new_rating_a: float
    new_rating_b: float
    delta_a: float

    @property
    def delta_b(self) -> float:
        return -self.delta_a


class RecomputeStatus(str, Enum):
    UPDATED = "updated"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass
class RecomputeResult:
    status: RecomputeStatus
    processed_comparisons: int
    passes: int
    ratings: dict[str, float] = field(default_factory=dict)
    ranks: dict[str, int] = field(default_factory=dict)
    unknown_entities: set[str] = field(default_factory=set)

    @property
    def nothing_to_do(self) -> bool:
        return self.status == RecomputeStatus.NOTHING_TO_DO


# =============================================================================
# Engine
# =============================================================================

class RatingEngine:
    def __init__(self, store: MarketStore, passes: int = DEFAULT_PASSES):
        if passes < 1:
            raise ValidationError(f"passes must be >= 1, got {passes}")
        self.store = store
        self.passes = passes

    def apply_comparison(
        self,
        user_id: str,
        entity_a_id: str,
        entity_b_id: str,
        chosen_id: str,
    ) -> ComparisonResult:
        """
        Record one vote and move both ratings by the same amount in
        opposite directions. Ranks are left alone.
        """
        if entity_a_id == entity_b_id:
            raise ValidationError("A startup cannot be compared with itself")
        if chosen_id not in (entity_a_id, entity_b_id):
            raise ValidationError("Chosen startup must be one of the pair")
        if self.store.get_user(user_id) is None:
            raise ValidationError(f"User not found: {user_id}", not_found=True)

        with self.store.transaction():
            # Lock both rows in id order so two votes on the same pair can't deadlock
            locked = {
                entity_id: self.store.get_entity(entity_id, for_update=True)
                for entity_id in sorted((entity_a_id, entity_b_id))
            }
            entity_a = locked[entity_a_id]
            entity_b = locked[entity_b_id]
            if entity_a is None or entity_b is None:
                missing = entity_a_id if entity_a is None else entity_b_id
                raise ValidationError(f"Startup not found: {missing}", not_found=True)

            a_won = chosen_id == entity_a_id
            delta = elo_delta(entity_a.rating, entity_b.rating, a_won)
            new_a = entity_a.rating + delta
            new_b = entity_b.rating - delta

            record = self.store.append_comparison(ComparisonRecord(
                user_id=user_id,
                entity_a_id=entity_a_id,
                entity_b_id=entity_b_id,
                chosen_id=chosen_id,
            ))
            self.store.update_entity_rating(entity_a_id, new_a)
            self.store.update_entity_rating(entity_b_id, new_b)

        logger.info(
            "Comparison %s: %s %.1f -> %.1f, %s %.1f -> %.1f",
            record.id, entity_a_id, entity_a.rating, new_a,
            entity_b_id, entity_b.rating, new_b,
        )
        return ComparisonResult(
            comparison=record,
            old_rating_a=entity_a.rating,
            old_rating_b=entity_b.rating,
            new_rating_a=new_a,
            new_rating_b=new_b,
            delta_a=delta,
        )

    def _load(self) -> tuple[dict[str, float], list[ComparisonRecord]]:
        seeds = {entity.id: entity.rating for entity in self.store.list_entities()}
        comparisons = self.store.list_comparisons()
        return seeds, comparisons

    def _replay(self, seeds, comparisons) -> tuple[dict[str, float], set[str]]:
        ratings, unknown = replay_comparisons(comparisons, seeds, self.passes)
        if unknown:
            logger.warning(
                "Recompute met %d unknown startup(s), treated as %.0f: %s",
                len(unknown), INITIAL_RATING, sorted(unknown),
            )
        return ratings, unknown

    def recompute_all(self) -> RecomputeResult:
        """
        Rebuild every rating from the full comparison log, then rank.

        With an empty log ratings stay as stored and ranks follow the
        stored ratings.
        """
        with self.store.transaction():
            seeds, comparisons = self._load()

            if not comparisons:
                ranks = assign_ranks(seeds)
                for entity_id, rank in ranks.items():
                    self.store.update_entity_rank(entity_id, rank)
                result = RecomputeResult(
                    status=RecomputeStatus.NOTHING_TO_DO,
                    processed_comparisons=0,
                    passes=0,
                    ratings=seeds,
                    ranks=ranks,
                )
            else:
                ratings, unknown = self._replay(seeds, comparisons)
                ranks = assign_ranks(ratings)
                for entity_id, rating in ratings.items():
                    self.store.update_entity_rating(entity_id, rating)
                for entity_id, rank in ranks.items():
                    self.store.update_entity_rank(entity_id, rank)
                result = RecomputeResult(
                    status=RecomputeStatus.UPDATED,
                    processed_comparisons=len(comparisons),
                    passes=self.passes,
                    ratings=ratings,
                    ranks=ranks,
                    unknown_entities=unknown,
                )

        if result.nothing_to_do:
            logger.info("No comparisons to process, ranked %d startups by stored rating", len(result.ranks))
        else:
            logger.info(
                "Recomputed %d ratings from %d comparisons (%d passes)",
                len(result.ratings), result.processed_comparisons, self.passes,
            )
        return result

    def recompute_subset(self, entity_ids: Iterable[str]) -> RecomputeResult:
        """
        Same replay as recompute_all, but only the requested startups'
        ratings are written. Every startup and every comparison still
        takes part, since a rating depends on its opponents' ratings.
        Ranks are not touched.
        """
        requested = list(dict.fromkeys(entity_ids))
        if not requested:
            raise ValidationError("At least one startup id is required")

        with self.store.transaction():
            seeds, comparisons = self._load()
            targets = [entity_id for entity_id in requested if entity_id in seeds]
            if not targets:
                raise ValidationError("No startups found with provided ids", not_found=True)

            if not comparisons:
                logger.info("No comparisons to process, ratings unchanged")
                return RecomputeResult(
                    status=RecomputeStatus.NOTHING_TO_DO,
                    processed_comparisons=0,
                    passes=0,
                    ratings={entity_id: seeds[entity_id] for entity_id in targets},
                )

            ratings, unknown = self._replay(seeds, comparisons)
            updated = {entity_id: ratings[entity_id] for entity_id in targets}
            for entity_id, rating in updated.items():
                self.store.update_entity_rating(entity_id, rating)

        logger.info("Recomputed %d/%d requested ratings", len(updated), len(requested))
        return RecomputeResult(
            status=RecomputeStatus.UPDATED,
            processed_comparisons=len(comparisons),
            passes=self.passes,
            ratings=updated,
            unknown_entities=unknown,
        )
