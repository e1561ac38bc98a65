"""Tests for the Elo rating engine: online updates and batch recompute."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given
from hypothesis import strategies as st

from startup_exchange.engine.rating import (
    K_FACTOR,
    RatingEngine,
    RecomputeStatus,
    assign_ranks,
    elo_delta,
    expected_score,
    replay_comparisons,
    update_ratings,
)
from startup_exchange.errors import StoreUnavailable, ValidationError
from startup_exchange.models import ComparisonRecord, Entity, UserAccount
from startup_exchange.store import InMemoryStore


def vote(a, b, chosen, user="alice"):
    return ComparisonRecord(user_id=user, entity_a_id=a, entity_b_id=b, chosen_id=chosen)


def seeded_store():
    store = InMemoryStore()
    for entity_id, rating in (("acme", 1500.0), ("bolt", 1500.0), ("cedar", 1600.0), ("delta", 1400.0)):
        store.add_entity(Entity(id=entity_id, rating=rating))
    store.add_user(UserAccount(id="alice", balance=10000.0))
    return store


class TestEloMath:
    """Pure rating functions."""

    def test_equal_ratings_expect_half(self):
        assert expected_score(1500.0, 1500.0) == 0.5

    def test_equal_ratings_move_by_half_k(self):
        """Equal ratings move exactly K/2 in either direction."""
        assert elo_delta(1500.0, 1500.0, True) == 16.0
        assert elo_delta(1500.0, 1500.0, False) == -16.0
        assert K_FACTOR / 2 == 16.0

    @given(
        ra=st.floats(min_value=0, max_value=4000, allow_nan=False),
        rb=st.floats(min_value=0, max_value=4000, allow_nan=False),
        a_won=st.booleans(),
    )
    def test_update_is_zero_sum(self, ra: float, rb: float, a_won: bool):
        """Whatever the ratings, one side gains exactly what the other loses."""
        new_a, new_b = update_ratings(ra, rb, a_won)
        assert abs((new_a - ra) + (new_b - rb)) < 1e-9

    @given(
        ra=st.floats(min_value=0, max_value=4000, allow_nan=False),
        rb=st.floats(min_value=0, max_value=4000, allow_nan=False),
    )
    def test_winner_never_loses_rating(self, ra: float, rb: float):
        assert 0.0 <= elo_delta(ra, rb, True) <= K_FACTOR
        assert -K_FACTOR <= elo_delta(ra, rb, False) <= 0.0

    def test_upset_moves_more_than_expected_win(self):
        """Beating a much stronger opponent pays more than beating a weaker one."""
        upset = elo_delta(1200.0, 1800.0, True)
        expected_win = elo_delta(1800.0, 1200.0, True)
        assert upset > expected_win > 0


class TestReplay:
    """replay_comparisons and rank assignment."""

    def test_single_pass_matches_online_updates(self):
        seeds = {"a": 1500.0, "b": 1500.0, "c": 1500.0}
        log = [vote("a", "b", "a"), vote("b", "c", "c"), vote("a", "c", "a")]

        ratings, unknown = replay_comparisons(log, seeds, passes=1)

        expected = dict(seeds)
        for comp in log:
            expected[comp.entity_a_id], expected[comp.entity_b_id] = update_ratings(
                expected[comp.entity_a_id], expected[comp.entity_b_id], comp.a_won
            )
        assert ratings == expected
        assert unknown == set()

    def test_replay_preserves_total_rating(self):
        seeds = {"a": 1500.0, "b": 1600.0, "c": 1400.0}
        log = [vote("a", "b", "a"), vote("b", "c", "b"), vote("c", "a", "c")] * 4

        ratings, _ = replay_comparisons(log, seeds, passes=3)

        assert abs(sum(ratings.values()) - sum(seeds.values())) < 1e-6

    @given(
        votes=st.lists(
            st.tuples(st.sampled_from(["a", "b", "c", "d"]), st.sampled_from(["a", "b", "c", "d"]), st.booleans())
            .filter(lambda v: v[0] != v[1]),
            max_size=30,
        ),
        passes=st.integers(min_value=1, max_value=4),
    )
    def test_any_log_preserves_total_rating(self, votes, passes):
        seeds = {"a": 1500.0, "b": 1650.0, "c": 1320.0, "d": 1500.0}
        log = [vote(a, b, a if a_won else b) for a, b, a_won in votes]

        ratings, unknown = replay_comparisons(log, seeds, passes=passes)

        assert unknown == set()
        assert abs(sum(ratings.values()) - sum(seeds.values())) < 1e-6

    def test_replay_does_not_mutate_seeds(self):
        seeds = {"a": 1500.0, "b": 1500.0}
        replay_comparisons([vote("a", "b", "a")], seeds, passes=3)
        assert seeds == {"a": 1500.0, "b": 1500.0}

    def test_unknown_entities_reset_every_pass(self):
        """An unseeded id starts each pass at 1500 and never shows up in the output."""
        seeds = {"a": 1500.0}
        ratings, unknown = replay_comparisons([vote("a", "ghost", "a")], seeds, passes=2)

        assert unknown == {"ghost"}
        assert set(ratings) == {"a"}
        # ghost is back at 1500 on pass two, a is at 1516
        first = 1500.0 + elo_delta(1500.0, 1500.0, True)
        second = first + elo_delta(first, 1500.0, True)
        assert ratings["a"] == second

    def test_zero_passes_rejected(self):
        with pytest.raises(ValidationError):
            replay_comparisons([], {}, passes=0)

    def test_assign_ranks_orders_by_rating_then_id(self):
        ranks = assign_ranks({"b": 1500.0, "a": 1500.0, "c": 1700.0, "d": 1200.0})
        assert ranks == {"c": 1, "a": 2, "b": 3, "d": 4}


class TestApplyComparison:
    """Online updates through the store."""

    def test_records_vote_and_moves_ratings(self, store):
        engine = RatingEngine(store)

        result = engine.apply_comparison("alice", "acme", "bolt", "acme")

        assert result.delta_a == 16.0
        assert result.delta_b == -16.0
        assert store.get_entity("acme").rating == 1516.0
        assert store.get_entity("bolt").rating == 1484.0
        assert len(store.list_comparisons()) == 1
        assert store.list_comparisons()[0].chosen_id == "acme"

    def test_ranks_untouched(self, store):
        RatingEngine(store).apply_comparison("alice", "acme", "bolt", "bolt")
        assert store.get_entity("acme").rank is None
        assert store.get_entity("bolt").rank is None

    def test_self_comparison_rejected(self, store):
        with pytest.raises(ValidationError):
            RatingEngine(store).apply_comparison("alice", "acme", "acme", "acme")
        assert store.list_comparisons() == []

    def test_chosen_outside_pair_rejected(self, store):
        with pytest.raises(ValidationError):
            RatingEngine(store).apply_comparison("alice", "acme", "bolt", "cedar")
        assert store.get_entity("acme").rating == 1500.0

    def test_unknown_startup_rejected(self, store):
        with pytest.raises(ValidationError) as exc_info:
            RatingEngine(store).apply_comparison("alice", "acme", "nope", "acme")
        assert exc_info.value.not_found
        assert store.list_comparisons() == []
        assert store.get_entity("acme").rating == 1500.0

    def test_unknown_user_rejected(self, store):
        with pytest.raises(ValidationError) as exc_info:
            RatingEngine(store).apply_comparison("mallory", "acme", "bolt", "acme")
        assert exc_info.value.not_found

    def test_concurrent_votes_keep_total_rating(self, memory_store):
        """Votes racing on shared startups never lose an update."""
        pairs = [("acme", "bolt"), ("bolt", "cedar"), ("cedar", "acme"), ("acme", "delta")] * 10
        engine = RatingEngine(memory_store)
        before = sum(e.rating for e in memory_store.list_entities())

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda pair: engine.apply_comparison("alice", pair[0], pair[1], pair[0]), pairs))

        after = sum(e.rating for e in memory_store.list_entities())
        assert abs(after - before) < 1e-6
        assert len(memory_store.list_comparisons()) == 40

    def test_failed_rating_write_rolls_back_vote(self, memory_store):
        """If the second rating write fails, the vote and first write are undone."""

        class FlakyStore(InMemoryStore):
            writes = 0

            def update_entity_rating(self, entity_id, rating):
                self.writes += 1
                if self.writes == 2:
                    raise StoreUnavailable("disk full")
                super().update_entity_rating(entity_id, rating)

        store = FlakyStore()
        for entity in memory_store.list_entities():
            store.add_entity(entity)
        for user in memory_store.list_users():
            store.add_user(user)

        with pytest.raises(StoreUnavailable):
            RatingEngine(store).apply_comparison("alice", "acme", "bolt", "acme")

        assert store.list_comparisons() == []
        assert store.get_entity("acme").rating == 1500.0
        assert store.get_entity("bolt").rating == 1500.0


class TestRecompute:
    """Batch replay over the full comparison log."""

    def test_empty_log_keeps_ratings_and_ranks_by_rating(self, store):
        result = RatingEngine(store).recompute_all()

        assert result.status == RecomputeStatus.NOTHING_TO_DO
        assert result.nothing_to_do
        assert result.processed_comparisons == 0
        ratings = {e.id: e.rating for e in store.list_entities()}
        assert ratings == {"acme": 1500.0, "bolt": 1500.0, "cedar": 1600.0, "delta": 1400.0}
        ranks = {e.id: e.rank for e in store.list_entities()}
        assert ranks == {"cedar": 1, "acme": 2, "bolt": 3, "delta": 4}

    def test_recompute_replays_from_stored_ratings(self, store):
        engine = RatingEngine(store, passes=3)
        engine.apply_comparison("alice", "acme", "bolt", "acme")
        engine.apply_comparison("alice", "cedar", "delta", "delta")

        seeds = {e.id: e.rating for e in store.list_entities()}
        expected, _ = replay_comparisons(store.list_comparisons(), seeds, passes=3)

        result = engine.recompute_all()

        assert result.status == RecomputeStatus.UPDATED
        assert result.processed_comparisons == 2
        assert result.passes == 3
        for entity in store.list_entities():
            assert abs(entity.rating - expected[entity.id]) < 1e-9
        assert sorted(e.rank for e in store.list_entities()) == [1, 2, 3, 4]
        assert result.ranks == assign_ranks(expected)

    def test_recompute_subset_writes_only_targets(self, store):
        engine = RatingEngine(store)
        engine.apply_comparison("alice", "acme", "bolt", "acme")
        engine.apply_comparison("alice", "acme", "cedar", "acme")
        before = {e.id: e.rating for e in store.list_entities()}

        result = engine.recompute_subset(["acme"])

        assert set(result.ratings) == {"acme"}
        after = {e.id: e.rating for e in store.list_entities()}
        assert after["acme"] == result.ratings["acme"]
        assert after["acme"] != before["acme"]
        assert after["bolt"] == before["bolt"]
        assert after["cedar"] == before["cedar"]
        assert all(e.rank is None for e in store.list_entities())

    def test_recompute_subset_matches_recompute_all(self, store):
        """A target's new rating doesn't depend on which other ids were requested."""
        reference = seeded_store()
        for target in (store, reference):
            engine = RatingEngine(target)
            engine.apply_comparison("alice", "acme", "bolt", "acme")
            engine.apply_comparison("alice", "cedar", "delta", "delta")
            engine.apply_comparison("alice", "acme", "cedar", "cedar")
            engine.apply_comparison("alice", "bolt", "delta", "bolt")

        subset = RatingEngine(store).recompute_subset(["acme", "delta"])
        full = RatingEngine(reference).recompute_all()

        assert subset.ratings == {"acme": full.ratings["acme"], "delta": full.ratings["delta"]}
        assert store.get_entity("acme").rating == reference.get_entity("acme").rating
        assert store.get_entity("delta").rating == reference.get_entity("delta").rating

    def test_recompute_subset_empty_log(self, store):
        result = RatingEngine(store).recompute_subset(["acme", "bolt"])
        assert result.nothing_to_do
        assert result.ratings == {"acme": 1500.0, "bolt": 1500.0}

    def test_recompute_subset_requires_ids(self, store):
        with pytest.raises(ValidationError):
            RatingEngine(store).recompute_subset([])

    def test_recompute_subset_unknown_ids(self, store):
        with pytest.raises(ValidationError) as exc_info:
            RatingEngine(store).recompute_subset(["nope"])
        assert exc_info.value.not_found

    def test_passes_must_be_positive(self, memory_store):
        with pytest.raises(ValidationError):
            RatingEngine(memory_store, passes=0)

    def test_votes_for_removed_startups_are_tolerated(self):
        store = InMemoryStore()
        store.add_entity(Entity(id="a", rating=1500.0))
        store.append_comparison(vote("a", "gone", "a"))

        result = RatingEngine(store).recompute_all()

        assert result.unknown_entities == {"gone"}
        assert set(result.ratings) == {"a"}
        assert store.get_entity("a").rank == 1
