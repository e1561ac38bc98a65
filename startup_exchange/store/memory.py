"""In-memory MarketStore for tests and local experiments."""

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Optional
from uuid import uuid4

from ..models.records import (
    Entity,
    UserAccount,
    ComparisonRecord,
    TradeRecord,
    LongPosition,
    ShortPosition,
    Position,
)
from .base import MarketStore


class InMemoryStore(MarketStore):
    """
    Dict-backed store.

    A transaction holds a re-entrant lock for its whole duration, which
    serializes every (user, startup) mutation, and snapshots state on
    entry so a failing block is rolled back completely.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._entities: dict[str, Entity] = {}
        self._users: dict[str, UserAccount] = {}
        self._comparisons: list[ComparisonRecord] = []
        self._positions: dict[tuple[str, str], Position] = {}
        self._trades: list[TradeRecord] = []

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def add_entity(self, entity: Entity) -> Entity:
        with self._lock:
            self._entities[entity.id] = replace(entity)
        return entity

    def add_user(self, user: UserAccount) -> UserAccount:
        with self._lock:
            self._users[user.id] = replace(user)
        return user

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _snapshot(self) -> tuple:
        return copy.deepcopy((
            self._entities,
            self._users,
            self._comparisons,
            self._positions,
            self._trades,
        ))

    def _restore(self, snapshot: tuple) -> None:
        (
            self._entities,
            self._users,
            self._comparisons,
            self._positions,
            self._trades,
        ) = snapshot

    @contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def get_entity(self, entity_id: str, for_update: bool = False) -> Optional[Entity]:
        with self._lock:
            entity = self._entities.get(entity_id)
            return replace(entity) if entity else None

    def list_entities(self, batch: Optional[str] = None) -> list[Entity]:
        with self._lock:
            return [
                replace(e) for e in self._entities.values()
                if batch is None or e.batch == batch
            ]

    def update_entity_rating(self, entity_id: str, rating: float) -> None:
        with self._lock:
            self._entities[entity_id].rating = rating

    def update_entity_rank(self, entity_id: str, rank: int) -> None:
        with self._lock:
            self._entities[entity_id].rank = rank

    # -------------------------------------------------------------------------
    # Comparisons
    # -------------------------------------------------------------------------

    def append_comparison(self, record: ComparisonRecord) -> ComparisonRecord:
        stored = replace(record, id=record.id or str(uuid4()))
        with self._lock:
            self._comparisons.append(stored)
        return stored

    def list_comparisons(self, user_id: Optional[str] = None) -> list[ComparisonRecord]:
        with self._lock:
            return [
                c for c in self._comparisons
                if user_id is None or c.user_id == user_id
            ]

    # -------------------------------------------------------------------------
    # Users and wallets
    # -------------------------------------------------------------------------

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def list_users(self) -> list[UserAccount]:
        with self._lock:
            return [replace(u) for u in self._users.values()]

    def get_wallet(self, user_id: str, for_update: bool = False) -> Optional[float]:
        with self._lock:
            user = self._users.get(user_id)
            return user.balance if user else None

    def update_wallet(self, user_id: str, balance: float) -> None:
        with self._lock:
            self._users[user_id].balance = balance

    def consume_gift(self, user_id: str) -> Optional[int]:
        with self._lock:
            user = self._users[user_id]
            if user.free_gifts_count <= 0:
                return None
            user.free_gifts_count -= 1
            return user.free_gifts_count

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def get_position(
        self, user_id: str, entity_id: str, for_update: bool = False
    ) -> Position:
        with self._lock:
            return self._positions.get((user_id, entity_id))

    def list_positions(self, user_id: str) -> dict[str, Position]:
        with self._lock:
            return {
                entity_id: position
                for (owner, entity_id), position in self._positions.items()
                if owner == user_id
            }

    def upsert_position(
        self,
        user_id: str,
        entity_id: str,
        position: LongPosition | ShortPosition,
    ) -> None:
        with self._lock:
            self._positions[(user_id, entity_id)] = position

    def delete_position(self, user_id: str, entity_id: str) -> None:
        with self._lock:
            self._positions.pop((user_id, entity_id), None)

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    def append_trade(self, record: TradeRecord) -> TradeRecord:
        stored = replace(record, id=record.id or str(uuid4()))
        with self._lock:
            self._trades.append(stored)
        return stored

    def list_trades(self, user_id: str, limit: int = 50) -> list[TradeRecord]:
        with self._lock:
            mine = [t for t in self._trades if t.user_id == user_id]
        return list(reversed(mine))[:limit]
