"""SQLAlchemy-backed MarketStore."""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModification, StoreUnavailable
from ..models.models import User, Startup, PairwiseComparison, Holding, Trade
from ..models.records import (
    Entity,
    UserAccount,
    ComparisonRecord,
    TradeRecord,
    LongPosition,
    ShortPosition,
    Position,
    position_from_row,
)
from .base import MarketStore

logger = logging.getLogger(__name__)


def _guarded(fn):
    """Surface driver and connection failures as StoreUnavailable."""
    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except StaleDataError as e:
            raise ConcurrentModification(f"Row changed concurrently: {e}") from e
        except SQLAlchemyError as e:
            logger.error("Store operation %s failed: %s", fn.__name__, e)
            raise StoreUnavailable(f"{fn.__name__} failed: {e}") from e
    return wrapper


def _entity(row: Startup) -> Entity:
    return Entity(
        id=row.id,
        name=row.name,
        rating=row.elo_rating,
        rank=row.global_rank,
        batch=row.batch,
    )


def _account(row: User) -> UserAccount:
    return UserAccount(
        id=row.id,
        display_name=row.display_name,
        balance=row.balance,
        free_gifts_count=row.free_gifts_count,
    )


def _comparison(row: PairwiseComparison) -> ComparisonRecord:
    return ComparisonRecord(
        id=str(row.id),
        user_id=row.user_id,
        entity_a_id=row.startup_a_id,
        entity_b_id=row.startup_b_id,
        chosen_id=row.chosen_startup_id,
        created_at=row.created_at,
    )


def _trade(row: Trade) -> TradeRecord:
    return TradeRecord(
        id=str(row.id),
        user_id=row.user_id,
        entity_id=row.startup_id,
        kind=row.kind,
        quantity=row.quantity,
        price=row.price,
        total_value=row.total_value,
        created_at=row.created_at,
    )


class SqlAlchemyStore(MarketStore):
    """
    Store over one SQLAlchemy session.

    Create one per request. transaction() commits on success and rolls the
    whole session back on any failure.
    """

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    @contextmanager
    def transaction(self):
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrentModification(f"Row changed concurrently: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Transaction rolled back: %s", e)
            raise StoreUnavailable(f"Transaction failed: {e}") from e
        except BaseException:
            self.db.rollback()
            raise
        finally:
            self._depth = 0

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def _startup_row(self, entity_id: str, for_update: bool = False) -> Optional[Startup]:
        query = self.db.query(Startup).filter(Startup.id == entity_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @_guarded
    def get_entity(self, entity_id: str, for_update: bool = False) -> Optional[Entity]:
        row = self._startup_row(entity_id, for_update=for_update)
        return _entity(row) if row else None

    @_guarded
    def list_entities(self, batch: Optional[str] = None) -> list[Entity]:
        query = self.db.query(Startup)
        if batch is not None:
            query = query.filter(Startup.batch == batch)
        return [_entity(row) for row in query.order_by(Startup.id).all()]

    @_guarded
    def update_entity_rating(self, entity_id: str, rating: float) -> None:
        row = self._startup_row(entity_id)
        if row is None:
            raise StoreUnavailable(f"Startup vanished during update: {entity_id}")
        row.elo_rating = rating

    @_guarded
    def update_entity_rank(self, entity_id: str, rank: int) -> None:
        row = self._startup_row(entity_id)
        if row is None:
            raise StoreUnavailable(f"Startup vanished during update: {entity_id}")
        row.global_rank = rank

    # -------------------------------------------------------------------------
    # Comparisons
    # -------------------------------------------------------------------------

    @_guarded
    def append_comparison(self, record: ComparisonRecord) -> ComparisonRecord:
        row = PairwiseComparison(
            user_id=record.user_id,
            startup_a_id=record.entity_a_id,
            startup_b_id=record.entity_b_id,
            chosen_startup_id=record.chosen_id,
            created_at=record.created_at,
        )
        self.db.add(row)
        self.db.flush()
        return _comparison(row)

    @_guarded
    def list_comparisons(self, user_id: Optional[str] = None) -> list[ComparisonRecord]:
        query = self.db.query(PairwiseComparison)
        if user_id is not None:
            query = query.filter(PairwiseComparison.user_id == user_id)
        rows = query.order_by(PairwiseComparison.created_at, PairwiseComparison.id).all()
        return [_comparison(row) for row in rows]

    # -------------------------------------------------------------------------
    # Users and wallets
    # -------------------------------------------------------------------------

    def _user_row(self, user_id: str, for_update: bool = False) -> Optional[User]:
        query = self.db.query(User).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @_guarded
    def get_user(self, user_id: str) -> Optional[UserAccount]:
        row = self._user_row(user_id)
        return _account(row) if row else None

    @_guarded
    def list_users(self) -> list[UserAccount]:
        return [_account(row) for row in self.db.query(User).order_by(User.id).all()]

    @_guarded
    def get_wallet(self, user_id: str, for_update: bool = False) -> Optional[float]:
        row = self._user_row(user_id, for_update=for_update)
        return row.balance if row else None

    @_guarded
    def update_wallet(self, user_id: str, balance: float) -> None:
        row = self._user_row(user_id)
        if row is None:
            raise StoreUnavailable(f"User vanished during update: {user_id}")
        row.balance = balance

    @_guarded
    def consume_gift(self, user_id: str) -> Optional[int]:
        # Conditional decrement: two overlapping rolls can't both spend the last gift
        updated = self.db.query(User).filter(
            User.id == user_id,
            User.free_gifts_count > 0,
        ).update(
            {User.free_gifts_count: User.free_gifts_count - 1},
            synchronize_session="fetch",
        )
        if not updated:
            return None
        return self.db.query(User.free_gifts_count).filter(User.id == user_id).scalar()

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def _holding_row(
        self, user_id: str, entity_id: str, for_update: bool = False
    ) -> Optional[Holding]:
        query = self.db.query(Holding).filter(
            Holding.user_id == user_id,
            Holding.startup_id == entity_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @_guarded
    def get_position(
        self, user_id: str, entity_id: str, for_update: bool = False
    ) -> Position:
        row = self._holding_row(user_id, entity_id, for_update=for_update)
        if row is None:
            return None
        return position_from_row(row.quantity, row.average_cost)

    @_guarded
    def list_positions(self, user_id: str) -> dict[str, Position]:
        rows = self.db.query(Holding).filter(Holding.user_id == user_id).all()
        return {
            row.startup_id: position_from_row(row.quantity, row.average_cost)
            for row in rows
        }

    @_guarded
    def upsert_position(
        self,
        user_id: str,
        entity_id: str,
        position: LongPosition | ShortPosition,
    ) -> None:
        row = self._holding_row(user_id, entity_id)
        if row is None:
            row = Holding(user_id=user_id, startup_id=entity_id)
            self.db.add(row)
        row.quantity = position.quantity
        row.average_cost = position.average_cost
        self.db.flush()

    @_guarded
    def delete_position(self, user_id: str, entity_id: str) -> None:
        row = self._holding_row(user_id, entity_id)
        if row is not None:
            self.db.delete(row)
            self.db.flush()

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    @_guarded
    def append_trade(self, record: TradeRecord) -> TradeRecord:
        row = Trade(
            user_id=record.user_id,
            startup_id=record.entity_id,
            kind=record.kind,
            quantity=record.quantity,
            price=record.price,
            total_value=record.total_value,
            created_at=record.created_at,
        )
        self.db.add(row)
        self.db.flush()
        return _trade(row)

    @_guarded
    def list_trades(self, user_id: str, limit: int = 50) -> list[TradeRecord]:
        rows = self.db.query(Trade).filter(
            Trade.user_id == user_id
        ).order_by(Trade.created_at.desc(), Trade.id.desc()).limit(limit).all()
        return [_trade(row) for row in rows]
