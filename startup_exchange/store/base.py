"""
The narrow read/write interface the engine runs against.

Engine code never imports a database module. It receives a MarketStore
and does every write of one logical operation inside
``store.transaction()``, so a failure part-way through leaves nothing
behind.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional

from ..models.records import (
    Entity,
    UserAccount,
    ComparisonRecord,
    TradeRecord,
    LongPosition,
    ShortPosition,
    Position,
)


class MarketStore(ABC):

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Group writes into one atomic unit.

        Commits when the block exits normally, rolls back every write made
        inside it when the block raises. Nested calls join the outer unit.
        """

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_entity(self, entity_id: str, for_update: bool = False) -> Optional[Entity]:
        """One startup, or None. for_update locks its row like get_position."""

    @abstractmethod
    def list_entities(self, batch: Optional[str] = None) -> list[Entity]: ...

    @abstractmethod
    def update_entity_rating(self, entity_id: str, rating: float) -> None: ...

    @abstractmethod
    def update_entity_rank(self, entity_id: str, rank: int) -> None: ...

    # -------------------------------------------------------------------------
    # Comparisons
    # -------------------------------------------------------------------------

    @abstractmethod
    def append_comparison(self, record: ComparisonRecord) -> ComparisonRecord: ...

    @abstractmethod
    def list_comparisons(self, user_id: Optional[str] = None) -> list[ComparisonRecord]:
        """Comparisons in insertion order, optionally only one user's."""

    # -------------------------------------------------------------------------
    # Users and wallets
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserAccount]: ...

    @abstractmethod
    def list_users(self) -> list[UserAccount]: ...

    @abstractmethod
    def get_wallet(self, user_id: str, for_update: bool = False) -> Optional[float]:
        """Cash balance, or None for an unknown user."""

    @abstractmethod
    def update_wallet(self, user_id: str, balance: float) -> None: ...

    @abstractmethod
    def consume_gift(self, user_id: str) -> Optional[int]:
        """
        Atomically spend one free gift.

        Returns the remaining count, or None when the user had none left.
        """

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_position(
        self, user_id: str, entity_id: str, for_update: bool = False
    ) -> Position:
        """
        The user's holding in one entity, or None.

        for_update locks the row until the surrounding transaction ends so
        concurrent requests from the same user queue behind each other.
        """

    @abstractmethod
    def list_positions(self, user_id: str) -> dict[str, Position]: ...

    @abstractmethod
    def upsert_position(
        self,
        user_id: str,
        entity_id: str,
        position: LongPosition | ShortPosition,
    ) -> None: ...

    @abstractmethod
    def delete_position(self, user_id: str, entity_id: str) -> None: ...

    # -------------------------------------------------------------------------
    # Trades
    # -------------------------------------------------------------------------

    @abstractmethod
    def append_trade(self, record: TradeRecord) -> TradeRecord: ...

    @abstractmethod
    def list_trades(self, user_id: str, limit: int = 50) -> list[TradeRecord]:
        """A user's trades, newest first."""
