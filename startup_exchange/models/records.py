"""
Plain rows the engine exchanges with a MarketStore.

The engine never touches ORM objects directly; stores translate their
own storage into these dataclasses. Positions are a tagged variant:
a holding is a LongPosition, a ShortPosition, or absent (None).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from .models import TradeKind


INITIAL_RATING = 1500.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Entity:
    id: str
    name: str = ""
    rating: float = INITIAL_RATING
    rank: Optional[int] = None
    batch: Optional[str] = None


@dataclass
class UserAccount:
    id: str
    display_name: Optional[str] = None
    balance: float = 0.0
    free_gifts_count: int = 0


@dataclass(frozen=True)
class ComparisonRecord:
    user_id: str
    entity_a_id: str
    entity_b_id: str
    chosen_id: str
    id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def a_won(self) -> bool:
        return self.chosen_id == self.entity_a_id


@dataclass(frozen=True)
class TradeRecord:
    user_id: str
    entity_id: str
    kind: TradeKind
    quantity: int
    price: float
    total_value: float
    id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)


# =============================================================================
# Positions
# =============================================================================

@dataclass(frozen=True)
class LongPosition:
    quantity: int
    average_cost: float

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError(f"Long quantity must be positive, got {self.quantity}")
        if self.average_cost < 0:
            raise ValueError(f"Average cost must be >= 0, got {self.average_cost}")

    @property
    def size(self) -> int:
        return self.quantity


@dataclass(frozen=True)
class ShortPosition:
    """quantity is negative; size is its magnitude."""
    quantity: int
    average_cost: float

    def __post_init__(self):
        if self.quantity >= 0:
            raise ValueError(f"Short quantity must be negative, got {self.quantity}")
        if self.average_cost < 0:
            raise ValueError(f"Average cost must be >= 0, got {self.average_cost}")

    @property
    def size(self) -> int:
        return -self.quantity


Position = Optional[Union[LongPosition, ShortPosition]]


def position_from_row(quantity: int, average_cost: float) -> Position:
    """Build the tagged variant from a signed stored quantity."""
    if quantity > 0:
        return LongPosition(quantity, average_cost)
    if quantity < 0:
        return ShortPosition(quantity, average_cost)
    return None
