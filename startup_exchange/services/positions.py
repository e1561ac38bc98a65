"""
Position ledger: turns trade requests into holdings, wallet moves and P&L.

A holding is LongPosition, ShortPosition or None. The transition
functions below are pure; execute_trade wraps one of them with the
reads, validation and writes of a single store transaction.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from ..engine.price import price_for_rating
from ..errors import (
    ConflictingDirection,
    InsufficientFunds,
    InsufficientPosition,
    ValidationError,
)
from ..models.models import TradeKind
from ..models.records import LongPosition, ShortPosition, Position, TradeRecord
from ..store.base import MarketStore
from .transactions import record_trade

logger = logging.getLogger(__name__)


@dataclass
class PositionUpdate:
    position: Position
    cash_delta: float
    trade_value: float
    realized_pnl: float


@dataclass
class TradeExecution:
    trade: TradeRecord
    position: Position
    balance: float
    realized_pnl: float


# =============================================================================
# Transitions
# =============================================================================

def update_position_for_buy(position: Position, quantity: int, price: float) -> PositionUpdate:
    if isinstance(position, ShortPosition):
        raise ConflictingDirection("Close your short position first before going long")

    cost = quantity * price
    if isinstance(position, LongPosition):
        new_quantity = position.quantity + quantity
        average_cost = (position.quantity * position.average_cost + cost) / new_quantity
    else:
        new_quantity = quantity
        average_cost = price

    return PositionUpdate(
        position=LongPosition(new_quantity, average_cost),
        cash_delta=-cost,
        trade_value=cost,
        realized_pnl=0.0,
    )


def update_position_for_sell(position: Position, quantity: int, price: float) -> PositionUpdate:
    """Sell part or all of a long. Average cost is unchanged."""
    held = position.quantity if isinstance(position, LongPosition) else 0
    if held < quantity:
        raise InsufficientPosition(held, quantity, "long")

    proceeds = quantity * price
    remaining = held - quantity
    return PositionUpdate(
        position=LongPosition(remaining, position.average_cost) if remaining else None,
        cash_delta=proceeds,
        trade_value=proceeds,
        realized_pnl=(price - position.average_cost) * quantity,
    )


def update_position_for_short(position: Position, quantity: int, price: float) -> PositionUpdate:
    """
    Open or add to a short. The entry price is paid up front, like a buy,
    and average cost is weighted over absolute quantities.
    """
    if isinstance(position, LongPosition):
        raise ConflictingDirection("Close your long position first before going short")

    cost = quantity * price
    if isinstance(position, ShortPosition):
        new_size = position.size + quantity
        average_cost = (position.size * position.average_cost + cost) / new_size
    else:
        new_size = quantity
        average_cost = price

    return PositionUpdate(
        position=ShortPosition(-new_size, average_cost),
        cash_delta=-cost,
        trade_value=cost,
        realized_pnl=0.0,
    )


def update_position_for_cover(position: Position, quantity: int, price: float) -> PositionUpdate:
    """
    Close part or all of a short. The user gets back what they paid to
    open those shares plus the profit (or minus the loss).
    """
    held = position.size if isinstance(position, ShortPosition) else 0
    if held < quantity:
        raise InsufficientPosition(held, quantity, "short")

    pnl = (position.average_cost - price) * quantity
    received = position.average_cost * quantity + pnl
    remaining = held - quantity
    return PositionUpdate(
        position=ShortPosition(-remaining, position.average_cost) if remaining else None,
        cash_delta=received,
        trade_value=received,
        realized_pnl=pnl,
    )


TRANSITIONS: dict[TradeKind, Callable[[Position, int, float], PositionUpdate]] = {
    TradeKind.BUY: update_position_for_buy,
    TradeKind.SELL: update_position_for_sell,
    TradeKind.OPEN_SHORT: update_position_for_short,
    TradeKind.COVER: update_position_for_cover,
}


def calculate_unrealized_pnl(position: Position, current_price: float) -> float:
    if isinstance(position, LongPosition):
        return (current_price - position.average_cost) * position.quantity
    if isinstance(position, ShortPosition):
        return (position.average_cost - current_price) * position.size
    return 0.0


# =============================================================================
# Execution
# =============================================================================

def validate_quantity(quantity) -> int:
    # bool is an int subclass; True shares make no sense
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be a whole number, got {quantity!r}")
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity}")
    return quantity


def write_position(store: MarketStore, user_id: str, entity_id: str, position: Position) -> None:
    """Persist a holding; a closed position is deleted, never stored as zero."""
    if position is None:
        store.delete_position(user_id, entity_id)
    else:
        store.upsert_position(user_id, entity_id, position)


def execute_trade(
    store: MarketStore,
    user_id: str,
    entity_id: str,
    kind: TradeKind | str,
    quantity: int,
) -> TradeExecution:
    """
    Validate and execute one trade at the startup's current price.

    All three writes (trade record, holding, wallet) happen in one store
    transaction, after every check has passed. The holding and wallet
    rows are locked for the duration so a double-submitted request runs
    after the first one, not alongside it.
    """
    quantity = validate_quantity(quantity)
    try:
        kind = TradeKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown trade kind: {kind!r}") from None
    if kind not in TRANSITIONS:
        raise ValidationError(f"{kind.value} is not a tradable request")

    try:
        with store.transaction():
            balance = store.get_wallet(user_id, for_update=True)
            if balance is None:
                raise ValidationError(f"User not found: {user_id}", not_found=True)

            entity = store.get_entity(entity_id)
            if entity is None:
                raise ValidationError(f"Startup not found: {entity_id}", not_found=True)

            price = price_for_rating(entity.rating)
            position = store.get_position(user_id, entity_id, for_update=True)
            update = TRANSITIONS[kind](position, quantity, price)

            if update.cash_delta < 0 and balance < -update.cash_delta:
                raise InsufficientFunds(balance, -update.cash_delta)

            trade = record_trade(
                store,
                user_id=user_id,
                entity_id=entity_id,
                kind=kind,
                quantity=quantity,
                price=price,
                total_value=update.trade_value,
            )
            write_position(store, user_id, entity_id, update.position)
            new_balance = balance + update.cash_delta
            store.update_wallet(user_id, new_balance)
    except (ConflictingDirection, InsufficientFunds, InsufficientPosition) as e:
        logger.warning("Rejected %s of %d %s for %s: %s", kind.value, quantity, entity_id, user_id, e)
        raise

    logger.info(
        "%s %d %s @ $%.2f for %s (pnl %.2f, balance %.2f)",
        kind.value, quantity, entity_id, price, user_id, update.realized_pnl, new_balance,
    )
    return TradeExecution(
        trade=trade,
        position=update.position,
        balance=new_balance,
        realized_pnl=update.realized_pnl,
    )


def buy(store: MarketStore, user_id: str, entity_id: str, quantity: int) -> TradeExecution:
    return execute_trade(store, user_id, entity_id, TradeKind.BUY, quantity)


def sell(store: MarketStore, user_id: str, entity_id: str, quantity: int) -> TradeExecution:
    return execute_trade(store, user_id, entity_id, TradeKind.SELL, quantity)


def open_short(store: MarketStore, user_id: str, entity_id: str, quantity: int) -> TradeExecution:
    return execute_trade(store, user_id, entity_id, TradeKind.OPEN_SHORT, quantity)


def cover(store: MarketStore, user_id: str, entity_id: str, quantity: int) -> TradeExecution:
    return execute_trade(store, user_id, entity_id, TradeKind.COVER, quantity)
