from dataclasses import dataclass
from typing import Optional

from ..engine.price import price_for_rating
from ..errors import ValidationError
from ..models.records import LongPosition, ShortPosition, Position
from ..store.base import MarketStore
from .positions import calculate_unrealized_pnl


@dataclass
class PositionSummary:
    entity_id: str
    entity_name: str
    side: str
    quantity: int
    average_cost: float
    current_price: float
    # Longs carry asset value; shorts only their unrealized P&L
    market_value: float
    unrealized_pnl: float


@dataclass
class PortfolioSummary:
    user_id: str
    cash: float
    holdings_value: float
    total_value: float
    total_gain_loss: float
    positions: list[PositionSummary]


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    display_name: Optional[str]
    cash: float
    holdings_value: float
    total_value: float
    gain_loss: float
    gain_loss_percent: float


def get_position_summary(
    entity_id: str,
    entity_name: str,
    position: LongPosition | ShortPosition,
    current_price: float,
) -> PositionSummary:
    if isinstance(position, LongPosition):
        side = "long"
        market_value = position.quantity * current_price
    else:
        side = "short"
        market_value = 0.0

    return PositionSummary(
        entity_id=entity_id,
        entity_name=entity_name,
        side=side,
        quantity=position.quantity,
        average_cost=position.average_cost,
        current_price=current_price,
        market_value=market_value,
        unrealized_pnl=calculate_unrealized_pnl(position, current_price),
    )


def holding_value(position: Position, current_price: float) -> float:
    """What a holding adds to portfolio value at the given price."""
    if isinstance(position, LongPosition):
        return position.quantity * current_price
    if isinstance(position, ShortPosition):
        return calculate_unrealized_pnl(position, current_price)
    return 0.0


def get_user_positions(store: MarketStore, user_id: str) -> list[PositionSummary]:
    summaries = []
    for entity_id, position in store.list_positions(user_id).items():
        if position is None:
            continue
        entity = store.get_entity(entity_id)
        if entity is None:
            continue
        summaries.append(get_position_summary(
            entity_id, entity.name, position, price_for_rating(entity.rating)
        ))

    summaries.sort(key=lambda s: s.entity_name)
    return summaries


def get_portfolio(store: MarketStore, user_id: str) -> PortfolioSummary:
    cash = store.get_wallet(user_id)
    if cash is None:
        raise ValidationError(f"User not found: {user_id}", not_found=True)

    positions = get_user_positions(store, user_id)
    holdings_value = sum(
        s.market_value if s.side == "long" else s.unrealized_pnl
        for s in positions
    )

    return PortfolioSummary(
        user_id=user_id,
        cash=cash,
        holdings_value=holdings_value,
        total_value=cash + holdings_value,
        total_gain_loss=sum(s.unrealized_pnl for s in positions),
        positions=positions,
    )


def get_leaderboard(
    store: MarketStore,
    starting_balance: float,
    limit: int = 10,
) -> list[LeaderboardEntry]:
    prices = {e.id: price_for_rating(e.rating) for e in store.list_entities()}

    rows = []
    for user in store.list_users():
        holdings_value = sum(
            holding_value(position, prices[entity_id])
            for entity_id, position in store.list_positions(user.id).items()
            if entity_id in prices
        )
        total_value = user.balance + holdings_value
        gain_loss = total_value - starting_balance
        rows.append((user, holdings_value, total_value, gain_loss))

    rows.sort(key=lambda row: (-row[2], row[0].id))

    leaderboard = []
    for rank, (user, holdings_value, total_value, gain_loss) in enumerate(rows[:limit], start=1):
        leaderboard.append(LeaderboardEntry(
            rank=rank,
            user_id=user.id,
            display_name=user.display_name,
            cash=user.balance,
            holdings_value=holdings_value,
            total_value=total_value,
            gain_loss=gain_loss,
            gain_loss_percent=(gain_loss / starting_balance * 100) if starting_balance else 0.0,
        ))

    return leaderboard
