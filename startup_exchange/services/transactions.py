from ..models.models import TradeKind
from ..models.records import TradeRecord
from ..store.base import MarketStore


_VERBS = {
    TradeKind.BUY: "Bought",
    TradeKind.SELL: "Sold",
    TradeKind.OPEN_SHORT: "Bet down",
    TradeKind.COVER: "Covered",
    TradeKind.GIFT: "Gifted",
}


def record_trade(
    store: MarketStore,
    user_id: str,
    entity_id: str,
    kind: TradeKind,
    quantity: int,
    price: float,
    total_value: float,
) -> TradeRecord:
    """Append one immutable ledger entry."""
    return store.append_trade(TradeRecord(
        user_id=user_id,
        entity_id=entity_id,
        kind=kind,
        quantity=quantity,
        price=price,
        total_value=total_value,
    ))


def describe_trade(trade: TradeRecord) -> str:
    if trade.kind == TradeKind.GIFT:
        return f"Gifted {trade.quantity} shares"
    return f"{_VERBS[trade.kind]} {trade.quantity} @ ${trade.price:.2f}"


def get_user_trades(store: MarketStore, user_id: str, limit: int = 50) -> list[TradeRecord]:
    return store.list_trades(user_id, limit=limit)
