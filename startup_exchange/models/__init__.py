from .models import (
    Base,
    TradeKind,
    User,
    Startup,
    PairwiseComparison,
    Holding,
    Trade,
)
from .records import (
    INITIAL_RATING,
    Entity,
    UserAccount,
    ComparisonRecord,
    TradeRecord,
    LongPosition,
    ShortPosition,
    Position,
    position_from_row,
)

__all__ = [
    "Base",
    "TradeKind",
    "User",
    "Startup",
    "PairwiseComparison",
    "Holding",
    "Trade",
    "INITIAL_RATING",
    "Entity",
    "UserAccount",
    "ComparisonRecord",
    "TradeRecord",
    "LongPosition",
    "ShortPosition",
    "Position",
    "position_from_row",
]
