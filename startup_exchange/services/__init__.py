from .positions import (
    execute_trade,
    buy,
    sell,
    open_short,
    cover,
    calculate_unrealized_pnl,
    PositionUpdate,
    TradeExecution,
)
from .gifts import grant_gift, GiftResult, GIFT_SHARES, GIFT_PRICE
from .portfolio import (
    get_portfolio,
    get_user_positions,
    get_leaderboard,
    PortfolioSummary,
    PositionSummary,
    LeaderboardEntry,
)
from .stats import get_vote_stats, VoteStats
from .transactions import record_trade, describe_trade, get_user_trades
