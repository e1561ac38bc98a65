import random
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db, get_store
from ..engine import (
    OpponentSelector,
    RatingEngine,
    format_price,
    next_pair_for_user,
    price_for_rating,
    tier_for_rating,
)
from ..engine.selector import comparison_counts
from ..models import Entity, Position, TradeKind, User
from ..services import (
    describe_trade,
    execute_trade,
    get_leaderboard,
    get_portfolio,
    get_user_trades,
    get_vote_stats,
    grant_gift,
)
from ..store import MarketStore

router = APIRouter()

# Shared instances
_rng = random.Random()
selector = OpponentSelector(rng=_rng, pool_size=settings.candidate_pool_size)


# =============================================================================
# Request Models
# =============================================================================

class UserCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    display_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = None


class ComparisonCreate(BaseModel):
    startup_a_id: str
    startup_b_id: str
    chosen_startup_id: str


class RecomputeSubsetRequest(BaseModel):
    startup_ids: list[str]


class TradeCreate(BaseModel):
    startup_id: str
    kind: TradeKind
    quantity: int = Field(..., gt=0, le=100000)


def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity is established upstream and forwarded in X-User-Id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id


def _startup_payload(entity: Entity, comparisons: int = 0) -> dict:
    tier = tier_for_rating(entity.rating, comparisons)
    return {
        "id": entity.id,
        "name": entity.name,
        "batch": entity.batch,
        "elo_rating": entity.rating,
        "global_rank": entity.rank,
        "price": price_for_rating(entity.rating),
        "display_price": format_price(entity.rating),
        "tier": tier.tier.value,
        "tier_description": tier.description,
        "comparison_count": comparisons,
    }


def _position_payload(position: Position) -> Optional[dict]:
    if position is None:
        return None
    return {"quantity": position.quantity, "average_cost": position.average_cost}


# =============================================================================
# User Endpoints
# =============================================================================

@router.post("/users")
def create_user(user_data: UserCreate, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == user_data.user_id).first()
    if user is None:
        user = User(
            id=user_data.user_id,
            display_name=user_data.display_name,
            email=user_data.email,
            balance=settings.starting_balance,
            free_gifts_count=settings.free_gifts_per_user,
        )
        db.add(user)
        db.commit()

    return {
        "id": user.id,
        "display_name": user.display_name,
        "balance": user.balance,
        "free_gifts_count": user.free_gifts_count,
    }


# =============================================================================
# Startup and Comparison Endpoints
# =============================================================================

@router.get("/startups")
def list_startups(batch: Optional[str] = None, store: MarketStore = Depends(get_store)):
    counts = comparison_counts(store.list_comparisons())
    entities = sorted(
        store.list_entities(batch=batch),
        key=lambda e: (e.rank is None, e.rank or 0, -e.rating),
    )
    return [_startup_payload(e, counts[e.id]) for e in entities]


@router.get("/comparisons/next")
def next_comparison(
    batch: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    pair = next_pair_for_user(store, user_id, selector, batch=batch)
    return {
        "startup_a": _startup_payload(pair.left, pair.left_comparisons),
        "startup_b": _startup_payload(pair.right, pair.right_comparisons),
    }


@router.post("/comparisons")
def create_comparison(
    data: ComparisonCreate,
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    result = RatingEngine(store).apply_comparison(
        user_id, data.startup_a_id, data.startup_b_id, data.chosen_startup_id
    )
    return {
        "id": result.comparison.id,
        "startup_a": {
            "id": data.startup_a_id,
            "old_rating": result.old_rating_a,
            "new_rating": result.new_rating_a,
            "delta": result.delta_a,
        },
        "startup_b": {
            "id": data.startup_b_id,
            "old_rating": result.old_rating_b,
            "new_rating": result.new_rating_b,
            "delta": result.delta_b,
        },
    }


# =============================================================================
# Ranking Endpoints
# =============================================================================

@router.post("/rankings/recompute")
def recompute_rankings(store: MarketStore = Depends(get_store)):
    result = RatingEngine(store, passes=settings.recompute_passes).recompute_all()
    return {
        "status": result.status.value,
        "processed_comparisons": result.processed_comparisons,
        "passes": result.passes,
        "ranked_startups": len(result.ranks),
        "unknown_startups": sorted(result.unknown_entities),
    }


@router.post("/rankings/recompute-subset")
def recompute_subset(data: RecomputeSubsetRequest, store: MarketStore = Depends(get_store)):
    result = RatingEngine(store, passes=settings.recompute_passes).recompute_subset(data.startup_ids)
    return {
        "status": result.status.value,
        "processed_comparisons": result.processed_comparisons,
        "ratings": result.ratings,
    }


# =============================================================================
# Trading Endpoints
# =============================================================================

@router.post("/trades")
def create_trade(
    data: TradeCreate,
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    execution = execute_trade(store, user_id, data.startup_id, data.kind, data.quantity)
    return {
        "trade_id": execution.trade.id,
        "description": describe_trade(execution.trade),
        "kind": execution.trade.kind.value,
        "quantity": execution.trade.quantity,
        "price": execution.trade.price,
        "total_value": execution.trade.total_value,
        "realized_pnl": execution.realized_pnl,
        "balance": execution.balance,
        "position": _position_payload(execution.position),
    }


@router.get("/trades")
def list_trades(
    limit: int = 50,
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    return [
        {
            "id": t.id,
            "startup_id": t.entity_id,
            "kind": t.kind.value,
            "quantity": t.quantity,
            "price": t.price,
            "total_value": t.total_value,
            "description": describe_trade(t),
            "created_at": t.created_at,
        }
        for t in get_user_trades(store, user_id, limit=min(limit, 200))
    ]


@router.post("/gifts/roll")
def roll_gift(
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    result = grant_gift(store, user_id, rng=_rng)
    return {
        "startup": {"id": result.entity.id, "name": result.entity.name},
        "shares": result.shares,
        "position": _position_payload(result.position),
        "remaining_gifts": result.remaining_gifts,
    }


# =============================================================================
# Portfolio and Leaderboard Endpoints
# =============================================================================

@router.get("/portfolio")
def portfolio(
    user_id: str = Depends(current_user_id),
    store: MarketStore = Depends(get_store),
):
    summary = get_portfolio(store, user_id)
    return {
        "cash": summary.cash,
        "holdings_value": summary.holdings_value,
        "total_value": summary.total_value,
        "total_gain_loss": summary.total_gain_loss,
        "positions": [
            {
                "startup_id": p.entity_id,
                "name": p.entity_name,
                "side": p.side,
                "quantity": p.quantity,
                "average_cost": p.average_cost,
                "current_price": p.current_price,
                "market_value": p.market_value,
                "unrealized_pnl": p.unrealized_pnl,
            }
            for p in summary.positions
        ],
    }


@router.get("/leaderboard")
def leaderboard(limit: int = 10, store: MarketStore = Depends(get_store)):
    entries = get_leaderboard(store, settings.starting_balance, limit=min(limit, 100))
    return [
        {
            "rank": e.rank,
            "user_id": e.user_id,
            "display_name": e.display_name,
            "cash": round(e.cash, 2),
            "holdings_value": round(e.holdings_value, 2),
            "total_value": round(e.total_value, 2),
            "gain_loss": round(e.gain_loss, 2),
            "gain_loss_percent": round(e.gain_loss_percent, 2),
        }
        for e in entries
    ]


@router.get("/stats")
def stats(store: MarketStore = Depends(get_store)):
    vote_stats = get_vote_stats(store)
    return {
        "comparisons": {
            "total": vote_stats.total_comparisons,
            "unique_users": vote_stats.unique_voters,
            "latest": vote_stats.latest_comparison_at,
        },
        "rankings": {"ranked_startups": vote_stats.ranked_startups},
        "top_startups": [
            {"startup_id": entity_id, "comparisons": count}
            for entity_id, count in vote_stats.top_compared
        ],
    }
