# =============================================================================
# Startup Exchange Data Models
# =============================================================================
# These tables back the rating and market engine:
# - Users who vote and trade
# - Startups (the entities being rated and priced)
# - Pairwise comparisons (the append-only vote log)
# - Holdings (one open long or short per user and startup)
# - Trades (the append-only ledger of executed requests)
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column, String, Float, Integer, DateTime,
    ForeignKey, Enum as SQLEnum, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# Enums
# =============================================================================

class TradeKind(str, Enum):
    """
    What a trade did to the user's holding.

    BUY: open or add to a long
    SELL: reduce or close a long
    OPEN_SHORT: open or add to a short ("bet down")
    COVER: reduce or close a short
    GIFT: free shares issued at zero cost
    """
    BUY = "buy"
    SELL = "sell"
    OPEN_SHORT = "open_short"
    COVER = "cover"
    GIFT = "gift"


# =============================================================================
# User Model
# =============================================================================

class User(Base):
    """
    A participant who votes on pairs and trades startups.

    Balance is virtual currency. Identity is owned by an external
    provider, we only store the id it hands us.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    display_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)

    balance = Column(Float, default=10000.0, nullable=False)

    # Remaining free "roll" gifts
    free_gifts_count = Column(Integer, default=5, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    holdings = relationship("Holding", back_populates="user")

    __table_args__ = (
        CheckConstraint("balance >= 0", name="non_negative_balance"),
        CheckConstraint("free_gifts_count >= 0", name="non_negative_gifts"),
    )


# =============================================================================
# Startup Model
# =============================================================================

class Startup(Base):
    """
    An entity that users compare head-to-head.

    elo_rating is only ever written by the rating engine.
    global_rank is only ever written by a batch recompute.
    Price is derived (elo_rating / 100) and never stored.

    version is bumped on every write, so a rating computed from a stale
    read is rejected instead of overwriting a concurrent vote.
    """
    __tablename__ = "startups"

    id = Column(String, primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    description = Column(String(2000), nullable=True)
    website = Column(String(500), nullable=True)
    sector = Column(String(100), nullable=True)
    stage = Column(String(50), nullable=True)
    location = Column(String(200), nullable=True)

    # Cohort label, e.g. "Fall 2025"
    batch = Column(String(50), nullable=True, index=True)

    elo_rating = Column(Float, default=1500.0, nullable=False)
    global_rank = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}


# =============================================================================
# Pairwise Comparison Model
# =============================================================================

class PairwiseComparison(Base):
    """
    One vote: the user saw startup A and startup B and picked one.

    Append-only. This table is the sole input to a batch recompute, so
    rows are never updated or deleted. The integer id breaks ties between
    rows with the same created_at, keeping replay order stable.
    """
    __tablename__ = "pairwise_comparisons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    startup_a_id = Column(String, ForeignKey("startups.id"), nullable=False)
    startup_b_id = Column(String, ForeignKey("startups.id"), nullable=False)
    chosen_startup_id = Column(String, ForeignKey("startups.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint("startup_a_id <> startup_b_id", name="distinct_pair"),
        CheckConstraint(
            "chosen_startup_id = startup_a_id OR chosen_startup_id = startup_b_id",
            name="chosen_in_pair",
        ),
    )


# =============================================================================
# Holding Model
# =============================================================================

class Holding(Base):
    """
    A user's open position in one startup.

    quantity > 0 is a long, quantity < 0 is a short. A holding that
    reaches zero is deleted, so zero is never stored.
    average_cost is the entry price per share, always >= 0 regardless of
    direction.

    version is bumped on every write; a write from a stale read fails
    instead of silently losing an update.
    """
    __tablename__ = "holdings"

    id = Column(String, primary_key=True, default=_new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    startup_id = Column(String, ForeignKey("startups.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    average_cost = Column(Float, nullable=False, default=0.0)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="holdings")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # One row per (user, startup) means long and short can't coexist
        UniqueConstraint("user_id", "startup_id", name="uq_holding_user_startup"),
        CheckConstraint("quantity <> 0", name="non_zero_quantity"),
        CheckConstraint("average_cost >= 0", name="non_negative_average_cost"),
    )


# =============================================================================
# Trade Model
# =============================================================================

class Trade(Base):
    """
    An executed request. Append-only.

    quantity is always positive; direction is carried by kind.
    total_value is the cash that moved (zero for gifts).
    """
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    startup_id = Column(String, ForeignKey("startups.id"), nullable=False)

    kind = Column(SQLEnum(TradeKind), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    total_value = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )


# =============================================================================
# Summary
# =============================================================================
#
# Data flow when a user votes:
#
# 1. PairwiseComparison row appended
# 2. Both startups' elo_rating updated by the zero-sum Elo delta
#
# Data flow when a trade happens:
#
# 1. Trade row appended
# 2. Holding inserted, updated or deleted
# 3. User balance debited or credited
#
# All writes of one request share a single database transaction.
# =============================================================================
