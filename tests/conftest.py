"""Shared fixtures: seeded in-memory and SQLite-backed stores."""

import random

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from startup_exchange.models import Base, Entity, Startup, User, UserAccount
from startup_exchange.store import InMemoryStore, SqlAlchemyStore


STARTUPS = [
    ("acme", "Acme Robotics", 1500.0, "W24"),
    ("bolt", "Bolt Energy", 1500.0, "W24"),
    ("cedar", "Cedar Health", 1600.0, "S24"),
    ("delta", "Delta Payments", 1400.0, "S24"),
]


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def memory_store():
    store = InMemoryStore()
    for entity_id, name, rating, batch in STARTUPS:
        store.add_entity(Entity(id=entity_id, name=name, rating=rating, batch=batch))
    store.add_user(UserAccount(id="alice", display_name="Alice", balance=10000.0, free_gifts_count=5))
    store.add_user(UserAccount(id="bob", display_name="Bob", balance=100.0, free_gifts_count=0))
    return store


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    for entity_id, name, rating, batch in STARTUPS:
        db.add(Startup(id=entity_id, name=name, elo_rating=rating, batch=batch))
    db.add(User(id="alice", display_name="Alice", balance=10000.0, free_gifts_count=5))
    db.add(User(id="bob", display_name="Bob", balance=100.0, free_gifts_count=0))
    db.commit()
    db.close()

    yield factory
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """A file-backed database, so each session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'market.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    for entity_id, name, rating, batch in STARTUPS:
        db.add(Startup(id=entity_id, name=name, elo_rating=rating, batch=batch))
    db.add(User(id="alice", display_name="Alice", balance=10000.0, free_gifts_count=5))
    db.add(User(id="dora", display_name="Dora", balance=10000.0, free_gifts_count=1))
    db.commit()
    db.close()

    yield factory
    engine.dispose()


@pytest.fixture
def sql_store(session_factory):
    db = session_factory()
    yield SqlAlchemyStore(db)
    db.close()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Runs a test once against each MarketStore implementation."""
    return request.getfixturevalue(f"{request.param}_store")
