from .base import MarketStore
from .memory import InMemoryStore
from .sql import SqlAlchemyStore

__all__ = ["MarketStore", "InMemoryStore", "SqlAlchemyStore"]
