"""
Error taxonomy for the rating and market engine.

Every failure the engine reports is a MarketError subclass. Nothing here
is fatal to the process: a rejected request leaves prior state untouched
and the caller decides what the user sees.
"""


class MarketError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketError, ValueError):
    """Bad quantity, unknown entity or user. Raised before any write."""

    def __init__(self, message: str, not_found: bool = False):
        super().__init__(message)
        self.not_found = not_found


class InsufficientFunds(MarketError):
    def __init__(self, balance: float, required: float):
        super().__init__(
            f"Insufficient funds. Need ${required:.2f}, have ${balance:.2f}"
        )
        self.balance = balance
        self.required = required


class InsufficientPosition(MarketError):
    def __init__(self, held: int, requested: int, side: str):
        super().__init__(
            f"Insufficient {side} position. Have {held}, need {requested}"
        )
        self.held = held
        self.requested = requested


class ConflictingDirection(MarketError):
    """A long and a short on the same startup cannot coexist."""

    def __init__(self, message: str):
        super().__init__(message)


class NoPairAvailable(MarketError):
    def __init__(self, population_size: int):
        super().__init__(
            f"Need at least 2 startups to compare, found {population_size}"
        )
        self.population_size = population_size


class NoGiftsRemaining(MarketError):
    def __init__(self, user_id: str):
        super().__init__("No free gifts remaining")
        self.user_id = user_id


class ConcurrentModification(MarketError):
    """A holding changed underneath us; the caller may retry."""


class StoreUnavailable(MarketError):
    """The persistent store failed. Propagated as-is, never retried here."""
