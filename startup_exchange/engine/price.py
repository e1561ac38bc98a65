"""Price is a pure function of rating: price = rating / 100."""

from ..models.records import INITIAL_RATING

PRICE_DIVISOR = 100.0


def price_for_rating(rating: float | None) -> float:
    if rating is None:
        rating = INITIAL_RATING
    return rating / PRICE_DIVISOR


def format_price(rating: float | None) -> str:
    """Display only. Stored values are never rounded."""
    return f"${price_for_rating(rating):.2f}"
