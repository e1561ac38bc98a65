"""Free "roll" gifts: 10 zero-cost shares of a random startup."""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from ..errors import ConflictingDirection, NoGiftsRemaining, ValidationError
from ..models.models import TradeKind
from ..models.records import Entity, Position, ShortPosition, TradeRecord
from ..store.base import MarketStore
from .positions import update_position_for_buy, write_position
from .transactions import record_trade

logger = logging.getLogger(__name__)

GIFT_SHARES = 10
GIFT_PRICE = 0.0


@dataclass
class GiftResult:
    entity: Entity
    shares: int
    position: Position
    trade: TradeRecord
    remaining_gifts: int


def grant_gift(
    store: MarketStore,
    user_id: str,
    rng: Optional[random.Random] = None,
    entity_id: Optional[str] = None,
) -> GiftResult:
    """
    Spend one of the user's free gifts on a random startup.

    The shares go through the same weighted-average math as a buy at
    $0, so an existing paid long has its average cost diluted toward
    zero. Startups the user is short are never drawn. Passing entity_id
    skips the draw and gifts that startup.
    """
    rng = rng or random.Random()

    with store.transaction():
        if store.get_user(user_id) is None:
            raise ValidationError(f"User not found: {user_id}", not_found=True)

        # Spend the gift first; any later failure rolls it back
        remaining = store.consume_gift(user_id)
        if remaining is None:
            raise NoGiftsRemaining(user_id)

        entities = store.list_entities()
        if not entities:
            raise ValidationError("No startups available", not_found=True)

        holdings = store.list_positions(user_id)
        eligible = [
            e for e in entities
            if not isinstance(holdings.get(e.id), ShortPosition)
        ]
        if not eligible:
            raise ConflictingDirection("Every startup is held short; cover one to receive gifts")

        if entity_id is None:
            entity = rng.choice(eligible)
        else:
            entity = next((e for e in entities if e.id == entity_id), None)
            if entity is None:
                raise ValidationError(f"Startup not found: {entity_id}", not_found=True)

        position = store.get_position(user_id, entity.id, for_update=True)
        update = update_position_for_buy(position, GIFT_SHARES, GIFT_PRICE)

        trade = record_trade(
            store,
            user_id=user_id,
            entity_id=entity.id,
            kind=TradeKind.GIFT,
            quantity=GIFT_SHARES,
            price=GIFT_PRICE,
            total_value=0.0,
        )
        write_position(store, user_id, entity.id, update.position)

    logger.info("Gifted %d shares of %s to %s (%d gifts left)", GIFT_SHARES, entity.id, user_id, remaining)
    return GiftResult(
        entity=entity,
        shares=GIFT_SHARES,
        position=update.position,
        trade=trade,
        remaining_gifts=remaining,
    )
