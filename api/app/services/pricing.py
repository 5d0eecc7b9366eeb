from __future__ import annotations

import logging

from app.schemas.imports import PriceAdjustment

logger = logging.getLogger(__name__)


def adjust_price(price: float, adjustment: PriceAdjustment | None) -> float:
    """Apply an import price adjustment.

    ``percentage`` scales the price by ``1 + value / 100``; ``fixed`` adds ``value``.
    The result is not floored, so a large fixed discount can go negative. That is
    logged but kept as-is until pricing rules settle on a minimum.
    """
    if adjustment is None:
        return price

    if adjustment.type == "percentage":
        adjusted = price * (1 + adjustment.value / 100)
    else:
        adjusted = price + adjustment.value

    adjusted = round(adjusted, 2)
    if adjusted < 0:
        logger.warning("Price adjustment %s %s produced a negative price %.2f from %.2f", adjustment.type, adjustment.value, adjusted, price)
    return adjusted
