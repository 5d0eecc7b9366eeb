from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from worker.fulfillment.driver import SourceSiteDriver
from worker.fulfillment.errors import AutomationStepFailure
from worker.fulfillment.queue import PlacedOrder

T = TypeVar("T")

CLEAR_CART_STEP = "clear_cart"

logger = logging.getLogger(__name__)


def cart_step(index: int) -> str:
    return f"add_to_cart:{index}"


class OrderSaga:
    """Places one queued order on the source site, step by step.

    Every attempt starts from an emptied remote cart and adds every line item
    again, so nothing left behind by an earlier attempt or another order is
    checked out. Completed steps are reported through ``on_step_completed``
    as they finish. Nothing is compensated on failure.
    """

    def __init__(self, driver: SourceSiteDriver, on_step_completed: Callable[[str], None]) -> None:
        self.driver = driver
        self.on_step_completed = on_step_completed

    def run(self, payload: dict[str, Any]) -> PlacedOrder:
        items = list(payload.get("items") or [])
        if not items:
            raise AutomationStepFailure("add_to_cart", "Order payload has no items")

        self._step(CLEAR_CART_STEP, self.driver.clear_cart)
        self.on_step_completed(CLEAR_CART_STEP)

        for index, item in enumerate(items):
            step = cart_step(index)
            self._step(step, lambda item=item: self.driver.add_to_cart(item))
            self.on_step_completed(step)

        self._step("checkout", self.driver.go_to_checkout)
        self._step("shipping_address", lambda: self.driver.fill_shipping_address(payload.get("shipping_address") or {}))
        return self._step("place_order", self.driver.place_order)

    def _step(self, step: str, action: Callable[[], T]) -> T:
        logger.debug("Running step %s", step)
        try:
            return action()
        except AutomationStepFailure:
            raise
        except Exception as exc:
            raise AutomationStepFailure(step, str(exc) or exc.__class__.__name__) from exc
