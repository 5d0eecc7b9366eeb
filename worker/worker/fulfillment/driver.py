from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import ExitStack
from typing import Any
from urllib.parse import urljoin

from worker.config import WorkerSettings, get_settings
from worker.fetchers.browser import BrowserOptions, browser_page, navigate, wait_for_settle
from worker.fulfillment.errors import AutomationStepFailure
from worker.fulfillment.queue import PlacedOrder

ADD_TO_CART_BUTTONS = ['[data-id="addToBag"]', ".add-to-cart-btn"]
QUANTITY_INPUT = 'input[name="quantity"]'
CHECKOUT_BUTTONS = ['[data-id="checkout"]', ".checkout-btn"]
REMOVE_FROM_CART_BUTTONS = ['[data-id="removeItem"]', ".cart-item-delete", ".remove-item-btn"]
CONFIRM_REMOVE_BUTTONS = ['[data-id="confirmRemove"]', ".confirm-delete-btn"]
MAX_CART_LINES = 100
PLACE_ORDER_BUTTONS = ['[data-id="placeOrder"]', ".place-order-btn"]
ORDER_NUMBER = ['[data-id="orderNumber"]', ".order-number", ".order-no"]
TRACKING_NUMBER = ['[data-id="trackingNumber"]', ".tracking-number"]
TRACKING_LINK = ['a[data-id="trackOrder"]', 'a[href*="track"]']

# payload key -> form field name
ADDRESS_FIELDS = {
    "first_name": "firstName",
    "last_name": "lastName",
    "address_1": "address1",
    "address_2": "address2",
    "city": "city",
    "state": "state",
    "postcode": "postcode",
    "country": "country",
    "phone": "phone",
}
REQUIRED_ADDRESS_FIELDS = {"first_name", "last_name", "address_1", "city", "postcode", "phone"}

DISPATCH_INPUT_EVENTS = """
inputs => inputs.forEach(input => {
  input.dispatchEvent(new Event('input', { bubbles: true }));
  input.dispatchEvent(new Event('change', { bubbles: true }));
})
"""

logger = logging.getLogger(__name__)


class SourceSiteDriver(ABC):
    """Remote actions on the source storefront used by the order saga."""

    def __enter__(self) -> SourceSiteDriver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    @abstractmethod
    def clear_cart(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def add_to_cart(self, item: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def go_to_checkout(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def fill_shipping_address(self, address: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def place_order(self) -> PlacedOrder:
        raise NotImplementedError


class PlaywrightSiteDriver(SourceSiteDriver):
    def __init__(self, settings: WorkerSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self.options = BrowserOptions(
            headless=self.settings.headless,
            proxy_url=self.settings.browser_proxy_url,
            profile_dir=self.settings.browser_profile_dir,
            navigation_timeout_seconds=self.settings.navigation_timeout_seconds,
            settle_timeout_seconds=self.settings.settle_timeout_seconds,
        )
        self._stack: ExitStack | None = None
        self.page: Any = None

    def __enter__(self) -> PlaywrightSiteDriver:
        self._stack = ExitStack()
        self.page = self._stack.enter_context(browser_page(self.options))
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._stack is not None:
            self._stack.close()
        self._stack = None
        self.page = None

    @property
    def action_timeout_ms(self) -> int:
        return int(self.settings.action_timeout_seconds * 1000)

    def clear_cart(self) -> None:
        self._open(urljoin(self.settings.source_base_url, self.settings.cart_path))
        remove = self.page.locator(", ".join(REMOVE_FROM_CART_BUTTONS))
        removed = 0
        while remove.count() > 0:
            if removed >= MAX_CART_LINES:
                raise AutomationStepFailure("clear_cart", f"Cart still has items after {removed} removals")
            before = remove.count()
            remove.first.click(timeout=self.action_timeout_ms)
            confirm = self.page.locator(", ".join(CONFIRM_REMOVE_BUTTONS))
            if confirm.count() > 0:
                confirm.first.click(timeout=self.action_timeout_ms)
            wait_for_settle(self.page, self.settings.settle_timeout_seconds)
            if remove.count() >= before:
                raise AutomationStepFailure("clear_cart", "Cart line was not removed")
            removed += 1
        if removed:
            logger.info("Removed %s stale line(s) from the source cart", removed)

    def add_to_cart(self, item: dict[str, Any]) -> None:
        url = str(item.get("product_url") or "")
        if not url:
            raise AutomationStepFailure("add_to_cart", f"Missing product URL for {item.get('product_id')}")

        self._open(url)
        quantity = self.page.locator(QUANTITY_INPUT)
        if quantity.count() > 0:
            quantity.first.fill(str(item.get("quantity") or 1), timeout=self.action_timeout_ms)
            quantity.first.dispatch_event("change")
        self._find(ADD_TO_CART_BUTTONS, "add_to_cart").click(timeout=self.action_timeout_ms)
        wait_for_settle(self.page, self.settings.settle_timeout_seconds)
        logger.info("Added %s x%s to cart", item.get("product_id"), item.get("quantity"))

    def go_to_checkout(self) -> None:
        self._open(urljoin(self.settings.source_base_url, self.settings.cart_path))
        self._find(CHECKOUT_BUTTONS, "checkout").click(timeout=self.action_timeout_ms)
        self.page.wait_for_load_state("load", timeout=int(self.settings.navigation_timeout_seconds * 1000))
        wait_for_settle(self.page, self.settings.settle_timeout_seconds)

    def fill_shipping_address(self, address: dict[str, Any]) -> None:
        for key, field_name in ADDRESS_FIELDS.items():
            value = str(address.get(key) or "")
            field = self.page.locator(f'[name="{field_name}"]')
            if field.count() == 0:
                if key in REQUIRED_ADDRESS_FIELDS:
                    raise AutomationStepFailure("shipping_address", f"Form field {field_name} not found")
                continue
            if not value:
                continue
            if field.first.evaluate("el => el.tagName") == "SELECT":
                field.first.select_option(value, timeout=self.action_timeout_ms)
            else:
                field.first.fill(value, timeout=self.action_timeout_ms)
        self.page.eval_on_selector_all("input", DISPATCH_INPUT_EVENTS)

    def place_order(self) -> PlacedOrder:
        self._find(PLACE_ORDER_BUTTONS, "place_order").click(timeout=self.action_timeout_ms)
        self.page.wait_for_load_state("load", timeout=int(self.settings.navigation_timeout_seconds * 1000))
        wait_for_settle(self.page, self.settings.settle_timeout_seconds)

        order_number = self._text(ORDER_NUMBER)
        if not order_number:
            raise AutomationStepFailure("place_order", "Order number not found on confirmation page")
        tracking_href = self._attribute(TRACKING_LINK, "href")
        return PlacedOrder(
            order_number=order_number,
            tracking_number=self._text(TRACKING_NUMBER) or None,
            tracking_url=urljoin(self.page.url, tracking_href) if tracking_href else None,
        )

    def _open(self, url: str) -> None:
        navigate(self.page, url, self.settings.navigation_timeout_seconds)
        self.page.wait_for_load_state("load", timeout=int(self.settings.navigation_timeout_seconds * 1000))

    def _find(self, candidates: list[str], step: str) -> Any:
        from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

        locator = self.page.locator(", ".join(candidates)).first
        try:
            locator.wait_for(state="visible", timeout=self.action_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise AutomationStepFailure(step, f"None of {candidates} became visible") from exc
        return locator

    def _text(self, candidates: list[str]) -> str:
        for selector in candidates:
            locator = self.page.locator(selector)
            if locator.count() > 0:
                text = (locator.first.inner_text(timeout=self.action_timeout_ms) or "").strip()
                if text:
                    return text
        return ""

    def _attribute(self, candidates: list[str], name: str) -> str | None:
        for selector in candidates:
            locator = self.page.locator(selector)
            if locator.count() > 0:
                value = locator.first.get_attribute(name, timeout=self.action_timeout_ms)
                if value:
                    return value
        return None
