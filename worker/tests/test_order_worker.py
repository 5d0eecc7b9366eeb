import threading
from datetime import datetime, timedelta, timezone

import pytest

from worker.fulfillment.driver import SourceSiteDriver
from worker.fulfillment.errors import AutomationStepFailure
from worker.fulfillment.notifications import Notifier
from worker.fulfillment.queue import FulfillmentQueue, PlacedOrder
from worker.fulfillment.runner import OrderAutomationWorker
from worker.models import CustomerOrder, FulfillmentQueueItem


class FakeStorefront:
    """Remote state that outlives a single driver session, like a real cart."""

    def __init__(self) -> None:
        self.cart: list[tuple[str, int]] = []
        self.orders: list[list[tuple[str, int]]] = []
        self.addresses: list[dict] = []
        self.fail_on_product: str | None = None
        self.block: threading.Event | None = None
        self.started = threading.Event()


class FakeDriver(SourceSiteDriver):
    def __init__(self, storefront: FakeStorefront) -> None:
        self.storefront = storefront

    def clear_cart(self) -> None:
        self.storefront.cart.clear()

    def add_to_cart(self, item: dict) -> None:
        self.storefront.started.set()
        if self.storefront.block is not None:
            self.storefront.block.wait(timeout=5)
        if item["product_id"] == self.storefront.fail_on_product:
            raise AutomationStepFailure("add_to_cart", "Add to cart button not found")
        self.storefront.cart.append((item["product_id"], item["quantity"]))

    def go_to_checkout(self) -> None:
        if not self.storefront.cart:
            raise RuntimeError("cart is empty")

    def fill_shipping_address(self, address: dict) -> None:
        self.storefront.addresses.append(address)

    def place_order(self) -> PlacedOrder:
        self.storefront.orders.append(list(self.storefront.cart))
        self.storefront.cart.clear()
        number = f"SO-{len(self.storefront.orders)}"
        return PlacedOrder(order_number=number, tracking_number=f"TRK-{number}", tracking_url=f"https://track.test/{number}")


def _worker(session_factory, settings, storefront: FakeStorefront) -> OrderAutomationWorker:
    return OrderAutomationWorker(
        session_factory=session_factory,
        driver_factory=lambda: FakeDriver(storefront),
        notifier=Notifier(settings),
        settings=settings,
        owner="test-host:1",
    )


def _item(session, item_id: str) -> FulfillmentQueueItem:
    session.expire_all()
    return session.get(FulfillmentQueueItem, item_id)


def test_successful_order_is_completed_and_tracked(session, session_factory, settings, make_queue_item) -> None:
    queued = make_queue_item(line_items=2)
    storefront = FakeStorefront()
    worker = _worker(session_factory, settings, storefront)

    assert worker.tick() == "completed"

    item = _item(session, queued.id)
    assert item.status == "completed"
    assert item.source_order_number == "SO-1"
    assert item.saga_progress == ["clear_cart", "add_to_cart:0", "add_to_cart:1", "place_order"]
    assert storefront.orders == [[("10000", 1), ("10001", 2)]]
    assert storefront.addresses[0]["postcode"] == "LS1 4AP"

    order = session.get(CustomerOrder, item.order_id)
    assert order.tracking_number == "TRK-SO-1"
    assert order.tracking_url == "https://track.test/SO-1"
    assert worker.notifier.fallback[-1]["kind"] == "order_placed"
    assert worker.busy is False


def test_empty_queue_is_idle(session_factory, settings) -> None:
    assert _worker(session_factory, settings, FakeStorefront()).tick() == "idle"


def test_tick_while_busy_is_skipped(session, session_factory, settings, make_queue_item) -> None:
    make_queue_item()
    make_queue_item()
    storefront = FakeStorefront()
    storefront.block = threading.Event()
    worker = _worker(session_factory, settings, storefront)

    results: list[str] = []
    thread = threading.Thread(target=lambda: results.append(worker.tick()))
    thread.start()
    try:
        assert storefront.started.wait(timeout=5)
        assert worker.busy is True
        assert worker.tick() == "busy"

        session.expire_all()
        statuses = [row.status for row in session.query(FulfillmentQueueItem).all()]
        assert statuses.count("processing") == 1
        assert statuses.count("pending") == 1
    finally:
        storefront.block.set()
        thread.join(timeout=10)

    assert results == ["completed"]
    assert worker.busy is False


def test_failure_mid_cart_with_no_retries_left_is_terminal(session, session_factory, settings, make_queue_item) -> None:
    queued = make_queue_item(line_items=3, max_retries=1)
    storefront = FakeStorefront()
    storefront.fail_on_product = "10001"
    worker = _worker(session_factory, settings, storefront)

    assert worker.tick() == "failed"

    item = _item(session, queued.id)
    assert item.status == "failed"
    assert item.retry_count == 1
    assert "Add to cart button not found" in item.error_message
    assert item.saga_progress == ["clear_cart", "add_to_cart:0"]
    assert storefront.cart == [("10000", 1)]
    assert storefront.orders == []
    assert worker.notifier.fallback[-1]["kind"] == "order_failed"

    storefront.fail_on_product = None
    assert worker.tick() == "idle"
    assert worker.tick() == "idle"
    item = _item(session, queued.id)
    assert item.status == "failed"
    assert item.retry_count == 1


def test_retry_waits_for_backoff_and_rebuilds_the_whole_cart(
    session, session_factory, settings, make_queue_item
) -> None:
    queued = make_queue_item(line_items=3, max_retries=3)
    storefront = FakeStorefront()
    storefront.fail_on_product = "10001"
    worker = _worker(session_factory, settings, storefront)

    assert worker.tick() == "pending"
    item = _item(session, queued.id)
    assert item.retry_count == 1
    assert item.next_attempt_at is not None
    assert worker.notifier.fallback == []

    storefront.fail_on_product = None
    assert worker.tick() == "idle"

    item.next_attempt_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    session.commit()

    assert worker.tick() == "completed"
    assert storefront.orders == [[("10000", 1), ("10001", 2), ("10002", 3)]]
    item = _item(session, queued.id)
    assert item.status == "completed"
    assert item.retry_count == 1
    assert item.saga_progress == ["clear_cart", "add_to_cart:0", "add_to_cart:1", "add_to_cart:2", "place_order"]


class SessionCartDriver(FakeDriver):
    """A fresh browser context per attempt: the cart starts empty every session."""

    def __init__(self, storefront: FakeStorefront) -> None:
        super().__init__(storefront)
        self.storefront.cart = []


def _due_now(session, item_id: str) -> None:
    item = _item(session, item_id)
    item.next_attempt_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    session.commit()


def test_retry_with_a_fresh_session_cart_places_every_item(session, session_factory, settings, make_queue_item) -> None:
    queued = make_queue_item(line_items=3, max_retries=3)
    storefront = FakeStorefront()
    storefront.fail_on_product = "10001"
    worker = OrderAutomationWorker(
        session_factory=session_factory,
        driver_factory=lambda: SessionCartDriver(storefront),
        notifier=Notifier(settings),
        settings=settings,
        owner="test-host:1",
    )

    assert worker.tick() == "pending"
    storefront.fail_on_product = None
    _due_now(session, queued.id)

    assert worker.tick() == "completed"
    assert storefront.orders == [[("10000", 1), ("10001", 2), ("10002", 3)]]


def test_items_left_by_a_failed_order_are_not_shipped_with_the_next_one(
    session, session_factory, settings, make_queue_item
) -> None:
    failing = make_queue_item(line_items=3, max_retries=3)
    following = make_queue_item(line_items=1)
    storefront = FakeStorefront()
    storefront.fail_on_product = "10001"
    worker = _worker(session_factory, settings, storefront)

    assert worker.tick() == "pending"
    assert storefront.cart == [("10000", 1)]

    assert worker.tick() == "completed"
    assert storefront.orders == [[("10000", 1)]]
    assert _item(session, following.id).source_order_number == "SO-1"

    storefront.fail_on_product = None
    _due_now(session, failing.id)

    assert worker.tick() == "completed"
    assert storefront.orders[1] == [("10000", 1), ("10001", 2), ("10002", 3)]
    assert _item(session, failing.id).source_order_number == "SO-2"


def test_placed_order_is_not_placed_again_when_write_back_fails(
    session, session_factory, settings, make_queue_item, monkeypatch
) -> None:
    queued = make_queue_item(line_items=2)
    storefront = FakeStorefront()
    worker = _worker(session_factory, settings, storefront)

    original_complete = FulfillmentQueue.complete
    calls = {"count": 0}

    def flaky_complete(self, item, placed):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("database went away")
        return original_complete(self, item, placed)

    monkeypatch.setattr(FulfillmentQueue, "complete", flaky_complete)

    assert worker.tick() == "error"
    item = _item(session, queued.id)
    assert item.status == "processing"
    assert item.source_order_number == "SO-1"
    assert item.saga_progress[-1] == "place_order"
    assert worker.tick() == "idle"

    item.lease_expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    session.commit()

    assert worker.tick() == "completed"
    assert len(storefront.orders) == 1
    item = _item(session, queued.id)
    assert item.status == "completed"
    assert item.source_order_number == "SO-1"
    assert item.tracking_number == "TRK-SO-1"
    order = session.get(CustomerOrder, item.order_id)
    assert order.source_order_number == "SO-1"
    assert worker.notifier.fallback[-1]["details"]["source_order_number"] == "SO-1"


@pytest.mark.parametrize("step_keys", [["clear_cart", "add_to_cart:0"], ["place_order"]])
def test_progress_without_an_order_number_runs_the_full_saga(
    session, session_factory, settings, make_queue_item, step_keys
) -> None:
    queued = make_queue_item(line_items=1, saga_progress=step_keys)
    storefront = FakeStorefront()
    storefront.cart = [("99999", 4)]

    assert _worker(session_factory, settings, storefront).tick() == "completed"
    assert storefront.orders == [[("10000", 1)]]
    assert _item(session, queued.id).saga_progress == ["clear_cart", "add_to_cart:0", "place_order"]


def test_unexpected_driver_errors_become_retries(session, session_factory, settings, make_queue_item) -> None:
    queued = make_queue_item(line_items=1, max_retries=2)

    def broken_driver():
        raise RuntimeError("browser crashed on launch")

    worker = OrderAutomationWorker(
        session_factory=session_factory,
        driver_factory=broken_driver,
        notifier=Notifier(settings),
        settings=settings,
        owner="test-host:1",
    )

    assert worker.tick() == "pending"
    item = _item(session, queued.id)
    assert item.error_message == "browser crashed on launch"
    assert worker.busy is False


def test_database_errors_never_escape_a_tick(settings) -> None:
    def broken_sessions():
        raise RuntimeError("database unavailable")

    worker = OrderAutomationWorker(
        session_factory=broken_sessions,
        driver_factory=lambda: FakeDriver(FakeStorefront()),
        notifier=Notifier(settings),
        settings=settings,
    )

    assert worker.tick() == "error"
    assert worker.busy is False


def test_run_forever_stops_on_event(session_factory, settings) -> None:
    worker = _worker(session_factory, settings, FakeStorefront())
    stop = threading.Event()
    ticks: list[str] = []
    original_tick = worker.tick

    def counting_tick() -> str:
        outcome = original_tick()
        ticks.append(outcome)
        if len(ticks) >= 2:
            stop.set()
        return outcome

    worker.tick = counting_tick
    worker.run_forever(stop)

    assert ticks == ["idle", "idle"]
