from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from sqlalchemy.orm import Session

from worker.config import WorkerSettings, get_settings
from worker.fulfillment.driver import SourceSiteDriver
from worker.fulfillment.notifications import Notifier
from worker.fulfillment.queue import FulfillmentQueue, LeaseLostError, lease_holder_id, recorded_placement
from worker.fulfillment.saga import OrderSaga
from worker.models import FulfillmentQueueItem

logger = logging.getLogger(__name__)

BUSY = "busy"
IDLE = "idle"
COMPLETED = "completed"
ERROR = "error"


class OrderAutomationWorker:
    """Polls the fulfillment queue and places one order at a time.

    A tick that finds the worker busy returns immediately. Across processes
    the queue lease keeps two workers off the same item.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        driver_factory: Callable[[], SourceSiteDriver],
        notifier: Notifier | None = None,
        settings: WorkerSettings | None = None,
        owner: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.driver_factory = driver_factory
        self.settings = settings or get_settings()
        self.notifier = notifier or Notifier(self.settings)
        self.owner = owner or lease_holder_id()
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def tick(self) -> str:
        if not self._busy.acquire(blocking=False):
            logger.info("Already processing an order, skipping tick")
            return BUSY
        try:
            with self.session_factory() as db:
                queue = FulfillmentQueue(
                    db,
                    owner=self.owner,
                    lease_ttl_seconds=self.settings.lease_ttl_seconds,
                    retry_backoff_seconds=self.settings.retry_backoff_seconds,
                    retry_backoff_max_seconds=self.settings.retry_backoff_max_seconds,
                )
                item = queue.claim_next()
                if item is None:
                    return IDLE
                return self._process(queue, item)
        except Exception:
            logger.exception("Fulfillment tick failed")
            return ERROR
        finally:
            self._busy.release()

    def run_forever(self, stop_event: threading.Event | None = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("Order automation started (owner=%s, interval=%ss)", self.owner, self.settings.poll_interval_seconds)
        while not stop_event.is_set():
            outcome = self.tick()
            logger.debug("Tick finished: %s", outcome)
            stop_event.wait(self.settings.poll_interval_seconds)
        logger.info("Order automation stopped")

    def _process(self, queue: FulfillmentQueue, item: FulfillmentQueueItem) -> str:
        placed = recorded_placement(item)
        if placed is not None:
            logger.warning(
                "Order %s was already placed as %s on an earlier attempt, finishing write-back",
                item.order_id,
                placed.order_number,
            )
        else:
            logger.info("Processing queue item %s for order %s", item.id, item.order_id)
            try:
                queue.start_attempt(item)
                with self.driver_factory() as driver:
                    saga = OrderSaga(driver, on_step_completed=lambda step: queue.record_step(item, step))
                    placed = saga.run(dict(item.payload or {}))
            except LeaseLostError:
                raise
            except Exception as exc:
                logger.exception("Order %s failed on the source site", item.order_id)
                status = queue.fail(item, str(exc))
                if status == "failed":
                    self.notifier.notify(
                        "order_failed",
                        "Source order failed",
                        f"Order {item.order_id} could not be placed after {item.retry_count} attempts: {item.error_message}",
                        queue_item_id=item.id,
                        order_id=item.order_id,
                    )
                return status

            # A reclaimed item with a recorded placement goes straight to complete().
            queue.record_placement(item, placed)

        queue.complete(item, placed)
        self.notifier.notify(
            "order_placed",
            "Source order placed",
            f"Order {item.order_id} successfully placed as {placed.order_number}",
            queue_item_id=item.id,
            order_id=item.order_id,
            source_order_number=placed.order_number,
        )
        logger.info("Order %s completed as %s", item.order_id, placed.order_number)
        return COMPLETED
