from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from worker.models import CustomerOrder, FulfillmentQueueItem

MAX_ERROR_LENGTH = 1000
PLACE_ORDER_STEP = "place_order"
CLAIM_CANDIDATES = 5

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def lease_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def next_backoff_seconds(retry_count: int, base_seconds: float, max_seconds: float) -> float:
    exponent = max(0, retry_count - 1)
    return min(max_seconds, base_seconds * (2**exponent))


class LeaseLostError(Exception):
    def __init__(self, item_id: str, owner: str) -> None:
        self.item_id = item_id
        self.owner = owner
        super().__init__(f"Lease on queue item {item_id} is no longer held by {owner}")


@dataclass(frozen=True)
class PlacedOrder:
    order_number: str
    tracking_number: str | None = None
    tracking_url: str | None = None


def recorded_placement(item: FulfillmentQueueItem) -> PlacedOrder | None:
    """The source order an earlier attempt already placed for this item, if any."""
    if PLACE_ORDER_STEP not in (item.saga_progress or []) or not item.source_order_number:
        return None
    return PlacedOrder(
        order_number=item.source_order_number,
        tracking_number=item.tracking_number,
        tracking_url=item.tracking_url,
    )


def _eligible(now: datetime):
    return or_(
        and_(
            FulfillmentQueueItem.status == "pending",
            or_(FulfillmentQueueItem.next_attempt_at.is_(None), FulfillmentQueueItem.next_attempt_at <= now),
        ),
        and_(
            FulfillmentQueueItem.status == "processing",
            or_(FulfillmentQueueItem.lease_expires_at.is_(None), FulfillmentQueueItem.lease_expires_at <= now),
        ),
    )


class FulfillmentQueue:
    """Claim-and-lease access to the fulfillment queue table.

    Every write after the claim is conditioned on ``lease_owner`` so a worker
    whose lease expired and was taken over cannot overwrite the new holder.
    """

    def __init__(
        self,
        db: Session,
        owner: str | None = None,
        lease_ttl_seconds: int = 600,
        retry_backoff_seconds: float = 60.0,
        retry_backoff_max_seconds: float = 3600.0,
    ) -> None:
        self.db = db
        self.owner = owner or lease_holder_id()
        self.lease_ttl_seconds = max(30, int(lease_ttl_seconds))
        self.retry_backoff_seconds = retry_backoff_seconds
        self.retry_backoff_max_seconds = retry_backoff_max_seconds

    def claim_next(self) -> FulfillmentQueueItem | None:
        now = utcnow()
        candidates = (
            self.db.execute(
                select(FulfillmentQueueItem.id)
                .where(_eligible(now))
                .order_by(FulfillmentQueueItem.created_at.asc())
                .limit(CLAIM_CANDIDATES)
            )
            .scalars()
            .all()
        )
        for item_id in candidates:
            result = self.db.execute(
                update(FulfillmentQueueItem)
                .where(FulfillmentQueueItem.id == item_id, _eligible(now))
                .values(
                    status="processing",
                    lease_owner=self.owner,
                    lease_expires_at=now + timedelta(seconds=self.lease_ttl_seconds),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            # rowcount is 1 if we won the row, 0 if another worker claimed it first.
            if result.rowcount == 1:
                item = self.db.get(FulfillmentQueueItem, item_id)
                self.db.refresh(item)
                logger.info("Claimed queue item %s for order %s (attempt %s)", item.id, item.order_id, item.retry_count + 1)
                return item
        return None

    def start_attempt(self, item: FulfillmentQueueItem) -> None:
        """Reset step progress; each attempt rebuilds the remote cart from scratch."""
        now = utcnow()
        self._write(
            item,
            saga_progress=[],
            lease_expires_at=now + timedelta(seconds=self.lease_ttl_seconds),
            updated_at=now,
        )
        self._commit(item)

    def record_placement(self, item: FulfillmentQueueItem, placed: PlacedOrder) -> None:
        progress = [step for step in (item.saga_progress or []) if step != PLACE_ORDER_STEP]
        progress.append(PLACE_ORDER_STEP)
        now = utcnow()
        self._write(
            item,
            saga_progress=progress,
            source_order_number=placed.order_number,
            tracking_number=placed.tracking_number,
            tracking_url=placed.tracking_url,
            lease_expires_at=now + timedelta(seconds=self.lease_ttl_seconds),
            updated_at=now,
        )
        self._commit(item)

    def record_step(self, item: FulfillmentQueueItem, step: str) -> None:
        progress = list(item.saga_progress or [])
        if step in progress:
            return
        progress.append(step)
        now = utcnow()
        self._write(
            item,
            saga_progress=progress,
            lease_expires_at=now + timedelta(seconds=self.lease_ttl_seconds),
            updated_at=now,
        )
        self._commit(item)

    def complete(self, item: FulfillmentQueueItem, placed: PlacedOrder) -> None:
        now = utcnow()
        self._write(
            item,
            status="completed",
            source_order_number=placed.order_number,
            tracking_number=placed.tracking_number,
            tracking_url=placed.tracking_url,
            error_message=None,
            processed_at=now,
            lease_owner=None,
            lease_expires_at=None,
            updated_at=now,
        )

        order = self.db.get(CustomerOrder, item.order_id)
        if order is None:
            logger.warning("Customer order %s vanished before tracking write-back", item.order_id)
        else:
            order.source_order_number = placed.order_number
            order.tracking_number = placed.tracking_number
            order.tracking_url = placed.tracking_url
            order.fulfilled_at = now
        self._commit(item)

    def fail(self, item: FulfillmentQueueItem, error: str) -> str:
        """Record a failed attempt; returns the resulting status."""
        now = utcnow()
        retry_count = (item.retry_count or 0) + 1
        values: dict[str, object] = {
            "retry_count": retry_count,
            "error_message": error[:MAX_ERROR_LENGTH],
            "lease_owner": None,
            "lease_expires_at": None,
            "updated_at": now,
        }
        if retry_count < item.max_retries:
            delay = next_backoff_seconds(retry_count, self.retry_backoff_seconds, self.retry_backoff_max_seconds)
            values.update(status="pending", next_attempt_at=now + timedelta(seconds=delay))
            logger.warning(
                "Queue item %s failed attempt %s/%s, retrying in %ss: %s",
                item.id,
                retry_count,
                item.max_retries,
                delay,
                error,
            )
        else:
            values.update(status="failed", processed_at=now)
            logger.error("Queue item %s failed permanently after %s attempts: %s", item.id, retry_count, error)
        self._write(item, **values)
        self._commit(item)
        return str(values["status"])

    def _write(self, item: FulfillmentQueueItem, **values: object) -> None:
        result = self.db.execute(
            update(FulfillmentQueueItem)
            .where(FulfillmentQueueItem.id == item.id, FulfillmentQueueItem.lease_owner == self.owner)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise LeaseLostError(item.id, self.owner)

    def _commit(self, item: FulfillmentQueueItem) -> None:
        self.db.commit()
        self.db.refresh(item)

