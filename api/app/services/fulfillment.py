from __future__ import annotations

import logging
from collections import OrderedDict

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ApiError, AppHTTPException, not_found
from app.models import CatalogProduct, CustomerOrder, FulfillmentQueueItem
from app.schemas.admin import FulfillmentQueueItemOut
from app.schemas.orders import FulfillmentEnqueueResponse
from app.services.tokens import Capability

logger = logging.getLogger(__name__)

QUEUED_NOTE = "auto-order queued on source platform"


def build_shipping_address(address: dict[str, object]) -> dict[str, str]:
    def _get(*keys: str) -> str:
        for key in keys:
            value = address.get(key)
            if value:
                return str(value)
        return ""

    return {
        "first_name": _get("first_name", "firstName"),
        "last_name": _get("last_name", "lastName"),
        "address_1": _get("address_line1", "addressLine1", "address_1"),
        "address_2": _get("address_line2", "addressLine2", "address_2"),
        "city": _get("city"),
        "state": _get("state"),
        "postcode": _get("postal_code", "postalCode", "postcode"),
        "country": _get("country"),
        "phone": _get("phone"),
    }


def _find_queue_item(db: Session, organization_id: str, order_id: str) -> FulfillmentQueueItem | None:
    return db.execute(
        select(FulfillmentQueueItem).where(
            FulfillmentQueueItem.organization_id == organization_id,
            FulfillmentQueueItem.order_id == order_id,
        )
    ).scalar_one_or_none()


def enqueue_for_order(db: Session, capability: Capability, order_id: str) -> FulfillmentEnqueueResponse:
    settings = get_settings()
    order = db.get(CustomerOrder, order_id)
    if order is None or order.organization_id != capability.organization_id:
        raise not_found("Order not found", order_id=order_id)
    if order.status != "completed":
        raise AppHTTPException(
            status_code=409,
            error=ApiError(code="order_not_completed", message="Only completed orders can be fulfilled", details={"status": order.status}),
        )

    existing = _find_queue_item(db, order.organization_id, order.id)
    if existing is not None:
        return FulfillmentEnqueueResponse(
            already_queued=True,
            queue_item_id=existing.id,
            source_products_count=len(existing.payload.get("items", [])),
            message="Order already queued for automatic placement",
        )

    product_ids = [item.product_id for item in order.items]
    source_products = {
        product.id: product
        for product in db.execute(
            select(CatalogProduct).where(
                CatalogProduct.id.in_(product_ids),
                CatalogProduct.organization_id == order.organization_id,
                CatalogProduct.source_platform == settings.source_platform,
            )
        ).scalars()
    }
    if not source_products:
        logger.info("No %s products in order %s; nothing to fulfill", settings.source_platform, order.id)
        return FulfillmentEnqueueResponse(skipped=True, message=f"No {settings.source_platform} products in this order")

    quantities: OrderedDict[str, int] = OrderedDict()
    for item in order.items:
        if item.product_id in source_products:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + max(1, item.quantity or 1)

    payload = {
        "order_reference": order.id,
        "items": [
            {
                "product_id": source_products[product_id].source_product_id,
                "product_url": source_products[product_id].source_url,
                "quantity": quantity,
            }
            for product_id, quantity in quantities.items()
        ],
        "shipping_address": build_shipping_address(order.shipping_address or {}),
    }
    queue_item = FulfillmentQueueItem(
        organization_id=order.organization_id,
        order_id=order.id,
        payload=payload,
        status="pending",
        retry_count=0,
        max_retries=settings.default_max_retries,
        saga_progress=[],
    )
    db.add(queue_item)
    order.internal_note = f"{order.internal_note}\n{QUEUED_NOTE}" if order.internal_note else QUEUED_NOTE
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = _find_queue_item(db, capability.organization_id, order_id)
        if existing is None:
            raise
        return FulfillmentEnqueueResponse(
            already_queued=True,
            queue_item_id=existing.id,
            source_products_count=len(existing.payload.get("items", [])),
            message="Order already queued for automatic placement",
        )

    logger.info("Queued order %s with %s source products as %s", order.id, len(quantities), queue_item.id)
    return FulfillmentEnqueueResponse(
        queue_item_id=queue_item.id,
        source_products_count=len(quantities),
        message="Order queued for automatic placement",
    )


def list_queue_items(db: Session, status: str | None = None, limit: int = 50) -> list[FulfillmentQueueItemOut]:
    stmt = select(FulfillmentQueueItem)
    if status:
        stmt = stmt.where(FulfillmentQueueItem.status == status)
    rows = db.execute(stmt.order_by(FulfillmentQueueItem.created_at.desc()).limit(limit)).scalars().all()
    return [
        FulfillmentQueueItemOut(
            id=row.id,
            organization_id=row.organization_id,
            order_id=row.order_id,
            status=row.status,
            retry_count=row.retry_count,
            max_retries=row.max_retries,
            error_message=row.error_message,
            source_order_number=row.source_order_number,
            tracking_number=row.tracking_number,
            tracking_url=row.tracking_url,
            next_attempt_at=row.next_attempt_at,
            payload=dict(row.payload or {}),
            created_at=row.created_at,
            processed_at=row.processed_at,
        )
        for row in rows
    ]
