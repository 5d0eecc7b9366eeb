from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from worker.config import WorkerSettings
from worker.models import Base, CustomerOrder, FulfillmentQueueItem

ORG_ID = "org-aurelio"


@pytest.fixture()
def session_factory(tmp_path) -> sessionmaker:
    # File-backed so the worker's sessions and the test session use separate connections.
    engine = create_engine(f"sqlite:///{tmp_path / 'worker.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


@pytest.fixture()
def session(session_factory) -> Session:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def settings() -> WorkerSettings:
    return WorkerSettings(
        notifications_enabled=False,
        poll_interval_seconds=0.01,
        lease_ttl_seconds=600,
        retry_backoff_seconds=60,
        retry_backoff_max_seconds=3600,
        max_products_per_batch=50,
        import_max_retries=2,
    )


@pytest.fixture()
def make_queue_item(session: Session) -> Callable[..., FulfillmentQueueItem]:
    created = {"count": 0}

    def _make(line_items: int = 3, max_retries: int = 3, **overrides) -> FulfillmentQueueItem:
        order = CustomerOrder(organization_id=ORG_ID, status="completed", shipping_address={"city": "Leeds"})
        session.add(order)
        session.flush()

        created["count"] += 1
        payload = {
            "order_reference": order.id,
            "items": [
                {
                    "product_id": str(10000 + index),
                    "product_url": f"https://www.shein.com/item-p-{10000 + index}.html",
                    "quantity": index + 1,
                }
                for index in range(line_items)
            ],
            "shipping_address": {
                "first_name": "Ada",
                "last_name": "Byron",
                "address_1": "12 Marsh Lane",
                "address_2": "",
                "city": "Leeds",
                "state": "",
                "postcode": "LS1 4AP",
                "country": "GB",
                "phone": "+44 113 000 0000",
            },
        }
        values = {
            "organization_id": ORG_ID,
            "order_id": order.id,
            "payload": payload,
            "status": "pending",
            "retry_count": 0,
            "max_retries": max_retries,
            "saga_progress": [],
            "created_at": datetime.now(timezone.utc) - timedelta(minutes=10) + timedelta(seconds=created["count"]),
        }
        values.update(overrides)
        item = FulfillmentQueueItem(**values)
        session.add(item)
        session.commit()
        return item

    return _make
