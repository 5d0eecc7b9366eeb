import os

os.environ.setdefault("DROPLINE_DATABASE_URL", "sqlite://")

from collections.abc import Callable
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.main import app
from app.models import CatalogProduct, CustomerOrder, CustomerOrderItem
from app.schemas.admin import TokenIssueRequest
from app.services.tokens import issue_token

ORG_ID = "org-aurelio"
OTHER_ORG_ID = "org-other"
USER_ID = "user-1"
ALL_PERMISSIONS = ["import:products", "import:approve", "orders:fulfill"]


@pytest.fixture()
def session() -> Session:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session: Session) -> TestClient:
    from app.db.session import get_db

    def _get_db() -> Session:
        return session

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_headers(session: Session) -> Callable[..., dict[str, str]]:
    def _make(organization_id: str = ORG_ID, permissions: list[str] | None = None, ttl_days: int | None = None) -> dict[str, str]:
        issued = issue_token(
            session,
            TokenIssueRequest(
                organization_id=organization_id,
                user_id=USER_ID,
                permissions=permissions if permissions is not None else list(ALL_PERMISSIONS),
                ttl_days=ttl_days,
            ),
        )
        return {"Authorization": f"Bearer {issued.token}"}

    return _make


@pytest.fixture()
def headers(make_headers) -> dict[str, str]:
    return make_headers()


def _raw_product(index: int, **overrides) -> dict[str, object]:
    payload: dict[str, object] = {
        "id": f"shein-{index}",
        "url": f"https://www.shein.com/item-{index}-p-{1000 + index}.html",
        "name": f"Linen Lamp {index}",
        "price": 100.0,
        "currency": "USD",
        "description": "Soft light",
        "images": [f"https://img.ltwebstatic.com/images3_pi/{index}.jpg"],
        "category": "Lighting",
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def raw_product() -> Callable[..., dict[str, object]]:
    return _raw_product


@pytest.fixture()
def source_order(session: Session) -> CustomerOrder:
    lamp = CatalogProduct(
        organization_id=ORG_ID,
        name="Linen Lamp",
        price=Decimal("120.00"),
        source_platform="shein",
        source_product_id="10012",
        source_url="https://www.shein.com/linen-lamp-p-10012.html",
    )
    vase = CatalogProduct(
        organization_id=ORG_ID,
        name="Stone Vase",
        price=Decimal("35.00"),
        source_platform="shein",
        source_product_id="10044",
        source_url="https://www.shein.com/stone-vase-p-10044.html",
    )
    own = CatalogProduct(organization_id=ORG_ID, name="House Candle", price=Decimal("12.00"))
    session.add_all([lamp, vase, own])
    session.flush()

    order = CustomerOrder(
        organization_id=ORG_ID,
        status="completed",
        shipping_address={
            "first_name": "Ada",
            "last_name": "Byron",
            "address_line1": "12 Marsh Lane",
            "city": "Leeds",
            "postal_code": "LS1 4AP",
            "country": "GB",
            "phone": "+44 113 000 0000",
        },
        items=[
            CustomerOrderItem(product_id=lamp.id, quantity=2),
            CustomerOrderItem(product_id=own.id, quantity=1),
            CustomerOrderItem(product_id=vase.id, quantity=1),
        ],
    )
    session.add(order)
    session.commit()
    return order
