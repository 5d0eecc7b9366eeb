from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_capability
from app.db.session import get_db
from app.schemas.orders import FulfillmentEnqueueResponse
from app.services.fulfillment import enqueue_for_order
from app.services.tokens import Capability

router = APIRouter(prefix="/v1/orders", tags=["orders"])


@router.post("/{order_id}/fulfillment", response_model=FulfillmentEnqueueResponse)
def enqueue_fulfillment(
    order_id: str,
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_capability("orders:fulfill")),
) -> FulfillmentEnqueueResponse:
    return enqueue_for_order(db, capability, order_id)
