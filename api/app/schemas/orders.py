from pydantic import BaseModel


class FulfillmentEnqueueResponse(BaseModel):
    success: bool = True
    skipped: bool = False
    already_queued: bool = False
    queue_item_id: str | None = None
    source_products_count: int = 0
    message: str
