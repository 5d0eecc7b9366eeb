from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_IMPORT_PERMISSIONS = ["import:products", "import:approve"]


class TokenIssueRequest(BaseModel):
    organization_id: str
    user_id: str
    name: str | None = None
    permissions: list[str] = Field(default_factory=lambda: list(DEFAULT_IMPORT_PERMISSIONS))
    ttl_days: int | None = Field(default=None, ge=1, le=365)


class TokenIssueResponse(BaseModel):
    id: str
    token: str
    organization_id: str
    user_id: str
    permissions: list[str]
    expires_at: datetime


class FulfillmentQueueItemOut(BaseModel):
    id: str
    organization_id: str
    order_id: str
    status: str
    retry_count: int
    max_retries: int
    error_message: str | None = None
    source_order_number: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    next_attempt_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    processed_at: datetime | None = None


class ImportJobSummaryOut(BaseModel):
    id: str
    organization_id: str
    status: str
    total_products: int
    processed: int
    successful: int
    failed: int
    skipped: int
    started_at: str
    completed_at: str | None
