from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

ApprovalStatus = Literal["pending", "approved", "rejected"]


class ImportedProductOut(BaseModel):
    id: str
    import_job_id: str
    source_url: str
    source_product_id: str | None = None
    approval_status: ApprovalStatus
    processed_data: dict[str, Any] = Field(default_factory=dict)
    product_id: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    created_at: datetime
