from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class RawProduct(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    url: str
    name: str
    price: float
    original_price: float | None = None
    currency: str = "USD"
    description: str = ""
    images: list[str] = Field(default_factory=list)
    variants: list[dict[str, Any]] = Field(default_factory=list)
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    rating: float | None = None
    reviews_count: int | None = None


class PriceAdjustment(BaseModel):
    type: Literal["percentage", "fixed"]
    value: float


class ImportSettings(BaseModel):
    auto_approve: bool = False
    price_adjustment: PriceAdjustment | None = None
    category_mapping: dict[str, str] = Field(default_factory=dict)


class ImportRequest(BaseModel):
    # Validated one record at a time by the import coordinator.
    products: list[dict[str, Any]]
    import_settings: ImportSettings | None = None


class ImportResponse(BaseModel):
    import_job_id: str
    status: str
    total_products: int
    processed: int
    successful: int
    failed: int
    skipped: int
    errors: list[str]
    auto_approved: int
    pending_approval: int


class ImportJobOut(BaseModel):
    id: str
    organization_id: str
    status: str
    total_products: int
    processed: int
    successful: int
    failed: int
    skipped: int
    errors: list[str]
    started_at: datetime
    completed_at: datetime | None = None
