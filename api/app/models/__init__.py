from app.models.entities import (
    CapabilityToken,
    CatalogProduct,
    CustomerOrder,
    CustomerOrderItem,
    FulfillmentQueueItem,
    ImportedProduct,
    ImportJob,
)

__all__ = [
    "CapabilityToken",
    "CatalogProduct",
    "CustomerOrder",
    "CustomerOrderItem",
    "FulfillmentQueueItem",
    "ImportedProduct",
    "ImportJob",
]
