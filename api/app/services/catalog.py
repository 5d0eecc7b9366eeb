from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from app.models import CatalogProduct, ImportedProduct


def publish_imported_product(db: Session, imported: ImportedProduct, source_platform: str) -> CatalogProduct:
    data = imported.processed_data or {}
    product = CatalogProduct(
        organization_id=imported.organization_id,
        name=str(data.get("name") or ""),
        description=str(data.get("description") or ""),
        price=Decimal(str(data.get("price", 0))),
        currency=str(data.get("currency") or "USD"),
        images=list(data.get("images") or []),
        tags=list(data.get("tags") or []),
        is_active=True,
        source_platform=source_platform,
        source_product_id=imported.source_product_id,
        source_url=imported.source_url,
    )
    db.add(product)
    db.flush()
    imported.product_id = product.id
    return product
