from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ApprovalStateError, not_found
from app.models import ImportedProduct
from app.schemas.approvals import ImportedProductOut
from app.services.catalog import publish_imported_product
from app.services.tokens import Capability

logger = logging.getLogger(__name__)


def _load_for_capability(db: Session, capability: Capability, imported_product_id: str) -> ImportedProduct:
    imported = db.get(ImportedProduct, imported_product_id)
    if imported is None or imported.organization_id != capability.organization_id:
        raise not_found("Imported product not found", imported_product_id=imported_product_id)
    return imported


def approve_imported_product(db: Session, capability: Capability, imported_product_id: str) -> ImportedProduct:
    imported = _load_for_capability(db, capability, imported_product_id)

    if imported.approval_status == "rejected":
        raise ApprovalStateError(imported.id, imported.approval_status, "approve")
    if imported.approval_status == "approved" and imported.product_id:
        raise ApprovalStateError(imported.id, imported.approval_status, "approve")

    if imported.approval_status == "pending":
        imported.approval_status = "approved"
        imported.approved_at = datetime.now(timezone.utc)
        imported.approved_by = capability.user_id
    else:
        # Auto-approved earlier but never published to the catalog.
        logger.info("Publishing previously approved import %s without catalog product", imported.id)

    product = publish_imported_product(db, imported, get_settings().source_platform)
    db.commit()
    logger.info("Approved imported product %s as catalog product %s", imported.id, product.id)
    return imported


def reject_imported_product(db: Session, capability: Capability, imported_product_id: str) -> ImportedProduct:
    imported = _load_for_capability(db, capability, imported_product_id)
    if imported.approval_status != "pending":
        raise ApprovalStateError(imported.id, imported.approval_status, "reject")

    imported.approval_status = "rejected"
    imported.rejected_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Rejected imported product %s", imported.id)
    return imported


def list_imported_products(
    db: Session,
    capability: Capability,
    approval_status: str | None = None,
    limit: int = 50,
) -> list[ImportedProductOut]:
    stmt = select(ImportedProduct).where(ImportedProduct.organization_id == capability.organization_id)
    if approval_status:
        stmt = stmt.where(ImportedProduct.approval_status == approval_status)
    rows = db.execute(stmt.order_by(ImportedProduct.created_at.desc()).limit(limit)).scalars().all()
    return [to_imported_product_out(row) for row in rows]


def to_imported_product_out(imported: ImportedProduct) -> ImportedProductOut:
    return ImportedProductOut(
        id=imported.id,
        import_job_id=imported.import_job_id,
        source_url=imported.source_url,
        source_product_id=imported.source_product_id,
        approval_status=imported.approval_status,
        processed_data=dict(imported.processed_data or {}),
        product_id=imported.product_id,
        approved_at=imported.approved_at,
        approved_by=imported.approved_by,
        rejected_at=imported.rejected_at,
        created_at=imported.created_at,
    )
