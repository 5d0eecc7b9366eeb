from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import require_capability
from app.core.errors import ApiError, AppHTTPException, ApprovalStateError
from app.db.session import get_db
from app.schemas.approvals import ImportedProductOut
from app.services.approvals import (
    approve_imported_product,
    list_imported_products,
    reject_imported_product,
    to_imported_product_out,
)
from app.services.tokens import Capability

router = APIRouter(prefix="/v1/imported-products", tags=["approvals"])

require_approver = require_capability("import:approve")


def _conflict(exc: ApprovalStateError) -> AppHTTPException:
    return AppHTTPException(
        status_code=409,
        error=ApiError(
            code="invalid_transition",
            message=str(exc),
            details={"approval_status": exc.current_status, "requested": exc.requested},
        ),
    )


@router.get("", response_model=list[ImportedProductOut])
def imported_products(
    status: Literal["pending", "approved", "rejected"] | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_approver),
) -> list[ImportedProductOut]:
    return list_imported_products(db, capability, approval_status=status, limit=limit)


@router.post("/{imported_product_id}/approve", response_model=ImportedProductOut)
def approve(
    imported_product_id: str,
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_approver),
) -> ImportedProductOut:
    try:
        imported = approve_imported_product(db, capability, imported_product_id)
    except ApprovalStateError as exc:
        raise _conflict(exc) from exc
    return to_imported_product_out(imported)


@router.post("/{imported_product_id}/reject", response_model=ImportedProductOut)
def reject(
    imported_product_id: str,
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_approver),
) -> ImportedProductOut:
    try:
        imported = reject_imported_product(db, capability, imported_product_id)
    except ApprovalStateError as exc:
        raise _conflict(exc) from exc
    return to_imported_product_out(imported)
