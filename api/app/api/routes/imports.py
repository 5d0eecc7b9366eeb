from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_capability
from app.db.session import get_db
from app.schemas.imports import ImportJobOut, ImportRequest, ImportResponse
from app.services.imports import ImportCoordinator, get_import_job, to_import_response
from app.services.tokens import Capability

router = APIRouter(prefix="/v1/imports", tags=["imports"])


@router.post("", response_model=ImportResponse)
def import_batch(
    payload: ImportRequest,
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_capability("import:products")),
) -> ImportResponse:
    job = ImportCoordinator(db, capability).run(payload.products, payload.import_settings)
    return to_import_response(job, payload.import_settings)


@router.get("/{job_id}", response_model=ImportJobOut)
def import_job(
    job_id: str,
    db: Session = Depends(get_db),
    capability: Capability = Depends(require_capability("import:products")),
) -> ImportJobOut:
    return get_import_job(db, capability, job_id)
