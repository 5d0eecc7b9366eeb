from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.api.deps import require_admin_token
from app.db.session import get_db
from app.schemas.admin import FulfillmentQueueItemOut, ImportJobSummaryOut, TokenIssueRequest, TokenIssueResponse
from app.services.fulfillment import list_queue_items
from app.services.imports import list_import_jobs
from app.services.tokens import issue_token, revoke_token

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


@router.post("/tokens", response_model=TokenIssueResponse, status_code=201)
def create_token(payload: TokenIssueRequest, db: Session = Depends(get_db)) -> TokenIssueResponse:
    return issue_token(db, payload)


@router.delete("/tokens/{token_id}", status_code=204)
def delete_token(token_id: str, db: Session = Depends(get_db)) -> Response:
    revoke_token(db, token_id)
    return Response(status_code=204)


@router.get("/fulfillment-queue", response_model=list[FulfillmentQueueItemOut])
def fulfillment_queue(
    status: Literal["pending", "processing", "completed", "failed"] | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[FulfillmentQueueItemOut]:
    return list_queue_items(db, status=status, limit=limit)


@router.get("/import-jobs", response_model=list[ImportJobSummaryOut])
def import_jobs(limit: int = Query(default=50, ge=1, le=500), db: Session = Depends(get_db)) -> list[ImportJobSummaryOut]:
    return list_import_jobs(db, limit=limit)
