from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import not_found
from app.models import CapabilityToken
from app.schemas.admin import TokenIssueRequest, TokenIssueResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capability:
    token_id: str
    organization_id: str
    user_id: str
    permissions: frozenset[str]

    def allows(self, permission: str) -> bool:
        return permission in self.permissions


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(db: Session, payload: TokenIssueRequest) -> TokenIssueResponse:
    settings = get_settings()
    token = secrets.token_urlsafe(32)
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(days=payload.ttl_days or settings.token_ttl_days)
    row = CapabilityToken(
        organization_id=payload.organization_id,
        user_id=payload.user_id,
        token_hash=hash_token(token),
        name=payload.name or f"Importer token - {now.isoformat()}",
        permissions=sorted(set(payload.permissions)),
        is_active=True,
        expires_at=expires_at,
    )
    db.add(row)
    db.commit()
    logger.info("Issued capability token %s for organization %s", row.id, row.organization_id)
    return TokenIssueResponse(
        id=row.id,
        token=token,
        organization_id=row.organization_id,
        user_id=row.user_id,
        permissions=list(row.permissions),
        expires_at=expires_at,
    )


def resolve_token(db: Session, token: str) -> Capability | None:
    row = db.execute(
        select(CapabilityToken).where(CapabilityToken.token_hash == hash_token(token), CapabilityToken.is_active.is_(True))
    ).scalar_one_or_none()
    if row is None:
        return None

    now = datetime.now(timezone.utc)
    expires_at = row.expires_at if row.expires_at.tzinfo else row.expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= now:
        return None

    row.last_used_at = now
    db.commit()
    return Capability(
        token_id=row.id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        permissions=frozenset(row.permissions or []),
    )


def revoke_token(db: Session, token_id: str) -> None:
    row = db.get(CapabilityToken, token_id)
    if row is None:
        raise not_found("Capability token not found", token_id=token_id)
    row.is_active = False
    db.commit()
    logger.info("Revoked capability token %s", token_id)
