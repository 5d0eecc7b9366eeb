from collections.abc import Callable

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import ApiError, AppHTTPException
from app.db.session import get_db
from app.services.tokens import Capability, resolve_token

bearer = HTTPBearer(auto_error=False)


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if x_admin_token != settings.admin_token:
        raise AppHTTPException(status_code=401, error=ApiError(code="unauthorized", message="Invalid admin token"))


def require_capability(permission: str) -> Callable[..., Capability]:
    def _dependency(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
        db: Session = Depends(get_db),
    ) -> Capability:
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise AppHTTPException(
                status_code=401,
                error=ApiError(code="unauthorized", message="Missing or invalid authorization header"),
            )
        capability = resolve_token(db, credentials.credentials)
        if capability is None:
            raise AppHTTPException(status_code=401, error=ApiError(code="unauthorized", message="Invalid or expired token"))
        if not capability.allows(permission):
            raise AppHTTPException(
                status_code=403,
                error=ApiError(code="forbidden", message="Insufficient permissions", details={"required": permission}),
            )
        return capability

    return _dependency
