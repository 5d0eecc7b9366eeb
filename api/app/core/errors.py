from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException


@dataclass
class ApiError:
    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class AppHTTPException(HTTPException):
    def __init__(self, status_code: int, error: ApiError):
        super().__init__(status_code=status_code, detail=error.to_dict())


def not_found(message: str, **details: Any) -> AppHTTPException:
    return AppHTTPException(status_code=404, error=ApiError(code="not_found", message=message, details=details or None))


class ApprovalStateError(Exception):
    """Raised when an imported product is asked to leave a terminal approval state."""

    def __init__(self, imported_product_id: str, current_status: str, requested: str) -> None:
        self.imported_product_id = imported_product_id
        self.current_status = current_status
        self.requested = requested
        super().__init__(f"Imported product {imported_product_id} is already {current_status}; cannot {requested}")
