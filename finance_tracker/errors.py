"""Exception types surfaced by the API as JSON error responses."""

from __future__ import annotations

from typing import Any, Dict, Optional


class APIError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status = 500

    def __init__(self, message: str, status: Optional[int] = None, **payload: Any) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.payload = payload

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.payload)
        return body


class ValidationError(APIError):
    status = 400


class AuthenticationError(APIError):
    status = 401


class ForbiddenError(APIError):
    status = 403


class QuotaExceededError(ForbiddenError):
    """Raised by the feature-limit gate before an insert or import begins."""

    def __init__(self, limit: int, current: int) -> None:
        super().__init__("Transaction limit reached", limit=limit, current=current)
        self.limit = limit
        self.current = current


class NotFoundError(APIError):
    status = 404


class ConflictError(APIError):
    status = 409


class ImportValidationError(ValidationError):
    """The import batch is structurally unusable (not a list, or empty)."""

    def __init__(self, message: str = "Transactions array required") -> None:
        super().__init__(message)


class ImportFailedError(APIError):
    """Storage failed mid-import; the whole batch was rolled back."""

    def __init__(self, message: str = "Failed to import transactions") -> None:
        super().__init__(message)
