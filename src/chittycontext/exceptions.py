"""Custom exceptions for ChittyContext."""

from typing import Optional


class ChittyContextError(Exception):
    """Base class for ChittyContext errors."""


class StoreError(ChittyContextError):
    """Raised when the key-value store cannot complete an operation."""

    def __init__(self, operation: str, key: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        message = f"Store {operation} failed for key {key!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ContextAccessError(ChittyContextError):
    """Raised at the request boundary to reject a request.

    Rendered by the API as ``{"error", "message", "code", "retryAfter"}``.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        code: str,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        self.status_code = status_code
        self.error = error
        self.code = code
        self.message = message
        self.retry_after = retry_after
        super().__init__(f"{code}: {error}")

    def to_dict(self) -> dict:
        body: dict = {"error": self.error, "code": self.code}
        if self.message is not None:
            body["message"] = self.message
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        return body
