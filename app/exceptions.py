"""Exception taxonomy for the intake engine.

Every error a caller can act on carries an HTTP-equivalent status code and a
stable machine-readable code; the FastAPI handlers in app.main turn them into
JSON responses.
"""

from typing import Any, List, Optional


class IntakeError(Exception):
    """Base exception for the intake engine."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Any] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(IntakeError):
    """Raised when a required field is missing or malformed.

    Always raised before any mutation takes place.
    """

    def __init__(self, message: str = "Validation error", details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)


class NotFoundError(IntakeError):
    """Raised when the submission a request refers to does not exist."""

    def __init__(self, message: str = "submission not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ConflictError(IntakeError):
    """Raised when a contact matches more than one submission.

    Attributes:
        matches: IDs of the conflicting submissions, for manual resolution
    """

    def __init__(self, message: str, matches: List[int]):
        self.matches = list(matches)
        super().__init__(
            message,
            code="CONFLICT",
            status_code=409,
            details={"matches": self.matches},
        )


class InvalidToken(IntakeError):
    """Raised when a Step-B token is missing, malformed, expired or forged."""

    def __init__(self, message: str = "invalid or expired token", details: Optional[Any] = None):
        super().__init__(message, code="INVALID_TOKEN", status_code=401, details=details)


class LimitExceeded(IntakeError):
    """Raised when a resend would exceed the configured maximum."""

    def __init__(self, message: str = "max resends reached", details: Optional[Any] = None):
        super().__init__(message, code="LIMIT_EXCEEDED", status_code=429, details=details)


class TransportError(IntakeError):
    """Raised by messaging or object-storage adapters.

    Request paths log these and carry on; committed state is never undone
    because a downstream collaborator failed.
    """

    def __init__(self, message: str = "external service error", details: Optional[Any] = None):
        super().__init__(message, code="TRANSPORT_ERROR", status_code=502, details=details)


class PersistenceError(IntakeError):
    """Raised when a database transaction fails and has been rolled back."""

    def __init__(self, message: str = "database transaction failed", details: Optional[Any] = None):
        super().__init__(message, code="PERSISTENCE_ERROR", status_code=500, details=details)
