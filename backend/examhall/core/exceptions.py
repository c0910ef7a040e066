"""
Domain error taxonomy for the attempt lifecycle.

Every error carries a stable ``kind`` and the HTTP status it maps to at the
request boundary. Services raise these; only the FastAPI exception handler
in examhall.main turns them into responses, so the services stay usable
from scripts and background jobs.
"""
from typing import Any, Dict, Optional

from fastapi import status


class AttemptError(Exception):
    """Base class for recoverable, request-scoped errors."""

    kind: str = "AttemptError"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, extra: Optional[Dict[str, Any]] = None):
        self.detail = detail
        self.extra = extra or {}
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable body for the error response."""
        body: Dict[str, Any] = {"detail": self.detail, "kind": self.kind}
        body.update(self.extra)
        return body


class Unauthorized(AttemptError):
    """Missing or invalid caller identity or role."""

    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFound(AttemptError):
    """Attempt, question or test absent, or not owned by the caller."""

    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(AttemptError):
    """Write attempted on an attempt that is no longer IN_PROGRESS."""

    kind = "InvalidState"
    status_code = status.HTTP_409_CONFLICT


class AlreadySubmitted(InvalidState):
    """
    Finalize lost the race (or ran twice) for the same attempt.

    Benign: the attempt is already scored. Callers that drive finalize
    read the stored result back instead of surfacing this error.
    """

    kind = "AlreadySubmitted"

    def __init__(self, detail: str, attempt_id: str):
        super().__init__(detail)
        self.attempt_id = attempt_id


class ValidationError(AttemptError):
    """Malformed question or option reference."""

    kind = "ValidationError"
    status_code = 422


class StoreUnavailable(AttemptError):
    """The backing store failed mid-operation; nothing was changed."""

    kind = "StoreUnavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
