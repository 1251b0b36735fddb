"""Error taxonomy for the moderation workflow.

Every error is an ``HTTPException`` so services can raise them directly and
FastAPI turns them into the matching status code. Unexpected exceptions are
handled in ``app.main`` and masked as a generic 500.
"""
from typing import Any

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Malformed or missing input. ``detail`` carries field-level errors."""

    def __init__(self, errors: Any):
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=errors)


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Admin access required"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Event not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class NotFoundOrUnauthorized(NotFound):
    """Owner-scoped miss: the event is absent or belongs to someone else."""

    def __init__(self):
        super().__init__(detail="Event not found or unauthorized")


class InvalidState(HTTPException):
    def __init__(self, detail: str = "Event is not in pending status"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class InvalidOrExpiredToken(HTTPException):
    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
