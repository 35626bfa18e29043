"""
Mapping from scheduling errors to HTTP errors.

NotFoundError -> 404, ValidationError -> 400, ConflictError -> 409 (the body
carries the conflict kind), SchedulingTimeoutError -> 503 (safe to retry).
"""

from typing import Any, Dict

from fastapi import HTTPException, status

from core.exceptions import (
    ConflictError,
    NotFoundError,
    PartialFailureError,
    SchedulingError,
    SchedulingTimeoutError,
    ValidationError,
)


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Convert a scheduling error into the HTTPException returned to the client."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, ConflictError):
        detail: Dict[str, Any] = {"message": str(error), "conflict": error.result.to_dict()}
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(error, SchedulingTimeoutError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(error),
            headers={"Retry-After": "1"},
        )
    if isinstance(error, PartialFailureError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(error), "outcomes": [outcome.to_dict() for outcome in error.outcomes]},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
