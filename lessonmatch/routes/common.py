"""Shared route helpers: engine errors → HTTP, input validation."""

from datetime import datetime

from fastapi import HTTPException

from lessonmatch.services.errors import (
    AIServiceError,
    EngineError,
    InvalidTransition,
    NoCandidates,
    PersistenceFailure,
    RecordNotFound,
    RequestNotPending,
)


def http_error(exc: EngineError) -> HTTPException:
    if isinstance(exc, RecordNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (NoCandidates, InvalidTransition, RequestNotPending)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PersistenceFailure):
        return HTTPException(status_code=503, detail="Could not save the lesson. The request is unchanged, please retry.")
    if isinstance(exc, AIServiceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def validate_time_format(time_str: str) -> bool:
    """Validate HH:MM format."""
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        h, m = int(parts[0]), int(parts[1])
        return 0 <= h <= 23 and 0 <= m <= 59
    except (ValueError, AttributeError):
        return False


def validate_date_format(date_str: str) -> bool:
    """Validate YYYY-MM-DD format."""
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
        return True
    except (ValueError, TypeError):
        return False


def time_to_minutes(time_str: str) -> int:
    """Convert HH:MM to minutes since midnight."""
    h, m = map(int, time_str.split(":"))
    return h * 60 + m
