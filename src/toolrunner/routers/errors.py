"""Mapping of domain errors to structured HTTP errors."""

from typing import Any

from fastapi import HTTPException, status

from toolrunner.errors import (
    AutonomousAlreadyRunningError,
    CapacityExceededError,
    SessionError,
    SessionNotActiveError,
    SessionNotFoundError,
)


def http_error(
    status_code: int, code: str, message: str, details: dict[str, Any] | None = None
) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": details or {},
            }
        },
    )


def session_http_error(error: SessionError) -> HTTPException:
    """Convert a session management error into an HTTPException."""
    if isinstance(error, SessionNotFoundError):
        return http_error(
            status.HTTP_404_NOT_FOUND,
            "session_not_found",
            str(error),
            {"session_id": error.session_id},
        )
    if isinstance(error, SessionNotActiveError):
        return http_error(
            status.HTTP_409_CONFLICT,
            "session_not_active",
            str(error),
            {"session_id": error.session_id},
        )
    if isinstance(error, CapacityExceededError):
        return http_error(
            status.HTTP_409_CONFLICT,
            "capacity_exceeded",
            str(error),
            {"max_sessions": error.max_sessions},
        )
    if isinstance(error, AutonomousAlreadyRunningError):
        return http_error(
            status.HTTP_409_CONFLICT,
            "autonomous_already_running",
            str(error),
            {"session_id": error.session_id},
        )
    return http_error(status.HTTP_400_BAD_REQUEST, "session_error", str(error))
