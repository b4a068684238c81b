"""Pydantic models for API request and response schemas.

This package contains all Pydantic models used for validating and
serializing API requests and responses across all endpoints.
"""

from toolrunner.models.chat import ChatRequest, ChatResponse
from toolrunner.models.health import HealthResponse
from toolrunner.models.sessions import (
    CreateSessionRequest,
    MessageResponse,
    MessagesResponse,
    RenameSessionRequest,
    SessionListResponse,
    SessionResponse,
    SessionStatsResponse,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "CreateSessionRequest",
    "HealthResponse",
    "MessageResponse",
    "MessagesResponse",
    "RenameSessionRequest",
    "SessionListResponse",
    "SessionResponse",
    "SessionStatsResponse",
]
