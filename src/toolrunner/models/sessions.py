"""Pydantic models for session API requests and responses."""

from typing import Any

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for creating a new session."""

    name: str | None = Field(None, description="Display name for the session")
    start: bool = Field(
        False, description="Start the session immediately after creating it"
    )


class RenameSessionRequest(BaseModel):
    """Request body for renaming a session."""

    name: str = Field(..., min_length=1, description="New display name")


class SessionResponse(BaseModel):
    """Response model for a single session."""

    session_id: str
    name: str
    created_at: str
    last_activity: str
    is_active: bool
    error_count: int
    message_count: int
    turn_count: int
    runtime_seconds: int
    autonomous_running: bool = False


class SessionListResponse(BaseModel):
    """Response model for listing sessions."""

    sessions: list[SessionResponse]


class SessionStatsResponse(BaseModel):
    """Aggregate statistics across sessions."""

    total_sessions: int
    active_sessions: int
    max_sessions: int
    total_messages: int
    total_errors: int
    uptime_seconds: int


class ToolCallResponse(BaseModel):
    """A tool call carried on an assistant message."""

    id: str
    tool_name: str
    raw_arguments: str
    parsed_arguments: dict[str, Any] | None = None
    parse_error: str | None = None


class MessageResponse(BaseModel):
    """Response model for a single conversation turn."""

    turn_id: str
    role: str
    content: str | None = None
    tool_calls: list[ToolCallResponse] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    timestamp: str


class MessagesResponse(BaseModel):
    """Response model for getting session messages."""

    session_id: str
    messages: list[MessageResponse]


class AutonomousStartRequest(BaseModel):
    """Request body for starting the autonomous agent."""

    goal: str | None = Field(None, description="Optional goal included in every prompt")


class AutonomousStatusResponse(BaseModel):
    """Status of a session's autonomous agent."""

    session_id: str
    is_running: bool
    execution_count: int = 0
    error_count: int = 0
    runtime_seconds: int = 0
    context_size: int = 0
    recent_tool_calls: int = 0
    stop_reason: str | None = None
    last_decision: dict[str, Any] | None = None
