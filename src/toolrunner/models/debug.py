"""Pydantic models for the debug trace API."""

from typing import Any

from pydantic import BaseModel, Field


class DebugEventResponse(BaseModel):
    """A single debug event."""

    id: str
    timestamp: int = Field(description="Epoch milliseconds")
    type: str
    payload: dict[str, Any]
    duration_ms: float | None = None
    parent_id: str | None = None
    session_id: str | None = None
    flow_id: str | None = None


class ConversationFlowResponse(BaseModel):
    """A flow of events produced by one user message."""

    id: str
    user_message: str
    timestamp: int
    events: list[DebugEventResponse]
    is_complete: bool
    total_duration_ms: int | None = None
    session_id: str | None = None


class DebugFlowsResponse(BaseModel):
    flows: list[ConversationFlowResponse]


class DebugEventsResponse(BaseModel):
    events: list[DebugEventResponse]


class TokenUsageResponse(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class DebugStatsResponse(BaseModel):
    """Aggregate statistics over the retained event log."""

    total_events: int
    total_flows: int
    active_flows: int
    event_type_counts: dict[str, int]
    token_usage: TokenUsageResponse
