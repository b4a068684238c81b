"""Pydantic models for chat API requests and responses."""

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat/{session_id}."""

    message: str = Field(..., description="The user message to send")

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"message": "Calculate 10 + 5"}]}
    )


class ChatResponse(BaseModel):
    """Response body for the chat endpoint.

    The reply is the final assistant text. When the run was aborted or the
    model failed, the reply explains what happened and error_count grows.
    """

    session_id: str = Field(description="The session ID")
    reply: str = Field(description="Final assistant text")
    state: str = Field(description="Last orchestrator state reached")
    model_calls: int = Field(description="Model calls made for this message")
    error_count: int = Field(description="Errors counted on the session so far")
    is_active: bool = Field(description="Whether the session is still active")
