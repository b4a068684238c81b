"""Conversation turns and per-session conversation state."""

from toolrunner.conversation.state import ConversationState
from toolrunner.conversation.types import (
    ConversationTurn,
    Role,
    ToolCallRequest,
    ToolExecutionResult,
)

__all__ = [
    "ConversationState",
    "ConversationTurn",
    "Role",
    "ToolCallRequest",
    "ToolExecutionResult",
]
