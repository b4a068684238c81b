"""Debug event tracing for conversation flows."""

from toolrunner.debug.events import (
    ConversationFlow,
    DebugEvent,
    DebugEventManager,
    EventType,
)

__all__ = ["ConversationFlow", "DebugEvent", "DebugEventManager", "EventType"]
