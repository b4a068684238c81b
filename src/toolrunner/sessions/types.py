"""Data types for session management."""

from dataclasses import dataclass


@dataclass
class SessionInfo:
    """Snapshot of a session's state.

    Attributes:
        session_id: Unique session identifier (10-char hex)
        name: Display name
        created_at: ISO-8601 creation time
        last_activity: ISO-8601 time of the last processed message or state change
        is_active: Whether the session accepts messages
        error_count: Model failures and aborted runs so far
        message_count: User messages processed
        turn_count: Turns currently held in the conversation
        runtime_seconds: Seconds since the session was last started, 0 when stopped
        autonomous_running: Whether the autonomous agent is running
    """

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
