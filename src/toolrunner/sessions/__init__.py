"""Session management for toolrunner.

This package provides in-memory agent sessions and the SessionManager that
owns them.
"""

from toolrunner.sessions.manager import SessionManager
from toolrunner.sessions.session import AgentSession
from toolrunner.sessions.types import SessionInfo

__all__ = ["AgentSession", "SessionInfo", "SessionManager"]
