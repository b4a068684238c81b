"""SessionManager for in-memory agent sessions.

This module provides the SessionManager class which handles:
- Creating sessions up to a configured maximum
- Starting, stopping, renaming and removing sessions
- Routing user messages to the right session
- Aggregate statistics across sessions

All sessions share the ToolCatalog, model client and DebugEventManager
passed in at construction.
"""

import logging
import time

from toolrunner.config import ToolRunnerSettings
from toolrunner.conversation.types import ConversationTurn
from toolrunner.debug.events import DebugEventManager
from toolrunner.errors import CapacityExceededError, SessionNotFoundError
from toolrunner.ollama.client import OllamaClient
from toolrunner.orchestration.decision import DecisionAgent
from toolrunner.sessions.session import AgentSession
from toolrunner.sessions.types import SessionInfo
from toolrunner.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns a bounded set of independent AgentSessions."""

    def __init__(
        self,
        settings: ToolRunnerSettings,
        model_client: OllamaClient,
        catalog: ToolCatalog,
        debug: DebugEventManager | None = None,
    ):
        """Initialize the SessionManager.

        Args:
            settings: Application settings
            model_client: Model client shared by all sessions
            catalog: Tool catalog shared by all sessions
            debug: Debug event manager shared by all sessions
        """
        self.settings = settings
        self.model_client = model_client
        self.catalog = catalog
        self.debug = debug
        self.max_sessions = settings.max_sessions
        self._sessions: dict[str, AgentSession] = {}
        self._created_total = 0
        self._started_at = time.monotonic()

    def create_session(self, name: str | None = None) -> str:
        """Create a new, inactive session.

        Args:
            name: Display name; defaults to "Session <n>"

        Returns:
            The new session ID

        Raises:
            CapacityExceededError: If max_sessions sessions already exist
        """
        if len(self._sessions) >= self.max_sessions:
            raise CapacityExceededError(self.max_sessions)

        self._created_total += 1
        session_id = AgentSession.generate_session_id()
        session = AgentSession(
            session_id=session_id,
            name=name or f"Session {self._created_total}",
            settings=self.settings,
            model_client=self.model_client,
            catalog=self.catalog,
            debug=self.debug,
        )
        self._sessions[session_id] = session

        logger.info(f"Created session {session_id} ({session.name})")
        return session_id

    def get_session(self, session_id: str) -> AgentSession:
        """Get a session by ID.

        Raises:
            SessionNotFoundError: If no such session exists
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def start_session(self, session_id: str) -> None:
        self.get_session(session_id).start()

    def stop_session(self, session_id: str) -> None:
        self.get_session(session_id).stop()

    def remove_session(self, session_id: str) -> None:
        """Stop and delete a session.

        Raises:
            SessionNotFoundError: If no such session exists
        """
        session = self.get_session(session_id)
        session.stop()
        del self._sessions[session_id]
        logger.info(f"Removed session {session_id} ({session.name})")

    def rename_session(self, session_id: str, name: str) -> None:
        self.get_session(session_id).rename(name)

    async def process_message(self, session_id: str, text: str) -> str:
        """Send a user message to a session.

        Returns:
            The assistant's reply

        Raises:
            SessionNotFoundError: If no such session exists
            SessionNotActiveError: If the session is not active
        """
        session = self.get_session(session_id)
        return await session.process_message(text)

    def get_conversation(self, session_id: str) -> list[ConversationTurn]:
        return self.get_session(session_id).conversation.turns

    def clear_history(self, session_id: str) -> None:
        self.get_session(session_id).clear_history()

    def get_session_info(self, session_id: str) -> SessionInfo:
        return self.get_session(session_id).info()

    def list_sessions(self) -> list[SessionInfo]:
        """List all sessions in creation order."""
        return [session.info() for session in self._sessions.values()]

    def start_autonomous(self, session_id: str, goal: str | None = None) -> DecisionAgent:
        return self.get_session(session_id).start_autonomous(goal)

    def stop_autonomous(self, session_id: str) -> bool:
        return self.get_session(session_id).stop_autonomous()

    def start_all(self) -> None:
        for session in self._sessions.values():
            session.start()

    def stop_all(self) -> None:
        for session in self._sessions.values():
            session.stop()

    async def shutdown(self) -> None:
        """Stop every session and cancel background agents."""
        for session in list(self._sessions.values()):
            await session.shutdown()
        logger.info(f"Session manager shut down ({len(self._sessions)} sessions)")

    def get_stats(self) -> dict[str, int]:
        sessions = list(self._sessions.values())
        return {
            "total_sessions": len(sessions),
            "active_sessions": sum(1 for s in sessions if s.is_active),
            "max_sessions": self.max_sessions,
            "total_messages": sum(s.message_count for s in sessions),
            "total_errors": sum(s.error_count for s in sessions),
            "uptime_seconds": round(time.monotonic() - self._started_at),
        }

    def __len__(self) -> int:
        return len(self._sessions)
