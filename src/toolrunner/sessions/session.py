"""AgentSession: one conversation with its own orchestrator and loop guard.

This module provides the AgentSession class which handles:
- Processing user messages through the ToolCallOrchestrator
- Turning model failures and aborted runs into assistant replies
- Counting errors and stopping itself once too many accumulate
- Running the optional autonomous DecisionAgent in the background
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone

from toolrunner.config import ToolRunnerSettings
from toolrunner.conversation.state import ConversationState
from toolrunner.debug.events import DebugEventManager
from toolrunner.errors import (
    AutonomousAlreadyRunningError,
    ModelCallError,
    OrchestrationAborted,
    SessionNotActiveError,
)
from toolrunner.ollama.client import OllamaClient
from toolrunner.orchestration.context import BoundedExecutionContext
from toolrunner.orchestration.decision import DecisionAgent
from toolrunner.orchestration.dispatch import ToolDispatcher
from toolrunner.orchestration.loop_guard import LoopGuard
from toolrunner.orchestration.orchestrator import ToolCallOrchestrator
from toolrunner.sessions.types import SessionInfo
from toolrunner.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AgentSession:
    """A single session: conversation state, orchestrator and error counter.

    Messages are processed one at a time under the session lock. The
    autonomous agent takes the same lock for each decision it makes.
    """

    def __init__(
        self,
        session_id: str,
        name: str,
        settings: ToolRunnerSettings,
        model_client: OllamaClient,
        catalog: ToolCatalog,
        debug: DebugEventManager | None = None,
    ):
        """Initialize an AgentSession.

        Args:
            session_id: Unique session identifier (10-char hex)
            name: Display name
            settings: Application settings
            model_client: Shared model client
            catalog: Shared tool catalog
            debug: Shared debug event manager
        """
        self.session_id = session_id
        self.name = name
        self.settings = settings
        self.model_client = model_client
        self.debug = debug

        self.conversation = ConversationState(max_turns=settings.max_history_turns)
        if settings.system_prompt:
            self.conversation.set_system_prompt(settings.system_prompt)

        self.loop_guard = LoopGuard.from_settings(settings)
        self.dispatcher = ToolDispatcher(catalog, self.loop_guard, debug, session_id)
        self.orchestrator = ToolCallOrchestrator(
            model_client,
            self.dispatcher,
            model=settings.model,
            options=settings.generation_options(),
            max_iterations=settings.max_iterations,
            max_tool_errors=settings.max_tool_errors,
        )

        self.is_active = False
        self.error_count = 0
        self.message_count = 0
        self.created_at = _utc_now()
        self.last_activity = self.created_at
        self._started_at: float | None = None
        self._lock = asyncio.Lock()

        self.agent: DecisionAgent | None = None
        self._agent_task: asyncio.Task | None = None

    @staticmethod
    def generate_session_id() -> str:
        """Generate a new unique session ID.

        Returns:
            10-character hexadecimal string
        """
        return uuid.uuid4().hex[:10]

    def _log(self, level: int, message: str) -> None:
        logger.log(level, f"[{self.name}] {message}")

    def _touch(self) -> None:
        self.last_activity = _utc_now()

    def start(self) -> None:
        if self.is_active:
            return
        self.is_active = True
        self._started_at = time.monotonic()
        self._touch()
        self._log(logging.INFO, "Session started")

    def stop(self) -> None:
        if self.agent is not None:
            self.agent.stop()
        if self._agent_task is not None and not self._agent_task.done():
            self._agent_task.cancel()
        if not self.is_active:
            return
        self.is_active = False
        self._started_at = None
        self._touch()
        self._log(logging.INFO, "Session stopped")

    def rename(self, name: str) -> None:
        self._log(logging.INFO, f"Renamed to {name}")
        self.name = name
        self._touch()

    async def process_message(self, text: str) -> str:
        """Process a user message and return the assistant's reply.

        Model failures and aborted runs produce an explanatory reply rather
        than an exception; both count towards the session's error limit.

        Args:
            text: The user's message

        Returns:
            The final assistant text

        Raises:
            SessionNotActiveError: If the session is not active
        """
        if not self.is_active:
            raise SessionNotActiveError(self.session_id, self.name)

        async with self._lock:
            self._touch()
            self.message_count += 1
            if self.debug is not None:
                self.debug.start_conversation(text, session_id=self.session_id)

            self.conversation.add_user(text)
            try:
                reply = await self.orchestrator.run(self.conversation)
            except OrchestrationAborted as e:
                self._log(logging.WARNING, f"Run aborted ({e.reason}): {e.message}")
                reply = e.message
                self._record_failure(e.message, {"reason": e.reason})
                self.conversation.add_assistant(reply)
                self.loop_guard.reset()
            except ModelCallError as e:
                self._log(logging.ERROR, f"Model call failed: {e}")
                reply = f"I encountered an error: {e}. Please try again."
                self._record_failure(str(e), {"type": type(e).__name__})
                self.conversation.add_assistant(reply)
            except (Exception, asyncio.CancelledError) as e:
                self._interrupted(e)
                raise

            if self.debug is not None:
                self.debug.complete_conversation(reply, session_id=self.session_id)
            self._touch()
            return reply

    def _interrupted(self, error: BaseException) -> None:
        """Close out a message whose run ended with an unexpected exception."""
        if isinstance(error, asyncio.CancelledError):
            message = "Message processing was cancelled"
        else:
            message = f"Message processing failed: {type(error).__name__}: {error}"
        self._log(logging.ERROR, message)

        self.conversation.add_assistant(f"{message}.")
        self.loop_guard.reset()
        if self.debug is not None:
            self.debug.add_error(
                message, {"type": type(error).__name__}, session_id=self.session_id
            )
            self.debug.complete_conversation(f"{message}.", session_id=self.session_id)
        self._touch()

    def _record_failure(self, message: str, context: dict) -> None:
        if self.debug is not None:
            self.debug.add_error(message, context, session_id=self.session_id)

        self.error_count += 1
        if self.error_count > self.settings.max_errors:
            self._log(
                logging.WARNING,
                f"Too many errors ({self.error_count}), stopping session",
            )
            self.stop()

    def clear_history(self) -> None:
        self.conversation.clear(keep_system=True)
        self.loop_guard.reset()
        self._touch()
        self._log(logging.INFO, "History cleared")

    @property
    def autonomous_running(self) -> bool:
        return self.agent is not None and self.agent.is_running

    def start_autonomous(self, goal: str | None = None) -> DecisionAgent:
        """Start the autonomous decision agent in the background.

        Raises:
            SessionNotActiveError: If the session is not active
            AutonomousAlreadyRunningError: If the agent is already running
        """
        if not self.is_active:
            raise SessionNotActiveError(self.session_id, self.name)
        if self._agent_task is not None and not self._agent_task.done():
            raise AutonomousAlreadyRunningError(self.session_id)

        self.agent = DecisionAgent(
            self.model_client,
            self.dispatcher,
            model=self.settings.model,
            options=self.settings.generation_options(),
            context=BoundedExecutionContext(self.settings.context_max_entries),
            goal=goal,
            max_executions=self.settings.autonomous_max_executions,
            execution_delay=self.settings.execution_delay,
            min_delay=self.settings.autonomous_min_delay,
            max_delay=self.settings.autonomous_max_delay,
            max_errors=self.settings.max_errors,
            lock=self._lock,
        )
        self.agent.start()
        self._agent_task = asyncio.create_task(self.agent.run())
        self._touch()
        self._log(logging.INFO, "Autonomous agent started")
        return self.agent

    def stop_autonomous(self) -> bool:
        """Ask the autonomous agent to stop.

        Returns:
            True if an agent was running
        """
        if not self.autonomous_running:
            return False
        self.agent.stop()
        self._touch()
        return True

    async def wait_autonomous(self) -> str | None:
        """Wait for the autonomous agent's current run to finish."""
        if self._agent_task is None:
            return None
        return await self._agent_task

    async def shutdown(self) -> None:
        """Stop the session and wait for a cancelled autonomous run to finish."""
        self.stop()
        if self._agent_task is not None and not self._agent_task.done():
            try:
                await self._agent_task
            except asyncio.CancelledError:
                pass

    def info(self) -> SessionInfo:
        runtime = 0
        if self.is_active and self._started_at is not None:
            runtime = round(time.monotonic() - self._started_at)
        return SessionInfo(
            session_id=self.session_id,
            name=self.name,
            created_at=self.created_at,
            last_activity=self.last_activity,
            is_active=self.is_active,
            error_count=self.error_count,
            message_count=self.message_count,
            turn_count=len(self.conversation),
            runtime_seconds=runtime,
            autonomous_running=self.autonomous_running,
        )
