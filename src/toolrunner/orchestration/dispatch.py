"""Shared tool dispatch: loop guard check, execution, recording, tracing.

Both the structured orchestrator and the autonomous decision agent send
every tool call through a ToolDispatcher, so they share one loop guard and
produce the same debug events.
"""

import logging
import time

from toolrunner.conversation.types import ToolCallRequest, ToolExecutionResult
from toolrunner.debug.events import DebugEventManager
from toolrunner.errors import OrchestrationAborted
from toolrunner.orchestration.loop_guard import LoopGuard
from toolrunner.tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


def abort_message(detail: str) -> str:
    return (
        f"I stopped working on this request. {detail}. "
        "Please rephrase your request or try a different approach."
    )


class ToolDispatcher:
    """Runs tool calls for one session.

    Attributes:
        catalog: Shared tool catalog
        loop_guard: The session's loop guard
        debug: Shared debug event manager, if tracing is enabled
        session_id: Session the events are attributed to
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        loop_guard: LoopGuard,
        debug: DebugEventManager | None = None,
        session_id: str | None = None,
    ) -> None:
        self.catalog = catalog
        self.loop_guard = loop_guard
        self.debug = debug
        self.session_id = session_id

    async def dispatch(
        self, request: ToolCallRequest, parent_id: str | None = None
    ) -> ToolExecutionResult:
        """Check, execute and record a single tool call.

        Tool failures are returned as unsuccessful results.

        Args:
            request: The parsed tool call
            parent_id: Debug event the call descends from (the model response)

        Returns:
            ToolExecutionResult for the call

        Raises:
            OrchestrationAborted: If the loop guard rejects the call
        """
        parsed_id = None
        if self.debug is not None:
            parsed_id = self.debug.add_tool_call_parsed(
                request.to_dict(), parent_id=parent_id, session_id=self.session_id
            )
            if request.parse_error:
                self.debug.add_error(
                    request.parse_error,
                    {"tool_name": request.tool_name, "raw_arguments": request.raw_arguments},
                    parent_id=parsed_id,
                    session_id=self.session_id,
                )

        if request.parse_error:
            logger.warning(f"Could not parse arguments for {request.tool_name}: {request.parse_error}")

        arguments = request.arguments
        decision = self.loop_guard.check(request.tool_name, arguments)
        if decision.abort:
            raise OrchestrationAborted(
                OrchestrationAborted.LOOP_DETECTED,
                abort_message(decision.describe(request.tool_name)),
            )

        execution_id = None
        if self.debug is not None:
            execution_id = self.debug.add_tool_execution(
                request.tool_name,
                arguments,
                parent_id=parsed_id,
                session_id=self.session_id,
            )

        started = time.perf_counter()
        result = await self.catalog.execute(request.tool_name, arguments)
        duration_ms = (time.perf_counter() - started) * 1000

        self.loop_guard.record_call(request.tool_name, arguments)
        if not result.success:
            self.loop_guard.record_error(request.tool_name)

        if self.debug is not None:
            self.debug.add_tool_result(
                request.tool_name,
                {"success": result.success, "data": result.data, "error": result.error},
                duration_ms=duration_ms,
                parent_id=execution_id,
                session_id=self.session_id,
            )

        return ToolExecutionResult(
            tool_call_id=request.id,
            tool_name=request.tool_name,
            success=result.success,
            data=result.data,
            error=result.error,
            duration_ms=duration_ms,
        )
