"""ToolCallOrchestrator: the structured function-calling loop.

The orchestrator sends the conversation and tool schemas to the model,
dispatches any tool calls the model requests, appends their results, and
asks the model again until it answers without tool calls or a guard stops
the run.
"""

import logging
import time
from enum import Enum
from typing import Any

from toolrunner.conversation.state import ConversationState
from toolrunner.conversation.types import ToolCallRequest, ToolExecutionResult
from toolrunner.errors import ModelCallError, OrchestrationAborted
from toolrunner.ollama.client import OllamaClient
from toolrunner.ollama.types import ModelResponse
from toolrunner.orchestration.dispatch import ToolDispatcher, abort_message

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ERRORS = 10
TASK_COMPLETED_REPLY = "Task completed successfully."
NO_RESPONSE_REPLY = "I understand, but I don't have a specific response."


class OrchestratorState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING = "dispatching"
    DONE = "done"
    ABORTED_LOOP = "aborted_loop"
    ABORTED_ERROR_BUDGET = "aborted_error_budget"
    ABORTED_ITERATION_CAP = "aborted_iteration_cap"


class ToolCallOrchestrator:
    """Drives one session's model/tool cycle.

    Attributes:
        model_client: Client used for chat calls
        dispatcher: Dispatcher for tool calls (catalog + loop guard)
        model: Model name
        options: Generation options passed with every request
        max_iterations: Cap on model calls per run; None means unbounded
        max_tool_errors: Tool failures tolerated per run
        state: Last state reached
    """

    def __init__(
        self,
        model_client: OllamaClient,
        dispatcher: ToolDispatcher,
        model: str,
        options: dict[str, Any] | None = None,
        max_iterations: int | None = None,
        max_tool_errors: int = DEFAULT_MAX_TOOL_ERRORS,
    ) -> None:
        self.model_client = model_client
        self.dispatcher = dispatcher
        self.model = model
        self.options = options or {}
        self.max_iterations = max_iterations
        self.max_tool_errors = max_tool_errors
        self.state = OrchestratorState.DONE
        self.iterations = 0

    @property
    def debug(self):
        return self.dispatcher.debug

    @property
    def session_id(self) -> str | None:
        return self.dispatcher.session_id

    async def run(
        self,
        conversation: ConversationState,
        available_tools: list[dict[str, Any]] | None = None,
    ) -> str:
        """Run the model/tool loop until the model produces a final answer.

        Args:
            conversation: Conversation to read from and append to; the user
                turn must already be appended
            available_tools: Tool schemas to offer; defaults to the catalog's

        Returns:
            The final assistant text, which is also appended as a turn

        Raises:
            OrchestrationAborted: If the loop guard, the tool error budget or
                the iteration cap stops the run
            ModelCallError: If a model call fails
        """
        tools = (
            available_tools
            if available_tools is not None
            else self.dispatcher.catalog.schemas()
        )
        self.iterations = 0
        tool_errors = 0
        used_tools = False

        while True:
            if self.max_iterations is not None and self.iterations >= self.max_iterations:
                self.state = OrchestratorState.ABORTED_ITERATION_CAP
                logger.warning(f"Iteration cap of {self.max_iterations} reached")
                raise OrchestrationAborted(
                    OrchestrationAborted.ITERATION_CAP,
                    abort_message(
                        f"The limit of {self.max_iterations} model calls was reached"
                    ),
                )

            self.iterations += 1
            self.state = OrchestratorState.AWAITING_MODEL
            response, response_id = await self._call_model(conversation, tools)

            if not response.has_tool_calls:
                content = response.content
                if not content:
                    content = TASK_COMPLETED_REPLY if used_tools else NO_RESPONSE_REPLY
                conversation.add_assistant(content)
                self.state = OrchestratorState.DONE
                logger.debug(f"Run finished after {self.iterations} model calls")
                return content

            requests = [ToolCallRequest.from_payload(call) for call in response.tool_calls]
            conversation.add_assistant(response.content, requests)
            self.state = OrchestratorState.DISPATCHING
            used_tools = True
            logger.debug(f"Dispatching {len(requests)} tool calls")

            for index, request in enumerate(requests):
                try:
                    result = await self.dispatcher.dispatch(request, parent_id=response_id)
                except OrchestrationAborted as e:
                    self.state = OrchestratorState.ABORTED_LOOP
                    self._close_batch(conversation, requests[index:], e.message)
                    raise
                conversation.add_tool_result(result)
                if not result.success:
                    tool_errors += 1

            if tool_errors > self.max_tool_errors:
                self.state = OrchestratorState.ABORTED_ERROR_BUDGET
                logger.warning(f"Tool error budget exhausted: {tool_errors} failures")
                raise OrchestrationAborted(
                    OrchestrationAborted.ERROR_BUDGET,
                    abort_message(f"Tools failed {tool_errors} times during this request"),
                )

    async def _call_model(
        self, conversation: ConversationState, tools: list[dict[str, Any]]
    ) -> tuple[ModelResponse, str | None]:
        messages = conversation.messages_for_model()
        request_id = None
        if self.debug is not None:
            request_id = self.debug.add_llm_request(
                self.model,
                messages,
                tools=tools,
                options=self.options,
                session_id=self.session_id,
            )

        started = time.perf_counter()
        try:
            response = await self.model_client.chat(
                model=self.model,
                messages=messages,
                tools=tools,
                options=self.options,
            )
        except ModelCallError as e:
            if self.debug is not None:
                self.debug.add_error(
                    str(e),
                    {"type": type(e).__name__, "model": self.model},
                    parent_id=request_id,
                    session_id=self.session_id,
                )
            raise
        duration_ms = (time.perf_counter() - started) * 1000

        response_id = None
        if self.debug is not None:
            response_id = self.debug.add_llm_response(
                content=response.content,
                tool_calls=[
                    {"id": c.id, "name": c.name, "arguments": c.arguments_json}
                    for c in response.tool_calls
                ],
                usage=response.usage.to_dict() if response.usage else None,
                model=response.model or self.model,
                raw=response.raw,
                duration_ms=duration_ms,
                parent_id=request_id,
                session_id=self.session_id,
            )
        return response, response_id

    @staticmethod
    def _close_batch(
        conversation: ConversationState,
        requests: list[ToolCallRequest],
        message: str,
    ) -> None:
        """Give every undispatched call of an aborted batch its tool turn."""
        for request in requests:
            conversation.add_tool_result(
                ToolExecutionResult(
                    tool_call_id=request.id,
                    tool_name=request.tool_name,
                    success=False,
                    error=f"Aborted: {message}",
                )
            )
