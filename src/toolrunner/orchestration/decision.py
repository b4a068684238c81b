"""Autonomous decision agent.

The agent repeatedly asks the model for a JSON decision (call a tool, wait,
or stop), executes it through the session's ToolDispatcher, and remembers
results in a BoundedExecutionContext that is fed back into the next prompt.
Model or parse failures fall back to listing the available tools.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any

from toolrunner.conversation.types import ToolCallRequest, utc_timestamp
from toolrunner.errors import ModelCallError, OrchestrationAborted, ToolRunnerError
from toolrunner.ollama.client import OllamaClient
from toolrunner.orchestration.context import BoundedExecutionContext
from toolrunner.orchestration.dispatch import ToolDispatcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXECUTIONS = 100
DEFAULT_EXECUTION_DELAY = 3.0
DEFAULT_MIN_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0
DEFAULT_MAX_ERRORS = 10
FALLBACK_DELAY = 5.0
FALLBACK_TOOL = "list_tools"
VALID_ACTIONS = ("tool", "wait", "stop")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class AgentDecision:
    """One decision returned by the model.

    Attributes:
        action: "tool", "wait" or "stop"
        tool: Tool to call when action is "tool"
        params: Arguments for the tool
        delay: Seconds to sleep before the next decision
        reasoning: The model's explanation
    """

    action: str
    tool: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    delay: float = DEFAULT_EXECUTION_DELAY
    reasoning: str = "No reasoning provided"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "tool": self.tool,
            "params": self.params,
            "delay": self.delay,
            "reasoning": self.reasoning,
        }


class DecisionAgent:
    """Free-text decision loop over the shared dispatch and loop guard.

    Attributes:
        is_running: Whether the loop is active
        execution_count: Tool executions in the current run
        errors: Error descriptions collected in the current run
        stop_reason: Why the last run ended
    """

    def __init__(
        self,
        model_client: OllamaClient,
        dispatcher: ToolDispatcher,
        model: str,
        options: dict[str, Any] | None = None,
        context: BoundedExecutionContext | None = None,
        goal: str | None = None,
        max_executions: int = DEFAULT_MAX_EXECUTIONS,
        execution_delay: float = DEFAULT_EXECUTION_DELAY,
        min_delay: float = DEFAULT_MIN_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        max_errors: int = DEFAULT_MAX_ERRORS,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.model_client = model_client
        self.dispatcher = dispatcher
        self.model = model
        self.options = options or {}
        self.context = context or BoundedExecutionContext()
        self.goal = goal
        self.max_executions = max_executions
        self.execution_delay = execution_delay
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.max_errors = max_errors
        self._lock = lock or asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._pending_run = False

        self.is_running = False
        self.execution_count = 0
        self.errors: list[str] = []
        self.stop_reason: str | None = None
        self.last_decision: AgentDecision | None = None
        self._started_at: float | None = None

    @property
    def debug(self):
        return self.dispatcher.debug

    @property
    def session_id(self) -> str | None:
        return self.dispatcher.session_id

    def start(self) -> bool:
        """Mark the agent running and reset per-run state.

        Called before the run task is scheduled so a stop request made in
        the meantime is not lost.

        Returns:
            False if the agent was already running
        """
        if self.is_running:
            logger.info("Agent is already running")
            return False

        self.is_running = True
        self._pending_run = True
        self._stop_event.clear()
        self._started_at = time.monotonic()
        self.execution_count = 0
        self.errors = []
        self.stop_reason = None
        self.context.clear()
        self.dispatcher.loop_guard.reset()
        return True

    async def run(self) -> str | None:
        """Run decisions until stopped, out of budget, or the model says stop.

        Returns:
            The reason the loop ended
        """
        if not self._pending_run and not self.start():
            return None
        self._pending_run = False
        logger.info(f"Autonomous agent starting for session {self.session_id}")

        try:
            while self.is_running and self.execution_count < self.max_executions:
                delay = self.execution_delay
                try:
                    decision = await self.step()
                except OrchestrationAborted as e:
                    logger.warning(f"Autonomous agent aborted: {e.message}")
                    self.stop_reason = e.reason
                    break
                except ToolRunnerError as e:
                    self._record_error(f"Agent error: {e}")
                else:
                    if decision.action == "stop":
                        logger.info(f"Agent stopping: {decision.reasoning}")
                        self.stop_reason = "model_stop"
                        break
                    delay = decision.delay

                if not await self._sleep(delay):
                    break

            if self.stop_reason is None:
                if self.execution_count >= self.max_executions:
                    logger.warning(
                        f"Agent stopped: maximum executions ({self.max_executions}) reached"
                    )
                    self.stop_reason = "max_executions"
                elif len(self.errors) > self.max_errors:
                    self.stop_reason = "too_many_errors"
        finally:
            self.is_running = False
            if self.stop_reason is None:
                self.stop_reason = "stopped"
            logger.info(f"Autonomous agent stopped: {self.stop_reason}")

        return self.stop_reason

    def stop(self) -> None:
        """Request the loop to stop; interrupts a pending sleep."""
        self._stop_event.set()
        if not self.is_running:
            logger.debug("Agent is not running")
            return
        self.is_running = False
        logger.info("Agent stop requested")

    async def step(self) -> AgentDecision:
        """Make one decision and act on it under the session lock."""
        async with self._lock:
            if not self.is_running:
                return AgentDecision(action="wait", delay=0, reasoning="Stop requested")
            if self.debug is not None:
                self.debug.start_conversation(
                    f"[autonomous step {self.execution_count + 1}]",
                    session_id=self.session_id,
                )
            try:
                decision = await self.make_decision()
                self.last_decision = decision
                if decision.action == "tool" and decision.tool:
                    await self.execute_tool(decision.tool, decision.params)
            except OrchestrationAborted as e:
                if self.debug is not None:
                    self.debug.add_error(
                        e.message, {"reason": e.reason}, session_id=self.session_id
                    )
                self._complete_flow(e.message)
                raise
            except asyncio.CancelledError:
                self._complete_flow("Autonomous step cancelled")
                raise
            self._complete_flow(f"{decision.action}: {decision.reasoning}")
            return decision

    def _complete_flow(self, text: str) -> None:
        if self.debug is not None:
            self.debug.complete_conversation(text, session_id=self.session_id)

    async def make_decision(self) -> AgentDecision:
        """Ask the model for the next decision.

        Model failures and unparseable replies yield the fallback decision.
        """
        prompt = self.build_prompt()
        messages = [{"role": "user", "content": prompt}]

        request_id = None
        if self.debug is not None:
            request_id = self.debug.add_llm_request(
                self.model, messages, options=self.options, session_id=self.session_id
            )

        started = time.perf_counter()
        try:
            response = await self.model_client.chat(
                model=self.model,
                messages=messages,
                options=self.options,
                format="json",
            )
        except ModelCallError as e:
            logger.warning(f"Decision making failed: {e}")
            self._record_error(f"Decision making failed: {e}")
            if self.debug is not None:
                self.debug.add_error(
                    str(e),
                    {"type": type(e).__name__, "model": self.model},
                    parent_id=request_id,
                    session_id=self.session_id,
                )
            return self.fallback_decision("Fallback to list tools due to decision error")

        if self.debug is not None:
            self.debug.add_llm_response(
                content=response.content,
                tool_calls=[],
                usage=response.usage.to_dict() if response.usage else None,
                model=response.model or self.model,
                raw=response.raw,
                duration_ms=(time.perf_counter() - started) * 1000,
                parent_id=request_id,
                session_id=self.session_id,
            )

        try:
            decision = self.parse_decision(response.content or "")
        except ValueError as e:
            logger.warning(f"Failed to parse decision: {e}")
            return self.fallback_decision("Fallback due to parsing error")

        logger.info(
            f"Decision: {decision.action}"
            + (f" ({decision.tool})" if decision.tool else "")
        )
        return decision

    def fallback_decision(self, reasoning: str) -> AgentDecision:
        return AgentDecision(
            action="tool",
            tool=FALLBACK_TOOL,
            params={},
            delay=self._clamp_delay(FALLBACK_DELAY),
            reasoning=reasoning,
        )

    def parse_decision(self, text: str) -> AgentDecision:
        """Extract and validate a decision from model output.

        Raises:
            ValueError: If no valid decision object is found
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            match = _JSON_OBJECT.search(text)
            if match is None:
                raise ValueError("No valid JSON found in response")
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise ValueError(f"No valid JSON found in response: {e}") from e
        return self.validate_decision(data)

    def validate_decision(self, data: Any) -> AgentDecision:
        """Check a decoded decision and normalise its delay.

        The delay is given in milliseconds and clamped to the configured
        range in seconds.

        Raises:
            ValueError: If the decision is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Decision must be an object")

        action = data.get("action")
        if action not in VALID_ACTIONS:
            raise ValueError(f"Invalid action: {action!r}")

        tool = data.get("tool")
        if action == "tool" and not tool:
            raise ValueError("Tool name required for tool action")

        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("params must be an object")

        delay_ms = data.get("delay")
        if isinstance(delay_ms, (int, float)) and not isinstance(delay_ms, bool) and delay_ms > 0:
            delay = delay_ms / 1000
        else:
            delay = self.execution_delay

        return AgentDecision(
            action=action,
            tool=tool if action == "tool" else None,
            params=params,
            delay=self._clamp_delay(delay),
            reasoning=data.get("reasoning") or "No reasoning provided",
        )

    def _clamp_delay(self, delay: float) -> float:
        return max(self.min_delay, min(self.max_delay, delay))

    async def execute_tool(self, tool_name: str, params: dict[str, Any]) -> None:
        """Run one tool through the dispatcher and store the outcome in context.

        Raises:
            OrchestrationAborted: If the loop guard rejects the call
        """
        number = self.execution_count + 1
        request = ToolCallRequest(
            id=f"auto_{number}",
            tool_name=tool_name,
            raw_arguments=json.dumps(params),
            parsed_arguments=params,
        )
        self.context.update(
            f"execution_{number}",
            {"tool": tool_name, "params": params, "timestamp": utc_timestamp()},
        )

        result = await self.dispatcher.dispatch(request)
        self.execution_count = number

        if result.success:
            self.context.update(f"last_{tool_name}", result.data)
            self.context.update(
                f"result_{number}",
                {"tool": tool_name, "params": params, "result": result.data},
            )
            logger.info(f"{tool_name} result: {result.to_content()}")
        else:
            self.context.update(
                f"error_{number}",
                {"tool": tool_name, "params": params, "error": result.error},
            )
            self._record_error(f"{tool_name}: {result.error}")

    def _record_error(self, message: str) -> None:
        self.errors.append(message)
        logger.warning(message)
        if len(self.errors) > self.max_errors:
            logger.warning("Too many errors, stopping agent")
            self.stop_reason = "too_many_errors"
            self.stop()

    async def _sleep(self, delay: float) -> bool:
        """Sleep unless stopped.

        Returns:
            False if the agent was stopped before or during the sleep
        """
        if not self.is_running:
            return False
        if delay > 0:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        return self.is_running

    def build_prompt(self) -> str:
        """Build the decision prompt from tools, context and recent errors."""
        context = self.context.relevant_context()
        context_text = json.dumps(context, indent=2, default=str) if context else "No previous context"
        recent_errors = self.errors[-3:]
        has_listed_tools = f"last_{FALLBACK_TOOL}" in self.context
        runtime = round(time.monotonic() - self._started_at) if self._started_at else 0

        goal = f"GOAL:\n{self.goal}\n\n" if self.goal else ""

        return (
            "You are an autonomous agent that completes tasks by calling tools.\n\n"
            f"{goal}"
            "EXECUTION CONTEXT:\n"
            f"- Execution count: {self.execution_count}\n"
            f"- Runtime: {runtime}s\n"
            f"- Recent errors: {', '.join(recent_errors) or 'None'}\n"
            f"- Tools already discovered: {'Yes' if has_listed_tools else 'No'}\n\n"
            f"PREVIOUS CONTEXT:\n{context_text}\n\n"
            f"AVAILABLE TOOLS:\n{self.dispatcher.catalog.format_for_llm()}\n"
            "RULES:\n"
            "1. Use the exact parameter names from the tool descriptions.\n"
            "2. Do not repeat failed actions; change the tool or the parameters.\n"
            f"3. Do not call {FALLBACK_TOOL} more than once.\n"
            "4. Stop when the goal is reached or you are stuck.\n\n"
            "Respond with valid JSON in this format:\n"
            "{\n"
            '  "action": "tool|wait|stop",\n'
            '  "tool": "tool_name_if_using_tool",\n'
            '  "params": {"exact_param_name": "value"},\n'
            '  "delay": 2000,\n'
            '  "reasoning": "Brief explanation of your decision"\n'
            "}"
        )

    def get_stats(self) -> dict[str, Any]:
        runtime = round(time.monotonic() - self._started_at) if self._started_at else 0
        return {
            "is_running": self.is_running,
            "execution_count": self.execution_count,
            "error_count": len(self.errors),
            "runtime_seconds": runtime,
            "context_size": len(self.context),
            "recent_tool_calls": len(
                self.dispatcher.loop_guard.snapshot()["recent_calls"]
            ),
            "stop_reason": self.stop_reason,
            "last_decision": self.last_decision.to_dict() if self.last_decision else None,
        }
