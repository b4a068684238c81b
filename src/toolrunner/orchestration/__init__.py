"""Tool-calling orchestration.

This package provides the structured ToolCallOrchestrator, the autonomous
DecisionAgent, the ToolDispatcher they share, the LoopGuard and the
BoundedExecutionContext.
"""

from toolrunner.orchestration.context import BoundedExecutionContext
from toolrunner.orchestration.decision import AgentDecision, DecisionAgent
from toolrunner.orchestration.dispatch import ToolDispatcher
from toolrunner.orchestration.loop_guard import (
    GuardDecision,
    LoopGuard,
    RecentCallRecord,
    fingerprint,
    should_abort,
)
from toolrunner.orchestration.orchestrator import OrchestratorState, ToolCallOrchestrator

__all__ = [
    "AgentDecision",
    "BoundedExecutionContext",
    "DecisionAgent",
    "GuardDecision",
    "LoopGuard",
    "OrchestratorState",
    "RecentCallRecord",
    "ToolCallOrchestrator",
    "ToolDispatcher",
    "fingerprint",
    "should_abort",
]
