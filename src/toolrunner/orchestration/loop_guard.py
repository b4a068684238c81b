"""Loop detection for tool calls.

Two independent triggers abort a tool call:

- the same (tool name, argument fingerprint) pair reaching the repeat
  threshold within the recent-call window, counting the call being checked;
- the same tool name appearing in enough of the most recently recorded errors.

`should_abort` is a pure function over the recorded state. `LoopGuard`
owns that state for one session.
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_REPEAT_THRESHOLD = 3
DEFAULT_WINDOW_SIZE = 10
DEFAULT_WINDOW_SECONDS = 120.0
DEFAULT_ERROR_LOOKBACK = 5
DEFAULT_ERROR_THRESHOLD = 3


def fingerprint(arguments: dict[str, Any]) -> str:
    """Canonical JSON for a set of arguments.

    Key order and whitespace do not affect the result.
    """
    return json.dumps(arguments, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class RecentCallRecord:
    tool_name: str
    fingerprint: str
    timestamp: float


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a loop guard check.

    Attributes:
        abort: Whether the call must not be dispatched
        trigger: "repeated_call", "repeated_error" or None
        count: Occurrences that produced the decision
    """

    abort: bool
    trigger: str | None = None
    count: int = 0

    def describe(self, tool_name: str) -> str:
        if self.trigger == "repeated_call":
            return (
                f"Loop detected: '{tool_name}' was called {self.count} times "
                f"with identical arguments"
            )
        if self.trigger == "repeated_error":
            return (
                f"Loop detected: '{tool_name}' failed {self.count} times "
                f"in the most recent errors"
            )
        return "No loop detected"


def evaluate(
    tool_name: str,
    arguments: dict[str, Any],
    recent_calls: Iterable[RecentCallRecord],
    recent_errors: Iterable[str],
    now: float,
    repeat_threshold: int = DEFAULT_REPEAT_THRESHOLD,
    window_size: int = DEFAULT_WINDOW_SIZE,
    window_seconds: float = DEFAULT_WINDOW_SECONDS,
    error_lookback: int = DEFAULT_ERROR_LOOKBACK,
    error_threshold: int = DEFAULT_ERROR_THRESHOLD,
) -> GuardDecision:
    """Decide whether a tool call should be aborted.

    Args:
        tool_name: Tool about to be called
        arguments: Parsed arguments of the call
        recent_calls: Previously dispatched calls, oldest first
        recent_errors: Tool names of previously failed calls, oldest first
        now: Current monotonic time in seconds

    Returns:
        GuardDecision describing which trigger fired, if any
    """
    current = fingerprint(arguments)
    window = list(recent_calls)[-window_size:] if window_size > 0 else []
    matches = sum(
        1
        for record in window
        if record.tool_name == tool_name
        and record.fingerprint == current
        and now - record.timestamp <= window_seconds
    )
    # The call being checked counts as one occurrence
    occurrences = matches + 1
    if occurrences >= repeat_threshold:
        return GuardDecision(abort=True, trigger="repeated_call", count=occurrences)

    errors = list(recent_errors)[-error_lookback:] if error_lookback > 0 else []
    failures = sum(1 for name in errors if name == tool_name)
    if failures >= error_threshold:
        return GuardDecision(abort=True, trigger="repeated_error", count=failures)

    return GuardDecision(abort=False)


def should_abort(
    tool_name: str,
    arguments: dict[str, Any],
    recent_calls: Iterable[RecentCallRecord],
    recent_errors: Iterable[str],
    now: float | None = None,
    **thresholds: Any,
) -> bool:
    """Boolean form of evaluate(); `now` defaults to time.monotonic()."""
    if now is None:
        now = time.monotonic()
    return evaluate(
        tool_name, arguments, recent_calls, recent_errors, now, **thresholds
    ).abort


class LoopGuard:
    """Per-session recent-call window and error list.

    Attributes:
        repeat_threshold: Identical calls (including the current one) that abort
        window_size: Number of recent calls tracked
        window_seconds: Age after which a tracked call is purged
        error_lookback: Number of recent errors considered
        error_threshold: Same-tool errors within the lookback that abort
    """

    def __init__(
        self,
        repeat_threshold: int = DEFAULT_REPEAT_THRESHOLD,
        window_size: int = DEFAULT_WINDOW_SIZE,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        error_lookback: int = DEFAULT_ERROR_LOOKBACK,
        error_threshold: int = DEFAULT_ERROR_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repeat_threshold = repeat_threshold
        self.window_size = window_size
        self.window_seconds = window_seconds
        self.error_lookback = error_lookback
        self.error_threshold = error_threshold
        self._clock = clock
        self._calls: deque[RecentCallRecord] = deque(maxlen=window_size)
        self._errors: deque[str] = deque(maxlen=error_lookback)

    @classmethod
    def from_settings(cls, settings: Any) -> "LoopGuard":
        return cls(
            repeat_threshold=settings.loop_repeat_threshold,
            window_size=settings.loop_window_size,
            window_seconds=settings.loop_window_seconds,
            error_lookback=settings.error_lookback,
            error_threshold=settings.error_threshold,
        )

    def check(self, tool_name: str, arguments: dict[str, Any]) -> GuardDecision:
        decision = evaluate(
            tool_name,
            arguments,
            self._calls,
            self._errors,
            now=self._clock(),
            repeat_threshold=self.repeat_threshold,
            window_size=self.window_size,
            window_seconds=self.window_seconds,
            error_lookback=self.error_lookback,
            error_threshold=self.error_threshold,
        )
        if decision.abort:
            logger.warning(decision.describe(tool_name))
        return decision

    def record_call(self, tool_name: str, arguments: dict[str, Any]) -> None:
        now = self._clock()
        self._purge(now)
        self._calls.append(
            RecentCallRecord(
                tool_name=tool_name, fingerprint=fingerprint(arguments), timestamp=now
            )
        )

    def record_error(self, tool_name: str) -> None:
        self._errors.append(tool_name)

    def _purge(self, now: float) -> None:
        while self._calls and now - self._calls[0].timestamp > self.window_seconds:
            self._calls.popleft()

    def reset(self) -> None:
        self._calls.clear()
        self._errors.clear()

    def snapshot(self) -> dict[str, Any]:
        return {
            "recent_calls": [
                {"tool_name": r.tool_name, "fingerprint": r.fingerprint}
                for r in self._calls
            ],
            "recent_errors": list(self._errors),
        }
