"""Debug event trace grouped into conversation flows.

A flow is opened for each user message a session processes and sealed when
the final response (or a terminal error reply) is produced. Every model
request/response and tool step in between is recorded as an event on the
session's open flow and in a global bounded event log.

The manager is shared by all sessions. Appends are serialised with a lock
because sessions run concurrently; subscriber callbacks run outside it.
"""

import json
import logging
import threading
import time
import uuid
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 1000
DEFAULT_MAX_FLOWS = 20


class EventType(str, Enum):
    USER_MESSAGE = "user_message"
    LLM_REQUEST = "llm_request"
    LLM_RESPONSE = "llm_response"
    TOOL_CALL_PARSED = "tool_call_parsed"
    TOOL_EXECUTION = "tool_execution"
    TOOL_RESULT = "tool_result"
    FINAL_RESPONSE = "final_response"
    ERROR = "error"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _copy_payload(payload: Any) -> Any:
    """Structural copy through JSON; unknown objects become strings."""
    return json.loads(json.dumps(payload, default=str))


@dataclass
class DebugEvent:
    id: str
    timestamp: int
    type: EventType
    payload: dict[str, Any]
    duration_ms: float | None = None
    parent_id: str | None = None
    session_id: str | None = None
    flow_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "payload": self.payload,
            "duration_ms": self.duration_ms,
            "parent_id": self.parent_id,
            "session_id": self.session_id,
            "flow_id": self.flow_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DebugEvent":
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            type=EventType(data["type"]),
            payload=data.get("payload") or {},
            duration_ms=data.get("duration_ms"),
            parent_id=data.get("parent_id"),
            session_id=data.get("session_id"),
            flow_id=data.get("flow_id"),
        )


@dataclass
class ConversationFlow:
    id: str
    user_message: str
    timestamp: int
    events: list[DebugEvent] = field(default_factory=list)
    is_complete: bool = False
    total_duration_ms: int | None = None
    session_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_message": self.user_message,
            "timestamp": self.timestamp,
            "events": [event.to_dict() for event in self.events],
            "is_complete": self.is_complete,
            "total_duration_ms": self.total_duration_ms,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationFlow":
        return cls(
            id=data["id"],
            user_message=data.get("user_message", ""),
            timestamp=data["timestamp"],
            events=[DebugEvent.from_dict(e) for e in data.get("events", [])],
            is_complete=data.get("is_complete", False),
            total_duration_ms=data.get("total_duration_ms"),
            session_id=data.get("session_id"),
        )


EventCallback = Callable[[DebugEvent], None]
FlowCallback = Callable[[ConversationFlow], None]


def _empty_usage() -> dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def _add_usage(totals: dict[str, int], event: DebugEvent) -> bool:
    if event.type != EventType.LLM_RESPONSE:
        return False
    usage = event.payload.get("usage")
    if not isinstance(usage, dict):
        return False
    for key in totals:
        totals[key] += int(usage.get(key) or 0)
    return True


class DebugEventManager:
    """Bounded, thread-safe trace of debug events and flows.

    Attributes:
        max_events: Capacity of the global event log
        max_flows: Capacity of the flow list
    """

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        max_flows: int = DEFAULT_MAX_FLOWS,
    ) -> None:
        self.max_events = max_events
        self.max_flows = max_flows
        self._lock = threading.Lock()
        self._events: deque[DebugEvent] = deque(maxlen=max_events)
        self._flows: deque[ConversationFlow] = deque(maxlen=max_flows)
        self._open_flows: dict[str | None, ConversationFlow] = {}
        self._counter = 0
        self._event_subscribers: list[EventCallback] = []
        self._flow_subscribers: list[FlowCallback] = []

    # Flow lifecycle

    def start_conversation(self, user_message: str, session_id: str | None = None) -> str:
        """Open a new flow for a session and record the user message.

        An already open flow for the same session is sealed first.

        Returns:
            The new flow ID
        """
        now = _now_ms()
        flow = ConversationFlow(
            id=f"flow_{now}_{uuid.uuid4().hex[:8]}",
            user_message=user_message,
            timestamp=now,
            session_id=session_id,
        )
        with self._lock:
            previous = self._open_flows.pop(session_id, None)
            if previous is not None:
                previous.is_complete = True
                previous.total_duration_ms = now - previous.timestamp
                logger.debug(f"Sealed unfinished flow {previous.id}")
            if len(self._flows) == self.max_flows:
                evicted = self._flows[0]
                if self._open_flows.get(evicted.session_id) is evicted:
                    del self._open_flows[evicted.session_id]
                    logger.debug(f"Evicted open flow {evicted.id}")
            self._open_flows[session_id] = flow
            self._flows.append(flow)

        self.add_event(
            EventType.USER_MESSAGE, {"message": user_message}, session_id=session_id
        )
        logger.debug(f"Started flow {flow.id} for session {session_id}")
        return flow.id

    def add_event(
        self,
        type: EventType | str,
        payload: dict[str, Any],
        duration_ms: float | None = None,
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        """Record an event, attaching it to the session's open flow if any.

        Returns:
            The new event ID
        """
        event_type = EventType(type)
        copied = _copy_payload(payload)

        with self._lock:
            self._counter += 1
            flow = self._open_flows.get(session_id)
            event = DebugEvent(
                id=f"event_{self._counter}",
                timestamp=_now_ms(),
                type=event_type,
                payload=copied,
                duration_ms=duration_ms,
                parent_id=parent_id,
                session_id=session_id,
                flow_id=flow.id if flow is not None else None,
            )
            self._events.append(event)
            if flow is not None:
                if len(flow.events) >= self.max_events:
                    del flow.events[0]
                flow.events.append(event)
            subscribers = list(self._event_subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in debug event subscriber: {e}")
        return event.id

    def complete_conversation(self, final_text: str, session_id: str | None = None) -> None:
        """Record the final response and seal the session's open flow."""
        self.add_event(
            EventType.FINAL_RESPONSE,
            {"response": final_text, "length": len(final_text)},
            session_id=session_id,
        )

        with self._lock:
            flow = self._open_flows.pop(session_id, None)
            if flow is None:
                logger.debug(f"No open flow to complete for session {session_id}")
                return
            flow.is_complete = True
            flow.total_duration_ms = _now_ms() - flow.timestamp
            subscribers = list(self._flow_subscribers)

        logger.debug(f"Completed flow {flow.id} in {flow.total_duration_ms}ms")
        for callback in subscribers:
            try:
                callback(flow)
            except Exception as e:
                logger.error(f"Error in debug flow subscriber: {e}")

    # Typed helpers

    def add_llm_request(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        return self.add_event(
            EventType.LLM_REQUEST,
            {
                "model": model,
                "messages": messages,
                "tools": tools or [],
                "message_count": len(messages),
                "tool_count": len(tools or []),
                "options": options or {},
            },
            session_id=session_id,
        )

    def add_llm_response(
        self,
        content: str | None,
        tool_calls: list[dict[str, Any]],
        usage: dict[str, int] | None,
        model: str,
        raw: dict[str, Any] | None,
        duration_ms: float,
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "content": content,
            "tool_calls": tool_calls,
            "model": model,
            "raw_response": raw or {},
        }
        if usage is not None:
            payload["usage"] = usage
        return self.add_event(
            EventType.LLM_RESPONSE,
            payload,
            duration_ms=duration_ms,
            parent_id=parent_id,
            session_id=session_id,
        )

    def add_tool_call_parsed(
        self,
        tool_call: dict[str, Any],
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        return self.add_event(
            EventType.TOOL_CALL_PARSED,
            {"tool_call": tool_call},
            parent_id=parent_id,
            session_id=session_id,
        )

    def add_tool_execution(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        return self.add_event(
            EventType.TOOL_EXECUTION,
            {"tool_name": tool_name, "arguments": arguments},
            parent_id=parent_id,
            session_id=session_id,
        )

    def add_tool_result(
        self,
        tool_name: str,
        result: dict[str, Any],
        duration_ms: float,
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        return self.add_event(
            EventType.TOOL_RESULT,
            {"tool_name": tool_name, "result": result},
            duration_ms=duration_ms,
            parent_id=parent_id,
            session_id=session_id,
        )

    def add_error(
        self,
        error: str,
        context: dict[str, Any] | None = None,
        parent_id: str | None = None,
        session_id: str | None = None,
    ) -> str:
        return self.add_event(
            EventType.ERROR,
            {"error": error, "context": context or {}},
            parent_id=parent_id,
            session_id=session_id,
        )

    # Queries

    def get_flows(self, session_id: str | None = None) -> list[ConversationFlow]:
        with self._lock:
            flows = list(self._flows)
        if session_id is None:
            return flows
        return [flow for flow in flows if flow.session_id == session_id]

    def get_flow(self, flow_id: str) -> ConversationFlow | None:
        with self._lock:
            return next((flow for flow in self._flows if flow.id == flow_id), None)

    def get_current_flow(self, session_id: str | None = None) -> ConversationFlow | None:
        with self._lock:
            return self._open_flows.get(session_id)

    def get_events(self, limit: int | None = None) -> list[DebugEvent]:
        with self._lock:
            events = list(self._events)
        if limit is not None:
            return events[-limit:] if limit > 0 else []
        return events

    def get_events_for_flow(self, flow_id: str) -> list[DebugEvent]:
        flow = self.get_flow(flow_id)
        return list(flow.events) if flow is not None else []

    def get_stats(self) -> dict[str, Any]:
        """Aggregate counts and token usage over the retained event log."""
        with self._lock:
            events = list(self._events)
            total_flows = len(self._flows)
            active_flows = len(self._open_flows)

        usage = _empty_usage()
        for event in events:
            _add_usage(usage, event)

        return {
            "total_events": len(events),
            "total_flows": total_flows,
            "active_flows": active_flows,
            "event_type_counts": dict(Counter(e.type.value for e in events)),
            "token_usage": usage,
        }

    def get_token_usage_stats(self) -> dict[str, Any]:
        """Token usage summed over the llm_response events of retained flows."""
        usage = _empty_usage()
        responses = 0
        for flow in self.get_flows():
            for event in flow.events:
                if _add_usage(usage, event):
                    responses += 1
        return {
            **usage,
            "responses_with_usage": responses,
            "average_total_tokens": (
                round(usage["total_tokens"] / responses) if responses else 0
            ),
        }

    # Subscribers

    def on_event(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to new events.

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            self._event_subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._event_subscribers:
                    self._event_subscribers.remove(callback)

        return unsubscribe

    def on_flow(self, callback: FlowCallback) -> Callable[[], None]:
        """Subscribe to flow completion.

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            self._flow_subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._flow_subscribers:
                    self._flow_subscribers.remove(callback)

        return unsubscribe

    # Export / import

    def export_data(self) -> dict[str, Any]:
        with self._lock:
            return {
                "events": [event.to_dict() for event in self._events],
                "flows": [flow.to_dict() for flow in self._flows],
                "exported_at": _now_ms(),
            }

    def import_data(self, data: dict[str, Any]) -> None:
        """Replace the trace with previously exported data.

        Imported flows are treated as closed; any open flows are discarded.

        Raises:
            ValueError: If the data is not a valid export
        """
        try:
            events = [DebugEvent.from_dict(e) for e in data.get("events", [])]
            flows = [ConversationFlow.from_dict(f) for f in data.get("flows", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid debug export: {e}") from e

        with self._lock:
            self._events = deque(events, maxlen=self.max_events)
            self._flows = deque(flows, maxlen=self.max_flows)
            self._open_flows.clear()
            for event in events:
                _, _, number = event.id.partition("_")
                if number.isdigit():
                    self._counter = max(self._counter, int(number))
        logger.info(f"Imported {len(events)} debug events and {len(flows)} flows")

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._flows.clear()
            self._open_flows.clear()
        logger.info("Debug data cleared")
