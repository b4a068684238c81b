"""Data types for conversation turns.

This module defines the turns held by a ConversationState, the tool call
requests carried on assistant turns, and the per-call execution results
that become tool turns.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from toolrunner.ollama.types import ToolCallPayload


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_turn_id() -> str:
    """Generate a 10-character hexadecimal turn ID."""
    return uuid.uuid4().hex[:10]


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCallRequest:
    """A tool call requested by the model.

    Attributes:
        id: Call identifier, referenced by the matching tool turn
        tool_name: Name of the tool to invoke
        raw_arguments: Arguments exactly as the model produced them
        parsed_arguments: Decoded arguments; {} when decoding failed
        parse_error: Why decoding failed, if it did
    """

    id: str
    tool_name: str
    raw_arguments: str
    parsed_arguments: dict[str, Any] | None = None
    parse_error: str | None = None

    @classmethod
    def parse(cls, call_id: str, tool_name: str, raw_arguments: str) -> "ToolCallRequest":
        """Build a request, decoding the raw JSON arguments.

        Malformed JSON or a non-object value yields parsed_arguments={}
        and a parse_error; it never raises.
        """
        try:
            parsed = json.loads(raw_arguments) if raw_arguments.strip() else {}
        except json.JSONDecodeError as e:
            return cls(
                id=call_id,
                tool_name=tool_name,
                raw_arguments=raw_arguments,
                parsed_arguments={},
                parse_error=f"Invalid JSON arguments: {e}",
            )

        if not isinstance(parsed, dict):
            return cls(
                id=call_id,
                tool_name=tool_name,
                raw_arguments=raw_arguments,
                parsed_arguments={},
                parse_error=f"Arguments must be a JSON object, got {type(parsed).__name__}",
            )

        return cls(
            id=call_id,
            tool_name=tool_name,
            raw_arguments=raw_arguments,
            parsed_arguments=parsed,
        )

    @classmethod
    def from_payload(cls, payload: ToolCallPayload) -> "ToolCallRequest":
        return cls.parse(payload.id, payload.name, payload.arguments_json)

    @property
    def arguments(self) -> dict[str, Any]:
        return self.parsed_arguments if self.parsed_arguments is not None else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "raw_arguments": self.raw_arguments,
            "parsed_arguments": self.parsed_arguments,
            "parse_error": self.parse_error,
        }


@dataclass(frozen=True)
class ToolExecutionResult:
    """Result of dispatching one ToolCallRequest."""

    tool_call_id: str
    tool_name: str
    success: bool
    data: Any = None
    error: str | None = None
    duration_ms: float = 0.0

    def to_content(self) -> str:
        """Render the result as the text of a tool turn."""
        if not self.success:
            return f"Error: {self.error or 'Unknown error'}"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, indent=2, default=str)


@dataclass
class ConversationTurn:
    """A single turn in a conversation."""

    role: Role
    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None
    tool_name: str | None = None
    timestamp: str = field(default_factory=utc_timestamp)
    turn_id: str = field(default_factory=new_turn_id)

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("Tool turns require a tool_call_id")

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "tool_calls": (
                [call.to_dict() for call in self.tool_calls]
                if self.tool_calls is not None
                else None
            ),
            "tool_call_id": self.tool_call_id,
            "tool_name": self.tool_name,
            "timestamp": self.timestamp,
            "turn_id": self.turn_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationTurn":
        """Rebuild a turn from its to_dict() form.

        Raises:
            ValueError: If the role is unknown or a tool turn lacks its call ID
        """
        raw_calls = data.get("tool_calls")
        tool_calls = None
        if raw_calls is not None:
            tool_calls = [ToolCallRequest(**call) for call in raw_calls]

        kwargs: dict[str, Any] = {
            "role": Role(data["role"]),
            "content": data.get("content"),
            "tool_calls": tool_calls,
            "tool_call_id": data.get("tool_call_id"),
            "tool_name": data.get("tool_name"),
        }
        if data.get("timestamp"):
            kwargs["timestamp"] = data["timestamp"]
        if data.get("turn_id"):
            kwargs["turn_id"] = data["turn_id"]
        return cls(**kwargs)

    def to_model_message(self) -> dict[str, Any]:
        """Convert to an Ollama chat message dict."""
        message: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content or "",
        }
        if self.role == Role.ASSISTANT and self.tool_calls:
            message["tool_calls"] = [
                {"function": {"name": call.tool_name, "arguments": call.arguments}}
                for call in self.tool_calls
            ]
        if self.role == Role.TOOL and self.tool_name:
            message["tool_name"] = self.tool_name
        return message
