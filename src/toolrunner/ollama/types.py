"""Type definitions for the model collaborator.

This module contains the dataclasses used to represent a collected chat
response from Ollama, including any tool calls and token usage.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class TokenUsage:
    """Token accounting for one model call.

    Attributes:
        prompt_tokens: Tokens consumed by the prompt (Ollama prompt_eval_count)
        completion_tokens: Tokens generated (Ollama eval_count)
        total_tokens: Sum of prompt and completion tokens
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @staticmethod
    def from_counts(
        prompt_eval_count: int | None, eval_count: int | None
    ) -> "TokenUsage | None":
        """Build usage from Ollama's counters, or None when neither is reported."""
        if prompt_eval_count is None and eval_count is None:
            return None
        prompt = prompt_eval_count or 0
        completion = eval_count or 0
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ToolCallPayload:
    """A tool call as returned by the model.

    Attributes:
        id: Call identifier (generated locally, Ollama does not assign one)
        name: Name of the tool the model wants to invoke
        arguments_json: Arguments encoded as a JSON string
    """

    id: str
    name: str
    arguments_json: str


@dataclass
class ModelResponse:
    """A complete response collected from the model.

    Attributes:
        content: Assistant text, or None when the model only requested tools
        tool_calls: Tool calls requested by the model (empty if none)
        usage: Token usage if the server reported it
        model: The model that produced the response
        raw: The final raw chunk from the server, for debugging
    """

    content: str | None
    tool_calls: list[ToolCallPayload] = field(default_factory=list)
    usage: TokenUsage | None = None
    model: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0
