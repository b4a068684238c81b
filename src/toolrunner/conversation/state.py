"""ConversationState: ordered turns with a pair-preserving trimming policy."""

import logging
from collections import Counter
from typing import Any

from toolrunner.conversation.types import (
    ConversationTurn,
    Role,
    ToolCallRequest,
    ToolExecutionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 20


class ConversationState:
    """Ordered sequence of conversation turns for one session.

    Every append is followed by trim(). Trimming keeps the most recent
    system turn first and never leaves a tool turn without the assistant
    turn that requested it.

    Attributes:
        max_turns: Maximum number of turns retained after trimming
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self._turns: list[ConversationTurn] = []

    @property
    def turns(self) -> list[ConversationTurn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)
        self.trim()

    def add_system(self, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role.SYSTEM, content=content)
        self.append(turn)
        return turn

    def add_user(self, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role.USER, content=content)
        self.append(turn)
        return turn

    def add_assistant(
        self,
        content: str | None,
        tool_calls: list[ToolCallRequest] | None = None,
    ) -> ConversationTurn:
        turn = ConversationTurn(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tool_calls or None,
        )
        self.append(turn)
        return turn

    def add_tool_result(self, result: ToolExecutionResult) -> ConversationTurn:
        turn = ConversationTurn(
            role=Role.TOOL,
            content=result.to_content(),
            tool_call_id=result.tool_call_id,
            tool_name=result.tool_name,
        )
        self.append(turn)
        return turn

    def set_system_prompt(self, content: str) -> None:
        """Replace the most recent system turn, or insert one at index 0.

        Does not truncate the conversation history.
        """
        for index in range(len(self._turns) - 1, -1, -1):
            if self._turns[index].role == Role.SYSTEM:
                self._turns[index] = ConversationTurn(role=Role.SYSTEM, content=content)
                logger.debug("Replaced system prompt")
                return

        self._turns.insert(0, ConversationTurn(role=Role.SYSTEM, content=content))
        logger.debug("Added system prompt")
        self.trim()

    def trim(self) -> None:
        """Drop the oldest turns once the sequence exceeds max_turns.

        The window may end up slightly larger than max_turns when it has to
        extend backward to keep a tool turn with its assistant turn.
        """
        if len(self._turns) <= self.max_turns:
            return

        system_turn: ConversationTurn | None = None
        for turn in reversed(self._turns):
            if turn.role == Role.SYSTEM:
                system_turn = turn
                break

        others = [turn for turn in self._turns if turn.role != Role.SYSTEM]
        keep = self.max_turns - 1 if system_turn is not None else self.max_turns

        tail_start = max(0, len(others) - keep)
        while 0 < tail_start < len(others) and others[tail_start].role == Role.TOOL:
            tail_start -= 1

        retained = others[tail_start:]
        if system_turn is not None:
            retained.insert(0, system_turn)

        dropped = len(self._turns) - len(retained)
        self._turns = retained
        logger.debug(f"Trimmed {dropped} turns, {len(self._turns)} retained")

    def clear(self, keep_system: bool = True) -> None:
        """Remove turns, optionally keeping the most recent system turn."""
        system_turn = None
        if keep_system:
            system_turn = next(
                (t for t in reversed(self._turns) if t.role == Role.SYSTEM), None
            )
        self._turns = [system_turn] if system_turn is not None else []

    def last_turn(self) -> ConversationTurn | None:
        return self._turns[-1] if self._turns else None

    def messages_for_model(self) -> list[dict[str, Any]]:
        """Get the turn sequence as Ollama chat message dicts."""
        return [turn.to_model_message() for turn in self._turns]

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_turns": self.max_turns,
            "turns": [turn.to_dict() for turn in self._turns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationState":
        """Rebuild a ConversationState from its to_dict() form.

        Raises:
            ValueError: If any turn is invalid
        """
        state = cls(max_turns=data.get("max_turns", DEFAULT_MAX_TURNS))
        state._turns = [ConversationTurn.from_dict(t) for t in data.get("turns", [])]
        state.trim()
        return state

    def stats(self) -> dict[str, Any]:
        """Get per-role turn counts and the average content length."""
        counts = Counter(turn.role.value for turn in self._turns)
        lengths = [len(turn.content or "") for turn in self._turns]
        return {
            "total_turns": len(self._turns),
            "system_turns": counts.get(Role.SYSTEM.value, 0),
            "user_turns": counts.get(Role.USER.value, 0),
            "assistant_turns": counts.get(Role.ASSISTANT.value, 0),
            "tool_turns": counts.get(Role.TOOL.value, 0),
            "average_content_length": (
                round(sum(lengths) / len(lengths)) if lengths else 0
            ),
        }
