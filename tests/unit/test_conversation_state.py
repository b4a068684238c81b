"""Unit tests for ConversationState, turns and trimming."""

import json

import pytest

from toolrunner.conversation import (
    ConversationState,
    ConversationTurn,
    Role,
    ToolCallRequest,
    ToolExecutionResult,
)


def _call(call_id: str, name: str = "calculator") -> ToolCallRequest:
    return ToolCallRequest.parse(call_id, name, '{"expression": "1+1"}')


def _result(call_id: str, name: str = "calculator") -> ToolExecutionResult:
    return ToolExecutionResult(tool_call_id=call_id, tool_name=name, success=True, data=2)


def _assert_pairs_intact(state: ConversationState, complete: bool = True) -> None:
    """Every tool turn follows its assistant turn; with complete, every call has a result."""
    turns = state.turns
    seen_calls: set[str] = set()
    for index, turn in enumerate(turns):
        if turn.role == Role.TOOL:
            assert turn.tool_call_id in seen_calls, f"orphan tool turn at {index}"
        if turn.role == Role.ASSISTANT and turn.tool_calls:
            ids = {call.id for call in turn.tool_calls}
            seen_calls |= ids
            if not complete:
                continue
            following = {
                t.tool_call_id for t in turns[index + 1 :] if t.role == Role.TOOL
            }
            assert ids <= following, f"missing tool results for turn {index}"


def test_parse_valid_arguments():
    request = ToolCallRequest.parse("c1", "calculator", '{"expression": "2+2"}')
    assert request.parsed_arguments == {"expression": "2+2"}
    assert request.parse_error is None


def test_parse_malformed_arguments_falls_back_to_empty_dict():
    request = ToolCallRequest.parse("c1", "calculator", "{not json")
    assert request.parsed_arguments == {}
    assert request.parse_error is not None


def test_parse_non_object_arguments_is_a_parse_error():
    request = ToolCallRequest.parse("c1", "calculator", "[1, 2]")
    assert request.parsed_arguments == {}
    assert "object" in request.parse_error


def test_result_content_formatting():
    assert _result("c1").to_content() == "2"
    assert ToolExecutionResult("c1", "t", True, data="plain").to_content() == "plain"
    assert json.loads(ToolExecutionResult("c1", "t", True, data={"a": 1}).to_content()) == {
        "a": 1
    }
    assert ToolExecutionResult("c1", "t", False, error="x").to_content() == "Error: x"


def test_tool_turn_requires_call_id():
    with pytest.raises(ValueError):
        ConversationTurn(role=Role.TOOL, content="orphan")


def test_turn_ids_and_timestamps():
    turn = ConversationTurn(role=Role.USER, content="hi")
    assert len(turn.turn_id) == 10
    assert turn.timestamp.endswith("Z")


def test_trim_keeps_latest_system_turn_first():
    state = ConversationState(max_turns=5)
    state.add_system("old prompt")
    state.add_system("new prompt")
    for i in range(10):
        state.add_user(f"message {i}")

    turns = state.turns
    assert len(turns) == 5
    assert turns[0].role == Role.SYSTEM
    assert turns[0].content == "new prompt"
    assert [t.content for t in turns[1:]] == [f"message {i}" for i in range(6, 10)]


def test_trim_without_system_turn():
    state = ConversationState(max_turns=3)
    for i in range(5):
        state.add_user(f"m{i}")
    assert [t.content for t in state.turns] == ["m2", "m3", "m4"]


def test_trim_to_single_turn_keeps_only_system():
    state = ConversationState(max_turns=1)
    state.add_system("sys")
    state.add_user("hello")

    assert [(t.role, t.content) for t in state.turns] == [(Role.SYSTEM, "sys")]


def test_trim_never_splits_tool_call_turn_from_results():
    state = ConversationState(max_turns=4)
    state.add_system("prompt")
    state.add_user("do three things")
    state.add_assistant(None, [_call("a"), _call("b"), _call("c")])
    state.add_tool_result(_result("a"))
    state.add_tool_result(_result("b"))
    state.add_tool_result(_result("c"))

    turns = state.turns
    assert turns[0].role == Role.SYSTEM
    assert turns[1].role == Role.ASSISTANT
    assert [t.tool_call_id for t in turns[2:]] == ["a", "b", "c"]
    _assert_pairs_intact(state)


def test_trim_preserves_pairs_across_many_batches():
    state = ConversationState(max_turns=6)
    state.add_system("prompt")
    for batch in range(20):
        state.add_user(f"request {batch}")
        calls = [_call(f"{batch}-{i}") for i in range(batch % 3 + 1)]
        state.add_assistant(None, calls)
        for call in calls:
            state.add_tool_result(_result(call.id))
            _assert_pairs_intact(state, complete=False)
        state.add_assistant(f"done {batch}")
        _assert_pairs_intact(state)
        assert state.turns[0].role == Role.SYSTEM


def test_clear_keeps_system_turn():
    state = ConversationState()
    state.add_system("prompt")
    state.add_user("hi")
    state.clear(keep_system=True)
    assert [t.role for t in state.turns] == [Role.SYSTEM]

    state.clear(keep_system=False)
    assert len(state) == 0


def test_set_system_prompt_replaces_or_inserts():
    state = ConversationState()
    state.add_user("hi")
    state.set_system_prompt("first")
    assert state.turns[0].content == "first"

    state.set_system_prompt("second")
    assert [t.content for t in state.turns] == ["second", "hi"]


def test_messages_for_model():
    state = ConversationState()
    state.add_system("prompt")
    state.add_user("what is 1+1?")
    state.add_assistant(None, [_call("a")])
    state.add_tool_result(_result("a"))

    messages = state.messages_for_model()
    assert messages[0] == {"role": "system", "content": "prompt"}
    assert messages[2]["tool_calls"] == [
        {"function": {"name": "calculator", "arguments": {"expression": "1+1"}}}
    ]
    assert messages[3] == {"role": "tool", "content": "2", "tool_name": "calculator"}


def test_export_import():
    state = ConversationState(max_turns=10)
    state.add_system("prompt")
    state.add_user("hi")
    state.add_assistant(None, [_call("a")])
    state.add_tool_result(_result("a"))

    restored = ConversationState.from_dict(json.loads(json.dumps(state.to_dict())))
    assert restored.max_turns == 10
    assert [t.to_dict() for t in restored.turns] == [t.to_dict() for t in state.turns]


def test_stats():
    state = ConversationState()
    state.add_system("abcd")
    state.add_user("ab")
    stats = state.stats()
    assert stats["total_turns"] == 2
    assert stats["system_turns"] == 1
    assert stats["user_turns"] == 1
    assert stats["average_content_length"] == 3
