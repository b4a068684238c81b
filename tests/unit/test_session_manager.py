"""Unit tests for SessionManager and AgentSession.

Tests session lifecycle, message processing, failure replies, automatic
stopping after repeated errors and the autonomous agent controls.
"""

import asyncio
import json

import pytest

from toolrunner.conversation import Role
from toolrunner.errors import (
    AutonomousAlreadyRunningError,
    CapacityExceededError,
    ModelHTTPError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from toolrunner.sessions import SessionManager


@pytest.fixture
def make_manager(test_settings, catalog, debug_manager):
    def factory(model, **overrides):
        settings = test_settings.model_copy(update=overrides)
        return SessionManager(settings, model, catalog, debug_manager)

    return factory


def _started(manager: SessionManager) -> str:
    session_id = manager.create_session()
    manager.start_session(session_id)
    return session_id


def test_create_session_defaults(scripted_model, make_manager):
    manager = make_manager(scripted_model())

    first = manager.create_session()
    second = manager.create_session("Research")

    assert len(first) == 10
    assert manager.get_session_info(first).name == "Session 1"
    assert manager.get_session_info(second).name == "Research"
    assert manager.get_session_info(first).is_active is False
    assert [info.session_id for info in manager.list_sessions()] == [first, second]


def test_capacity_is_enforced(scripted_model, make_manager):
    manager = make_manager(scripted_model(), max_sessions=2)
    manager.create_session()
    manager.create_session()

    with pytest.raises(CapacityExceededError):
        manager.create_session()
    assert len(manager) == 2


def test_unknown_and_removed_sessions(scripted_model, make_manager):
    manager = make_manager(scripted_model())
    session_id = manager.create_session()
    manager.remove_session(session_id)

    with pytest.raises(SessionNotFoundError):
        manager.get_session(session_id)
    with pytest.raises(SessionNotFoundError):
        manager.remove_session("0123456789")


def test_rename_session(scripted_model, make_manager):
    manager = make_manager(scripted_model())
    session_id = manager.create_session()

    manager.rename_session(session_id, "Renamed")

    assert manager.get_session_info(session_id).name == "Renamed"


def test_system_prompt_is_first_turn(scripted_model, make_manager):
    manager = make_manager(scripted_model())
    session_id = manager.create_session()

    turns = manager.get_conversation(session_id)

    assert turns[0].role == Role.SYSTEM
    assert turns[0].content == "You are a test assistant."


@pytest.mark.asyncio
async def test_inactive_session_rejects_messages(scripted_model, make_manager):
    manager = make_manager(scripted_model())
    session_id = manager.create_session()

    with pytest.raises(SessionNotActiveError):
        await manager.process_message(session_id, "hello")


@pytest.mark.asyncio
async def test_process_message(scripted_model, make_manager, debug_manager):
    model = scripted_model(scripted_model.reply("Hello there!"))
    manager = make_manager(model)
    session_id = _started(manager)

    reply = await manager.process_message(session_id, "Hi")

    assert reply == "Hello there!"
    info = manager.get_session_info(session_id)
    assert info.message_count == 1
    assert info.turn_count == 3
    assert info.error_count == 0
    assert model.calls[0]["model"] == "test-model"

    flow = debug_manager.get_flows(session_id)[0]
    assert flow.user_message == "Hi"
    assert flow.is_complete is True


@pytest.mark.asyncio
async def test_loop_abort_becomes_reply_and_session_recovers(scripted_model, make_manager):
    call = ("calculator", {"expression": "2+2"})
    model = scripted_model(
        scripted_model.call(call),
        scripted_model.call(call),
        scripted_model.call(call),
        scripted_model.reply("Back to normal."),
    )
    manager = make_manager(model)
    session_id = _started(manager)
    session = manager.get_session(session_id)

    reply = await manager.process_message(session_id, "What is 2+2?")

    assert reply.startswith("I stopped working on this request.")
    assert session.error_count == 1
    assert session.is_active is True
    assert session.loop_guard.snapshot() == {"recent_calls": [], "recent_errors": []}
    assert session.conversation.last_turn().content == reply

    turns = session.conversation.turns
    calls = [c for t in turns if t.role == Role.ASSISTANT for c in t.tool_calls]
    results = [t for t in turns if t.role == Role.TOOL]
    assert len(calls) == len(results) == 3

    assert await manager.process_message(session_id, "Thanks") == "Back to normal."


@pytest.mark.asyncio
async def test_model_error_becomes_reply(scripted_model, make_manager, debug_manager):
    model = scripted_model(ModelHTTPError("Ollama API error: down", status_code=503))
    manager = make_manager(model)
    session_id = _started(manager)

    reply = await manager.process_message(session_id, "Hi")

    assert reply == "I encountered an error: Ollama API error: down. Please try again."
    assert manager.get_session_info(session_id).error_count == 1
    assert debug_manager.get_flows(session_id)[0].is_complete is True


@pytest.mark.asyncio
async def test_session_stops_after_too_many_errors(scripted_model, make_manager):
    model = scripted_model(
        ModelHTTPError("down", status_code=503),
        ModelHTTPError("down", status_code=503),
    )
    manager = make_manager(model, max_errors=1)
    session_id = _started(manager)

    await manager.process_message(session_id, "one")
    assert manager.get_session_info(session_id).is_active is True

    await manager.process_message(session_id, "two")
    assert manager.get_session_info(session_id).is_active is False

    with pytest.raises(SessionNotActiveError):
        await manager.process_message(session_id, "three")


@pytest.mark.asyncio
async def test_clear_history_keeps_system_prompt(scripted_model, make_manager):
    manager = make_manager(scripted_model(scripted_model.reply("ok")))
    session_id = _started(manager)
    await manager.process_message(session_id, "Hi")

    manager.clear_history(session_id)

    assert [t.role for t in manager.get_conversation(session_id)] == [Role.SYSTEM]


@pytest.mark.asyncio
async def test_stats(scripted_model, make_manager):
    manager = make_manager(
        scripted_model(scripted_model.reply("ok"), ModelHTTPError("down"))
    )
    session_id = _started(manager)
    manager.create_session()
    await manager.process_message(session_id, "one")
    await manager.process_message(session_id, "two")

    stats = manager.get_stats()

    assert stats["total_sessions"] == 2
    assert stats["active_sessions"] == 1
    assert stats["total_messages"] == 2
    assert stats["total_errors"] == 1

    manager.start_all()
    assert manager.get_stats()["active_sessions"] == 2
    manager.stop_all()
    assert manager.get_stats()["active_sessions"] == 0


@pytest.mark.asyncio
async def test_autonomous_run_to_model_stop(scripted_model, make_manager):
    model = scripted_model(
        scripted_model.reply(
            json.dumps(
                {"action": "tool", "tool": "calculator", "params": {"expression": "3*4"}}
            )
        ),
        scripted_model.reply(json.dumps({"action": "stop", "reasoning": "done"})),
    )
    manager = make_manager(model)
    session_id = _started(manager)
    session = manager.get_session(session_id)

    agent = manager.start_autonomous(session_id, goal="Multiply three by four")
    stop_reason = await session.wait_autonomous()

    assert stop_reason == "model_stop"
    assert agent.context.get("last_calculator") == 12
    assert manager.get_session_info(session_id).autonomous_running is False


@pytest.mark.asyncio
async def test_autonomous_requires_active_session(scripted_model, make_manager):
    manager = make_manager(scripted_model())
    session_id = manager.create_session()

    with pytest.raises(SessionNotActiveError):
        manager.start_autonomous(session_id)


@pytest.mark.asyncio
async def test_autonomous_start_twice_and_stop(scripted_model, make_manager):
    model = scripted_model(
        scripted_model.reply(json.dumps({"action": "wait", "delay": 10000}))
    )
    manager = make_manager(
        model, execution_delay=10.0, autonomous_min_delay=10.0, autonomous_max_delay=10.0
    )
    session_id = _started(manager)
    session = manager.get_session(session_id)

    agent = manager.start_autonomous(session_id)
    with pytest.raises(AutonomousAlreadyRunningError):
        manager.start_autonomous(session_id)

    for _ in range(100):
        if agent.last_decision is not None:
            break
        await asyncio.sleep(0)
    assert manager.get_session_info(session_id).autonomous_running is True

    assert manager.stop_autonomous(session_id) is True
    assert await asyncio.wait_for(session.wait_autonomous(), timeout=1.0) == "stopped"
    assert manager.stop_autonomous(session_id) is False


@pytest.mark.asyncio
async def test_shutdown_cancels_autonomous_runs(scripted_model, make_manager):
    model = scripted_model(
        scripted_model.reply(json.dumps({"action": "wait", "delay": 10000}))
    )
    manager = make_manager(
        model, execution_delay=10.0, autonomous_min_delay=10.0, autonomous_max_delay=10.0
    )
    session_id = _started(manager)
    manager.start_autonomous(session_id)
    await asyncio.sleep(0)

    await asyncio.wait_for(manager.shutdown(), timeout=1.0)

    info = manager.get_session_info(session_id)
    assert info.is_active is False
    assert info.autonomous_running is False


@pytest.mark.asyncio
async def test_autonomous_stop_right_after_start(scripted_model, make_manager):
    model = scripted_model(
        *[scripted_model.reply(json.dumps({"action": "wait"})) for _ in range(5)]
    )
    manager = make_manager(model)
    session_id = _started(manager)
    session = manager.get_session(session_id)

    agent = manager.start_autonomous(session_id)
    assert agent.is_running is True
    assert manager.stop_autonomous(session_id) is True

    assert await asyncio.wait_for(session.wait_autonomous(), timeout=1.0) == "stopped"
    assert model.calls == []


@pytest.mark.asyncio
async def test_stopping_session_cancels_pending_agent(scripted_model, make_manager):
    model = scripted_model(
        *[scripted_model.reply(json.dumps({"action": "wait"})) for _ in range(5)]
    )
    manager = make_manager(model)
    session_id = _started(manager)

    agent = manager.start_autonomous(session_id)
    manager.stop_session(session_id)
    await asyncio.sleep(0.05)

    assert agent.is_running is False
    assert manager.get_session_info(session_id).autonomous_running is False
    assert model.calls == []


class SlowModel:
    """Model double that yields to the event loop and tracks overlapping calls."""

    def __init__(self, reply, delay=0.01):
        self.reply = reply
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0

    async def chat(self, model, messages, tools=None, options=None, format=None):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.reply
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_messages_in_one_session_are_sequential(
    scripted_model, make_manager, debug_manager
):
    model = SlowModel(scripted_model.reply("ok"))
    manager = make_manager(model)
    session_id = _started(manager)

    replies = await asyncio.gather(
        manager.process_message(session_id, "first"),
        manager.process_message(session_id, "second"),
    )

    assert replies == ["ok", "ok"]
    assert model.calls == 2
    assert model.max_in_flight == 1
    flows = debug_manager.get_flows(session_id)
    assert sorted(flow.user_message for flow in flows) == ["first", "second"]
    assert all(flow.is_complete for flow in flows)
    assert [t.role for t in manager.get_conversation(session_id)] == [
        Role.SYSTEM,
        Role.USER,
        Role.ASSISTANT,
        Role.USER,
        Role.ASSISTANT,
    ]


@pytest.mark.asyncio
async def test_sessions_run_concurrently_with_separate_flows(
    scripted_model, make_manager, debug_manager
):
    model = SlowModel(scripted_model.reply("ok"))
    manager = make_manager(model)
    first = _started(manager)
    second = _started(manager)

    await asyncio.gather(
        manager.process_message(first, "from first"),
        manager.process_message(second, "from second"),
    )

    assert model.max_in_flight == 2
    for session_id, text in [(first, "from first"), (second, "from second")]:
        flows = debug_manager.get_flows(session_id)
        assert [flow.user_message for flow in flows] == [text]
        assert flows[0].is_complete is True
        assert {event.session_id for event in flows[0].events} == {session_id}
        assert [event.type.value for event in flows[0].events] == [
            "user_message",
            "llm_request",
            "llm_response",
            "final_response",
        ]


@pytest.mark.asyncio
async def test_unexpected_error_seals_flow(scripted_model, make_manager, debug_manager):
    manager = make_manager(scripted_model(RuntimeError("boom")))
    session_id = _started(manager)

    with pytest.raises(RuntimeError):
        await manager.process_message(session_id, "Hi")

    flow = debug_manager.get_flows(session_id)[0]
    assert flow.is_complete is True
    assert [event.type.value for event in flow.events][-2:] == ["error", "final_response"]
    last = manager.get_conversation(session_id)[-1]
    assert last.role == Role.ASSISTANT
    assert last.content == "Message processing failed: RuntimeError: boom."


@pytest.mark.asyncio
async def test_cancelled_message_seals_flow(scripted_model, make_manager, debug_manager):
    model = SlowModel(scripted_model.reply("late"), delay=10.0)
    manager = make_manager(model)
    session_id = _started(manager)

    task = asyncio.create_task(manager.process_message(session_id, "Hi"))
    for _ in range(100):
        if model.calls:
            break
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    flow = debug_manager.get_flows(session_id)[0]
    assert flow.is_complete is True
    assert debug_manager.get_current_flow(session_id) is None
    last = manager.get_conversation(session_id)[-1]
    assert last.content == "Message processing was cancelled."
