"""Integration tests for the debug trace endpoints."""

import pytest


async def _chat(async_client, message: str) -> str:
    response = await async_client.post("/api/v1/sessions", json={"start": True})
    session_id = response.json()["session_id"]
    response = await async_client.post(f"/api/v1/chat/{session_id}", json={"message": message})
    assert response.status_code == 200
    return session_id


@pytest.mark.asyncio
async def test_flows_record_a_tool_round_trip(async_client, mock_ollama_client, scripted_model):
    mock_ollama_client.chat.side_effect = [
        scripted_model.call(("calculator", {"expression": "10 + 5"})),
        scripted_model.reply("15"),
    ]
    session_id = await _chat(async_client, "What is 10 + 5?")

    response = await async_client.get("/api/v1/debug/flows", params={"session_id": session_id})

    assert response.status_code == 200
    flows = response.json()["flows"]
    assert len(flows) == 1
    flow = flows[0]
    assert flow["user_message"] == "What is 10 + 5?"
    assert flow["is_complete"] is True
    assert [event["type"] for event in flow["events"]] == [
        "user_message",
        "llm_request",
        "llm_response",
        "tool_call_parsed",
        "tool_execution",
        "tool_result",
        "llm_request",
        "llm_response",
        "final_response",
    ]

    response = await async_client.get(f"/api/v1/debug/flows/{flow['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == flow["id"]


@pytest.mark.asyncio
async def test_flows_are_filtered_by_session(async_client, mock_ollama_client, scripted_model):
    mock_ollama_client.chat.return_value = scripted_model.reply("ok")
    first = await _chat(async_client, "one")
    await _chat(async_client, "two")

    all_flows = (await async_client.get("/api/v1/debug/flows")).json()["flows"]
    first_flows = (
        await async_client.get("/api/v1/debug/flows", params={"session_id": first})
    ).json()["flows"]

    assert len(all_flows) == 2
    assert [flow["user_message"] for flow in first_flows] == ["one"]


@pytest.mark.asyncio
async def test_unknown_flow(async_client):
    response = await async_client.get("/api/v1/debug/flows/flow_0_deadbeef")

    assert response.status_code == 404
    assert response.json()["detail"]["error"]["code"] == "flow_not_found"


@pytest.mark.asyncio
async def test_events_and_stats(async_client, mock_ollama_client, scripted_model):
    mock_ollama_client.chat.return_value = scripted_model.reply(
        "ok", prompt_tokens=40, completion_tokens=2
    )
    await _chat(async_client, "Hello")

    events = (await async_client.get("/api/v1/debug/events", params={"limit": 2})).json()
    assert [event["type"] for event in events["events"]] == ["llm_response", "final_response"]

    stats = (await async_client.get("/api/v1/debug/stats")).json()
    assert stats["total_events"] == 4
    assert stats["total_flows"] == 1
    assert stats["active_flows"] == 0
    assert stats["token_usage"] == {
        "prompt_tokens": 40,
        "completion_tokens": 2,
        "total_tokens": 42,
    }


@pytest.mark.asyncio
async def test_export_clear_import(async_client, mock_ollama_client, scripted_model):
    mock_ollama_client.chat.return_value = scripted_model.reply("ok")
    await _chat(async_client, "Hello")

    exported = (await async_client.get("/api/v1/debug/export")).json()
    assert len(exported["events"]) == 4

    response = await async_client.delete("/api/v1/debug")
    assert response.status_code == 204
    assert (await async_client.get("/api/v1/debug/stats")).json()["total_events"] == 0

    response = await async_client.post("/api/v1/debug/import", json=exported)
    assert response.status_code == 204
    assert (await async_client.get("/api/v1/debug/stats")).json()["total_events"] == 4


@pytest.mark.asyncio
async def test_import_rejects_invalid_data(async_client):
    response = await async_client.post(
        "/api/v1/debug/import", json={"events": [{"type": "not_a_type"}]}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error"]["code"] == "invalid_debug_data"
