"""Debug trace endpoints.

This module exposes the shared DebugEventManager: flows, events,
aggregate stats, clearing, and a live SSE stream of new events.
"""

import asyncio
import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sse_starlette.sse import EventSourceResponse

from toolrunner.debug import DebugEvent, DebugEventManager
from toolrunner.dependencies import get_debug_manager
from toolrunner.models.debug import (
    ConversationFlowResponse,
    DebugEventResponse,
    DebugEventsResponse,
    DebugFlowsResponse,
    DebugStatsResponse,
)
from toolrunner.routers.errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/debug", tags=["debug"])

DebugManagerDep = Annotated[DebugEventManager, Depends(get_debug_manager)]


@router.get("/flows", response_model=DebugFlowsResponse, summary="List conversation flows")
async def list_flows(
    debug: DebugManagerDep, session_id: str | None = None
) -> DebugFlowsResponse:
    flows = debug.get_flows(session_id)
    return DebugFlowsResponse(
        flows=[ConversationFlowResponse(**flow.to_dict()) for flow in flows]
    )


@router.get(
    "/flows/{flow_id}",
    response_model=ConversationFlowResponse,
    summary="Get a conversation flow",
)
async def get_flow(flow_id: str, debug: DebugManagerDep) -> ConversationFlowResponse:
    flow = debug.get_flow(flow_id)
    if flow is None:
        raise http_error(
            status.HTTP_404_NOT_FOUND,
            "flow_not_found",
            f"Flow not found: {flow_id}",
            {"flow_id": flow_id},
        )
    return ConversationFlowResponse(**flow.to_dict())


@router.get("/events", response_model=DebugEventsResponse, summary="List debug events")
async def list_events(
    debug: DebugManagerDep, limit: int | None = None
) -> DebugEventsResponse:
    return DebugEventsResponse(
        events=[DebugEventResponse(**event.to_dict()) for event in debug.get_events(limit)]
    )


@router.get("/stats", response_model=DebugStatsResponse, summary="Get debug statistics")
async def get_stats(debug: DebugManagerDep) -> DebugStatsResponse:
    return DebugStatsResponse(**debug.get_stats())


@router.get("/export", summary="Export all debug data")
async def export_data(debug: DebugManagerDep) -> dict:
    return debug.export_data()


@router.post("/import", status_code=status.HTTP_204_NO_CONTENT, summary="Import debug data")
async def import_data(data: dict, debug: DebugManagerDep) -> None:
    try:
        debug.import_data(data)
    except ValueError as e:
        raise http_error(status.HTTP_400_BAD_REQUEST, "invalid_debug_data", str(e))


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear all debug data",
)
async def clear(debug: DebugManagerDep) -> None:
    debug.clear()


@router.get("/stream", summary="Stream debug events via SSE")
async def stream_events(
    request: Request,
    debug: DebugManagerDep,
    session_id: str | None = None,
) -> EventSourceResponse:
    """Stream new debug events as they are recorded.

    Args:
        request: FastAPI request object
        debug: Injected DebugEventManager
        session_id: Only stream events of this session

    Returns:
        EventSourceResponse emitting one "debug_event" per event
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[DebugEvent] = asyncio.Queue()

    def on_event(event: DebugEvent) -> None:
        if session_id is None or event.session_id == session_id:
            loop.call_soon_threadsafe(queue.put_nowait, event)

    unsubscribe = debug.on_event(on_event)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    logger.debug("Debug stream client disconnected")
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                yield {
                    "event": "debug_event",
                    "id": event.id,
                    "data": json.dumps(event.to_dict()),
                }
        finally:
            unsubscribe()

    return EventSourceResponse(event_generator())
