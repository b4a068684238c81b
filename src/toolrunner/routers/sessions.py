"""Sessions router for agent session management.

This module provides REST API endpoints for:
- Creating, listing, retrieving, renaming and deleting sessions
- Starting and stopping sessions
- Fetching and clearing session messages
- Aggregate session statistics
- Starting, stopping and inspecting the autonomous agent
"""

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, status

from toolrunner.dependencies import get_session_manager
from toolrunner.errors import SessionError
from toolrunner.models.sessions import (
    AutonomousStartRequest,
    AutonomousStatusResponse,
    CreateSessionRequest,
    MessageResponse,
    MessagesResponse,
    RenameSessionRequest,
    SessionListResponse,
    SessionResponse,
    SessionStatsResponse,
    ToolCallResponse,
)
from toolrunner.routers.errors import session_http_error
from toolrunner.sessions import SessionInfo, SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])

SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]


def _session_response(info: SessionInfo) -> SessionResponse:
    return SessionResponse(**asdict(info))


def _autonomous_status(session_manager: SessionManager, session_id: str) -> AutonomousStatusResponse:
    session = session_manager.get_session(session_id)
    if session.agent is None:
        return AutonomousStatusResponse(session_id=session_id, is_running=False)
    stats = session.agent.get_stats()
    return AutonomousStatusResponse(
        session_id=session_id,
        is_running=stats["is_running"],
        execution_count=stats["execution_count"],
        error_count=stats["error_count"],
        runtime_seconds=stats["runtime_seconds"],
        context_size=stats["context_size"],
        recent_tool_calls=stats["recent_tool_calls"],
        stop_reason=stats["stop_reason"],
        last_decision=stats["last_decision"],
    )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new session",
)
async def create_session(
    request: CreateSessionRequest,
    session_manager: SessionManagerDep,
) -> SessionResponse:
    """Create a new agent session.

    Args:
        request: Session creation parameters
        session_manager: Injected SessionManager

    Returns:
        Created session

    Raises:
        HTTPException: 409 if the maximum number of sessions is reached
    """
    try:
        session_id = session_manager.create_session(request.name)
        if request.start:
            session_manager.start_session(session_id)
        return _session_response(session_manager.get_session_info(session_id))
    except SessionError as e:
        logger.warning(f"Failed to create session: {e}")
        raise session_http_error(e)


@router.get("", response_model=SessionListResponse, summary="List all sessions")
async def list_sessions(session_manager: SessionManagerDep) -> SessionListResponse:
    return SessionListResponse(
        sessions=[_session_response(info) for info in session_manager.list_sessions()]
    )


@router.get(
    "/stats",
    response_model=SessionStatsResponse,
    summary="Get aggregate session statistics",
)
async def get_stats(session_manager: SessionManagerDep) -> SessionStatsResponse:
    return SessionStatsResponse(**session_manager.get_stats())


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session details",
)
async def get_session(session_id: str, session_manager: SessionManagerDep) -> SessionResponse:
    try:
        return _session_response(session_manager.get_session_info(session_id))
    except SessionError as e:
        raise session_http_error(e)


@router.patch(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Rename a session",
)
async def rename_session(
    session_id: str,
    request: RenameSessionRequest,
    session_manager: SessionManagerDep,
) -> SessionResponse:
    try:
        session_manager.rename_session(session_id, request.name)
        return _session_response(session_manager.get_session_info(session_id))
    except SessionError as e:
        raise session_http_error(e)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a session",
)
async def delete_session(session_id: str, session_manager: SessionManagerDep) -> None:
    """Stop and delete a session.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        session_manager.remove_session(session_id)
        logger.info(f"Deleted session {session_id}")
    except SessionError as e:
        logger.warning(f"Failed to delete session {session_id}: {e}")
        raise session_http_error(e)


@router.post(
    "/{session_id}/start",
    response_model=SessionResponse,
    summary="Start a session",
)
async def start_session(session_id: str, session_manager: SessionManagerDep) -> SessionResponse:
    try:
        session_manager.start_session(session_id)
        return _session_response(session_manager.get_session_info(session_id))
    except SessionError as e:
        raise session_http_error(e)


@router.post(
    "/{session_id}/stop",
    response_model=SessionResponse,
    summary="Stop a session",
)
async def stop_session(session_id: str, session_manager: SessionManagerDep) -> SessionResponse:
    try:
        session_manager.stop_session(session_id)
        return _session_response(session_manager.get_session_info(session_id))
    except SessionError as e:
        raise session_http_error(e)


@router.get(
    "/{session_id}/messages",
    response_model=MessagesResponse,
    summary="Get session messages",
)
async def get_messages(session_id: str, session_manager: SessionManagerDep) -> MessagesResponse:
    """Get the conversation turns currently held by a session.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        turns = session_manager.get_conversation(session_id)
    except SessionError as e:
        raise session_http_error(e)

    messages = [
        MessageResponse(
            turn_id=turn.turn_id,
            role=turn.role.value,
            content=turn.content,
            tool_calls=(
                [ToolCallResponse(**call.to_dict()) for call in turn.tool_calls]
                if turn.tool_calls
                else None
            ),
            tool_call_id=turn.tool_call_id,
            tool_name=turn.tool_name,
            timestamp=turn.timestamp,
        )
        for turn in turns
    ]
    return MessagesResponse(session_id=session_id, messages=messages)


@router.delete(
    "/{session_id}/messages",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear session history",
)
async def clear_messages(session_id: str, session_manager: SessionManagerDep) -> None:
    """Clear a session's history, keeping its system prompt."""
    try:
        session_manager.clear_history(session_id)
    except SessionError as e:
        raise session_http_error(e)


@router.post(
    "/{session_id}/autonomous",
    response_model=AutonomousStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start the autonomous agent",
)
async def start_autonomous(
    session_id: str,
    request: AutonomousStartRequest,
    session_manager: SessionManagerDep,
) -> AutonomousStatusResponse:
    """Start the autonomous decision agent for a session.

    Raises:
        HTTPException: 404 if session not found, 409 if the session is not
            active or the agent is already running
    """
    try:
        session_manager.start_autonomous(session_id, request.goal)
        return _autonomous_status(session_manager, session_id)
    except SessionError as e:
        raise session_http_error(e)


@router.get(
    "/{session_id}/autonomous",
    response_model=AutonomousStatusResponse,
    summary="Get autonomous agent status",
)
async def get_autonomous(
    session_id: str, session_manager: SessionManagerDep
) -> AutonomousStatusResponse:
    try:
        return _autonomous_status(session_manager, session_id)
    except SessionError as e:
        raise session_http_error(e)


@router.delete(
    "/{session_id}/autonomous",
    response_model=AutonomousStatusResponse,
    summary="Stop the autonomous agent",
)
async def stop_autonomous(
    session_id: str, session_manager: SessionManagerDep
) -> AutonomousStatusResponse:
    try:
        session_manager.stop_autonomous(session_id)
        return _autonomous_status(session_manager, session_id)
    except SessionError as e:
        raise session_http_error(e)
