"""Chat API endpoint.

Sends a user message to a session and returns the final assistant reply
after the model/tool loop has finished.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from toolrunner.dependencies import get_session_manager
from toolrunner.errors import SessionError
from toolrunner.models.chat import ChatRequest, ChatResponse
from toolrunner.routers.errors import http_error, session_http_error
from toolrunner.sessions import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.post("/{session_id}", response_model=ChatResponse)
async def chat(
    session_id: str,
    request_body: ChatRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> ChatResponse:
    """Send a message to a session and receive the final reply.

    Args:
        session_id: The session ID to chat with
        request_body: Chat request containing the message
        session_manager: Injected SessionManager

    Returns:
        ChatResponse with the final assistant text

    Raises:
        HTTPException: 400 if the message is empty, 404 if the session is
            not found, 409 if the session is not active
    """
    message = request_body.message.strip()
    if not message:
        raise http_error(
            status.HTTP_400_BAD_REQUEST,
            "empty_message",
            "Message must not be empty",
            {"session_id": session_id},
        )

    try:
        session = session_manager.get_session(session_id)
        reply = await session_manager.process_message(session_id, message)
    except SessionError as e:
        logger.warning(f"Chat request for session {session_id} rejected: {e}")
        raise session_http_error(e)

    logger.info(f"Processed message for session {session_id}")
    return ChatResponse(
        session_id=session_id,
        reply=reply,
        state=session.orchestrator.state.value,
        model_calls=session.orchestrator.iterations,
        error_count=session.error_count,
        is_active=session.is_active,
    )
