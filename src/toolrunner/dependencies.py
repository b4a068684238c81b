"""Dependency injection providers for FastAPI endpoints.

This module provides FastAPI dependency functions that hand routers the
collaborators created once in the application lifespan.
"""

from functools import lru_cache

from fastapi import HTTPException, Request

from toolrunner.config import ToolRunnerSettings
from toolrunner.debug import DebugEventManager
from toolrunner.ollama import OllamaClient
from toolrunner.sessions import SessionManager
from toolrunner.tools import ToolCatalog


@lru_cache
def get_settings() -> ToolRunnerSettings:
    """Get the application settings instance.

    This function is cached so that the same settings instance is reused
    across all requests. Settings are loaded from environment variables
    with the TOOLRUNNER_ prefix.

    Returns:
        ToolRunnerSettings: The application configuration settings.
    """
    return ToolRunnerSettings()


def _get_state(request: Request, name: str, label: str):
    if not hasattr(request.app.state, name):
        raise HTTPException(status_code=503, detail=f"{label} not initialized")
    return getattr(request.app.state, name)


def get_ollama_client(request: Request) -> OllamaClient:
    """Get the Ollama client from app state.

    Raises:
        HTTPException: If the Ollama client is not initialized (503 Service Unavailable).
    """
    return _get_state(request, "ollama_client", "Ollama client")


def get_tool_catalog(request: Request) -> ToolCatalog:
    return _get_state(request, "tool_catalog", "Tool catalog")


def get_debug_manager(request: Request) -> DebugEventManager:
    return _get_state(request, "debug_manager", "Debug event manager")


def get_session_manager(request: Request) -> SessionManager:
    """Get the shared SessionManager from app state.

    Sessions live in memory, so every request must see the same manager.

    Raises:
        HTTPException: If the manager is not initialized (503 Service Unavailable).
    """
    return _get_state(request, "session_manager", "Session manager")
