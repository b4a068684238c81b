"""FastAPI application factory and lifespan management.

This module contains the create_app() factory function that creates and configures
the FastAPI application instance, including lifespan management for startup/shutdown
and router registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolrunner import __version__
from toolrunner.config import ToolRunnerSettings
from toolrunner.debug import DebugEventManager
from toolrunner.ollama import OllamaClient
from toolrunner.routers import chat, debug, health, sessions, tools
from toolrunner.sessions import SessionManager
from toolrunner.tools import ToolCatalog, register_list_tools

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan context manager for FastAPI application.

    The model client, tool catalog, debug event manager and session manager
    are created once at startup and stored in app.state. A catalog placed on
    app.state before startup is used instead of a fresh one, so embedding
    applications can register their own tools.

    Args:
        app: The FastAPI application instance.

    Yields:
        None: Control is yielded while the app is running.
    """
    settings: ToolRunnerSettings = app.state.settings

    app.state.ollama_client = OllamaClient(
        host=settings.ollama_host, timeout=settings.request_timeout
    )
    logger.info(f"Initialized Ollama client with host: {settings.ollama_host}")

    connected = await app.state.ollama_client.check_connection()
    if connected:
        logger.info("Successfully connected to Ollama")
    else:
        logger.warning("Could not connect to Ollama - check if server is running")

    catalog: ToolCatalog | None = getattr(app.state, "tool_catalog", None)
    if catalog is None:
        catalog = ToolCatalog()
        app.state.tool_catalog = catalog
    if not catalog.has("list_tools"):
        register_list_tools(catalog)

    app.state.debug_manager = DebugEventManager(
        max_events=settings.debug_max_events,
        max_flows=settings.debug_max_flows,
    )
    app.state.session_manager = SessionManager(
        settings=settings,
        model_client=app.state.ollama_client,
        catalog=catalog,
        debug=app.state.debug_manager,
    )
    logger.info(f"Session manager ready ({len(catalog)} tools registered)")

    yield

    await app.state.session_manager.shutdown()
    await app.state.ollama_client.close()
    logger.info("Ollama client closed")


def create_app(
    settings: ToolRunnerSettings | None = None,
    catalog: ToolCatalog | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional ToolRunnerSettings instance. If not provided,
                  settings will be loaded from environment variables.
        catalog: Optional pre-populated tool catalog shared by all sessions.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        from toolrunner.dependencies import get_settings

        settings = get_settings()

    app = FastAPI(
        title="toolrunner-server",
        description="Headless tool-calling agent server for LLMs via Ollama",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    if catalog is not None:
        app.state.tool_catalog = catalog

    # Note: FastAPI's type hints for add_middleware are overly strict
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(tools.router)
    app.include_router(sessions.router)
    app.include_router(chat.router)
    app.include_router(debug.router)

    return app
