"""CLI entry point for toolrunner-server.

This module provides the command-line interface for starting the server.
It can be invoked as `toolrunner-server` (via the script entry point) or
`python -m toolrunner`.
"""

import argparse
import logging
import sys

import uvicorn

from toolrunner import __version__, create_app
from toolrunner.config import ToolRunnerSettings


def main() -> None:
    """Main entry point for the toolrunner-server CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="toolrunner-server",
        description="Headless tool-calling agent server for LLMs via Ollama",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolrunner-server {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via TOOLRUNNER_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via TOOLRUNNER_PORT)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via TOOLRUNNER_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model used by all sessions (default: llama3.2:latest, can be set via TOOLRUNNER_MODEL)",
    )

    parser.add_argument(
        "--max-sessions",
        type=int,
        default=None,
        help="Maximum number of concurrent sessions (default: 5, can be set via TOOLRUNNER_MAX_SESSIONS)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via TOOLRUNNER_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.model is not None:
        settings_kwargs["model"] = args.model
    if args.max_sessions is not None:
        settings_kwargs["max_sessions"] = args.max_sessions
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = ToolRunnerSettings(**settings_kwargs)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
