"""toolrunner-server: Headless tool-calling agent server for LLMs via Ollama.

This package provides a REST API for running agent sessions that let a
model call tools until it reaches a final answer, with loop protection and
a debug trace of every step.
"""

__version__ = "0.1.0"

from toolrunner.app import create_app  # noqa: E402

__all__ = ["create_app", "__version__"]
