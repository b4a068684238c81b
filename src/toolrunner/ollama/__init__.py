"""Ollama client wrapper and integration layer.

This package provides the async model collaborator used by the orchestrator.
All Ollama interactions are async and use streaming internally.
"""

from toolrunner.ollama.client import OllamaClient
from toolrunner.ollama.types import ModelResponse, TokenUsage, ToolCallPayload

__all__ = ["OllamaClient", "ModelResponse", "TokenUsage", "ToolCallPayload"]
