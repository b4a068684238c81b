"""Pytest configuration and shared fixtures for toolrunner tests.

This module provides common fixtures used across all test modules,
including test app creation, async client setup, a scripted model client
and a tool catalog with a small calculator tool.
"""

import ast
import json
import operator
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from toolrunner import create_app
from toolrunner.config import ToolRunnerSettings
from toolrunner.debug import DebugEventManager
from toolrunner.ollama.types import ModelResponse, TokenUsage, ToolCallPayload
from toolrunner.tools import Tool, ToolCatalog, register_list_tools

_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}


def _evaluate(node):
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
        return _OPERATORS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    raise ValueError("Unsupported expression")


def calculate(arguments):
    return _evaluate(ast.parse(arguments["expression"], mode="eval"))


def make_calculator() -> Tool:
    return Tool(
        name="calculator",
        description="Evaluate a basic arithmetic expression",
        input_schema={
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Expression such as '10 + 5'",
                }
            },
            "required": ["expression"],
        },
        handler=calculate,
        title="Calculator",
    )


class ScriptedModelClient:
    """Model client double that replays canned responses in order.

    Exceptions in the script are raised instead of returned. Every call
    is recorded in `calls`.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[dict] = []
        self.host = "http://scripted"

    @staticmethod
    def reply(content, prompt_tokens=10, completion_tokens=5) -> ModelResponse:
        return ModelResponse(
            content=content,
            usage=TokenUsage.from_counts(prompt_tokens, completion_tokens),
            model="scripted-model",
            raw={"done": True},
        )

    @staticmethod
    def call(*calls, content=None) -> ModelResponse:
        """Build a response requesting tool calls given as (name, arguments) pairs.

        Arguments may be a dict or an already encoded string.
        """
        payloads = [
            ToolCallPayload(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=name,
                arguments_json=args if isinstance(args, str) else json.dumps(args),
            )
            for name, args in calls
        ]
        return ModelResponse(
            content=content,
            tool_calls=payloads,
            usage=TokenUsage.from_counts(20, 8),
            model="scripted-model",
            raw={"done": True},
        )

    async def chat(self, model, messages, tools=None, options=None, format=None):
        self.calls.append(
            {
                "model": model,
                "messages": json.loads(json.dumps(messages)),
                "tools": tools,
                "options": options,
                "format": format,
            }
        )
        if not self.responses:
            raise AssertionError("ScriptedModelClient ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def check_connection(self) -> bool:
        return True

    async def close(self) -> None:
        pass


@pytest.fixture
def scripted_model():
    """The ScriptedModelClient class, used as a factory and for its builders."""
    return ScriptedModelClient


@pytest.fixture
def catalog() -> ToolCatalog:
    """A catalog with list_tools and calculator registered."""
    tool_catalog = ToolCatalog()
    register_list_tools(tool_catalog)
    tool_catalog.register(make_calculator())
    return tool_catalog


@pytest.fixture
def debug_manager() -> DebugEventManager:
    return DebugEventManager()


@pytest.fixture
def test_settings():
    """Create test settings with fast autonomous delays.

    Returns:
        ToolRunnerSettings: Settings instance configured for testing.
    """
    return ToolRunnerSettings(
        host="127.0.0.1",
        port=8000,
        ollama_host="http://localhost:11434",
        model="test-model",
        system_prompt="You are a test assistant.",
        execution_delay=0.0,
        autonomous_min_delay=0.0,
        autonomous_max_delay=0.0,
        log_level="DEBUG",
        cors_origins=["*"],
    )


@pytest.fixture
def test_app(test_settings, catalog):
    """Create a FastAPI test application instance.

    Args:
        test_settings: Test settings fixture.
        catalog: Tool catalog fixture shared by all sessions.

    Returns:
        FastAPI: Configured test application.
    """
    return create_app(settings=test_settings, catalog=catalog)


@pytest_asyncio.fixture
async def async_client(test_app):
    """Create an async HTTP client for testing FastAPI endpoints.

    Args:
        test_app: Test application fixture.

    Yields:
        AsyncClient: Async HTTP client for making test requests.
    """
    # Trigger the lifespan startup manually for tests
    async with test_app.router.lifespan_context(test_app):
        transport = ASGITransport(app=test_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
