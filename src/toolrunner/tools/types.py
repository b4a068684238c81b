"""Data types for tool definitions and execution results."""

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from jsonschema import Draft7Validator, SchemaError
from jsonschema import ValidationError as SchemaValidationError

from toolrunner.errors import ToolExecutionError, ToolValidationError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Any | Awaitable[Any]]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _format_validation_error(error: SchemaValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


@dataclass
class ToolResult:
    """Outcome of a single tool execution.

    Attributes:
        success: Whether the handler ran and returned normally
        data: The handler's return value on success
        error: Error message on failure
        metadata: Tool name, execution time and parameters
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Tool:
    """A named tool with a JSON-schema input and an execute handler.

    Handlers receive the parsed argument dict and may be plain functions or
    coroutine functions. Arguments are validated against input_schema
    before the handler is invoked.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    title: str | None = None

    def __post_init__(self) -> None:
        self._validator: Draft7Validator | None = None

    def definition_errors(self) -> list[str]:
        """Check the tool definition itself.

        Returns:
            List of problems; empty when the definition is valid
        """
        errors: list[str] = []
        if not self.name or not isinstance(self.name, str):
            errors.append("Tool name is required and must be a string")
        if not self.description or not isinstance(self.description, str):
            errors.append("Tool description is required and must be a string")
        if not callable(self.handler):
            errors.append("Tool handler is required and must be callable")
        if not isinstance(self.input_schema, dict):
            errors.append("Tool input_schema is required and must be an object")
            return errors
        if "type" not in self.input_schema:
            errors.append("input_schema must have a type property")
        try:
            Draft7Validator.check_schema(self.input_schema)
        except SchemaError as e:
            errors.append(f"input_schema is not a valid JSON schema: {e.message}")
        return errors

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate arguments against the input schema.

        Raises:
            ToolValidationError: On the first schema violation found
        """
        if self._validator is None:
            self._validator = Draft7Validator(self.input_schema)
        error = next(iter(self._validator.iter_errors(arguments)), None)
        if error is not None:
            raise ToolValidationError(
                f"Invalid arguments for '{self.name}': {_format_validation_error(error)}"
            )

    async def execute(self, arguments: dict[str, Any]) -> ToolResult:
        """Validate arguments and run the handler.

        Never raises for validation or handler failures; both become a
        ToolResult with success=False.
        """
        metadata = {
            "tool_name": self.name,
            "executed_at": _utc_now(),
            "parameters": arguments,
        }

        try:
            self.validate_arguments(arguments)
        except ToolValidationError as e:
            logger.debug(f"Validation failed for tool {self.name}: {e}")
            return ToolResult(success=False, error=str(e), metadata=metadata)

        try:
            result = self.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            failure = ToolExecutionError(self.name, str(e) or type(e).__name__)
            logger.warning(str(failure))
            metadata["exception"] = type(e).__name__
            return ToolResult(success=False, error=failure.message, metadata=metadata)

        # Handlers may report their own failure by returning a ToolResult
        if isinstance(result, ToolResult):
            result.metadata = {**metadata, **result.metadata}
            return result

        return ToolResult(success=True, data=result, metadata=metadata)

    def to_schema(self) -> dict[str, Any]:
        """Get the tool in function-calling schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

    def format_for_llm(self) -> str:
        """Render the tool as plain text for prompt-based decision making."""
        properties = self.input_schema.get("properties") or {}
        required = set(self.input_schema.get("required") or [])

        arg_lines = []
        for param_name, param_info in properties.items():
            line = f"- {param_name}: {param_info.get('description', 'No description')}"
            if param_name in required:
                line += " (required)"
            if "type" in param_info:
                line += f" [{param_info['type']}]"
            if "enum" in param_info:
                line += f" (options: {', '.join(str(v) for v in param_info['enum'])})"
            arg_lines.append(line)

        output = f"Tool: {self.name}\n"
        if self.title:
            output += f"User-readable title: {self.title}\n"
        output += f"Description: {self.description}\n"
        output += "Arguments:\n" + "\n".join(arg_lines) + "\n"
        return output
