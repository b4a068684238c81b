"""ToolCatalog for tool registration, lookup and execution.

The catalog is created once at startup and shared by every session. It
holds no per-session state; execution history is a bounded deque used only
for statistics.
"""

import logging
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Callable

from toolrunner.tools.types import Tool, ToolResult

logger = logging.getLogger(__name__)

MAX_EXECUTION_HISTORY = 1000


class ToolCatalog:
    """Registry of available tools.

    Attributes:
        max_history: Maximum number of execution records kept for stats
    """

    def __init__(self, max_history: int = MAX_EXECUTION_HISTORY) -> None:
        self._tools: dict[str, Tool] = {}
        self._listeners: list[Callable[[], None]] = []
        self.max_history = max_history
        self._history: deque[dict[str, Any]] = deque(maxlen=max_history)

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any existing tool with the same name.

        Raises:
            ValueError: If the tool definition is invalid
        """
        errors = tool.definition_errors()
        if errors:
            raise ValueError(
                f"Cannot register invalid tool '{tool.name}': {', '.join(errors)}"
            )

        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' is being replaced")

        self._tools[tool.name] = tool
        self._notify_listeners()
        logger.info(f"Tool registered: {tool.name}")

    def unregister(self, name: str) -> bool:
        """Remove a tool by name.

        Returns:
            True if the tool existed and was removed
        """
        if self._tools.pop(name, None) is None:
            return False
        self._notify_listeners()
        logger.info(f"Tool unregistered: {name}")
        return True

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[Tool]:
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """Get all tools in function-calling schema format."""
        return [tool.to_schema() for tool in self._tools.values()]

    def tools_info(self) -> list[dict[str, Any]]:
        """Get name, title, description and input schema for every tool."""
        return [
            {
                "name": tool.name,
                "title": tool.title,
                "description": tool.description,
                "input_schema": tool.input_schema,
            }
            for tool in self._tools.values()
        ]

    def format_for_llm(self) -> str:
        """Render every tool as text for prompt-based decision making."""
        return "\n".join(tool.format_for_llm() for tool in self._tools.values())

    def search(self, query: str) -> list[Tool]:
        """Find tools whose name, title or description contains the query."""
        needle = query.lower()
        return [
            tool
            for tool in self._tools.values()
            if needle in tool.name.lower()
            or needle in tool.description.lower()
            or (tool.title is not None and needle in tool.title.lower())
        ]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name.

        Unknown tools produce a failed ToolResult listing what is available.
        This method never raises for tool-level failures.

        Args:
            name: Tool name
            arguments: Parsed arguments

        Returns:
            ToolResult describing the outcome
        """
        tool = self._tools.get(name)
        if tool is None:
            available = ", ".join(self._tools) or "none"
            result = ToolResult(
                success=False,
                error=f"Tool '{name}' not found. Available tools: {available}",
                metadata={"tool_name": name, "parameters": arguments},
            )
            self._record(name, arguments, result)
            logger.warning(f"Requested unknown tool: {name}")
            return result

        logger.debug(f"Executing tool: {name} with {arguments}")
        result = await tool.execute(arguments)
        self._record(name, arguments, result)

        if result.success:
            logger.debug(f"Tool execution successful: {name}")
        else:
            logger.info(f"Tool execution failed: {name}: {result.error}")
        return result

    def _record(self, name: str, arguments: dict[str, Any], result: ToolResult) -> None:
        self._history.append(
            {
                "tool_name": name,
                "parameters": arguments,
                "success": result.success,
                "error": result.error,
                "timestamp": datetime.now(timezone.utc)
                .isoformat()
                .replace("+00:00", "Z"),
            }
        )

    def get_execution_history(self) -> list[dict[str, Any]]:
        return list(self._history)

    def get_execution_stats(self) -> dict[str, Any]:
        """Summarise the retained execution history."""
        total = len(self._history)
        successful = sum(1 for entry in self._history if entry["success"])
        usage = Counter(entry["tool_name"] for entry in self._history)
        errors = [
            f"{entry['tool_name']}: {entry['error']}"
            for entry in self._history
            if not entry["success"] and entry["error"]
        ]
        return {
            "total_executions": total,
            "successful_executions": successful,
            "failed_executions": total - successful,
            "tool_usage_counts": dict(usage),
            "recent_errors": errors[-10:],
        }

    def clear_history(self) -> None:
        self._history.clear()

    def on_tools_changed(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a listener for registry changes.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in tool change listener: {e}")


def register_list_tools(catalog: ToolCatalog) -> Tool:
    """Register the built-in list_tools tool on a catalog.

    The tool reports every tool currently in the catalog, so it reflects
    later registrations too.
    """

    def _list_tools(arguments: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            {"name": info["name"], "description": info["description"]}
            for info in catalog.tools_info()
        ]

    tool = Tool(
        name="list_tools",
        description="List all tools that are currently available",
        input_schema={"type": "object", "properties": {}},
        handler=_list_tools,
        title="List tools",
    )
    catalog.register(tool)
    return tool
