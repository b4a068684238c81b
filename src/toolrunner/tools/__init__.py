"""Tool registry, schema conversion and execution layer.

This package provides the shared ToolCatalog, the Tool definition with
JSON-schema argument validation, and the built-in list_tools tool.
"""

from toolrunner.tools.catalog import ToolCatalog, register_list_tools
from toolrunner.tools.types import Tool, ToolHandler, ToolResult

__all__ = ["Tool", "ToolCatalog", "ToolHandler", "ToolResult", "register_list_tools"]
