"""Pydantic models for the tools API."""

from typing import Any

from pydantic import BaseModel


class ToolInfoResponse(BaseModel):
    name: str
    title: str | None = None
    description: str
    input_schema: dict[str, Any]


class ToolListResponse(BaseModel):
    tools: list[ToolInfoResponse]
    count: int


class ToolStatsResponse(BaseModel):
    """Execution statistics from the catalog's retained history."""

    total_executions: int
    successful_executions: int
    failed_executions: int
    tool_usage_counts: dict[str, int]
    recent_errors: list[str]
