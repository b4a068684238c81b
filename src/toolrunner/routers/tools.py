"""Tools router: catalog listing and execution statistics."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from toolrunner.dependencies import get_tool_catalog
from toolrunner.models.tools import ToolInfoResponse, ToolListResponse, ToolStatsResponse
from toolrunner.tools import ToolCatalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/tools", tags=["tools"])


@router.get("", response_model=ToolListResponse, summary="List available tools")
async def list_tools(
    catalog: Annotated[ToolCatalog, Depends(get_tool_catalog)],
    query: str | None = None,
) -> ToolListResponse:
    """List registered tools, optionally filtered by a search query."""
    tools = catalog.search(query) if query else catalog.list_tools()
    items = [
        ToolInfoResponse(
            name=tool.name,
            title=tool.title,
            description=tool.description,
            input_schema=tool.input_schema,
        )
        for tool in tools
    ]
    return ToolListResponse(tools=items, count=len(items))


@router.get("/stats", response_model=ToolStatsResponse, summary="Tool execution stats")
async def tool_stats(
    catalog: Annotated[ToolCatalog, Depends(get_tool_catalog)],
) -> ToolStatsResponse:
    return ToolStatsResponse(**catalog.get_execution_stats())
