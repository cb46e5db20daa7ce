# Tools package.
# Created: 2026-02-02

from pocketmcp.tools.packs import ToolPack, WidgetToolPack, get_tool_pack
from pocketmcp.tools.protocol import BaseTool, Resource, ToolContext, ToolDefinition, ToolResult
from pocketmcp.tools.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "Resource",
    "ToolContext",
    "ToolDefinition",
    "ToolPack",
    "ToolRegistry",
    "ToolResult",
    "WidgetToolPack",
    "get_tool_pack",
]
