# Tool registry for managing available tools and resources.
# Created: 2026-02-02


from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pocketmcp.mcp.jsonrpc import INTERNAL_ERROR, INVALID_PARAMS, JSONRPCError
from pocketmcp.tools.protocol import BaseTool, Resource, ToolContext, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry of the tools (and static resources) one session exposes.

    Usage:
        registry = ToolRegistry()
        registry.register(GreetTool())

        # Definitions for tools/list
        definitions = registry.get_definitions()

        # Execute a tool
        result = await registry.call("greet", {"name": "Ada"}, ctx)
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._resources: dict[str, Resource] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def register_resource(self, resource: Resource) -> None:
        self._resources[resource.uri] = resource
        logger.debug("Registered resource: %s", resource.uri)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def get_definitions(self) -> list[dict[str, Any]]:
        return [tool.definition.to_mcp_schema() for tool in self._tools.values()]

    def get_resource(self, uri: str) -> Resource | None:
        return self._resources.get(uri)

    @property
    def resources(self) -> list[Resource]:
        return list(self._resources.values())

    async def call(self, name: str, arguments: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Validate *arguments* and execute tool *name*.

        Raises:
            JSONRPCError: INVALID_PARAMS for an unknown tool or bad arguments,
                INTERNAL_ERROR if the tool itself fails.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise JSONRPCError(INVALID_PARAMS, f"Tool {name} not found")

        try:
            args = tool.Arguments.model_validate(arguments)
        except ValidationError as e:
            raise JSONRPCError(
                INVALID_PARAMS,
                f"Invalid arguments for tool {name}",
                data=e.errors(include_url=False, include_context=False, include_input=False),
            ) from e

        try:
            logger.debug("Executing %s with %s", name, arguments)
            result = await tool.execute(args, ctx)
        except JSONRPCError:
            raise
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e, exc_info=True)
            raise JSONRPCError(INTERNAL_ERROR, f"Error executing {name}: {e}") from e

        logger.debug("%s finished (session %s)", name, ctx.session_id)
        return result

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())
