# Tool packs - the set of tools and resources a server exposes.
# Created: 2026-02-21
#
# A pack is chosen once at start-up (TOOL_PACK) and builds a fresh
# ToolRegistry for every session. Nothing downstream of the registry
# needs to know which pack is active.

from __future__ import annotations

import logging
from importlib import resources

from pocketmcp.tools.builtin import CountTool, GreetTool, WidgetGreetTool
from pocketmcp.tools.builtin.greet import GREET_WIDGET_URI
from pocketmcp.tools.protocol import Resource
from pocketmcp.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ToolPack:
    """Base pack: greet and count."""

    name = "basic"

    def __init__(self, count_step_delay: float = 1.0):
        self.count_step_delay = count_step_delay

    def build_registry(self) -> ToolRegistry:
        registry = ToolRegistry()
        registry.register(self._greet_tool())
        registry.register(CountTool(step_delay=self.count_step_delay))
        for resource in self.resources():
            registry.register_resource(resource)
        logger.debug("Built %s registry: %s", self.name, ", ".join(registry.tool_names))
        return registry

    def _greet_tool(self) -> GreetTool:
        return GreetTool()

    def resources(self) -> list[Resource]:
        return []


class WidgetToolPack(ToolPack):
    """Greet renders through an HTML widget served as a ui:// resource."""

    name = "widget"

    def __init__(self, count_step_delay: float = 1.0):
        super().__init__(count_step_delay)
        self._template: str | None = None

    def _greet_tool(self) -> GreetTool:
        return WidgetGreetTool()

    def resources(self) -> list[Resource]:
        if self._template is None:
            self._template = (
                (resources.files("pocketmcp.tools") / "templates" / "greet.html")
                .read_text(encoding="utf-8")
                .strip()
            )
        return [
            Resource(
                uri=GREET_WIDGET_URI,
                name="greet-ui",
                text=self._template,
                mime_type="text/html+skybridge",
                meta={"openai/widgetPrefersBorder": True},
            )
        ]


_PACKS: dict[str, type[ToolPack]] = {
    ToolPack.name: ToolPack,
    WidgetToolPack.name: WidgetToolPack,
}


def get_tool_pack(name: str = "basic", count_step_delay: float = 1.0) -> ToolPack:
    """Instantiate the pack registered under *name*."""
    try:
        pack_cls = _PACKS[name]
    except KeyError:
        raise ValueError(f"Unknown tool pack: {name!r} (expected one of {sorted(_PACKS)})") from None
    logger.info("Using tool pack: %s", name)
    return pack_cls(count_step_delay=count_step_delay)
