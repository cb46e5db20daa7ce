# Greeting tool, plain and widget-rendering variants.
# Created: 2026-02-21


from typing import Any

from pydantic import BaseModel, Field

from pocketmcp.tools.protocol import BaseTool, ToolContext, ToolResult

GREET_WIDGET_URI = "ui://widget/greet.html"


class GreetArguments(BaseModel):
    name: str = Field(description="Name to greet")


class GreetTool(BaseTool):
    """Say hello."""

    Arguments = GreetArguments

    @property
    def name(self) -> str:
        return "greet"

    @property
    def title(self) -> str:
        return "Greeting Tool"

    @property
    def description(self) -> str:
        return "Say hello"

    async def execute(self, args: GreetArguments, ctx: ToolContext) -> ToolResult:
        return ToolResult.text(f"Hello, {args.name}!")


class WidgetGreetTool(GreetTool):
    """Greeting tool whose output is rendered by the greet widget."""

    @property
    def meta(self) -> dict[str, Any]:
        return {
            "openai/outputTemplate": GREET_WIDGET_URI,
            "openai/toolInvocation/invoking": "Saying hello…",
            "openai/toolInvocation/invoked": "Said hello",
            "openai/widgetAccessible": True,
        }

    async def execute(self, args: GreetArguments, ctx: ToolContext) -> ToolResult:
        greeting = f"Hello, {args.name}!"
        return ToolResult.text(
            greeting,
            structured_content={"name": args.name, "greeting": greeting},
        )
