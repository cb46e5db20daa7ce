# Counting tool - streams a log notification per step.
# Created: 2026-02-21


import asyncio
from typing import Any

from pydantic import BaseModel, Field

from pocketmcp.tools.protocol import BaseTool, ToolContext, ToolResult


class CountArguments(BaseModel):
    number: float = Field(description="Number to count to", allow_inf_nan=False)


class CountTool(BaseTool):
    """Count up to a number, one step every ``step_delay`` seconds.

    Each step sends a ``notifications/message`` at level ``info`` to the
    calling session. Waiting is cooperative, so other sessions keep being
    served while a count is in progress.
    """

    Arguments = CountArguments

    def __init__(self, step_delay: float = 1.0):
        self.step_delay = step_delay

    @property
    def name(self) -> str:
        return "count"

    @property
    def description(self) -> str:
        return "A tool that counts to a given number"

    @property
    def annotations(self) -> dict[str, Any]:
        return {"title": "Counting Tool", "readOnlyHint": True, "openWorldHint": False}

    async def execute(self, args: CountArguments, ctx: ToolContext) -> ToolResult:
        target = _display(args.number)
        current = 0
        while current < args.number:
            current += 1
            await ctx.log("info", f"Counted to {current}")
            await ctx.report_progress(current, args.number)
            await asyncio.sleep(self.step_delay)

        return ToolResult.text(f"Counting to {target}")


def _display(number: float) -> str:
    """Render 3.0 as "3" and 2.5 as "2.5"."""
    return str(int(number)) if float(number).is_integer() else str(number)
