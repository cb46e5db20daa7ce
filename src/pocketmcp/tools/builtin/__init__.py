# Built-in demo tools.
# Created: 2026-02-21

from pocketmcp.tools.builtin.count import CountTool
from pocketmcp.tools.builtin.greet import GreetTool, WidgetGreetTool

__all__ = ["CountTool", "GreetTool", "WidgetGreetTool"]
