# Tool protocol: the seam between the MCP session and tool implementations.
# Created: 2026-02-02
#
# A tool declares its arguments as a pydantic model, receives validated
# arguments plus a ToolContext, and returns a ToolResult. Through the context
# a tool can push log/progress notifications to its session while it runs.

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel

# RFC 5424 severities, lowest first.
LOG_LEVELS = ("debug", "info", "notice", "warning", "error", "critical", "alert", "emergency")

Notifier = Callable[[str, dict[str, Any]], Awaitable[bool]]


@dataclass
class ToolDefinition:
    """Tool definition as advertised by tools/list."""

    name: str
    description: str
    input_schema: dict[str, Any]
    title: str | None = None
    annotations: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None

    def to_mcp_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.title:
            schema["title"] = self.title
        if self.annotations:
            schema["annotations"] = self.annotations
        if self.meta:
            schema["_meta"] = self.meta
        return schema


@dataclass
class ToolResult:
    """Result of a tools/call."""

    content: list[dict[str, Any]] = field(default_factory=list)
    structured_content: dict[str, Any] | None = None
    is_error: bool = False

    @classmethod
    def text(cls, text: str, **kwargs: Any) -> ToolResult:
        return cls(content=[{"type": "text", "text": text}], **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": self.content}
        if self.structured_content is not None:
            result["structuredContent"] = self.structured_content
        if self.is_error:
            result["isError"] = True
        return result


@dataclass
class Resource:
    """A static resource served through resources/list and resources/read."""

    uri: str
    name: str
    text: str
    mime_type: str = "text/plain"
    meta: dict[str, Any] | None = None

    def to_listing(self) -> dict[str, Any]:
        return {"uri": self.uri, "name": self.name, "mimeType": self.mime_type}

    def to_contents(self) -> dict[str, Any]:
        contents: dict[str, Any] = {"uri": self.uri, "mimeType": self.mime_type, "text": self.text}
        if self.meta:
            contents["_meta"] = self.meta
        return contents


class ToolContext:
    """Per-call context handed to a tool.

    Notifications are best effort: if the session has no live event stream
    they are dropped and the send methods return False.
    """

    def __init__(
        self,
        session_id: str,
        request_id: Any,
        notifier: Notifier,
        log_level: str = "debug",
        progress_token: str | int | None = None,
    ):
        self.session_id = session_id
        self.request_id = request_id
        self._notifier = notifier
        self._min_level = LOG_LEVELS.index(log_level) if log_level in LOG_LEVELS else 0
        self.progress_token = progress_token

    async def log(self, level: str, data: Any, logger_name: str | None = None) -> bool:
        """Send a notifications/message to the session's event stream."""
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        if LOG_LEVELS.index(level) < self._min_level:
            return False
        params: dict[str, Any] = {"level": level, "data": data}
        if logger_name:
            params["logger"] = logger_name
        return await self._notifier("notifications/message", params)

    async def report_progress(
        self, progress: float, total: float | None = None, message: str | None = None
    ) -> bool:
        """Send notifications/progress if the caller asked for progress."""
        if self.progress_token is None:
            return False
        params: dict[str, Any] = {"progressToken": self.progress_token, "progress": progress}
        if total is not None:
            params["total"] = total
        if message:
            params["message"] = message
        return await self._notifier("notifications/progress", params)


class BaseTool(ABC):
    """Base class for tools."""

    # Pydantic model describing (and validating) the tool's arguments.
    Arguments: ClassVar[type[BaseModel]]

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name (used in tools/call)."""
        ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    def title(self) -> str | None:
        return None

    @property
    def annotations(self) -> dict[str, Any] | None:
        return None

    @property
    def meta(self) -> dict[str, Any] | None:
        return None

    @property
    def definition(self) -> ToolDefinition:
        schema = self.Arguments.model_json_schema()
        schema.pop("title", None)
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=schema,
            title=self.title,
            annotations=self.annotations,
            meta=self.meta,
        )

    @abstractmethod
    async def execute(self, args: BaseModel, ctx: ToolContext) -> ToolResult:
        """Run the tool with validated arguments."""
        ...
