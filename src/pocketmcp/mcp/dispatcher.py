# Per-session JSON-RPC dispatcher.
# Created: 2026-02-21
#
# Turns inbound JSON-RPC payloads (single messages or batches) into response
# envelopes. Handler errors never escape: JSONRPCError becomes an error
# envelope, anything else becomes INTERNAL_ERROR and is logged.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pocketmcp import __version__
from pocketmcp.mcp.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    JSONRPCError,
    error_response,
    is_notification,
    is_request,
    is_response,
    success_response,
)
from pocketmcp.tools.protocol import LOG_LEVELS, ToolContext
from pocketmcp.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from pocketmcp.mcp.session import MCPSession

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]
SERVER_INFO = {"name": "pocketmcp", "version": __version__}


class InitializeParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: dict[str, Any] = Field(default_factory=dict, alias="clientInfo")


class CallToolParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] | None = Field(default=None, alias="_meta")


class ReadResourceParams(BaseModel):
    uri: str


class SetLevelParams(BaseModel):
    level: str


def _parse(model: type[BaseModel], params: dict[str, Any], method: str) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise JSONRPCError(
            INVALID_PARAMS,
            f"Invalid params for {method}",
            data=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


class SessionDispatcher:
    """JSON-RPC state machine for one MCP session."""

    def __init__(self, session: MCPSession, registry: ToolRegistry):
        self._session = session
        self._registry = registry
        self.initialized = False
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] = {}
        self.log_level = "debug"

        self._handlers = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "logging/setLevel": self._set_level,
        }

    @property
    def capabilities(self) -> dict[str, Any]:
        caps: dict[str, Any] = {"logging": {}, "tools": {"listChanged": False}}
        if self._registry.resources:
            caps["resources"] = {"listChanged": False}
        return caps

    async def dispatch(self, payload: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Handle a message or batch. Returns None when nothing needs answering."""
        if isinstance(payload, list):
            if not payload:
                return error_response(None, INVALID_REQUEST, "Invalid Request: empty batch")
            responses = []
            for message in payload:
                response = await self._dispatch_one(message)
                if response is not None:
                    responses.append(response)
            return responses or None
        return await self._dispatch_one(payload)

    async def _dispatch_one(self, message: Any) -> dict[str, Any] | None:
        if is_request(message):
            return await self._handle_request(message)
        if is_notification(message):
            self._handle_notification(message)
            return None
        if is_response(message):
            # This server never sends requests, so there is nothing to match.
            logger.debug("Ignoring response message on session %s", self._session.session_id)
            return None

        request_id = message.get("id") if isinstance(message, dict) else None
        if not isinstance(request_id, (str, int)) or isinstance(request_id, bool):
            request_id = None
        return error_response(request_id, INVALID_REQUEST, "Invalid Request")

    async def _handle_request(self, message: dict[str, Any]) -> dict[str, Any]:
        request_id = message["id"]
        method = message["method"]
        params = message.get("params")
        if params is None:
            params = {}

        try:
            if not isinstance(params, dict):
                raise JSONRPCError(INVALID_PARAMS, "params must be an object")
            handler = self._handlers.get(method)
            if handler is None:
                raise JSONRPCError(METHOD_NOT_FOUND, f"Method not found: {method}")
            if not self.initialized and method not in ("initialize", "ping"):
                raise JSONRPCError(INVALID_REQUEST, "Server not initialized")
            result = await handler(params, request_id)
        except JSONRPCError as e:
            logger.debug("%s failed on session %s: %s", method, self._session.session_id, e.message)
            return error_response(request_id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception("Unhandled error in %s (session %s)", method, self._session.session_id)
            return error_response(request_id, INTERNAL_ERROR, f"Internal error: {e}")

        return success_response(request_id, result)

    def _handle_notification(self, message: dict[str, Any]) -> None:
        method = message["method"]
        if method == "notifications/initialized":
            logger.info("Client ready on session %s", self._session.session_id)
        else:
            logger.debug("Ignoring notification %s", method)

    # -- methods --

    async def _initialize(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        if self.initialized:
            raise JSONRPCError(INVALID_REQUEST, "Session already initialized")
        init = _parse(InitializeParams, params, "initialize")

        if init.protocol_version in SUPPORTED_PROTOCOL_VERSIONS:
            self.protocol_version = init.protocol_version
        else:
            self.protocol_version = LATEST_PROTOCOL_VERSION
        self.client_info = init.client_info
        self.initialized = True

        logger.info(
            "Session %s initialized (protocol %s, client %s)",
            self._session.session_id,
            self.protocol_version,
            init.client_info.get("name", "unknown"),
        )
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities,
            "serverInfo": SERVER_INFO,
        }

    async def _ping(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        return {"tools": self._registry.get_definitions()}

    async def _call_tool(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        call = _parse(CallToolParams, params, "tools/call")
        progress_token = (call.meta or {}).get("progressToken")
        ctx = ToolContext(
            session_id=self._session.session_id,
            request_id=request_id,
            notifier=self._session.send_notification,
            log_level=self.log_level,
            progress_token=progress_token,
        )
        result = await self._registry.call(call.name, call.arguments, ctx)
        return result.to_dict()

    async def _list_resources(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        if not self._registry.resources:
            raise JSONRPCError(METHOD_NOT_FOUND, "Method not found: resources/list")
        return {"resources": [r.to_listing() for r in self._registry.resources]}

    async def _read_resource(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        if not self._registry.resources:
            raise JSONRPCError(METHOD_NOT_FOUND, "Method not found: resources/read")
        read = _parse(ReadResourceParams, params, "resources/read")
        resource = self._registry.get_resource(read.uri)
        if resource is None:
            raise JSONRPCError(RESOURCE_NOT_FOUND, "Resource not found", data={"uri": read.uri})
        return {"contents": [resource.to_contents()]}

    async def _set_level(self, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        level = _parse(SetLevelParams, params, "logging/setLevel").level
        if level not in LOG_LEVELS:
            raise JSONRPCError(INVALID_PARAMS, f"Unknown log level: {level}")
        self.log_level = level
        return {}
