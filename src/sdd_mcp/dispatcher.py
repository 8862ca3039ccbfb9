"""Protocol dispatcher: the request handlers a client talks to.

The dispatcher holds no state of its own. It delegates to the tool registry,
the session manager and the resource/prompt providers, and shapes their
answers into protocol results. Business failures from tools come back as
``isError`` results; only malformed requests become JSON-RPC errors.

``handle_request`` processes already-decoded JSON-RPC 2.0 objects and is
transport-agnostic. ``sdd_mcp.mcp_server.bind_server`` wires the same handlers
onto the MCP SDK server for stdio.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import LATEST_PROTOCOL_VERSION, CallToolResult, GetPromptResult, Prompt, Resource, Tool

from sdd_mcp.capabilities import negotiate, server_capabilities
from sdd_mcp.config import ServerConfig
from sdd_mcp.errors import ErrorCode, ProtocolError, to_error_payload, validate_request
from sdd_mcp.prompts import PromptProvider
from sdd_mcp.registry import ToolExecutionContext, ToolRegistry, new_correlation_id
from sdd_mcp.resources import ResourceContent, ResourceProvider
from sdd_mcp.sessions import SessionManager
from sdd_mcp.tools.common import _text

logger = logging.getLogger(__name__)

JsonObject = dict[str, Any]
_Route = Callable[[JsonObject, str | None], Awaitable[JsonObject]]

# Hyphenated method names accepted alongside the MCP spellings.
METHOD_ALIASES: dict[str, str] = {
    "list-tools": "tools/list",
    "call-tool": "tools/call",
    "list-resources": "resources/list",
    "read-resource": "resources/read",
    "list-prompts": "prompts/list",
    "get-prompt": "prompts/get",
}


def _dump(model: Any) -> JsonObject:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _require_param(params: Mapping[str, Any], key: str, method: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        msg = f"Missing required parameter '{key}' for {method}"
        raise ProtocolError(ErrorCode.INVALID_PARAMS, msg)
    return value


class ProtocolDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        sessions: SessionManager,
        resources: ResourceProvider,
        prompts: PromptProvider,
        config: ServerConfig | None = None,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.resources = resources
        self.prompts = prompts
        self.config = config or ServerConfig()
        self._routes: dict[str, _Route] = {
            "initialize": self._route_initialize,
            "ping": self._route_ping,
            "tools/list": self._route_list_tools,
            "tools/call": self._route_call_tool,
            "resources/list": self._route_list_resources,
            "resources/read": self._route_read_resource,
            "prompts/list": self._route_list_prompts,
            "prompts/get": self._route_get_prompt,
        }

    # -- Handlers -----------------------------------------------------------

    def open_session(self, client_info: Mapping[str, Any] | None, client_capabilities: Mapping[str, Any] | None) -> str:
        """Negotiate capabilities and create a session seeded with the result."""
        negotiated = negotiate(client_capabilities)
        session = self.sessions.create_session(client_info)
        features = {k: v for k, v in negotiated.features.items() if k != "roots"}
        self.sessions.update_session_capabilities(session.id, features)
        return session.id

    def initialize(self, params: Mapping[str, Any]) -> JsonObject:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        client_info = params.get("clientInfo")
        client_caps = params.get("capabilities")
        session_id = self.open_session(
            client_info if isinstance(client_info, Mapping) else None,
            client_caps if isinstance(client_caps, Mapping) else None,
        )
        return {
            "protocolVersion": version,
            "capabilities": server_capabilities(),
            "serverInfo": {"name": self.config.name, "version": self.config.version},
            "sessionId": session_id,
        }

    async def list_tools(self) -> list[Tool]:
        return self.registry.list_tools()

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None, session_id: str | None = None) -> CallToolResult:
        context = ToolExecutionContext(
            tool_name=name,
            arguments=dict(arguments or {}),
            session_id=session_id,
            correlation_id=new_correlation_id(),
        )
        result = await self.registry.execute_tool(context)
        if result.success:
            return CallToolResult(content=_text(result.data), isError=False)
        return CallToolResult(content=_text(result.error or "Unknown error"), isError=True)

    async def list_resources(self) -> list[Resource]:
        return self.resources.list_resources()

    async def read_resource(self, uri: str) -> ResourceContent:
        return self.resources.read_resource(uri)

    async def list_prompts(self) -> list[Prompt]:
        return self.prompts.list_prompts()

    async def get_prompt(self, name: str, arguments: Mapping[str, str] | None = None) -> GetPromptResult:
        return self.prompts.get_prompt(name, arguments)

    # -- JSON-RPC -----------------------------------------------------------

    async def _route_initialize(self, params: JsonObject, session_id: str | None) -> JsonObject:
        return self.initialize(params)

    async def _route_ping(self, params: JsonObject, session_id: str | None) -> JsonObject:
        return {}

    async def _route_list_tools(self, params: JsonObject, session_id: str | None) -> JsonObject:
        return {"tools": [_dump(t) for t in await self.list_tools()]}

    async def _route_call_tool(self, params: JsonObject, session_id: str | None) -> JsonObject:
        name = _require_param(params, "name", "tools/call")
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, Mapping):
            msg = "tools/call arguments must be an object"
            raise ProtocolError(ErrorCode.INVALID_PARAMS, msg)
        return _dump(await self.call_tool(str(name), arguments, session_id=session_id))

    async def _route_list_resources(self, params: JsonObject, session_id: str | None) -> JsonObject:
        return {"resources": [_dump(r) for r in await self.list_resources()]}

    async def _route_read_resource(self, params: JsonObject, session_id: str | None) -> JsonObject:
        uri = _require_param(params, "uri", "resources/read")
        content = await self.read_resource(str(uri))
        return {"contents": [{"uri": content.uri, "mimeType": content.mime_type, "text": content.text}]}

    async def _route_list_prompts(self, params: JsonObject, session_id: str | None) -> JsonObject:
        return {"prompts": [_dump(p) for p in await self.list_prompts()]}

    async def _route_get_prompt(self, params: JsonObject, session_id: str | None) -> JsonObject:
        name = _require_param(params, "name", "prompts/get")
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, Mapping):
            msg = "prompts/get arguments must be an object"
            raise ProtocolError(ErrorCode.INVALID_PARAMS, msg)
        return _dump(await self.get_prompt(str(name), arguments))

    async def handle_request(self, request: Any, session_id: str | None = None) -> JsonObject | None:
        """Process one decoded JSON-RPC request and return its response object.

        A well-formed request without an ``id`` is a notification: it is still
        routed, but gets no response, not even an error. Malformed envelopes
        are always answered.
        """
        request_id = request.get("id") if isinstance(request, dict) else None
        correlation_id = new_correlation_id()
        try:
            validate_request(request)
        except ProtocolError as exc:
            return {"jsonrpc": "2.0", "id": request_id, "error": to_error_payload(exc, correlation_id)}

        is_notification = "id" not in request
        method = METHOD_ALIASES.get(request["method"], request["method"])
        try:
            if method.startswith("notifications/") and is_notification:
                logger.debug("notification_received", extra={"data": {"method": method}})
                return None
            route = self._routes.get(method)
            if route is None:
                msg = f"Method not found: {request['method']}"
                raise ProtocolError(ErrorCode.METHOD_NOT_FOUND, msg)
            if session_id is not None:
                self.sessions.get_session(session_id)
            result = await route(request.get("params") or {}, session_id)
        except Exception as exc:
            error = to_error_payload(exc, correlation_id)
            if is_notification:
                logger.warning(
                    "notification_failed",
                    extra={"correlation_id": correlation_id, "error": error["message"], "data": {"method": method}},
                )
                return None
            return {"jsonrpc": "2.0", "id": request_id, "error": error}
        if is_notification:
            return None
        return {"jsonrpc": "2.0", "id": request_id, "result": result}
