"""Error taxonomy and JSON-RPC error mapping.

Protocol errors carry the reserved JSON-RPC 2.0 codes and are the only errors
that surface as transport-level ``error`` objects. Everything attributable to
caller input (unknown tool, bad arguments, disallowed phase transition) is
raised inside the registry boundary and converted to a failure envelope there.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any, NotRequired, TypedDict

logger = logging.getLogger(__name__)


class ErrorCode:
    """Reserved JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR_START = -32099
    SERVER_ERROR_END = -32000


def is_server_error_code(code: int) -> bool:
    return ErrorCode.SERVER_ERROR_START <= code <= ErrorCode.SERVER_ERROR_END


class ErrorPayload(TypedDict):
    """The ``error`` member of a JSON-RPC response."""

    code: int
    message: str
    data: NotRequired[Any]


class ProtocolError(Exception):
    """A request that cannot be processed at the protocol level."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    def to_payload(self) -> ErrorPayload:
        payload = ErrorPayload(code=self.code, message=self.message)
        if self.data is not None:
            payload["data"] = self.data
        return payload


class ToolRegistrationError(ValueError):
    """Raised when a tool descriptor is missing its name, schema or handler."""


class ToolNotFoundError(LookupError):
    """Raised when a call names a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class InvalidArgumentsError(ValueError):
    """Raised when tool arguments fail schema validation.

    ``fields`` names every offending argument, in schema order where possible.
    """

    def __init__(self, tool_name: str, fields: Iterable[str], details: Iterable[str] = ()) -> None:
        self.tool_name = tool_name
        self.fields = tuple(dict.fromkeys(fields))
        self.details = tuple(details)
        fields_str = ", ".join(self.fields) if self.fields else "(root)"
        message = f"Invalid arguments for tool '{tool_name}': {fields_str}"
        if self.details:
            message += " (" + "; ".join(self.details) + ")"
        super().__init__(message)


class ProjectNotFoundError(LookupError):
    """Raised when a project id or path does not resolve."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Project not found: {key}")


class PhaseTransitionError(ValueError):
    """Raised when a project may not enter the requested workflow phase."""

    def __init__(self, project_id: str, target_phase: str, reason: str) -> None:
        self.project_id = project_id
        self.target_phase = target_phase
        self.reason = reason
        super().__init__(reason)


def validate_request(request: Any) -> None:
    """Reject a malformed JSON-RPC request envelope.

    Raises ProtocolError(INVALID_REQUEST) when the request is not an object,
    does not declare ``jsonrpc: "2.0"``, or lacks a string ``method``.
    """
    if not isinstance(request, dict):
        msg = "Request must be an object"
        raise ProtocolError(ErrorCode.INVALID_REQUEST, msg)
    if request.get("jsonrpc") != "2.0":
        msg = "Invalid or missing jsonrpc version"
        raise ProtocolError(ErrorCode.INVALID_REQUEST, msg)
    method = request.get("method")
    if not method or not isinstance(method, str):
        msg = "Invalid or missing method"
        raise ProtocolError(ErrorCode.INVALID_REQUEST, msg)
    params = request.get("params")
    if params is not None and not isinstance(params, dict):
        msg = "params must be an object"
        raise ProtocolError(ErrorCode.INVALID_PARAMS, msg)


def to_error_payload(exc: BaseException, correlation_id: str | None = None) -> ErrorPayload:
    """Map an exception onto a JSON-RPC error object. Never includes a traceback."""
    extra = {"correlation_id": correlation_id, "error": str(exc)}
    if isinstance(exc, ProtocolError):
        logger.warning("protocol_error", extra=extra)
        return exc.to_payload()
    if isinstance(exc, json.JSONDecodeError):
        logger.error("parse_error", extra=extra)
        return ErrorPayload(code=ErrorCode.PARSE_ERROR, message="Parse error")
    if isinstance(exc, Exception):
        logger.error("internal_error", extra=extra, exc_info=exc)
        return ErrorPayload(code=ErrorCode.INTERNAL_ERROR, message=str(exc) or "Internal error")
    logger.error("unknown_error", extra=extra)
    return ErrorPayload(code=ErrorCode.INTERNAL_ERROR, message="Internal error")
