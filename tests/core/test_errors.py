"""Tests for the error taxonomy and JSON-RPC error mapping."""

from __future__ import annotations

import json
from typing import Any

import pytest

from sdd_mcp.errors import (
    ErrorCode,
    InvalidArgumentsError,
    ProtocolError,
    ToolNotFoundError,
    is_server_error_code,
    to_error_payload,
    validate_request,
)


class TestErrorCodes:
    def test_reserved_values(self) -> None:
        assert ErrorCode.PARSE_ERROR == -32700
        assert ErrorCode.INVALID_REQUEST == -32600
        assert ErrorCode.METHOD_NOT_FOUND == -32601
        assert ErrorCode.INVALID_PARAMS == -32602
        assert ErrorCode.INTERNAL_ERROR == -32603

    @pytest.mark.parametrize(("code", "expected"), [(-32099, True), (-32000, True), (-32050, True), (-32100, False), (-31999, False)])
    def test_server_error_range(self, code: int, expected: bool) -> None:
        assert is_server_error_code(code) is expected


class TestValidateRequest:
    def test_valid(self) -> None:
        validate_request({"jsonrpc": "2.0", "id": 1, "method": "ping"})

    @pytest.mark.parametrize(
        ("request_obj", "code"),
        [
            ([], ErrorCode.INVALID_REQUEST),
            ({"method": "ping"}, ErrorCode.INVALID_REQUEST),
            ({"jsonrpc": "1.0", "method": "ping"}, ErrorCode.INVALID_REQUEST),
            ({"jsonrpc": "2.0"}, ErrorCode.INVALID_REQUEST),
            ({"jsonrpc": "2.0", "method": 7}, ErrorCode.INVALID_REQUEST),
            ({"jsonrpc": "2.0", "method": "ping", "params": [1]}, ErrorCode.INVALID_PARAMS),
        ],
    )
    def test_invalid(self, request_obj: Any, code: int) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            validate_request(request_obj)
        assert exc_info.value.code == code


class TestToErrorPayload:
    def test_protocol_error_keeps_code(self) -> None:
        payload = to_error_payload(ProtocolError(ErrorCode.METHOD_NOT_FOUND, "nope", data={"m": "x"}))
        assert payload == {"code": -32601, "message": "nope", "data": {"m": "x"}}

    def test_decode_error_is_parse_error(self) -> None:
        try:
            json.loads("{bad")
        except json.JSONDecodeError as exc:
            payload = to_error_payload(exc)
        assert payload == {"code": -32700, "message": "Parse error"}

    def test_other_errors_are_internal_without_traceback(self) -> None:
        payload = to_error_payload(RuntimeError("disk on fire"), correlation_id="c-1")
        assert payload == {"code": -32603, "message": "disk on fire"}

    def test_empty_message(self) -> None:
        assert to_error_payload(RuntimeError())["message"] == "Internal error"


class TestDomainErrors:
    def test_tool_not_found(self) -> None:
        exc = ToolNotFoundError("sdd-x")
        assert str(exc) == "Tool not found: sdd-x"
        assert isinstance(exc, LookupError)

    def test_invalid_arguments_fields(self) -> None:
        exc = InvalidArgumentsError("sdd-init", ["name", "path", "name"], ["'name' is a required property"])
        assert exc.fields == ("name", "path")
        assert "sdd-init" in str(exc)
        assert "name, path" in str(exc)
