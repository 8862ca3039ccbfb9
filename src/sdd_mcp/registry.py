"""Tool registry: registration, argument validation and uniform execution envelopes.

``execute_tool`` is the single choke point for tool calls. Whatever happens
inside (unknown tool, schema violation, gate refusal, handler crash, timeout)
the caller gets a ``ToolExecutionResult`` back and never an exception.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict, cast

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, ValidationError
from mcp.types import Tool

from sdd_mcp.errors import InvalidArgumentsError, ToolNotFoundError, ToolRegistrationError

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Any]
"""Receives the raw argument map. May be sync or async; raising marks the call failed."""

DEFAULT_CATEGORY = "General"


def new_correlation_id() -> str:
    return str(uuid.uuid4())


class ToolExample(TypedDict):
    description: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    input_schema: dict[str, Any] | None
    handler: ToolHandler | None
    category: str = DEFAULT_CATEGORY
    examples: tuple[ToolExample, ...] = ()

    def to_tool(self) -> Tool:
        """Public view: handlers never leave the registry."""
        return Tool(name=self.name, description=self.description, inputSchema=dict(self.input_schema or {}))


@dataclass(frozen=True)
class ToolExecutionContext:
    tool_name: str
    arguments: dict[str, Any]
    session_id: str | None = None
    correlation_id: str = field(default_factory=new_correlation_id)


class ExecutionMetadata(TypedDict):
    executionTime: float
    sessionId: str | None
    correlationId: str


class ToolResultDict(TypedDict):
    success: bool
    data: NotRequired[Any]
    error: NotRequired[str]
    metadata: ExecutionMetadata


@dataclass(frozen=True)
class ToolExecutionResult:
    """Envelope for one tool call. Exactly one of ``data``/``error`` is meaningful."""

    success: bool
    metadata: ExecutionMetadata
    data: Any = None
    error: str | None = None

    def to_dict(self) -> ToolResultDict:
        out = ToolResultDict(success=self.success, metadata=self.metadata)
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error or "Unknown error"
        return out


class ToolDocumentation(TypedDict):
    name: str
    description: str
    category: str
    inputSchema: dict[str, Any]
    parameters: list[dict[str, Any]]
    examples: list[ToolExample]


class ToolStats(TypedDict):
    totalTools: int
    toolNames: list[str]
    toolsByCategory: dict[str, list[str]]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _join_path(path: Sequence[Any], leaf: str | None = None) -> str:
    parts = [str(p) for p in path]
    if leaf is not None:
        parts.append(leaf)
    return ".".join(parts) or "(root)"


def _error_fields(error: ValidationError) -> list[str]:
    """Name the argument(s) a validation error is about."""
    path = list(error.absolute_path)
    if error.validator == "required" and isinstance(error.instance, Mapping):
        return [_join_path(path, name) for name in error.validator_value if name not in error.instance]
    if error.validator == "additionalProperties" and isinstance(error.instance, Mapping):
        allowed = error.schema.get("properties", {}) if isinstance(error.schema, Mapping) else {}
        return [_join_path(path, name) for name in error.instance if name not in allowed]
    return [_join_path(path)]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Name-keyed table of tool descriptors.

    Re-registering a name replaces the earlier binding, which is how tool sets
    are hot-reloaded.
    """

    def __init__(self, *, call_timeout: float | None = None) -> None:
        self.call_timeout = call_timeout
        self._tools: dict[str, ToolDescriptor] = {}
        self._validators: dict[str, Draft202012Validator] = {}
        self._lock = threading.Lock()

    def register_tool(self, descriptor: ToolDescriptor) -> None:
        missing = []
        if not descriptor.name:
            missing.append("name")
        if descriptor.input_schema is None:
            missing.append("input_schema")
        if descriptor.handler is None:
            missing.append("handler")
        if missing:
            msg = f"Invalid tool registration '{descriptor.name or '?'}': missing {', '.join(missing)}"
            logger.error("tool_registration_failed", extra={"tool": descriptor.name or None, "error": msg})
            raise ToolRegistrationError(msg)
        if not callable(descriptor.handler):
            msg = f"Invalid tool registration '{descriptor.name}': handler is not callable"
            logger.error("tool_registration_failed", extra={"tool": descriptor.name, "error": msg})
            raise ToolRegistrationError(msg)
        try:
            Draft202012Validator.check_schema(descriptor.input_schema)
        except SchemaError as exc:
            msg = f"Invalid tool registration '{descriptor.name}': bad input schema ({exc.message})"
            logger.error("tool_registration_failed", extra={"tool": descriptor.name, "error": msg})
            raise ToolRegistrationError(msg) from exc

        validator = Draft202012Validator(descriptor.input_schema)
        with self._lock:
            replaced = descriptor.name in self._tools
            self._tools[descriptor.name] = descriptor
            self._validators[descriptor.name] = validator
        if replaced:
            logger.warning("tool_overridden", extra={"tool": descriptor.name})
        logger.debug("tool_registered", extra={"tool": descriptor.name, "data": {"category": descriptor.category}})

    def register_tools(self, descriptors: Sequence[ToolDescriptor]) -> None:
        for descriptor in descriptors:
            self.register_tool(descriptor)

    def unregister_tool(self, name: str) -> bool:
        with self._lock:
            removed = self._tools.pop(name, None) is not None
            self._validators.pop(name, None)
        if removed:
            logger.info("tool_unregistered", extra={"tool": name})
        return removed

    def list_tools(self) -> list[Tool]:
        with self._lock:
            descriptors = list(self._tools.values())
        return [d.to_tool() for d in descriptors]

    def get_tool(self, name: str) -> Tool | None:
        with self._lock:
            descriptor = self._tools.get(name)
        return descriptor.to_tool() if descriptor else None

    def has_tool_access(self, session_id: str | None, name: str) -> bool:
        """Every registered tool is open to every session."""
        with self._lock:
            return name in self._tools

    # -- Execution ----------------------------------------------------------

    def _validate(self, name: str, validator: Draft202012Validator, arguments: Any) -> None:
        errors = sorted(validator.iter_errors(arguments), key=lambda e: [str(p) for p in e.absolute_path])
        if not errors:
            return
        fields: list[str] = []
        for error in errors:
            fields.extend(_error_fields(error))
        raise InvalidArgumentsError(name, fields, [e.message for e in errors])

    async def _invoke(self, descriptor: ToolDescriptor, arguments: dict[str, Any]) -> Any:
        handler = cast(ToolHandler, descriptor.handler)
        result = handler(arguments)
        if inspect.isawaitable(result):
            if self.call_timeout is None:
                result = await result
            else:
                try:
                    result = await asyncio.wait_for(result, timeout=self.call_timeout)
                except TimeoutError:
                    msg = f"Tool '{descriptor.name}' timed out after {self.call_timeout}s"
                    raise TimeoutError(msg) from None
        if isinstance(result, Exception):
            raise result
        return result

    async def execute_tool(self, context: ToolExecutionContext) -> ToolExecutionResult:
        name = context.tool_name
        arguments = context.arguments if context.arguments is not None else {}
        log_extra: dict[str, Any] = {
            "tool": name,
            "correlation_id": context.correlation_id,
            "session_id": context.session_id,
        }
        logger.debug("tool_execute", extra={**log_extra, "data": {"argument_keys": sorted(arguments) if isinstance(arguments, Mapping) else []}})

        t0 = time.monotonic()
        try:
            with self._lock:
                descriptor = self._tools.get(name)
                validator = self._validators.get(name)
            if descriptor is None:
                raise ToolNotFoundError(name)
            if validator is not None:
                self._validate(name, validator, arguments)
            data = await self._invoke(descriptor, dict(arguments))
        except Exception as exc:
            duration_ms = round((time.monotonic() - t0) * 1000, 1)
            message = str(exc) or type(exc).__name__
            if isinstance(exc, (ToolNotFoundError, InvalidArgumentsError)):
                logger.warning("tool_rejected", extra={**log_extra, "duration_ms": duration_ms, "error": message})
            else:
                logger.error("tool_error", extra={**log_extra, "duration_ms": duration_ms, "error": message}, exc_info=True)
            return ToolExecutionResult(
                success=False,
                error=message,
                metadata=self._metadata(context, duration_ms),
            )
        duration_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.info("tool_call", extra={**log_extra, "duration_ms": duration_ms})
        return ToolExecutionResult(success=True, data=data, metadata=self._metadata(context, duration_ms))

    @staticmethod
    def _metadata(context: ToolExecutionContext, duration_ms: float) -> ExecutionMetadata:
        return ExecutionMetadata(
            executionTime=duration_ms,
            sessionId=context.session_id,
            correlationId=context.correlation_id,
        )

    # -- Introspection ------------------------------------------------------

    def get_tool_documentation(self, name: str) -> ToolDocumentation | None:
        with self._lock:
            descriptor = self._tools.get(name)
        if descriptor is None:
            return None
        schema = dict(descriptor.input_schema or {})
        required = set(schema.get("required", []))
        parameters = [
            {
                "name": pname,
                "type": spec.get("type", "any"),
                "description": spec.get("description", ""),
                "required": pname in required,
            }
            for pname, spec in schema.get("properties", {}).items()
        ]
        return ToolDocumentation(
            name=descriptor.name,
            description=descriptor.description,
            category=descriptor.category,
            inputSchema=schema,
            parameters=parameters,
            examples=list(descriptor.examples),
        )

    def get_tool_stats(self) -> ToolStats:
        with self._lock:
            descriptors = list(self._tools.values())
        by_category: dict[str, list[str]] = {}
        for descriptor in descriptors:
            by_category.setdefault(descriptor.category, []).append(descriptor.name)
        return ToolStats(
            totalTools=len(descriptors),
            toolNames=[d.name for d in descriptors],
            toolsByCategory=by_category,
        )
