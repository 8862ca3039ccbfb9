"""MCP server assembly and stdio entry point.

``build_dispatcher`` wires the components together by explicit construction.
``bind_server`` registers the dispatcher's handlers on an MCP SDK low-level
``Server``. Usage::

    sdd-mcp-server                      # auto-discover .sdd/
    sdd-mcp-server --project /path/to   # explicit project root
"""

from __future__ import annotations

import argparse
import logging
import sys
import weakref
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import GetPromptResult, Prompt, Resource, TextContent, Tool

from sdd_mcp.capabilities import server_capabilities_model
from sdd_mcp.config import SDD_DIR_NAME, ServerConfig, find_sdd_root, read_config
from sdd_mcp.dispatcher import ProtocolDispatcher
from sdd_mcp.projects import ProjectService
from sdd_mcp.prompts import PromptProvider
from sdd_mcp.registry import ToolRegistry
from sdd_mcp.resources import ResourceProvider
from sdd_mcp.sessions import SessionManager
from sdd_mcp.tools import DocumentRenderer, builtin_tools, render_document

logger = logging.getLogger(__name__)


class ToolCallFailed(Exception):
    """Carries a failure envelope's message out of the SDK call_tool handler.

    The SDK turns any exception raised there into an ``isError`` result with
    the exception text.
    """


def build_dispatcher(
    config: ServerConfig | None = None,
    *,
    project_service: ProjectService | None = None,
    renderer: DocumentRenderer = render_document,
) -> ProtocolDispatcher:
    """Assemble a dispatcher with its own session table and tool registry."""
    config = config or ServerConfig()
    service = project_service or ProjectService()
    registry = ToolRegistry(call_timeout=config.call_timeout)
    registry.register_tools(builtin_tools(service, renderer))
    sessions = SessionManager(
        session_timeout=config.session_timeout,
        sweep_interval=config.sweep_interval,
        recovery_window=config.recovery_window,
    )
    logger.info(
        "dispatcher_built",
        extra={"data": {"server": config.name, "version": config.version, "tools": registry.get_tool_stats()["totalTools"]}},
    )
    return ProtocolDispatcher(
        registry=registry,
        sessions=sessions,
        resources=ResourceProvider(service),
        prompts=PromptProvider(service),
        config=config,
    )


def bind_server(dispatcher: ProtocolDispatcher) -> Server:
    """Register the dispatcher's handlers on a fresh MCP low-level server.

    Each SDK connection gets a session on its first request, built from the
    client's initialize params. A session that aged out is replaced.
    """
    server = Server(dispatcher.config.name, version=dispatcher.config.version)
    session_ids: weakref.WeakKeyDictionary[Any, str] = weakref.WeakKeyDictionary()

    def _current_session_id() -> str | None:
        try:
            ctx = server.request_context
        except LookupError:
            return None
        connection = ctx.session
        session_id = session_ids.get(connection)
        if session_id is not None and dispatcher.sessions.get_session(session_id) is not None:
            return session_id
        params = getattr(connection, "client_params", None)
        client_info = params.clientInfo.model_dump() if params is not None else None
        client_caps = params.capabilities.model_dump(exclude_none=True) if params is not None else None
        session_id = dispatcher.open_session(client_info, client_caps)
        session_ids[connection] = session_id
        return session_id

    @server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_tools() -> list[Tool]:
        _current_session_id()
        return await dispatcher.list_tools()

    @server.call_tool(validate_input=False)  # type: ignore[untyped-decorator]
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        result = await dispatcher.call_tool(name, arguments, session_id=_current_session_id())
        if result.isError:
            text = "".join(c.text for c in result.content if isinstance(c, TextContent))
            raise ToolCallFailed(text)
        return [c for c in result.content if isinstance(c, TextContent)]

    @server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_resources() -> list[Resource]:
        _current_session_id()
        return await dispatcher.list_resources()

    @server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
    async def read_resource(uri: Any) -> Iterable[ReadResourceContents]:
        _current_session_id()
        content = await dispatcher.read_resource(str(uri))
        return [ReadResourceContents(content=content.text, mime_type=content.mime_type)]

    @server.list_prompts()  # type: ignore[untyped-decorator,no-untyped-call]
    async def list_prompts() -> list[Prompt]:
        _current_session_id()
        return await dispatcher.list_prompts()

    @server.get_prompt()  # type: ignore[untyped-decorator,no-untyped-call]
    async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> GetPromptResult:
        _current_session_id()
        return await dispatcher.get_prompt(name, arguments)

    return server


def initialization_options(dispatcher: ProtocolDispatcher) -> InitializationOptions:
    """Initialization options carrying the fixed server capability declaration.

    ``Server.create_initialization_options`` derives capabilities from the
    registered handlers and would drop ``listChanged``, ``subscribe`` and
    ``logging``.
    """
    return InitializationOptions(
        server_name=dispatcher.config.name,
        server_version=dispatcher.config.version,
        capabilities=server_capabilities_model(),
    )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None) -> None:
    if project_path:
        sdd_dir = project_path / SDD_DIR_NAME
        if not sdd_dir.is_dir():
            print(f"Error: {sdd_dir} not found. Run 'sdd-mcp init' first.", file=sys.stderr)
            sys.exit(1)
    else:
        try:
            sdd_dir = find_sdd_root()
        except FileNotFoundError:
            print(f"Error: No {SDD_DIR_NAME}/ found. Run 'sdd-mcp init' first.", file=sys.stderr)
            sys.exit(1)

    config = read_config(sdd_dir)

    from sdd_mcp.logging import setup_logging

    _logger = setup_logging(sdd_dir, level=config.log_level)
    _logger.info("mcp_server_start", extra={"data": {"project": str(sdd_dir.parent), **config.to_dict()}})

    dispatcher = build_dispatcher(config)
    server = bind_server(dispatcher)
    dispatcher.sessions.start()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, initialization_options(dispatcher))
    finally:
        await dispatcher.sessions.shutdown()
        _logger.info("mcp_server_stop", extra={"data": dispatcher.sessions.get_session_stats()})


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="SDD MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (auto-discovers .sdd/ if omitted)")
    args = parser.parse_args()

    asyncio.run(_run(args.project))


if __name__ == "__main__":
    main()
