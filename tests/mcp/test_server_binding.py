"""Tests for dispatcher assembly and the MCP SDK binding."""

from __future__ import annotations

from mcp.types import (
    CallToolRequest,
    CallToolRequestParams,
    GetPromptRequest,
    GetPromptRequestParams,
    ListPromptsRequest,
    ListResourcesRequest,
    ListToolsRequest,
    ReadResourceRequest,
    ReadResourceRequestParams,
)

from sdd_mcp.config import ServerConfig
from sdd_mcp.dispatcher import ProtocolDispatcher
from sdd_mcp.mcp_server import bind_server, build_dispatcher, initialization_options
from sdd_mcp.projects import Project, ProjectService


class TestBuildDispatcher:
    def test_config_flows_through(self, service: ProjectService) -> None:
        config = ServerConfig(session_timeout=42, sweep_interval=7, recovery_window=99, call_timeout=3)
        dispatcher = build_dispatcher(config, project_service=service)
        assert dispatcher.sessions.session_timeout == 42
        assert dispatcher.sessions.sweep_interval == 7
        assert dispatcher.sessions.recovery_window == 99
        assert dispatcher.registry.call_timeout == 3
        assert dispatcher.config is config

    def test_instances_are_isolated(self) -> None:
        a = build_dispatcher()
        b = build_dispatcher()
        a.sessions.create_session()
        a.registry.unregister_tool("sdd-init")
        assert b.sessions.get_session_stats()["total"] == 0
        assert b.registry.get_tool("sdd-init") is not None


class TestBindServer:
    def test_handlers_registered(self, dispatcher: ProtocolDispatcher) -> None:
        server = bind_server(dispatcher)
        for request_type in (
            ListToolsRequest,
            CallToolRequest,
            ListResourcesRequest,
            ReadResourceRequest,
            ListPromptsRequest,
            GetPromptRequest,
        ):
            assert request_type in server.request_handlers

    def test_initialization_options_advertise_fixed_capabilities(self, dispatcher: ProtocolDispatcher) -> None:
        options = initialization_options(dispatcher)
        assert options.server_name == "sdd-mcp"
        assert options.server_version == dispatcher.config.version
        caps = options.capabilities.model_dump(exclude_none=True)
        assert caps["tools"] == {"listChanged": True}
        assert caps["resources"] == {"subscribe": True, "listChanged": True}
        assert caps["prompts"] == {"listChanged": True}
        assert caps["logging"] == {}

    def test_initialization_options_match_initialize_result(self, dispatcher: ProtocolDispatcher) -> None:
        caps = initialization_options(dispatcher).capabilities.model_dump(exclude_none=True)
        result = dispatcher.initialize({})
        for area in ("tools", "resources", "prompts", "logging"):
            assert caps[area] == result["capabilities"][area]

    async def test_list_tools(self, dispatcher: ProtocolDispatcher) -> None:
        server = bind_server(dispatcher)
        result = await server.request_handlers[ListToolsRequest](ListToolsRequest(method="tools/list"))
        assert {t.name for t in result.root.tools} == {t.name for t in dispatcher.registry.list_tools()}

    async def test_call_tool_success(self, dispatcher: ProtocolDispatcher) -> None:
        server = bind_server(dispatcher)
        request = CallToolRequest(
            method="tools/call",
            params=CallToolRequestParams(name="sdd-init", arguments={"name": "api", "path": "/w/api"}),
        )
        result = await server.request_handlers[CallToolRequest](request)
        assert result.root.isError is False
        assert "api" in result.root.content[0].text

    async def test_call_tool_failure_flagged(self, dispatcher: ProtocolDispatcher) -> None:
        server = bind_server(dispatcher)
        request = CallToolRequest(method="tools/call", params=CallToolRequestParams(name="sdd-nope", arguments={}))
        result = await server.request_handlers[CallToolRequest](request)
        assert result.root.isError is True
        assert "Tool not found: sdd-nope" in result.root.content[0].text

    async def test_read_resource(self, dispatcher: ProtocolDispatcher, project: Project) -> None:
        server = bind_server(dispatcher)
        uri = f"sdd://project/{project.id}/spec.json"
        request = ReadResourceRequest(method="resources/read", params=ReadResourceRequestParams(uri=uri))  # type: ignore[arg-type]
        result = await server.request_handlers[ReadResourceRequest](request)
        [content] = result.root.contents
        assert content.mimeType == "application/json"
        assert project.id in content.text

    async def test_get_prompt(self, dispatcher: ProtocolDispatcher, project: Project) -> None:
        server = bind_server(dispatcher)
        request = GetPromptRequest(
            method="prompts/get",
            params=GetPromptRequestParams(name="sdd-task-breakdown", arguments={"projectId": project.id}),
        )
        result = await server.request_handlers[GetPromptRequest](request)
        assert project.name in (result.root.description or "")
