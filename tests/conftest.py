"""Shared pytest fixtures for sdd-mcp tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from sdd_mcp.config import SDD_DIR_NAME, ServerConfig, write_config
from sdd_mcp.dispatcher import ProtocolDispatcher
from sdd_mcp.mcp_server import build_dispatcher
from sdd_mcp.projects import Project, ProjectService
from sdd_mcp.registry import ToolRegistry
from sdd_mcp.sessions import SessionManager
from sdd_mcp.tools import builtin_tools
from tests._helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> ProjectService:
    """Fresh in-memory project service for each test."""
    return ProjectService(clock=clock)


@pytest.fixture
def project(service: ProjectService) -> Project:
    return service.create_project("demo", "/workspace/demo")


@pytest.fixture
def sessions(clock: FakeClock) -> SessionManager:
    return SessionManager(clock=clock)


@pytest.fixture
def registry() -> ToolRegistry:
    """Empty registry; tests register what they need."""
    return ToolRegistry()


@pytest.fixture
def builtin_registry(service: ProjectService) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register_tools(builtin_tools(service))
    return reg


@pytest.fixture
def dispatcher(service: ProjectService) -> ProtocolDispatcher:
    return build_dispatcher(ServerConfig(), project_service=service)


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def sdd_project(tmp_path: Path) -> Generator[Path, None, None]:
    """A tmp directory set up as an sdd project (.sdd/ with config).

    Returns the project root (parent of .sdd/).
    """
    sdd_dir = tmp_path / SDD_DIR_NAME
    sdd_dir.mkdir()
    write_config(sdd_dir, ServerConfig(session_timeout=600))
    yield tmp_path
