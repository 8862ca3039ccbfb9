"""Built-in SDD tools, grouped by domain. Each module exposes ``register()``."""

from __future__ import annotations

from sdd_mcp.projects import ProjectService
from sdd_mcp.registry import ToolDescriptor
from sdd_mcp.tools import projects, workflow
from sdd_mcp.tools.documents import DocumentRenderer, render_document


def builtin_tools(service: ProjectService, renderer: DocumentRenderer = render_document) -> list[ToolDescriptor]:
    """All built-in tool descriptors, in listing order."""
    return [*projects.register(service), *workflow.register(service, renderer)]


__all__ = ["DocumentRenderer", "builtin_tools", "render_document"]
