"""Pure helpers shared across the built-in tool modules and the dispatcher."""

from __future__ import annotations

import json
from typing import Any

from mcp.types import TextContent

from sdd_mcp.errors import ProjectNotFoundError
from sdd_mcp.projects import Project, ProjectService
from sdd_mcp.workflow import workflow_status

PROJECT_ID_SCHEMA: dict[str, Any] = {"type": "string", "minLength": 1, "description": "Project ID"}


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _require_project(service: ProjectService, project_id: str) -> Project:
    project = service.get_project(project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


def _project_summary(project: Project, *, require_approval: bool = False) -> dict[str, Any]:
    """Project metadata plus where it stands in the workflow."""
    return {
        **project.to_dict(),
        "workflow": workflow_status(project, require_approval=require_approval),
    }
