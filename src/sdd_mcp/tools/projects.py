"""Tools for creating projects, inspecting them, and recording approvals."""

from __future__ import annotations

from typing import Any

from sdd_mcp.projects import SUPPORTED_LANGUAGES, ProjectService
from sdd_mcp.registry import ToolDescriptor
from sdd_mcp.tools.common import PROJECT_ID_SCHEMA, _project_summary, _require_project
from sdd_mcp.workflow import STAGES

CATEGORY = "Project Management"


def register(service: ProjectService) -> list[ToolDescriptor]:
    """Return the project-management tool descriptors bound to ``service``."""

    def sdd_init(arguments: dict[str, Any]) -> dict[str, Any]:
        project = service.create_project(
            arguments["name"],
            arguments["path"],
            arguments.get("language", "en"),
        )
        return {"message": f"Initialized SDD project {project.name}", "project": _project_summary(project)}

    def sdd_status(arguments: dict[str, Any]) -> dict[str, Any]:
        project_id = arguments.get("projectId")
        project_path = arguments.get("projectPath")
        if project_id:
            project = _require_project(service, project_id)
        elif project_path:
            found = service.get_project_by_path(project_path)
            if found is None:
                msg = f"Project not found at path: {project_path}"
                raise LookupError(msg)
            project = found
        else:
            msg = "Either projectId or projectPath must be provided"
            raise ValueError(msg)
        return _project_summary(project)

    def sdd_approve(arguments: dict[str, Any]) -> dict[str, Any]:
        project = _require_project(service, arguments["projectId"])
        updated = service.set_approval(project.id, arguments["phase"], arguments.get("approved", True))
        return {"approvals": updated.approvals.to_dict(), "project": _project_summary(updated)}

    return [
        ToolDescriptor(
            name="sdd-init",
            description="Initialize a new SDD project and start its workflow at the init phase",
            input_schema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1, "description": "Project name"},
                    "path": {"type": "string", "minLength": 1, "description": "Project path"},
                    "language": {"type": "string", "enum": sorted(SUPPORTED_LANGUAGES), "default": "en"},
                },
                "required": ["name", "path"],
            },
            handler=sdd_init,
            category=CATEGORY,
            examples=(
                {
                    "description": "Initialize a new SDD project",
                    "arguments": {"name": "my-api-project", "path": "/workspace/my-api", "language": "en"},
                },
            ),
        ),
        ToolDescriptor(
            name="sdd-status",
            description="Get current project status and workflow phase information",
            input_schema={
                "type": "object",
                "properties": {
                    "projectId": PROJECT_ID_SCHEMA,
                    "projectPath": {"type": "string", "description": "Project path (alternative to ID)"},
                },
            },
            handler=sdd_status,
            category=CATEGORY,
            examples=(
                {"description": "Check project status by ID", "arguments": {"projectId": "proj_123456"}},
                {"description": "Check project status by path", "arguments": {"projectPath": "/workspace/my-api"}},
            ),
        ),
        ToolDescriptor(
            name="sdd-approve",
            description="Record human approval (or withdrawal) of a generated stage document",
            input_schema={
                "type": "object",
                "properties": {
                    "projectId": PROJECT_ID_SCHEMA,
                    "phase": {"type": "string", "enum": list(STAGES), "description": "Stage whose document is approved"},
                    "approved": {"type": "boolean", "default": True},
                },
                "required": ["projectId", "phase"],
            },
            handler=sdd_approve,
            category=CATEGORY,
            examples=(
                {"description": "Approve the requirements document", "arguments": {"projectId": "proj_123456", "phase": "requirements"}},
            ),
        ),
    ]
