"""Read-only ``sdd://`` resources over project state.

Per project: ``sdd://project/{id}/spec.json`` always, plus one markdown
resource per generated stage document. One global workflow guide.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from mcp.types import Resource

from sdd_mcp.errors import ProjectNotFoundError
from sdd_mcp.projects import Project, ProjectService
from sdd_mcp.workflow import PHASE_ORDER, STAGES, is_stage, phase_label, workflow_status

logger = logging.getLogger(__name__)

WORKFLOW_GUIDE_URI = "sdd://workflow/guide.md"
JSON_MIME = "application/json"
MARKDOWN_MIME = "text/markdown"

_PROJECT_URI = re.compile(r"^sdd://project/(?P<project_id>[^/]+)/(?P<file>[^/]+)$")


@dataclass(frozen=True)
class ResourceContent:
    uri: str
    mime_type: str
    text: str


def _project_uri(project_id: str, file_name: str) -> str:
    return f"sdd://project/{project_id}/{file_name}"


def _workflow_guide() -> str:
    lines = [
        "# Spec-Driven Development Workflow",
        "",
        "Projects move through a fixed sequence of phases. Each phase is entered by",
        "generating its document; a phase can be regenerated while it is current.",
        "",
        "## Phases",
        "",
    ]
    lines.extend(f"{i}. `{phase}` ({phase_label(phase)})" for i, phase in enumerate(PHASE_ORDER, start=1))
    lines.extend(
        [
            "",
            "## Tools",
            "",
            "- `sdd-init` creates a project",
            "- `sdd-requirements`, `sdd-design`, `sdd-tasks` generate stage documents in order",
            "- `sdd-approve` records human approval of a generated document",
            "- `sdd-implement` requires every stage to be approved",
            "- `sdd-status` shows the current phase and what blocks the next one",
            "",
        ]
    )
    return "\n".join(lines)


class ResourceProvider:
    def __init__(self, service: ProjectService) -> None:
        self.service = service

    def list_resources(self) -> list[Resource]:
        resources = [
            Resource(
                uri=WORKFLOW_GUIDE_URI,  # type: ignore[arg-type]
                name="SDD Workflow Guide",
                description="Phase order, gate rules and the tools that drive them",
                mimeType=MARKDOWN_MIME,
            )
        ]
        for project in sorted(self.service.list_projects(), key=lambda p: p.created_at):
            resources.append(
                Resource(
                    uri=_project_uri(project.id, "spec.json"),  # type: ignore[arg-type]
                    name=f"{project.name} - Project Specification",
                    description="Project metadata and workflow status",
                    mimeType=JSON_MIME,
                )
            )
            for stage in STAGES:
                if stage in project.documents:
                    resources.append(
                        Resource(
                            uri=_project_uri(project.id, f"{stage}.md"),  # type: ignore[arg-type]
                            name=f"{project.name} - {stage.capitalize()}",
                            description=f"Generated {stage} document",
                            mimeType=MARKDOWN_MIME,
                        )
                    )
        return resources

    def read_resource(self, uri: str) -> ResourceContent:
        uri = str(uri)
        logger.debug("resource_read", extra={"data": {"uri": uri}})
        if uri == WORKFLOW_GUIDE_URI:
            return ResourceContent(uri=uri, mime_type=MARKDOWN_MIME, text=_workflow_guide())
        match = _PROJECT_URI.match(uri)
        if match is None:
            msg = f"Unsupported resource URI: {uri}"
            raise ValueError(msg)
        project = self.service.get_project(match["project_id"])
        if project is None:
            raise ProjectNotFoundError(match["project_id"])
        return self._read_project_file(project, match["file"], uri)

    def _read_project_file(self, project: Project, file_name: str, uri: str) -> ResourceContent:
        if file_name == "spec.json":
            body = {**project.to_dict(), "workflow": workflow_status(project)}
            return ResourceContent(uri=uri, mime_type=JSON_MIME, text=json.dumps(body, indent=2, default=str))
        stage, _, ext = file_name.rpartition(".")
        if ext != "md" or not is_stage(stage):
            msg = f"Unsupported resource URI: {uri}"
            raise ValueError(msg)
        document = project.documents.get(stage)
        if document is None:
            msg = f"Resource not available: {stage} has not been generated for project {project.id}"
            raise ValueError(msg)
        return ResourceContent(uri=uri, mime_type=MARKDOWN_MIME, text=document)
