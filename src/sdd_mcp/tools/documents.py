"""Default stage document renderer.

Rich template rendering lives outside this server. The default only produces
a markdown skeleton so generated stages have something to serve; swap in a
real renderer by passing one to ``build_dispatcher``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from sdd_mcp.projects import Project
from sdd_mcp.workflow import Stage

DocumentRenderer = Callable[[Project, Stage], str | Awaitable[str]]

_SECTIONS: dict[Stage, tuple[str, ...]] = {
    "requirements": ("Introduction", "Requirements", "Acceptance Criteria", "Non-functional Requirements"),
    "design": ("Overview", "Architecture", "Components and Interfaces", "Data Models", "Error Handling", "Testing Strategy"),
    "tasks": ("Implementation Plan", "Tasks", "Verification"),
}

_TITLES: dict[Stage, str] = {
    "requirements": "Requirements Document",
    "design": "Design Document",
    "tasks": "Implementation Plan",
}


def render_document(project: Project, stage: Stage) -> str:
    lines = [f"# {_TITLES[stage]}: {project.name}", ""]
    for section in _SECTIONS[stage]:
        lines.extend([f"## {section}", "", "_TBD_", ""])
    return "\n".join(lines)
