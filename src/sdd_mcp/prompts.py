"""Review and planning prompts built from project state."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from mcp.types import GetPromptResult, Prompt, PromptArgument, PromptMessage, TextContent

from sdd_mcp.errors import ProjectNotFoundError
from sdd_mcp.projects import Project, ProjectService
from sdd_mcp.workflow import can_transition, is_phase, workflow_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PromptSpec:
    name: str
    description: str
    arguments: tuple[PromptArgument, ...]
    # Returns (description, message text).
    build: Callable[[Project, Mapping[str, str]], tuple[str, str]]


def _document_section(project: Project, stage: str) -> str:
    document = project.documents.get(stage)
    if document is None:
        return f"_The {stage} document has not been generated yet._"
    return document


def _requirements_review(project: Project, args: Mapping[str, str]) -> tuple[str, str]:
    focus = args.get("focus")
    lines = [
        f"Review the requirements for project **{project.name}**.",
        "",
        "Check that every requirement is written in EARS form (WHEN/IF/WHILE ... THE SYSTEM SHALL ...),",
        "is testable, and has acceptance criteria. Flag ambiguity, overlap and missing error cases.",
    ]
    if focus:
        lines.append(f"Pay particular attention to: {focus}.")
    lines.extend(["", "## Requirements", "", _document_section(project, "requirements")])
    return f"Requirements review for project {project.name}", "\n".join(lines)


def _design_review(project: Project, args: Mapping[str, str]) -> tuple[str, str]:
    component = args.get("component")
    lines = [
        f"Review the technical design for project **{project.name}**.",
        "",
        "Check that the design covers every requirement, that component boundaries and data models",
        "are explicit, and that error handling and testing strategy are described.",
    ]
    if component:
        lines.append(f"Focus on the {component} component.")
    lines.extend(
        [
            "",
            "## Requirements",
            "",
            _document_section(project, "requirements"),
            "",
            "## Design",
            "",
            _document_section(project, "design"),
        ]
    )
    return f"Technical design review for project {project.name}", "\n".join(lines)


def _task_breakdown(project: Project, args: Mapping[str, str]) -> tuple[str, str]:
    complexity = args.get("complexity", "standard")
    lines = [
        f"Break the design for project **{project.name}** into implementation tasks.",
        "",
        f"Target a {complexity} level of granularity. Each task should be independently",
        "verifiable and reference the requirements it satisfies.",
        "",
        "## Design",
        "",
        _document_section(project, "design"),
    ]
    return f"Task breakdown for project {project.name}", "\n".join(lines)


def _quality_gates(project: Project, args: Mapping[str, str]) -> tuple[str, str]:
    target = args["targetPhase"]
    if not is_phase(target):
        msg = f"Unknown target phase: {target}"
        raise ValueError(msg)
    result = can_transition(project.phase, target, project.approvals, require_approval=True)
    status = workflow_status(project)
    verdict = "PASS" if result.allowed else f"BLOCKED: {result.reason}"
    lines = [
        f"Evaluate whether project **{project.name}** is ready to move to `{target}`.",
        "",
        f"- Current phase: `{status['current_phase']}`",
        f"- Gate check (approvals required): {verdict}",
        "",
        "Review each generated document for completeness before recommending progression.",
    ]
    return f"Quality gates evaluation for project {project.name}", "\n".join(lines)


def _project_arg(description: str) -> PromptArgument:
    return PromptArgument(name="projectId", description=description, required=True)


_PROMPTS: tuple[_PromptSpec, ...] = (
    _PromptSpec(
        name="sdd-requirements-review",
        description="Generate comprehensive requirements review using EARS format",
        arguments=(
            _project_arg("Project ID to review"),
            PromptArgument(name="focus", description="Specific focus area (optional)", required=False),
        ),
        build=_requirements_review,
    ),
    _PromptSpec(
        name="sdd-design-review",
        description="Perform technical design review with architecture analysis",
        arguments=(
            _project_arg("Project ID to review"),
            PromptArgument(name="component", description="Specific component to focus on (optional)", required=False),
        ),
        build=_design_review,
    ),
    _PromptSpec(
        name="sdd-task-breakdown",
        description="Generate detailed task breakdown from design specifications",
        arguments=(
            _project_arg("Project ID for task breakdown"),
            PromptArgument(name="complexity", description="Task complexity level (simple|standard|complex)", required=False),
        ),
        build=_task_breakdown,
    ),
    _PromptSpec(
        name="sdd-quality-gates",
        description="Evaluate project readiness for phase progression",
        arguments=(
            _project_arg("Project ID to evaluate"),
            PromptArgument(name="targetPhase", description="Target phase for progression", required=True),
        ),
        build=_quality_gates,
    ),
)


class PromptProvider:
    def __init__(self, service: ProjectService) -> None:
        self.service = service
        self._prompts = {spec.name: spec for spec in _PROMPTS}

    def list_prompts(self) -> list[Prompt]:
        return [Prompt(name=s.name, description=s.description, arguments=list(s.arguments)) for s in self._prompts.values()]

    def get_prompt(self, name: str, arguments: Mapping[str, str] | None = None) -> GetPromptResult:
        spec = self._prompts.get(name)
        if spec is None:
            msg = f"Unknown prompt: {name}"
            raise ValueError(msg)
        args = dict(arguments or {})
        missing = [a.name for a in spec.arguments if a.required and not args.get(a.name)]
        if missing:
            msg = f"Missing required argument(s) for prompt '{name}': {', '.join(missing)}"
            raise ValueError(msg)
        project = self.service.get_project(args["projectId"])
        if project is None:
            raise ProjectNotFoundError(args["projectId"])
        description, text = spec.build(project, args)
        logger.debug("prompt_rendered", extra={"data": {"prompt": name, "project_id": project.id}})
        return GetPromptResult(
            description=description,
            messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
        )
