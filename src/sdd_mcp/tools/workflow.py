"""Phase-advancing tools: document generation and the move to implementation.

Each handler asks the phase gate before touching project state and raises
``PhaseTransitionError`` with the gate's reason when refused. The registry
turns that into a failure envelope.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sdd_mcp.errors import PhaseTransitionError
from sdd_mcp.projects import ProjectService
from sdd_mcp.registry import ToolDescriptor
from sdd_mcp.tools.common import PROJECT_ID_SCHEMA, _project_summary, _require_project
from sdd_mcp.tools.documents import DocumentRenderer
from sdd_mcp.workflow import STAGE_PHASE, Stage, can_transition

logger = logging.getLogger(__name__)

CATEGORY = "Workflow"

_PROJECT_ONLY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"projectId": PROJECT_ID_SCHEMA},
    "required": ["projectId"],
}

_DESCRIPTIONS: dict[Stage, str] = {
    "requirements": "Generate the requirements document",
    "design": "Generate the design document (requires generated requirements)",
    "tasks": "Generate the implementation tasks document (requires generated requirements and design)",
}


def _generator(
    service: ProjectService,
    renderer: DocumentRenderer,
    stage: Stage,
) -> Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]:
    target = STAGE_PHASE[stage]

    async def handler(arguments: dict[str, Any]) -> dict[str, Any]:
        project = _require_project(service, arguments["projectId"])
        result = can_transition(project.phase, target, project.approvals)
        if not result.allowed:
            logger.info("phase_gate_denied", extra={"data": {"project_id": project.id, "target": target, "reason": result.reason}})
            msg = f"Cannot generate {stage}: {result.reason}"
            raise PhaseTransitionError(project.id, target, msg)
        document = renderer(project, stage)
        if inspect.isawaitable(document):
            document = await document
        updated = service.mark_generated(project.id, stage, document)
        return {
            "message": f"Generated {stage} for {updated.name}",
            "stage": stage,
            "document": document,
            "project": _project_summary(updated),
        }

    return handler


def register(service: ProjectService, renderer: DocumentRenderer) -> list[ToolDescriptor]:
    """Return the workflow tool descriptors bound to ``service`` and ``renderer``."""

    def sdd_implement(arguments: dict[str, Any]) -> dict[str, Any]:
        project = _require_project(service, arguments["projectId"])
        result = can_transition(project.phase, "implementation-ready", project.approvals, require_approval=True)
        if not result.allowed:
            logger.info(
                "phase_gate_denied",
                extra={"data": {"project_id": project.id, "target": "implementation-ready", "reason": result.reason}},
            )
            msg = f"Cannot start implementation: {result.reason}"
            raise PhaseTransitionError(project.id, "implementation-ready", msg)
        updated = service.update_phase(project.id, "implementation-ready")
        return {"message": f"{updated.name} is ready for implementation", "project": _project_summary(updated)}

    tools = [
        ToolDescriptor(
            name=f"sdd-{stage}",
            description=_DESCRIPTIONS[stage],
            input_schema=_PROJECT_ONLY_SCHEMA,
            handler=_generator(service, renderer, stage),
            category=CATEGORY,
            examples=({"description": _DESCRIPTIONS[stage].split(" (")[0], "arguments": {"projectId": "proj_123456"}},),
        )
        for stage in STAGE_PHASE
    ]
    tools.append(
        ToolDescriptor(
            name="sdd-implement",
            description="Mark the project ready for implementation once every stage document is approved",
            input_schema=_PROJECT_ONLY_SCHEMA,
            handler=sdd_implement,
            category=CATEGORY,
            examples=({"description": "Start implementation", "arguments": {"projectId": "proj_123456"}},),
        )
    )
    return tools
