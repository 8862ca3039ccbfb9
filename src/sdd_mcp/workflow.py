"""Workflow phase gate for spec-driven development projects.

Phases form a fixed total order::

    init < requirements-generated < design-generated < tasks-generated < implementation-ready

A project may re-enter its current phase (revision) or advance to the
immediately following one, and only when every earlier phase has had its
document generated. Approval is human-set metadata; operations that need it
ask the gate with ``require_approval=True``.

The gate is pure and total: every input yields a definite answer, never an
exception.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Literal, TypedDict, cast

if TYPE_CHECKING:
    from sdd_mcp.projects import Project

WorkflowPhase = Literal["init", "requirements-generated", "design-generated", "tasks-generated", "implementation-ready"]
Stage = Literal["requirements", "design", "tasks"]

PHASE_ORDER: tuple[WorkflowPhase, ...] = (
    "init",
    "requirements-generated",
    "design-generated",
    "tasks-generated",
    "implementation-ready",
)
STAGES: tuple[Stage, ...] = ("requirements", "design", "tasks")

# Phase reached once the stage's document has been generated.
STAGE_PHASE: dict[Stage, WorkflowPhase] = {
    "requirements": "requirements-generated",
    "design": "design-generated",
    "tasks": "tasks-generated",
}
PHASE_STAGE: dict[WorkflowPhase, Stage] = {phase: stage for stage, phase in STAGE_PHASE.items()}

_PHASE_LABELS: dict[WorkflowPhase, str] = {
    "init": "init",
    "requirements-generated": "requirements",
    "design-generated": "design",
    "tasks-generated": "tasks",
    "implementation-ready": "implementation",
}


def is_phase(value: Any) -> bool:
    return isinstance(value, str) and value in PHASE_ORDER


def is_stage(value: Any) -> bool:
    return isinstance(value, str) and value in STAGES


def phase_index(phase: WorkflowPhase) -> int:
    return PHASE_ORDER.index(phase)


def next_phase(phase: WorkflowPhase) -> WorkflowPhase | None:
    """The phase after ``phase``, or None for the final phase."""
    idx = phase_index(phase)
    if idx + 1 < len(PHASE_ORDER):
        return PHASE_ORDER[idx + 1]
    return None


def phase_label(phase: WorkflowPhase) -> str:
    return _PHASE_LABELS[phase]


# ---------------------------------------------------------------------------
# Approval record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalStatus:
    generated: bool = False
    approved: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"generated": self.generated, "approved": self.approved}


@dataclass(frozen=True)
class PhaseApprovals:
    """One generated/approved pair per document-producing stage."""

    requirements: ApprovalStatus = ApprovalStatus()
    design: ApprovalStatus = ApprovalStatus()
    tasks: ApprovalStatus = ApprovalStatus()

    def get(self, stage: Stage) -> ApprovalStatus:
        return cast(ApprovalStatus, getattr(self, stage))

    def with_status(self, stage: Stage, *, generated: bool | None = None, approved: bool | None = None) -> PhaseApprovals:
        current = self.get(stage)
        updated = ApprovalStatus(
            generated=current.generated if generated is None else generated,
            approved=current.approved if approved is None else approved,
        )
        return replace(self, **{stage: updated})

    def to_dict(self) -> dict[str, dict[str, bool]]:
        return {stage: self.get(stage).to_dict() for stage in STAGES}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> PhaseApprovals:
        """Build from a possibly partial mapping. Missing entries are not generated."""
        if not raw:
            return cls()
        statuses: dict[str, ApprovalStatus] = {}
        for stage in STAGES:
            entry = raw.get(stage)
            if isinstance(entry, ApprovalStatus):
                statuses[stage] = entry
            elif isinstance(entry, Mapping):
                statuses[stage] = ApprovalStatus(
                    generated=entry.get("generated") is True,
                    approved=entry.get("approved") is True,
                )
        return cls(**statuses)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a phase transition check.

    ``missing_phase`` names the first unmet prerequisite phase when the
    denial is due to a prerequisite.
    """

    allowed: bool
    reason: str | None = None
    missing_phase: WorkflowPhase | None = None
    required_approvals: tuple[Stage, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.missing_phase is not None:
            data["missing_phase"] = self.missing_phase
        if self.required_approvals:
            data["required_approvals"] = list(self.required_approvals)
        return data


def _deny(reason: str, **kwargs: Any) -> TransitionResult:
    return TransitionResult(allowed=False, reason=reason, **kwargs)


def can_transition(
    current_phase: Any,
    target_phase: Any,
    approvals: PhaseApprovals | Mapping[str, Any] | None,
    *,
    require_approval: bool = False,
) -> TransitionResult:
    """Decide whether a project in ``current_phase`` may enter ``target_phase``.

    Prerequisites are checked first, in phase order, so the reason always
    names the earliest missing phase. Then the target must be the current
    phase (re-entry) or its immediate successor.
    """
    if not is_phase(current_phase):
        return _deny(f"Unknown current phase: {current_phase!r}")
    if not is_phase(target_phase):
        return _deny(f"Unknown target phase: {target_phase!r}")
    if not isinstance(approvals, PhaseApprovals):
        approvals = PhaseApprovals.from_dict(approvals if isinstance(approvals, Mapping) else None)

    current_idx = phase_index(current_phase)
    target_idx = phase_index(target_phase)
    target_label = phase_label(target_phase)

    for phase in PHASE_ORDER[1:target_idx]:
        stage = PHASE_STAGE[phase]
        status = approvals.get(stage)
        if not status.generated:
            return _deny(
                f"{stage} must be generated before {target_label} (missing phase: {phase})",
                missing_phase=phase,
                required_approvals=(stage,),
            )
        if require_approval and not status.approved:
            return _deny(
                f"{stage} must be approved before {target_label} (unapproved phase: {phase})",
                missing_phase=phase,
                required_approvals=(stage,),
            )

    if target_idx == current_idx or target_idx == current_idx + 1:
        return TransitionResult(allowed=True)
    if target_idx < current_idx:
        return _deny(f"Cannot move back from {current_phase} to {target_phase}: phases only advance")
    expected = PHASE_ORDER[current_idx + 1]
    return _deny(f"{target_phase} is not reachable from {current_phase}; the next phase is {expected}")


class WorkflowStatus(TypedDict):
    current_phase: WorkflowPhase
    next_phase: WorkflowPhase | None
    can_progress: bool
    blockers: list[str]


def workflow_status(project: Project, *, require_approval: bool = False) -> WorkflowStatus:
    """Summarise where ``project`` stands and what blocks the next phase."""
    upcoming = next_phase(project.phase)
    blockers: list[str] = []
    can_progress = False
    if upcoming is not None:
        result = can_transition(project.phase, upcoming, project.approvals, require_approval=require_approval)
        can_progress = result.allowed
        if not result.allowed and result.reason:
            blockers.append(result.reason)
    return WorkflowStatus(
        current_phase=project.phase,
        next_phase=upcoming,
        can_progress=can_progress,
        blockers=blockers,
    )
