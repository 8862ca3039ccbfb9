"""Projects and their workflow state.

The project service owns and mutates project state; the phase gate only reads
it. Storage sits behind the ``ProjectStore`` protocol so a durable backend can
replace the in-memory default.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Protocol

from sdd_mcp.errors import PhaseTransitionError, ProjectNotFoundError
from sdd_mcp.workflow import (
    STAGE_PHASE,
    PhaseApprovals,
    Stage,
    WorkflowPhase,
    phase_index,
)

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES: frozenset[str] = frozenset({"en", "ja", "zh-TW"})


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Project:
    id: str
    name: str
    path: str
    phase: WorkflowPhase = "init"
    language: str = "en"
    approvals: PhaseApprovals = field(default_factory=PhaseApprovals)
    documents: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "phase": self.phase,
            "language": self.language,
            "approvals": self.approvals.to_dict(),
            "documents": sorted(self.documents),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class ProjectStore(Protocol):
    """Abstract project-state store."""

    def save(self, project: Project) -> None: ...

    def get(self, project_id: str) -> Project | None: ...

    def find_by_path(self, path: str) -> Project | None: ...

    def list_all(self) -> list[Project]: ...

    def delete(self, project_id: str) -> bool: ...


class InMemoryProjectStore:
    """Process-local ProjectStore. Returns copies so callers cannot mutate stored state."""

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._lock = threading.Lock()

    def save(self, project: Project) -> None:
        with self._lock:
            self._projects[project.id] = replace(project, documents=dict(project.documents))

    def get(self, project_id: str) -> Project | None:
        with self._lock:
            stored = self._projects.get(project_id)
            return replace(stored, documents=dict(stored.documents)) if stored else None

    def find_by_path(self, path: str) -> Project | None:
        with self._lock:
            for stored in self._projects.values():
                if stored.path == path:
                    return replace(stored, documents=dict(stored.documents))
        return None

    def list_all(self) -> list[Project]:
        with self._lock:
            return [replace(p, documents=dict(p.documents)) for p in self._projects.values()]

    def delete(self, project_id: str) -> bool:
        with self._lock:
            return self._projects.pop(project_id, None) is not None


class ProjectService:
    """Create projects and record phase, document and approval changes."""

    def __init__(self, store: ProjectStore | None = None, *, clock: Callable[[], datetime] = _now) -> None:
        self.store: ProjectStore = store if store is not None else InMemoryProjectStore()
        self._clock = clock

    def create_project(self, name: str, path: str, language: str = "en") -> Project:
        if not name.strip():
            msg = "Project name must not be empty"
            raise ValueError(msg)
        if not path.strip():
            msg = "Project path must not be empty"
            raise ValueError(msg)
        if language not in SUPPORTED_LANGUAGES:
            msg = f"Unsupported language '{language}': must be one of {sorted(SUPPORTED_LANGUAGES)}"
            raise ValueError(msg)
        existing = self.store.find_by_path(path)
        if existing is not None:
            msg = f"A project already exists at {path}: {existing.id}"
            raise ValueError(msg)
        now = self._clock()
        project = Project(
            id=f"proj_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            path=path,
            language=language,
            created_at=now,
            updated_at=now,
        )
        self.store.save(project)
        logger.info("project_created", extra={"data": {"project_id": project.id, "name": project.name, "path": path}})
        return project

    def get_project(self, project_id: str) -> Project | None:
        return self.store.get(project_id)

    def get_project_by_path(self, path: str) -> Project | None:
        return self.store.find_by_path(path)

    def list_projects(self) -> list[Project]:
        return self.store.list_all()

    def _require(self, project_id: str) -> Project:
        project = self.store.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def update_phase(self, project_id: str, phase: WorkflowPhase) -> Project:
        """Move a project to ``phase``. Phases never move backwards."""
        project = self._require(project_id)
        if phase_index(phase) < phase_index(project.phase):
            msg = f"Cannot move project {project_id} back from {project.phase} to {phase}"
            raise PhaseTransitionError(project_id, phase, msg)
        project.phase = phase
        project.updated_at = self._clock()
        self.store.save(project)
        logger.info("project_phase_updated", extra={"data": {"project_id": project_id, "phase": phase}})
        return project

    def mark_generated(self, project_id: str, stage: Stage, document: str) -> Project:
        """Record a generated stage document and advance to that stage's phase.

        Regenerating a stage (revision) resets its approval.
        """
        project = self._require(project_id)
        target = STAGE_PHASE[stage]
        if phase_index(target) > phase_index(project.phase):
            project.phase = target
        project.documents[stage] = document
        project.approvals = project.approvals.with_status(stage, generated=True, approved=False)
        project.updated_at = self._clock()
        self.store.save(project)
        logger.info("document_generated", extra={"data": {"project_id": project_id, "stage": stage, "phase": project.phase}})
        return project

    def set_approval(self, project_id: str, stage: Stage, approved: bool) -> Project:
        project = self._require(project_id)
        if not project.approvals.get(stage).generated:
            msg = f"Cannot approve {stage} for project {project_id}: document has not been generated"
            raise ValueError(msg)
        project.approvals = project.approvals.with_status(stage, approved=approved)
        project.updated_at = self._clock()
        self.store.save(project)
        logger.info("approval_updated", extra={"data": {"project_id": project_id, "stage": stage, "approved": approved}})
        return project
