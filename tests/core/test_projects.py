"""Tests for the project service and in-memory store."""

from __future__ import annotations

import pytest

from sdd_mcp.errors import PhaseTransitionError, ProjectNotFoundError
from sdd_mcp.projects import InMemoryProjectStore, Project, ProjectService
from tests._helpers import FakeClock


class TestCreate:
    def test_create(self, service: ProjectService, clock: FakeClock) -> None:
        project = service.create_project("  demo  ", "/workspace/demo", "ja")
        assert project.id.startswith("proj_")
        assert project.name == "demo"
        assert project.phase == "init"
        assert project.language == "ja"
        assert project.created_at == clock.now
        assert service.get_project(project.id) == project

    @pytest.mark.parametrize(
        ("name", "path", "language"),
        [("", "/p", "en"), ("   ", "/p", "en"), ("n", "", "en"), ("n", "/p", "fr")],
    )
    def test_invalid_input(self, service: ProjectService, name: str, path: str, language: str) -> None:
        with pytest.raises(ValueError):
            service.create_project(name, path, language)

    def test_duplicate_path_rejected(self, service: ProjectService, project: Project) -> None:
        with pytest.raises(ValueError, match="already exists"):
            service.create_project("other", project.path)

    def test_lookup_by_path(self, service: ProjectService, project: Project) -> None:
        found = service.get_project_by_path("/workspace/demo")
        assert found is not None and found.id == project.id
        assert service.get_project_by_path("/nowhere") is None

    def test_list(self, service: ProjectService, project: Project) -> None:
        service.create_project("second", "/workspace/second")
        assert {p.name for p in service.list_projects()} == {"demo", "second"}


class TestStore:
    def test_returns_copies(self, project: Project) -> None:
        store = InMemoryProjectStore()
        store.save(project)
        copy = store.get(project.id)
        assert copy is not None
        copy.documents["requirements"] = "edited"
        stored = store.get(project.id)
        assert stored is not None and stored.documents == {}

    def test_delete(self, project: Project) -> None:
        store = InMemoryProjectStore()
        store.save(project)
        assert store.delete(project.id) is True
        assert store.delete(project.id) is False


class TestPhaseChanges:
    def test_mark_generated_advances(self, service: ProjectService, project: Project) -> None:
        updated = service.mark_generated(project.id, "requirements", "# Req")
        assert updated.phase == "requirements-generated"
        assert updated.approvals.get("requirements").generated is True
        assert updated.documents["requirements"] == "# Req"

    def test_regenerate_resets_approval(self, service: ProjectService, project: Project) -> None:
        service.mark_generated(project.id, "requirements", "v1")
        service.set_approval(project.id, "requirements", True)
        updated = service.mark_generated(project.id, "requirements", "v2")
        assert updated.approvals.get("requirements").approved is False
        assert updated.documents["requirements"] == "v2"

    def test_approve_requires_generated(self, service: ProjectService, project: Project) -> None:
        with pytest.raises(ValueError, match="has not been generated"):
            service.set_approval(project.id, "design", True)

    def test_set_approval(self, service: ProjectService, project: Project, clock: FakeClock) -> None:
        service.mark_generated(project.id, "requirements", "doc")
        clock.advance(5)
        updated = service.set_approval(project.id, "requirements", True)
        assert updated.approvals.get("requirements").approved is True
        assert updated.updated_at == clock.now

    def test_update_phase_rejects_backward(self, service: ProjectService, project: Project) -> None:
        service.mark_generated(project.id, "requirements", "doc")
        with pytest.raises(PhaseTransitionError):
            service.update_phase(project.id, "init")

    def test_unknown_project(self, service: ProjectService) -> None:
        with pytest.raises(ProjectNotFoundError, match="Project not found: proj_missing"):
            service.mark_generated("proj_missing", "requirements", "doc")

    def test_to_dict(self, service: ProjectService, project: Project) -> None:
        service.mark_generated(project.id, "requirements", "doc")
        data = service.get_project(project.id).to_dict()  # type: ignore[union-attr]
        assert data["documents"] == ["requirements"]
        assert data["approvals"]["requirements"] == {"generated": True, "approved": False}
