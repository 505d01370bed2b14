"""Tests for depflow.store.projects module."""

import json

import pytest

from depflow.lib.config import WorkspacePaths
from depflow.lib.errors import NotFound, ValidationError
from depflow.store.projects import ProjectRegistry


class TestWorkspace:
    """Workspace initialization."""

    def test_init_writes_workspace_file(self, paths, settings):
        registry = ProjectRegistry(paths, settings)
        workspace = registry.init_workspace("myws")

        data = json.loads(paths.workspace_file.read_text())
        assert data == workspace
        assert data["name"] == "myws"
        assert data["version"] == "mandor.v1"
        assert data["config"]["default_priority"] == "P3"
        assert paths.projects_dir.is_dir()

    def test_init_twice_rejected(self, registry):
        with pytest.raises(ValidationError, match="already initialized"):
            registry.init_workspace("again")

    def test_invalid_workspace_name(self, paths, settings):
        registry = ProjectRegistry(paths, settings)
        with pytest.raises(ValidationError, match="Invalid workspace name"):
            registry.init_workspace("bad name!")

    def test_create_project_requires_workspace(self, paths, settings):
        registry = ProjectRegistry(paths, settings)
        assert not registry.workspace_exists()
        with pytest.raises(ValidationError, match="not initialized"):
            registry.create_project("alpha", "Alpha")

    def test_create_project_requires_workspace_file(self, paths, settings):
        """A bare .mandor/projects tree without workspace.json is not a workspace."""
        paths.projects_dir.mkdir(parents=True)
        registry = ProjectRegistry(paths, settings)
        with pytest.raises(ValidationError, match="Workspace not initialized. Run init first."):
            registry.create_project("alpha", "Alpha")

        other_root = paths.root / "other"
        other_root.mkdir()
        registry = ProjectRegistry(WorkspacePaths(other_root), settings)
        registry.init_workspace("other")
        assert registry.workspace_exists()


class TestCreateProject:
    """Project creation."""

    def test_layout(self, registry, paths):
        project_dir = paths.project_dir("alpha")
        for name in ("project.jsonl", "schema.json", "events.jsonl",
                     "features.jsonl", "tasks.jsonl", "issues.jsonl"):
            assert (project_dir / name).exists(), name

    def test_metadata(self, registry):
        project = registry.read_project("alpha")
        assert project.name == "Alpha"
        assert project.status == "initial"
        assert project.created_by == "tester"

    def test_default_schema(self, registry, paths):
        raw = json.loads(paths.schema_file("alpha").read_text())
        assert raw["version"] == "mandor.v1"
        assert raw["$schema"] == "https://json-schema.org/draft/2020-12/schema"

        schema = registry.read_schema("alpha")
        assert schema.rules.task.dependency == "same_project_only"
        assert schema.rules.feature.dependency == "cross_project_allowed"
        assert schema.rules.issue.dependency == "same_project_only"
        assert schema.rules.task.cycle == "disallowed"
        assert schema.rules.priority.levels == ["P0", "P1", "P2", "P3", "P4", "P5"]
        assert schema.rules.priority.default == "P3"

    def test_created_event(self, registry, paths):
        lines = paths.events_file("alpha").read_text().splitlines()
        event = json.loads(lines[0])
        assert event["layer"] == "project"
        assert event["type"] == "created"
        assert event["id"] == "alpha"

    def test_rule_overrides(self, registry):
        registry.create_project("gamma", "Gamma", rules={"task": "cross_project_allowed", "issue": "disabled"})
        schema = registry.read_schema("gamma")
        assert schema.rules.task.dependency == "cross_project_allowed"
        assert schema.rules.issue.dependency == "disabled"
        assert schema.rules.feature.dependency == "cross_project_allowed"

    @pytest.mark.parametrize("project_id", ["1abc", "a b", "", "-lead", "a.b"])
    def test_invalid_project_id(self, registry, project_id):
        with pytest.raises(ValidationError, match="Invalid project ID"):
            registry.create_project(project_id, "Bad")

    def test_valid_project_ids(self, registry):
        registry.create_project("A_b-9", "Ok")
        assert registry.project_exists("A_b-9")

    def test_duplicate_project(self, registry):
        with pytest.raises(ValidationError, match="already exists"):
            registry.create_project("alpha", "Again")

    def test_invalid_rule(self, registry):
        with pytest.raises(ValidationError, match="Invalid task dependency rule"):
            registry.create_project("gamma", "Gamma", rules={"task": "anything_goes"})
        assert not registry.project_exists("gamma")


class TestProjectQueries:
    """Listing, rules and deletion."""

    def test_list_projects_sorted(self, registry):
        registry.create_project("aardvark", "A")
        assert registry.list_projects() == ["aardvark", "alpha", "beta-x"]

    def test_read_schema_missing_project(self, registry):
        with pytest.raises(NotFound, match="Project not found: ghost"):
            registry.read_schema("ghost")

    def test_update_rules_persists(self, registry):
        registry.update_rules("alpha", {"task": "cross_project_allowed"})
        assert registry.read_schema("alpha").rules.task.dependency == "cross_project_allowed"

    def test_update_rules_logs_change(self, registry, caplog):
        with caplog.at_level("INFO"):
            registry.update_rules("alpha", {"issue": "disabled"})
        assert "[PROJECT] alpha: issue dependency same_project_only -> disabled" in caplog.text

    def test_soft_delete(self, registry, paths):
        registry.delete_project("beta-x")
        assert registry.read_project("beta-x").status == "deleted"
        assert paths.project_dir("beta-x").exists()

    def test_hard_delete(self, registry, paths):
        registry.delete_project("beta-x", hard=True)
        assert not paths.project_dir("beta-x").exists()
        assert registry.list_projects() == ["alpha"]
