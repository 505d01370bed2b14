"""
Workspace and project registry.

Projects own the per-kind dependency rules the validator enforces. This
module creates the on-disk layout for a workspace and its projects and
reads back their metadata and schema files.
"""

import logging
import re
import shutil

from depflow.lib import ids
from depflow.lib.config import Settings, WorkspacePaths
from depflow.lib.constants import (
    DEPENDENCY_RULES,
    ENTITY_KINDS,
    EVENT_CREATED,
    EVENT_DELETED,
    PROJECT_ID_PATTERN,
    SCHEMA_VERSION,
)
from depflow.lib.errors import NotFound, PermissionDenied, SystemFailure, ValidationError
from depflow.lib.validate import validate, validate_before_write, validate_file
from depflow.models import DependencyRule, Event, Project, ProjectSchema
from depflow.store import jsonl

logger = logging.getLogger(__name__)

WORKSPACE_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


def _check_rule(kind: str, rule: str) -> None:
    if rule not in DEPENDENCY_RULES:
        raise ValidationError(
            f"Invalid {kind} dependency rule: {rule}. "
            f"Must be one of: {', '.join(DEPENDENCY_RULES)}"
        )


class ProjectRegistry:
    """Creates and reads workspaces and projects."""

    def __init__(self, paths: WorkspacePaths, settings: Settings):
        self.paths = paths
        self.settings = settings

    # --- Workspace -----------------------------------------------------------

    def workspace_exists(self) -> bool:
        return self.paths.workspace_file.exists()

    def init_workspace(self, name: str | None = None) -> dict:
        """Create .mandor/ and workspace.json.

        Raises:
            ValidationError: If already initialized or the name is invalid
            PermissionDenied: If the root isn't writable
        """
        if self.paths.mandor_dir.exists():
            raise ValidationError("Workspace already initialized in this directory.")

        name = name or self.paths.root.resolve().name
        if not WORKSPACE_NAME_PATTERN.match(name):
            raise ValidationError(
                "Invalid workspace name. Allowed characters: alphanumeric, hyphens (-), underscores (_)"
            )

        jsonl.ensure_writable(self.paths.root)

        now = jsonl.now_iso()
        workspace = {
            "id": ids.generate_nanoid(),
            "name": name,
            "version": SCHEMA_VERSION,
            "schema_version": SCHEMA_VERSION,
            "created_at": now,
            "last_updated_at": now,
            "created_by": self.settings.actor,
            "config": {
                "default_priority": self.settings.default_priority,
                "strict_mode": self.settings.strict_mode,
            },
        }
        validate(workspace, "workspace")

        try:
            self.paths.projects_dir.mkdir(parents=True)
        except OSError as e:
            raise SystemFailure(f"Cannot create {self.paths.projects_dir}", e) from e
        jsonl.write_json_atomic(self.paths.workspace_file, workspace)
        logger.info(f"[PROJECT] initialized workspace {name}")
        return workspace

    # --- Projects ------------------------------------------------------------

    def project_exists(self, project_id: str) -> bool:
        return self.paths.project_file(project_id).exists()

    def list_projects(self) -> list[str]:
        """Project IDs in the workspace, sorted."""
        if not self.paths.projects_dir.exists():
            return []
        return sorted(
            d.name for d in self.paths.projects_dir.iterdir()
            if d.is_dir() and (d / "project.jsonl").exists()
        )

    def create_project(
        self,
        project_id: str,
        name: str,
        goal: str = "",
        rules: dict[str, str] | None = None,
        strict: bool = False,
    ) -> Project:
        """Create a project with its default schema and empty entity files.

        Args:
            project_id: Must start with a letter; alphanumerics, '-', '_' only
            name: Display name
            goal: Free-text goal
            rules: Optional per-kind dependency rule overrides, e.g. {"task": "cross_project_allowed"}
            strict: Stored on the project record

        Raises:
            ValidationError: Bad ID, duplicate project or unknown rule
            PermissionDenied: If the projects directory isn't writable
        """
        if not PROJECT_ID_PATTERN.match(project_id or ""):
            raise ValidationError(
                "Invalid project ID. Must start with letter, contain only alphanumeric, hyphens, underscores."
            )
        if not name:
            raise ValidationError("Project name is required.")
        if self.project_exists(project_id):
            raise ValidationError(f"Project already exists: {project_id}")

        schema = ProjectSchema()
        for kind, rule in (rules or {}).items():
            if kind not in ENTITY_KINDS:
                raise ValidationError(f"Unknown entity kind in rules: {kind}")
            if rule:
                _check_rule(kind, rule)
                schema.rules.for_kind(kind).dependency = rule

        if not self.workspace_exists():
            raise ValidationError("Workspace not initialized. Run init first.")
        try:
            jsonl.ensure_writable(self.paths.projects_dir)
        except PermissionDenied:
            raise PermissionDenied("Permission denied. Cannot create project directory.") from None

        now = jsonl.now_iso()
        actor = self.settings.actor
        project = Project(
            id=project_id,
            name=name,
            goal=goal,
            strict=strict,
            created_at=now,
            updated_at=now,
            created_by=actor,
            updated_by=actor,
        )

        project_dir = self.paths.project_dir(project_id)
        try:
            project_dir.mkdir(parents=True)
            for kind in ENTITY_KINDS:
                self.paths.entity_file(kind, project_id).touch()
        except OSError as e:
            raise SystemFailure(f"Cannot create project directory {project_dir}", e) from e

        jsonl.write_jsonl_atomic(self.paths.project_file(project_id), [project.to_dict()])
        self.write_schema(project_id, schema)
        event = Event(layer="project", type=EVENT_CREATED, id=project_id, by=actor, ts=now)
        jsonl.append_jsonl(self.paths.events_file(project_id), event.to_dict())

        logger.info(f"[PROJECT] created {project_id}")
        return project

    def read_project(self, project_id: str) -> Project:
        rows = jsonl.read_jsonl(self.paths.project_file(project_id))
        if not rows:
            raise NotFound("project", project_id)
        return Project.from_dict(rows[-1])

    def read_schema(self, project_id: str) -> ProjectSchema:
        """Load and validate a project's schema.json.

        Raises:
            NotFound: If the project doesn't exist
        """
        if not self.project_exists(project_id):
            raise NotFound("project", project_id)
        data = validate_file(self.paths.schema_file(project_id), "project_schema")
        return ProjectSchema.from_dict(data)

    def write_schema(self, project_id: str, schema: ProjectSchema) -> None:
        path = self.paths.schema_file(project_id)
        data = schema.to_dict()
        validate_before_write(data, "project_schema", path)
        jsonl.write_json_atomic(path, data)

    def update_rules(self, project_id: str, rules: dict[str, str]) -> ProjectSchema:
        """Change per-kind dependency rules. Returns the new schema."""
        schema = self.read_schema(project_id)
        for kind, rule in rules.items():
            if kind not in ENTITY_KINDS:
                raise ValidationError(f"Unknown entity kind in rules: {kind}")
            _check_rule(kind, rule)
            current: DependencyRule = schema.rules.for_kind(kind)
            if current.dependency != rule:
                logger.info(f"[PROJECT] {project_id}: {kind} dependency {current.dependency} -> {rule}")
                current.dependency = rule
        self.write_schema(project_id, schema)
        return schema

    def delete_project(self, project_id: str, hard: bool = False) -> None:
        """Soft delete marks the project deleted; hard delete removes its directory."""
        project = self.read_project(project_id)
        project_dir = self.paths.project_dir(project_id)

        if hard:
            try:
                shutil.rmtree(project_dir)
            except OSError as e:
                raise SystemFailure(f"Cannot delete {project_dir}", e) from e
            logger.info(f"[PROJECT] hard deleted {project_id}")
            return

        now = jsonl.now_iso()
        actor = self.settings.actor
        event = Event(layer="project", type=EVENT_DELETED, id=project_id, by=actor, ts=now)
        jsonl.append_jsonl(self.paths.events_file(project_id), event.to_dict())
        project.status = "deleted"
        project.updated_at = now
        project.updated_by = actor
        jsonl.write_jsonl_atomic(self.paths.project_file(project_id), [project.to_dict()])
        logger.info(f"[PROJECT] deleted {project_id}")

