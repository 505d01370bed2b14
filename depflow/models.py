"""
Data models for depflow.

Records are plain dataclasses serialized to one JSON object per line.
Input and result types form the typed boundary consumed by the CLI layer.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import ClassVar

from depflow.lib.constants import (
    CROSS_PROJECT_ALLOWED,
    CYCLE_DISALLOWED,
    DEFAULT_PRIORITY,
    FEATURE,
    ISSUE,
    PRIORITY_LEVELS,
    SAME_PROJECT_ONLY,
    SCHEMA_VERSION,
    TASK,
)

JSON_SCHEMA_URI = "https://json-schema.org/draft/2020-12/schema"


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


# --- Records -----------------------------------------------------------------

@dataclass
class Entity:
    """Fields shared by every workflow entity."""
    kind: ClassVar[str] = ""

    id: str = ""
    project_id: str = ""
    name: str = ""
    goal: str = ""
    priority: str = DEFAULT_PRIORITY
    status: str = ""
    depends_on: list[str] = field(default_factory=list)
    reason: str = ""
    created_at: str = ""                       # ISO timestamp, UTC
    updated_at: str = ""
    created_by: str = ""
    updated_by: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Entity":
        return cls(**_known_fields(cls, data))


@dataclass
class Feature(Entity):
    kind: ClassVar[str] = FEATURE

    scope: str = ""


@dataclass
class Task(Entity):
    kind: ClassVar[str] = TASK

    feature_id: str = ""
    implementation_steps: list[str] = field(default_factory=list)
    test_cases: list[str] = field(default_factory=list)
    derivable_files: list[str] = field(default_factory=list)
    library_needs: list[str] = field(default_factory=list)


@dataclass
class Issue(Entity):
    kind: ClassVar[str] = ISSUE

    issue_type: str = ""
    affected_files: list[str] = field(default_factory=list)
    affected_tests: list[str] = field(default_factory=list)
    implementation_steps: list[str] = field(default_factory=list)
    library_needs: list[str] = field(default_factory=list)


RECORD_TYPES: dict[str, type[Entity]] = {
    FEATURE: Feature,
    TASK: Task,
    ISSUE: Issue,
}


@dataclass
class Event:
    """Immutable audit entry appended to events.jsonl."""
    layer: str                                 # feature, task, issue, project
    type: str                                  # created, updated, ready, blocked
    id: str
    by: str
    ts: str
    changes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        if not data["changes"]:
            del data["changes"]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(**_known_fields(cls, data))


# --- Projects ----------------------------------------------------------------

@dataclass
class DependencyRule:
    dependency: str = SAME_PROJECT_ONLY
    cycle: str = CYCLE_DISALLOWED


@dataclass
class PriorityConfig:
    levels: list[str] = field(default_factory=lambda: list(PRIORITY_LEVELS))
    default: str = DEFAULT_PRIORITY


@dataclass
class ProjectRules:
    task: DependencyRule = field(default_factory=DependencyRule)
    feature: DependencyRule = field(
        default_factory=lambda: DependencyRule(dependency=CROSS_PROJECT_ALLOWED)
    )
    issue: DependencyRule = field(default_factory=DependencyRule)
    priority: PriorityConfig = field(default_factory=PriorityConfig)

    def for_kind(self, kind: str) -> DependencyRule:
        return getattr(self, kind)


@dataclass
class ProjectSchema:
    """Contents of projects/<id>/schema.json."""
    version: str = SCHEMA_VERSION
    schema: str = JSON_SCHEMA_URI
    rules: ProjectRules = field(default_factory=ProjectRules)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "$schema": self.schema,
            "rules": asdict(self.rules),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectSchema":
        rules = data.get("rules", {})
        defaults = ProjectRules()
        return cls(
            version=data.get("version", SCHEMA_VERSION),
            schema=data.get("$schema", JSON_SCHEMA_URI),
            rules=ProjectRules(
                task=DependencyRule(**rules["task"]) if "task" in rules else defaults.task,
                feature=DependencyRule(**rules["feature"]) if "feature" in rules else defaults.feature,
                issue=DependencyRule(**rules["issue"]) if "issue" in rules else defaults.issue,
                priority=PriorityConfig(**rules["priority"]) if "priority" in rules else defaults.priority,
            ),
        )


@dataclass
class Project:
    id: str
    name: str
    goal: str = ""
    status: str = "initial"                    # initial, active, done, deleted
    strict: bool = False
    created_at: str = ""
    updated_at: str = ""
    created_by: str = ""
    updated_by: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(**_known_fields(cls, data))


# --- Inputs ------------------------------------------------------------------

@dataclass
class CreateInput:
    name: str
    goal: str
    project_id: str = ""
    priority: str = ""                         # Empty means kind/workspace default
    depends_on: list[str] = field(default_factory=list)


@dataclass
class FeatureCreateInput(CreateInput):
    scope: str = ""


@dataclass
class TaskCreateInput(CreateInput):
    feature_id: str = ""                       # Owning project is derived from this
    implementation_steps: list[str] = field(default_factory=list)
    test_cases: list[str] = field(default_factory=list)
    derivable_files: list[str] = field(default_factory=list)
    library_needs: list[str] = field(default_factory=list)


@dataclass
class IssueCreateInput(CreateInput):
    issue_type: str = ""
    affected_files: list[str] = field(default_factory=list)
    affected_tests: list[str] = field(default_factory=list)
    implementation_steps: list[str] = field(default_factory=list)
    library_needs: list[str] = field(default_factory=list)


@dataclass
class UpdateInput:
    """Partial update. None means "leave unchanged"."""
    entity_id: str
    name: str | None = None
    goal: str | None = None
    priority: str | None = None
    status: str | None = None
    reason: str | None = None
    depends_on: list[str] | None = None        # Replace the whole list
    depends_add: list[str] = field(default_factory=list)
    depends_remove: list[str] = field(default_factory=list)
    cancel: bool = False
    reopen: bool = False
    force: bool = False                        # Cancel even with dependents
    dry_run: bool = False


@dataclass
class FeatureUpdateInput(UpdateInput):
    scope: str | None = None


@dataclass
class TaskUpdateInput(UpdateInput):
    implementation_steps: list[str] | None = None
    test_cases: list[str] | None = None
    derivable_files: list[str] | None = None
    library_needs: list[str] | None = None


@dataclass
class IssueUpdateInput(UpdateInput):
    issue_type: str | None = None
    affected_files: list[str] | None = None
    affected_tests: list[str] | None = None
    implementation_steps: list[str] | None = None
    library_needs: list[str] | None = None
    start: bool = False
    resolve: bool = False
    wontfix: bool = False


@dataclass
class ListInput:
    project_id: str | None = None              # None lists every project
    status: str | None = None
    priority: str | None = None
    feature_id: str | None = None              # Tasks only
    issue_type: str | None = None              # Issues only
    include_deleted: bool = False
    sort_by: str = "priority"                  # priority, created_at, name, id
    order: str = "asc"


@dataclass
class DetailInput:
    entity_id: str
    include_deleted: bool = False
    include_events: bool = False


# --- Results -----------------------------------------------------------------

@dataclass
class UpdateResult:
    record: Entity
    changes: list[str] = field(default_factory=list)
    unblocked: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class ListResult:
    items: list[Entity] = field(default_factory=list)
    total: int = 0
    deleted: int = 0                           # Cancelled records hidden from items


@dataclass
class DetailResult:
    record: Entity
    events: int = 0
    event_log: list[Event] = field(default_factory=list)


@dataclass
class BlockedItem:
    record: Entity
    unsatisfied: list[str] = field(default_factory=list)
