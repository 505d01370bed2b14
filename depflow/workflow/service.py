"""
Workflow service: create, update, list and detail for every entity kind.

Sequences the store, validator, status machine and cascade. Mutations
run under the workspace lock and validate everything before the first
write. A failure during the cascade can still leave the triggering record
persisted with some dependents not yet rescanned.

Usage:
    from depflow.workflow.service import WorkflowService

    service = WorkflowService(paths, settings)
    task = service.create_task(TaskCreateInput(...))
    result = service.update_task(TaskUpdateInput(task.id, status="in_progress"))
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import fields

from depflow.lib import ids
from depflow.lib.config import Settings, WorkspacePaths
from depflow.lib.constants import (
    EVENT_BLOCKED,
    EVENT_CREATED,
    EVENT_READY,
    EVENT_UPDATED,
    FEATURE,
    ISSUE,
    PRIORITY_LEVELS,
    SYSTEM_ACTOR,
    TASK,
)
from depflow.lib.errors import NotFound, SystemFailure, ValidationError
from depflow.models import (
    BlockedItem,
    CreateInput,
    DetailInput,
    DetailResult,
    Entity,
    Event,
    Feature,
    FeatureCreateInput,
    FeatureUpdateInput,
    Issue,
    IssueCreateInput,
    IssueUpdateInput,
    ListInput,
    ListResult,
    Task,
    TaskCreateInput,
    TaskUpdateInput,
    UpdateInput,
    UpdateResult,
)
from depflow.store import jsonl
from depflow.store.entities import EntityStore, RecordIndex
from depflow.store.locking import workspace_lock
from depflow.store.projects import ProjectRegistry
from depflow.workflow.cascade import CascadePropagator
from depflow.workflow.dependencies import DependencyValidator
from depflow.workflow.kinds import (
    CANCEL,
    REOPEN,
    RESOLVE,
    START,
    WONTFIX,
    KindSpec,
    get_kind,
)
from depflow.workflow.state_machine import apply_action, require_state, transition

logger = logging.getLogger(__name__)

SORT_KEYS = ("priority", "created_at", "name", "id")
MAX_ID_ATTEMPTS = 10

_BASE_FIELDS = {f.name for f in fields(Entity)}
_NEW_ID = {
    FEATURE: ids.new_feature_id,
    ISSUE: ids.new_issue_id,
}


def _label(field_name: str) -> str:
    return field_name.replace("_", " ").capitalize()


def _priority_rank(priority: str) -> int:
    try:
        return PRIORITY_LEVELS.index(priority)
    except ValueError:
        return len(PRIORITY_LEVELS)


def _check_priority(priority: str) -> None:
    if priority not in PRIORITY_LEVELS:
        raise ValidationError(
            f"Invalid priority: {priority}. Valid options: {', '.join(PRIORITY_LEVELS)}"
        )


def _set(record: Entity, field_name: str, value, changes: list[str]) -> None:
    """Assign a field and record its name if the value actually changed."""
    if getattr(record, field_name) == value:
        return
    setattr(record, field_name, value)
    if field_name not in changes:
        changes.append(field_name)


class WorkflowService:
    """Entry points consumed by the CLI layer."""

    def __init__(self, paths: WorkspacePaths, settings: Settings):
        self.paths = paths
        self.settings = settings
        self.store = EntityStore(paths)
        self.registry = ProjectRegistry(paths, settings)
        self.validator = DependencyValidator(self.store, self.registry)
        self.cascade = CascadePropagator(self.store, self.registry, self.validator)

    @contextmanager
    def _locked(self):
        with workspace_lock(self.paths, self.settings.lock_timeout):
            yield

    # --- Create --------------------------------------------------------------

    def create(self, kind_name: str, inp: CreateInput) -> Entity:
        """Create a record and derive its initial status from its dependencies.

        No dependencies gives the kind's initial status. With dependencies
        the record is ready only if every one is already satisfied,
        otherwise blocked.

        Raises:
            ValidationError: Missing or invalid fields, unknown project,
                or a dependency rule violation
            PermissionDenied: If the project directory isn't writable
        """
        kind = get_kind(kind_name)
        project_id = self._create_project_id(kind, inp)
        self._validate_create_fields(kind, inp)

        with self._locked():
            if not self.registry.project_exists(project_id):
                raise NotFound("project", project_id)
            if kind.name == TASK:
                self._check_parent_feature(inp.feature_id)

            index = RecordIndex(self.store, kind.name)
            depends_on = list(inp.depends_on)
            self.validator.validate(kind, project_id, None, depends_on, index)

            if not depends_on:
                status = kind.initial_status
            elif self.validator.all_satisfied(kind, depends_on, index):
                status = kind.ready_status
            else:
                status = kind.blocked_status

            now = jsonl.now_iso()
            actor = self.settings.actor
            record = kind.record_type(
                id=self._new_id(kind, project_id, inp, index),
                project_id=project_id,
                name=inp.name.strip(),
                goal=inp.goal,
                priority=inp.priority or kind.default_priority or self.settings.default_priority,
                status=status,
                depends_on=depends_on,
                created_at=now,
                updated_at=now,
                created_by=actor,
                updated_by=actor,
                **self._kind_fields(kind, inp),
            )

            self.store.write_new(record)
            self.store.append_event(
                project_id, Event(layer=kind.name, type=EVENT_CREATED, id=record.id, by=actor, ts=now)
            )
            status_event = EVENT_BLOCKED if status == kind.blocked_status else EVENT_READY
            self.store.append_event(
                project_id,
                Event(layer=kind.name, type=status_event, id=record.id, by=SYSTEM_ACTOR, ts=now),
            )

        logger.info(f"[WORKFLOW] created {kind.name} {record.id} ({status})")
        return record

    def _create_project_id(self, kind: KindSpec, inp: CreateInput) -> str:
        if kind.name == TASK:
            if not inp.feature_id:
                raise ValidationError("Feature ID is required.")
            project_id = ids.parse_feature_id(inp.feature_id).project_id
            if inp.project_id and inp.project_id != project_id:
                raise ValidationError(
                    f"Feature {inp.feature_id} does not belong to project {inp.project_id}."
                )
            return project_id

        if not inp.project_id:
            raise ValidationError("Project ID is required.")
        return inp.project_id

    def _validate_create_fields(self, kind: KindSpec, inp: CreateInput) -> None:
        if not inp.name or not inp.name.strip():
            raise ValidationError(f"{kind.name.capitalize()} name is required.")
        if not inp.goal or not inp.goal.strip():
            raise ValidationError(f"{kind.name.capitalize()} goal is required.")

        min_length = self.settings.goal_min_length(kind.name)
        if len(inp.goal) < min_length:
            raise ValidationError(
                f"{kind.name.capitalize()} goal must be at least {min_length} characters."
            )

        if inp.priority:
            _check_priority(inp.priority)

        self._check_enum_fields(kind, inp)

        for list_name in kind.required_lists:
            if not getattr(inp, list_name):
                raise ValidationError(f"{_label(list_name)} is required (at least one entry).")

    def _check_enum_fields(self, kind: KindSpec, inp) -> None:
        for field_name, allowed in kind.enum_fields.items():
            value = getattr(inp, field_name, None)
            if value is None:
                continue
            if value == "" and "" not in allowed:
                raise ValidationError(f"{_label(field_name)} is required.")
            if value not in allowed:
                valid = ", ".join(a for a in allowed if a)
                raise ValidationError(
                    f"Invalid {field_name.replace('_', ' ')}: {value}. Valid options: {valid}"
                )

    def _check_parent_feature(self, feature_id: str) -> None:
        project_id = ids.project_of(FEATURE, feature_id)
        feature = self.store.find(FEATURE, project_id, feature_id)
        if feature is None:
            raise NotFound(FEATURE, feature_id)
        if feature.status in ("cancelled", "done"):
            raise ValidationError(f"Cannot create task for {feature.status} feature: {feature_id}")

    def _kind_fields(self, kind: KindSpec, inp: CreateInput) -> dict:
        """Kind-specific record fields copied from the create input."""
        result = {}
        for f in fields(kind.record_type):
            if f.name in _BASE_FIELDS or not hasattr(inp, f.name):
                continue
            value = getattr(inp, f.name)
            result[f.name] = list(value) if isinstance(value, list) else value
        return result

    def _new_id(self, kind: KindSpec, project_id: str, inp: CreateInput, index: RecordIndex) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            if kind.name == TASK:
                candidate = ids.new_task_id(inp.feature_id)
            else:
                candidate = _NEW_ID[kind.name](project_id)
            if index.get(candidate) is None:
                return candidate
            logger.debug(f"[WORKFLOW] ID collision on {candidate}, regenerating")
        raise SystemFailure(f"Cannot generate a unique {kind.name} ID")

    # --- Update --------------------------------------------------------------

    def update(self, kind_name: str, inp: UpdateInput) -> UpdateResult:
        """Apply a partial update.

        Order within one update: reopen, cancel, field edits, dependency
        edits, start, resolve, wontfix, then a plain status write. Only
        fields whose values actually change are reported in ``changes``.

        Raises:
            NotFound: If the record doesn't exist
            ValidationError: Locked record, bad field, dependency rule
                violation or illegal transition
        """
        kind = get_kind(kind_name)
        project_id = ids.project_of(kind.name, inp.entity_id)

        with self._locked():
            index = RecordIndex(self.store, kind.name)
            current = index.get(inp.entity_id)
            if current is None:
                raise NotFound(kind.name, inp.entity_id)

            record = copy.deepcopy(current)
            changes, became_ready = self._apply_update(kind, record, inp, index)

            if not changes or inp.dry_run:
                if changes:
                    logger.info(f"[WORKFLOW] dry run {record.id}: would change {', '.join(changes)}")
                return UpdateResult(
                    record=record if inp.dry_run else current,
                    changes=changes,
                    dry_run=inp.dry_run,
                )

            now = jsonl.now_iso()
            actor = self.settings.actor
            record.updated_at = now
            record.updated_by = actor
            self.store.replace(record)
            index.put(record)

            unblocked: list[str] = []
            if (
                "status" in changes
                and kind.is_satisfied_by(record.status)
                and not kind.is_satisfied_by(current.status)
            ):
                unblocked = self.cascade.propagate(kind, project_id, record.id, index)

            self.store.append_event(
                project_id,
                Event(layer=kind.name, type=EVENT_UPDATED, id=record.id, by=actor, ts=now,
                      changes=list(changes)),
            )
            if became_ready:
                self.store.append_event(
                    project_id,
                    Event(layer=kind.name, type=EVENT_READY, id=record.id, by=SYSTEM_ACTOR, ts=now),
                )

        logger.info(f"[WORKFLOW] updated {kind.name} {record.id}: {', '.join(changes)}")
        return UpdateResult(record=record, changes=changes, unblocked=unblocked)

    def _apply_update(
        self,
        kind: KindSpec,
        record: Entity,
        inp: UpdateInput,
        index: RecordIndex,
    ) -> tuple[list[str], bool]:
        """Validate and apply every requested change to `record` in place.

        Returns the changed field names, and whether a dependency edit left
        the record ready so a system "ready" event is owed.
        """
        changes: list[str] = []
        label = kind.name.capitalize()

        if record.status in kind.locked:
            raise ValidationError(f"Cannot modify {record.status} {kind.name}.")
        if record.status == kind.cancelled_status and not (inp.reopen or inp.cancel):
            raise ValidationError(
                f"{label} is cancelled. Use reopen to reopen, or cancel to confirm cancellation."
            )

        if inp.reopen:
            _set(record, "status", apply_action(kind, record.status, REOPEN, record.id), changes)
            _set(record, "reason", "", changes)

        if inp.cancel:
            new_status = apply_action(kind, record.status, CANCEL, record.id)
            if kind.cancel_checks_dependents and not inp.force:
                dependents = self._dependents_in(kind, record.project_id, record.id, index)
                if dependents:
                    raise ValidationError(
                        f"{label} has {len(dependents)} dependent(s). Use force to cancel anyway."
                    )
            if not (inp.reason or "").strip():
                raise ValidationError("Cancellation reason is required.")
            _set(record, "status", new_status, changes)
            _set(record, "reason", inp.reason, changes)

        self._apply_fields(kind, record, inp, changes)
        unblocked = self._apply_dependencies(kind, record, inp, index, changes)

        for action_name in (START, RESOLVE):
            if getattr(inp, action_name, False):
                _set(record, "status", apply_action(kind, record.status, action_name, record.id), changes)

        if getattr(inp, WONTFIX, False):
            new_status = apply_action(kind, record.status, WONTFIX, record.id)
            if not (inp.reason or "").strip():
                raise ValidationError("Wontfix reason is required.")
            _set(record, "status", new_status, changes)
            _set(record, "reason", inp.reason, changes)

        if inp.status is not None and inp.status != record.status:
            _set(record, "status", transition(kind, record.status, inp.status, record.id), changes)
        elif inp.status is not None:
            require_state(kind, inp.status)

        return changes, unblocked and record.status == kind.ready_status

    def _apply_fields(self, kind: KindSpec, record: Entity, inp: UpdateInput, changes: list[str]) -> None:
        label = kind.name.capitalize()
        if inp.name is not None:
            if not inp.name.strip():
                raise ValidationError(f"{label} name cannot be empty.")
            _set(record, "name", inp.name.strip(), changes)

        if inp.goal is not None:
            if not inp.goal.strip():
                raise ValidationError(f"{label} goal cannot be empty.")
            _set(record, "goal", inp.goal, changes)

        if inp.priority is not None:
            _check_priority(inp.priority)
            _set(record, "priority", inp.priority, changes)

        self._check_enum_fields(kind, inp)
        for f in fields(kind.record_type):
            if f.name in _BASE_FIELDS or f.name == "feature_id":
                continue
            value = getattr(inp, f.name, None)
            if value is None:
                continue
            if isinstance(value, list):
                if f.name in kind.required_lists and not value:
                    raise ValidationError(f"{_label(f.name)} cannot be empty.")
                value = list(value)
            _set(record, f.name, value, changes)

    def _apply_dependencies(
        self,
        kind: KindSpec,
        record: Entity,
        inp: UpdateInput,
        index: RecordIndex,
        changes: list[str],
    ) -> bool:
        """Apply depends_on edits. Returns True if the edit unblocked the record.

        Only edges not already on the record are validated; targets of
        existing edges may since have been completed or cancelled.
        """
        new_deps = list(record.depends_on) if inp.depends_on is None else list(inp.depends_on)
        new_deps.extend(inp.depends_add)
        if inp.depends_remove:
            removed = set(inp.depends_remove)
            new_deps = [d for d in new_deps if d not in removed]

        if new_deps == record.depends_on:
            return False
        added = [d for d in new_deps if d not in record.depends_on]
        self.validator.validate(kind, record.project_id, record.id, added, index)
        _set(record, "depends_on", new_deps, changes)

        if record.status == kind.blocked_status and self.validator.all_satisfied(kind, new_deps, index):
            _set(record, "status", transition(kind, record.status, kind.ready_status, record.id), changes)
            return True
        return False

    # --- Queries -------------------------------------------------------------

    def _projects_for(self, project_id: str | None) -> list[str]:
        if project_id is None:
            return self.registry.list_projects()
        if not self.registry.project_exists(project_id):
            raise NotFound("project", project_id)
        return [project_id]

    def _dependents_in(self, kind: KindSpec, project_id: str, entity_id: str, index: RecordIndex) -> list[str]:
        return [r.id for r in index.records(project_id) if entity_id in r.depends_on]

    def dependents(self, kind_name: str, entity_id: str) -> list[str]:
        """IDs of same-kind records in the owning project that depend on entity_id."""
        kind = get_kind(kind_name)
        project_id = ids.project_of(kind.name, entity_id)
        return self._dependents_in(kind, project_id, entity_id, RecordIndex(self.store, kind.name))

    def detail(self, kind_name: str, inp: DetailInput) -> DetailResult:
        """Load one record with its event count (and optionally its events)."""
        kind = get_kind(kind_name)
        project_id = ids.project_of(kind.name, inp.entity_id)
        record = self.store.find(kind.name, project_id, inp.entity_id)
        if record is None or (record.status == kind.cancelled_status and not inp.include_deleted):
            raise NotFound(kind.name, inp.entity_id)

        events = self.store.events_for(project_id, record.id)
        return DetailResult(
            record=record,
            events=len(events),
            event_log=events if inp.include_events else [],
        )

    def ready(self, kind_name: str, project_id: str | None = None) -> list[Entity]:
        """Records in the kind's ready status, highest priority first."""
        kind = get_kind(kind_name)
        return self.list(kind.name, ListInput(project_id=project_id, status=kind.ready_status)).items

    def blocked(self, kind_name: str, project_id: str | None = None) -> list[BlockedItem]:
        """Blocked records with the dependencies still holding them back."""
        kind = get_kind(kind_name)
        records = self.list(kind.name, ListInput(project_id=project_id, status=kind.blocked_status)).items
        index = RecordIndex(self.store, kind.name)
        return [
            BlockedItem(record=r, unsatisfied=self.validator.unsatisfied(kind, r.depends_on, index))
            for r in records
        ]

    # --- Per-kind wrappers ---------------------------------------------------

    def create_feature(self, inp: FeatureCreateInput) -> Feature:
        return self.create(FEATURE, inp)

    def create_task(self, inp: TaskCreateInput) -> Task:
        return self.create(TASK, inp)

    def create_issue(self, inp: IssueCreateInput) -> Issue:
        return self.create(ISSUE, inp)

    def update_feature(self, inp: FeatureUpdateInput) -> UpdateResult:
        return self.update(FEATURE, inp)

    def update_task(self, inp: TaskUpdateInput) -> UpdateResult:
        return self.update(TASK, inp)

    def update_issue(self, inp: IssueUpdateInput) -> UpdateResult:
        return self.update(ISSUE, inp)

    def list(self, kind_name: str, inp: ListInput | None = None) -> ListResult:
        """Filter and sort records. Cancelled records are hidden unless
        include_deleted is set, and counted in ``deleted`` either way.
        """
        kind = get_kind(kind_name)
        inp = inp or ListInput()
        if inp.sort_by not in SORT_KEYS:
            raise ValidationError(f"Invalid sort key: {inp.sort_by}. Valid options: {', '.join(SORT_KEYS)}")
        if inp.order not in ("asc", "desc"):
            raise ValidationError(f"Invalid order: {inp.order}. Valid options: asc, desc")
        if inp.status is not None:
            require_state(kind, inp.status)

        items: list[Entity] = []
        deleted = 0
        for project_id in self._projects_for(inp.project_id):
            for record in self.store.read_all(kind.name, project_id):
                if inp.status is not None and record.status != inp.status:
                    continue
                if inp.priority is not None and record.priority != inp.priority:
                    continue
                if inp.feature_id is not None and getattr(record, "feature_id", None) != inp.feature_id:
                    continue
                if inp.issue_type is not None and getattr(record, "issue_type", None) != inp.issue_type:
                    continue
                if record.status == kind.cancelled_status:
                    deleted += 1
                    if not inp.include_deleted:
                        continue
                items.append(record)

        if inp.sort_by == "priority":
            key = lambda r: (_priority_rank(r.priority), r.created_at)  # noqa: E731
        else:
            key = lambda r: getattr(r, inp.sort_by)  # noqa: E731
        items.sort(key=key, reverse=inp.order == "desc")
        return ListResult(items=items, total=len(items), deleted=deleted)

