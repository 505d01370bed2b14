"""
Entity store.

One JSONL file per (project, kind). New records are appended; an update
removes the old line and appends the new copy at EOF, so line order is
not chronological once anything has been edited. Events are append-only.
"""

import logging

from depflow.lib import ids
from depflow.lib.config import WorkspacePaths
from depflow.lib.errors import NotFound, SystemFailure
from depflow.lib.validate import validate_before_write
from depflow.models import RECORD_TYPES, Entity, Event
from depflow.store import jsonl

logger = logging.getLogger(__name__)


class EntityStore:
    """Read/write access to entity files and the event log of a workspace."""

    def __init__(self, paths: WorkspacePaths):
        self.paths = paths

    def _load(self, kind: str, data: dict) -> Entity:
        try:
            return RECORD_TYPES[kind].from_dict(data)
        except TypeError as e:
            raise SystemFailure(f"Malformed {kind} record: {data.get('id', '?')}", e) from e

    def read_all(self, kind: str, project_id: str) -> list[Entity]:
        """All records of a kind in a project, in file order."""
        path = self.paths.entity_file(kind, project_id)
        return [self._load(kind, row) for row in jsonl.read_jsonl(path)]

    def find(self, kind: str, project_id: str, entity_id: str) -> Entity | None:
        for record in self.read_all(kind, project_id):
            if record.id == entity_id:
                return record
        return None

    def read_one(self, kind: str, project_id: str, entity_id: str) -> Entity:
        """Load a record by ID.

        Raises:
            NotFound: If no record has that ID
        """
        record = self.find(kind, project_id, entity_id)
        if record is None:
            raise NotFound(kind, entity_id)
        return record

    def ensure_writable(self, project_id: str) -> None:
        jsonl.ensure_writable(self.paths.project_dir(project_id))

    def write_new(self, record: Entity) -> None:
        """Append a freshly created record."""
        path = self.paths.entity_file(record.kind, record.project_id)
        data = record.to_dict()
        validate_before_write(data, record.kind, path)
        self.ensure_writable(record.project_id)
        jsonl.append_jsonl(path, data)
        logger.debug(f"[STORE] appended {record.kind} {record.id}")

    def replace(self, record: Entity) -> None:
        """Rewrite the file with the old copy removed and the new one appended."""
        self.replace_many(record.kind, record.project_id, [record])

    def replace_many(self, kind: str, project_id: str, records: list[Entity]) -> None:
        """Replace several records of one project in a single rewrite."""
        if not records:
            return
        path = self.paths.entity_file(kind, project_id)
        new_rows = []
        for record in records:
            data = record.to_dict()
            validate_before_write(data, kind, path)
            new_rows.append(data)

        self.ensure_writable(project_id)
        replaced = {r.id for r in records}
        rows = [row for row in jsonl.read_jsonl(path) if row.get("id") not in replaced]
        rows.extend(new_rows)
        jsonl.write_jsonl_atomic(path, rows)
        logger.debug(f"[STORE] replaced {len(records)} {kind} record(s) in {project_id}")

    def append_event(self, project_id: str, event: Event) -> None:
        path = self.paths.events_file(project_id)
        data = event.to_dict()
        validate_before_write(data, "event", path)
        self.ensure_writable(project_id)
        jsonl.append_jsonl(path, data)

    def read_events(self, project_id: str) -> list[Event]:
        rows = jsonl.read_jsonl(self.paths.events_file(project_id))
        return [Event.from_dict(row) for row in rows]

    def events_for(self, project_id: str, entity_id: str) -> list[Event]:
        """Events recorded for one entity, oldest first."""
        return [e for e in self.read_events(project_id) if e.id == entity_id]

    def count_events(self, project_id: str, entity_id: str) -> int:
        return len(self.events_for(project_id, entity_id))


class RecordIndex:
    """Per-operation ID -> record map for one kind.

    Each project's entity file is read at most once; the index is thrown
    away at the end of the operation so the on-disk format stays the only
    source of truth.
    """

    def __init__(self, store: EntityStore, kind: str):
        self.store = store
        self.kind = kind
        self._projects: dict[str, dict[str, Entity]] = {}

    def project(self, project_id: str) -> dict[str, Entity]:
        if project_id not in self._projects:
            records = self.store.read_all(self.kind, project_id)
            self._projects[project_id] = {r.id: r for r in records}
        return self._projects[project_id]

    def records(self, project_id: str) -> list[Entity]:
        return list(self.project(project_id).values())

    def get(self, entity_id: str) -> Entity | None:
        """Resolve an ID through its owning project.

        Raises:
            IDFormatError: If the ID can't be parsed for this kind
        """
        project_id = ids.project_of(self.kind, entity_id)
        return self.project(project_id).get(entity_id)

    def put(self, record: Entity) -> None:
        """Reflect a write made during the current operation."""
        self.project(record.project_id)[record.id] = record
