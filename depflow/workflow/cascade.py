"""
Unblock cascade.

When a record reaches a status that satisfies its dependents, every
blocked record of the same kind that lists it is re-evaluated: the
triggering record's own project first, then every other project. A
dependent flips to the kind's ready status only when *all* of its
dependencies are satisfied, so diamond-shaped graphs resolve on the last
completion.
"""

import logging

from depflow.lib.constants import EVENT_READY, SYSTEM_ACTOR
from depflow.models import Entity, Event
from depflow.store import jsonl
from depflow.store.entities import EntityStore, RecordIndex
from depflow.store.projects import ProjectRegistry
from depflow.workflow.dependencies import DependencyValidator
from depflow.workflow.kinds import KindSpec
from depflow.workflow.state_machine import transition

logger = logging.getLogger(__name__)


class CascadePropagator:
    """Promotes blocked dependents once their prerequisites are satisfied."""

    def __init__(self, store: EntityStore, registry: ProjectRegistry, validator: DependencyValidator):
        self.store = store
        self.registry = registry
        self.validator = validator

    def propagate(
        self,
        kind: KindSpec,
        project_id: str,
        completed_id: str,
        index: RecordIndex | None = None,
    ) -> list[str]:
        """Run one cascade pass for a just-completed record.

        Args:
            kind: Kind of the completed record
            project_id: Project owning the completed record
            completed_id: ID that just reached a satisfying status
            index: Per-operation index; must already reflect the completed record

        Returns:
            IDs of the records flipped to ready, in scan order

        Raises:
            SystemFailure: If a store can't be read or written. Records
                already flipped in earlier projects stay flipped.
        """
        index = index or RecordIndex(self.store, kind.name)
        projects = [project_id] + [p for p in self.registry.list_projects() if p != project_id]

        unblocked: list[str] = []
        for pid in projects:
            flipped = self._scan_project(kind, pid, completed_id, index)
            if not flipped:
                continue

            self.store.replace_many(kind.name, pid, flipped)
            for record in flipped:
                event = Event(
                    layer=kind.name,
                    type=EVENT_READY,
                    id=record.id,
                    by=SYSTEM_ACTOR,
                    ts=record.updated_at,
                )
                self.store.append_event(pid, event)
                logger.info(f"[CASCADE] {record.id}: unblocked by {completed_id}")
                unblocked.append(record.id)

        if not unblocked:
            logger.debug(f"[CASCADE] {completed_id}: no dependents unblocked")
        return unblocked

    def _scan_project(
        self,
        kind: KindSpec,
        project_id: str,
        completed_id: str,
        index: RecordIndex,
    ) -> list[Entity]:
        flipped = []
        for record in index.records(project_id):
            if record.status != kind.blocked_status or completed_id not in record.depends_on:
                continue
            if not self.validator.all_satisfied(kind, record.depends_on, index):
                continue

            record.status = transition(kind, record.status, kind.ready_status, record.id)
            record.updated_at = jsonl.now_iso()
            index.put(record)
            flipped.append(record)
        return flipped
