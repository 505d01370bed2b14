"""
Dependency validation.

Checks a proposed DependsOn list for one record, in order:

1. No edge points at the record itself
2. Every target exists and is not in an invalid status for the kind
3. Cross-project targets are permitted by the owning project's rule
4. No target can reach the record through existing edges (no cycles)

All lookups go through a RecordIndex so each project file is read once
per operation.
"""

import logging

from depflow.lib import ids
from depflow.lib.constants import CROSS_PROJECT_ALLOWED, DISABLED
from depflow.lib.errors import IDFormatError, ValidationError
from depflow.store.entities import EntityStore, RecordIndex
from depflow.store.projects import ProjectRegistry
from depflow.workflow.kinds import KindSpec

logger = logging.getLogger(__name__)


class DependencyValidator:
    """Validates dependency edges and evaluates dependency satisfaction."""

    def __init__(self, store: EntityStore, registry: ProjectRegistry):
        self.store = store
        self.registry = registry

    def validate(
        self,
        kind: KindSpec,
        project_id: str,
        self_id: str | None,
        proposed: list[str],
        index: RecordIndex | None = None,
    ) -> None:
        """Validate the complete proposed dependency list of a record.

        Args:
            kind: Kind of the record and all of its dependencies
            project_id: Project owning the record
            self_id: The record's own ID, or None when creating
            proposed: Full DependsOn list after edits
            index: Shared per-operation index (a fresh one is built if omitted)

        Raises:
            ValidationError: On the first violated rule
        """
        if not proposed:
            return
        index = index or RecordIndex(self.store, kind.name)

        if self_id and self_id in proposed:
            raise ValidationError(
                f"Self-dependency detected. {kind.name.capitalize()} cannot depend on itself."
            )

        rule: str | None = None
        for dep_id in proposed:
            dep_project = ids.project_of(kind.name, dep_id)
            record = index.get(dep_id)
            if record is None:
                raise ValidationError(f"Dependency not found: {dep_id}")

            if record.status in kind.invalid_dependency:
                if record.status == kind.cancelled_status:
                    raise ValidationError(f"Dependency is cancelled: {dep_id}")
                raise ValidationError(
                    f"Dependency is not actionable: {dep_id} (status: {record.status})"
                )

            if dep_project != project_id:
                if rule is None:
                    schema = self.registry.read_schema(project_id)
                    rule = schema.rules.for_kind(kind.name).dependency
                self._check_cross_project(rule, project_id, dep_project)

        if self_id:
            for dep_id in proposed:
                if self._reaches(index, dep_id, self_id):
                    logger.debug(f"[DEPS] {self_id}: edge to {dep_id} closes a cycle")
                    raise ValidationError("Circular dependency detected.")

    def _check_cross_project(self, rule: str, project_id: str, dep_project: str) -> None:
        if rule == CROSS_PROJECT_ALLOWED:
            return
        if rule == DISABLED:
            raise ValidationError(
                f"Cross-project dependency detected: {project_id} -> {dep_project}. "
                "Cross-project dependencies are disabled."
            )
        raise ValidationError(
            f"Cross-project dependency detected: {project_id} -> {dep_project}. "
            f"Project rule is {rule}."
        )

    def _reaches(self, index: RecordIndex, root: str, target: str) -> bool:
        """Depth-first search from root along DependsOn edges looking for target.

        Uses an explicit stack. The visited set is local to this root so a
        sub-dependency shared by two proposed edges is not mistaken for a
        cycle. Unparsable or missing nodes are dead ends.
        """
        stack = [root]
        visited: set[str] = set()
        while stack:
            node = stack.pop()
            if node == target:
                return True
            if node in visited:
                continue
            visited.add(node)

            try:
                record = index.get(node)
            except IDFormatError:
                logger.warning(f"[DEPS] skipping unparsable dependency {node}")
                continue
            if record is None:
                continue
            stack.extend(reversed(record.depends_on))
        return False

    def unsatisfied(self, kind: KindSpec, depends_on: list[str], index: RecordIndex) -> list[str]:
        """Dependencies that are missing or not in a satisfying status."""
        result = []
        for dep_id in depends_on:
            try:
                record = index.get(dep_id)
            except IDFormatError:
                record = None
            if record is None or not kind.is_satisfied_by(record.status):
                result.append(dep_id)
        return result

    def all_satisfied(self, kind: KindSpec, depends_on: list[str], index: RecordIndex) -> bool:
        return not self.unsatisfied(kind, depends_on, index)
