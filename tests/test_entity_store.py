"""Tests for depflow.store.entities and depflow.store.jsonl."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from depflow.lib.errors import (
    EXIT_PERMISSION_ERROR,
    NotFound,
    PermissionDenied,
    SystemFailure,
    ValidationError,
)
from depflow.models import Event, Task
from depflow.store import jsonl
from depflow.store.entities import EntityStore, RecordIndex

TS = "2026-01-01T00:00:00.000000Z"


def make_task(nanoid: str, status: str = "ready", depends_on=None, project_id: str = "alpha") -> Task:
    feature_id = f"{project_id}-feature-f001"
    return Task(
        id=f"{feature_id}-task-{nanoid}",
        project_id=project_id,
        feature_id=feature_id,
        name=f"Task {nanoid}",
        goal="goal",
        status=status,
        depends_on=depends_on or [],
        created_at=TS,
        updated_at=TS,
    )


@pytest.fixture
def store(paths, registry):
    return EntityStore(paths)


class TestReadWrite:
    """Record persistence."""

    def test_write_new_then_read_one(self, store):
        task = make_task("t001")
        store.write_new(task)
        assert store.read_one("task", "alpha", task.id) == task

    def test_read_one_missing(self, store):
        with pytest.raises(NotFound) as exc_info:
            store.read_one("task", "alpha", "alpha-feature-f001-task-nope")
        assert "Task not found: alpha-feature-f001-task-nope" in str(exc_info.value)

    def test_read_all_missing_project_is_empty(self, store):
        assert store.read_all("task", "ghost") == []

    def test_replace_moves_record_to_end(self, store):
        """Updates delete the old line and append the new copy at EOF."""
        a, b = make_task("aaaa"), make_task("bbbb")
        store.write_new(a)
        store.write_new(b)

        a.name = "renamed"
        store.replace(a)

        records = store.read_all("task", "alpha")
        assert [r.id for r in records] == [b.id, a.id]
        assert records[-1].name == "renamed"

    def test_replace_many(self, store):
        a, b, c = make_task("aaaa"), make_task("bbbb"), make_task("cccc")
        for t in (a, b, c):
            store.write_new(t)

        a.status = b.status = "in_progress"
        store.replace_many("task", "alpha", [a, b])

        records = store.read_all("task", "alpha")
        assert [r.id for r in records] == [c.id, a.id, b.id]
        assert len(records) == 3

    def test_rewrite_leaves_no_temp_file(self, store, paths):
        task = make_task("t001")
        store.write_new(task)
        store.replace(task)
        leftovers = list(paths.project_dir("alpha").glob("*.tmp"))
        assert leftovers == []

    def test_invalid_record_is_not_written(self, store, paths):
        """Schema validation runs before every write."""
        task = make_task("t001", status="finished")
        with pytest.raises(ValidationError):
            store.write_new(task)
        assert paths.entity_file("task", "alpha").read_text() == ""


class TestCorruption:
    """A malformed line fails the whole scan."""

    def test_truncated_trailing_line(self, store, paths):
        store.write_new(make_task("t001"))
        path = paths.entity_file("task", "alpha")
        with open(path, "a") as f:
            f.write('{"id": "alpha-feature-f001-task-t002", "na')

        with pytest.raises(SystemFailure) as exc_info:
            store.read_all("task", "alpha")
        assert "line 2" in str(exc_info.value)
        assert exc_info.value.exit_code == 1


class TestEvents:
    """Event log."""

    def test_empty_changes_omitted(self, store, paths):
        store.append_event("alpha", Event(layer="task", type="created", id="x-feature-a-task-b", by="me", ts=TS))
        last = paths.events_file("alpha").read_text().splitlines()[-1]
        assert "changes" not in json.loads(last)

    def test_changes_kept(self, store):
        event = Event(layer="task", type="updated", id="t", by="me", ts=TS, changes=["name"])
        store.append_event("alpha", event)
        assert store.events_for("alpha", "t") == [event]

    def test_events_for_filters_by_id(self, store):
        store.append_event("alpha", Event(layer="task", type="created", id="a", by="me", ts=TS))
        store.append_event("alpha", Event(layer="task", type="created", id="b", by="me", ts=TS))
        store.append_event("alpha", Event(layer="task", type="ready", id="a", by="system", ts=TS))

        assert [e.type for e in store.events_for("alpha", "a")] == ["created", "ready"]
        assert store.count_events("alpha", "b") == 1

    def test_invalid_event_layer_rejected(self, store):
        with pytest.raises(ValidationError):
            store.append_event("alpha", Event(layer="epic", type="created", id="a", by="me", ts=TS))


class TestWritability:
    """Pre-flight writability probe."""

    def test_probe_failure_is_permission_error(self, store):
        with patch.object(Path, "write_text", side_effect=PermissionError("denied")):
            with pytest.raises(PermissionDenied) as exc_info:
                store.ensure_writable("alpha")
        assert exc_info.value.exit_code == EXIT_PERMISSION_ERROR

    def test_probe_cleans_up(self, store, paths):
        store.ensure_writable("alpha")
        assert not (paths.project_dir("alpha") / ".write_test").exists()

    def test_write_new_checks_permission_first(self, store, paths):
        with patch.object(jsonl, "ensure_writable", side_effect=PermissionDenied("nope")):
            with pytest.raises(PermissionDenied):
                store.write_new(make_task("t001"))
        assert paths.entity_file("task", "alpha").read_text() == ""


class TestRecordIndex:
    """Per-operation index."""

    def test_reads_each_project_once(self, store):
        a, b = make_task("aaaa"), make_task("bbbb")
        store.write_new(a)
        store.write_new(b)

        index = RecordIndex(store, "task")
        with patch.object(store, "read_all", wraps=store.read_all) as spy:
            assert index.get(a.id) == a
            assert index.get(b.id) == b
            assert index.get("alpha-feature-f001-task-none") is None
        assert spy.call_count == 1

    def test_resolves_through_owning_project(self, store):
        other = make_task("cccc", project_id="beta-x")
        store.write_new(other)
        index = RecordIndex(store, "task")
        assert index.get(other.id) == other
        assert index.get("alpha-feature-f001-task-cccc") is None

    def test_put_overrides_cached_copy(self, store):
        task = make_task("aaaa")
        store.write_new(task)
        index = RecordIndex(store, "task")
        index.get(task.id)

        task.status = "done"
        index.put(task)
        assert index.get(task.id).status == "done"
