"""Tests for list, detail, ready, blocked and dependents queries."""

import pytest

from depflow.lib.errors import NotFound, ValidationError
from depflow.models import (
    DetailInput,
    IssueUpdateInput,
    ListInput,
    TaskUpdateInput,
)


class TestList:
    """WorkflowService.list"""

    def test_hides_cancelled_but_counts_them(self, service, make_issue):
        keep = make_issue(name="keep")
        gone = make_issue(name="gone")
        service.update_issue(IssueUpdateInput(gone.id, cancel=True, reason="dup"))

        result = service.list("issue", ListInput(project_id="alpha"))
        assert [r.id for r in result.items] == [keep.id]
        assert result.total == 1
        assert result.deleted == 1

        result = service.list("issue", ListInput(project_id="alpha", include_deleted=True))
        assert {r.id for r in result.items} == {keep.id, gone.id}
        assert result.deleted == 1

    def test_default_sort_is_priority_then_creation(self, service, make_issue):
        low = make_issue(name="low", priority="P4")
        first_p1 = make_issue(name="first", priority="P1")
        urgent = make_issue(name="urgent", priority="P0")
        second_p1 = make_issue(name="second", priority="P1")

        items = service.list("issue", ListInput(project_id="alpha")).items
        assert [r.id for r in items] == [urgent.id, first_p1.id, second_p1.id, low.id]

    def test_sort_by_name_desc(self, service, make_issue):
        for name in ("bravo", "alpha", "charlie"):
            make_issue(name=name)
        items = service.list("issue", ListInput(sort_by="name", order="desc")).items
        assert [r.name for r in items] == ["charlie", "bravo", "alpha"]

    def test_filters(self, service, make_feature, make_task, make_issue):
        make_issue(issue_type="bug", priority="P1")
        perf = make_issue(issue_type="performance", priority="P1")
        make_issue(issue_type="performance", priority="P3")

        result = service.list("issue", ListInput(issue_type="performance", priority="P1"))
        assert [r.id for r in result.items] == [perf.id]

        other_feature = make_feature(name="Other")
        mine = make_task(feature_id=other_feature.id)
        make_task()
        result = service.list("task", ListInput(feature_id=other_feature.id))
        assert [r.id for r in result.items] == [mine.id]

    def test_status_filter(self, service, make_task):
        t1 = make_task()
        t2 = make_task(depends_on=[t1.id])
        assert [r.id for r in service.list("task", ListInput(status="blocked")).items] == [t2.id]

    def test_all_projects_when_unscoped(self, service, make_issue):
        a = make_issue(project_id="alpha")
        b = make_issue(project_id="beta-x")

        assert {r.id for r in service.list("issue").items} == {a.id, b.id}
        assert [r.id for r in service.list("issue", ListInput(project_id="beta-x")).items] == [b.id]

    def test_unknown_project(self, service):
        with pytest.raises(NotFound, match="Project not found: ghost"):
            service.list("task", ListInput(project_id="ghost"))

    def test_invalid_sort_key(self, service):
        with pytest.raises(ValidationError, match="Invalid sort key: status"):
            service.list("task", ListInput(sort_by="status"))

    def test_invalid_order(self, service):
        with pytest.raises(ValidationError, match="Invalid order: sideways"):
            service.list("task", ListInput(order="sideways"))

    def test_invalid_status_filter(self, service):
        with pytest.raises(ValidationError, match="Invalid feature status: ready"):
            service.list("feature", ListInput(status="ready"))


class TestDetail:
    """WorkflowService.detail"""

    def test_event_count_is_per_entity(self, service, make_task):
        t1 = make_task()
        make_task()
        service.update_task(TaskUpdateInput(t1.id, name="Renamed"))

        result = service.detail("task", DetailInput(t1.id))
        assert result.record.name == "Renamed"
        assert result.events == 3
        assert result.event_log == []

    def test_include_events(self, service, make_issue):
        issue = make_issue()
        result = service.detail("issue", DetailInput(issue.id, include_events=True))
        assert [e.type for e in result.event_log] == ["created", "ready"]
        assert all(e.id == issue.id for e in result.event_log)

    def test_cancelled_hidden_by_default(self, service, make_task):
        task = make_task()
        service.update_task(TaskUpdateInput(task.id, cancel=True, reason="dropped"))

        with pytest.raises(NotFound, match="Task not found"):
            service.detail("task", DetailInput(task.id))

        record = service.detail("task", DetailInput(task.id, include_deleted=True)).record
        assert record.status == "cancelled"
        assert record.reason == "dropped"

    def test_missing(self, service):
        with pytest.raises(NotFound, match="Feature not found: alpha-feature-none"):
            service.detail("feature", DetailInput("alpha-feature-none"))


class TestReadyAndBlocked:
    """Ready and blocked views."""

    def test_ready(self, service, make_task):
        t1 = make_task(name="T1", priority="P2")
        t2 = make_task(name="T2", priority="P0")
        make_task(name="T3", depends_on=[t1.id])

        assert [r.id for r in service.ready("task", "alpha")] == [t2.id, t1.id]

    def test_blocked_lists_unsatisfied(self, service, make_task):
        t1 = make_task(name="T1")
        t2 = make_task(name="T2")
        waiting = make_task(name="waiting", depends_on=[t1.id, t2.id])
        service.update_task(TaskUpdateInput(t1.id, status="in_progress"))
        service.update_task(TaskUpdateInput(t1.id, status="done"))

        blocked = service.blocked("task", "alpha")
        assert len(blocked) == 1
        assert blocked[0].record.id == waiting.id
        assert blocked[0].unsatisfied == [t2.id]

    def test_issue_views_span_projects(self, service, make_issue):
        i1 = make_issue(project_id="alpha")
        i2 = make_issue(project_id="beta-x", depends_on=[])
        i3 = make_issue(project_id="alpha", depends_on=[i1.id])

        assert {r.id for r in service.ready("issue")} == {i1.id, i2.id}
        assert [b.record.id for b in service.blocked("issue")] == [i3.id]

    def test_dependents(self, service, make_task):
        t1 = make_task()
        d1 = make_task(depends_on=[t1.id])
        d2 = make_task(depends_on=[t1.id])
        make_task()

        assert service.dependents("task", t1.id) == [d1.id, d2.id]
        assert service.dependents("task", d1.id) == []
