"""Shared fixtures: a development-mode workspace with two projects."""

import pytest

from depflow.lib.config import Settings, WorkspacePaths
from depflow.models import FeatureCreateInput, IssueCreateInput, TaskCreateInput
from depflow.store.projects import ProjectRegistry
from depflow.workflow.service import WorkflowService


@pytest.fixture
def settings():
    """Development settings relax goal lengths to 2 characters."""
    return Settings(environment="development", actor="tester", lock_timeout=2)


@pytest.fixture
def paths(tmp_path):
    return WorkspacePaths(tmp_path)


@pytest.fixture
def registry(paths, settings):
    """Initialized workspace with projects 'alpha' and 'beta-x'."""
    registry = ProjectRegistry(paths, settings)
    registry.init_workspace("testws")
    registry.create_project("alpha", "Alpha")
    registry.create_project("beta-x", "Beta X")
    return registry


@pytest.fixture
def service(paths, settings, registry):
    return WorkflowService(paths, settings)


@pytest.fixture
def make_feature(service):
    def _make(project_id="alpha", name="Feature", depends_on=None, **kwargs):
        return service.create_feature(FeatureCreateInput(
            name=name,
            goal="Feature goal",
            project_id=project_id,
            depends_on=depends_on or [],
            **kwargs,
        ))
    return _make


@pytest.fixture
def make_task(service, make_feature):
    """Create a task; a parent feature is created on first use per project."""
    parents: dict[str, str] = {}

    def _make(project_id="alpha", name="Task", depends_on=None, feature_id=None, **kwargs):
        if feature_id is None:
            if project_id not in parents:
                parents[project_id] = make_feature(project_id=project_id, name="Parent").id
            feature_id = parents[project_id]
        values = dict(
            name=name,
            goal="Task goal",
            feature_id=feature_id,
            depends_on=depends_on or [],
            implementation_steps=["step one"],
            test_cases=["case one"],
            derivable_files=["src/module.py"],
            library_needs=["none"],
        )
        values.update(kwargs)
        return service.create_task(TaskCreateInput(**values))
    return _make


@pytest.fixture
def make_issue(service):
    def _make(project_id="alpha", name="Issue", depends_on=None, issue_type="bug", **kwargs):
        values = dict(
            name=name,
            goal="Issue goal",
            project_id=project_id,
            depends_on=depends_on or [],
            issue_type=issue_type,
            affected_files=["src/module.py"],
            affected_tests=["tests/test_module.py"],
            implementation_steps=["fix it"],
        )
        values.update(kwargs)
        return service.create_issue(IssueCreateInput(**values))
    return _make
