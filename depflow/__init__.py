"""
depflow: dependency-aware workflow engine for features, tasks and issues.

Records live in newline-delimited JSON files under .mandor/ in the
workspace root. The WorkflowService is the entry point for the CLI layer.
"""

from depflow.lib.config import Settings, WorkspacePaths, load_settings
from depflow.lib.errors import (
    PermissionDenied,
    SystemFailure,
    ValidationError,
    WorkflowError,
    exit_code_for,
)
from depflow.workflow.service import WorkflowService

__all__ = [
    "Settings",
    "WorkspacePaths",
    "load_settings",
    "PermissionDenied",
    "SystemFailure",
    "ValidationError",
    "WorkflowError",
    "exit_code_for",
    "WorkflowService",
]
