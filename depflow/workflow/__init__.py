"""
Workflow engine: kind descriptors, status machine, dependency validation
and the unblock cascade, sequenced by WorkflowService.
"""

from depflow.workflow.cascade import CascadePropagator
from depflow.workflow.dependencies import DependencyValidator
from depflow.workflow.kinds import FEATURE_KIND, ISSUE_KIND, KINDS, TASK_KIND, KindSpec, get_kind
from depflow.workflow.service import WorkflowService
from depflow.workflow.state_machine import InvalidTransition, apply_action, can_transition, transition

__all__ = [
    "CascadePropagator",
    "DependencyValidator",
    "FEATURE_KIND",
    "ISSUE_KIND",
    "KINDS",
    "TASK_KIND",
    "KindSpec",
    "get_kind",
    "WorkflowService",
    "InvalidTransition",
    "apply_action",
    "can_transition",
    "transition",
]
