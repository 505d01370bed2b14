"""
Storage layer for depflow.

JSONL entity files and event logs, project metadata and schemas, and the
advisory workspace lock.
"""

from depflow.store.entities import EntityStore, RecordIndex
from depflow.store.locking import LockTimeout, workspace_lock
from depflow.store.projects import ProjectRegistry

__all__ = [
    "EntityStore",
    "RecordIndex",
    "LockTimeout",
    "workspace_lock",
    "ProjectRegistry",
]
