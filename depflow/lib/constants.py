"""Shared constants for depflow."""

import re

MANDOR_DIR = ".mandor"
PROJECTS_DIR = "projects"
WORKSPACE_FILE = "workspace.json"
SCHEMA_VERSION = "mandor.v1"

# Entity kinds handled by the workflow engine
FEATURE = "feature"
TASK = "task"
ISSUE = "issue"
ENTITY_KINDS = (FEATURE, TASK, ISSUE)

# Project IDs: start with a letter, then alphanumerics, hyphens, underscores
PROJECT_ID_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')

PRIORITY_LEVELS = ("P0", "P1", "P2", "P3", "P4", "P5")
DEFAULT_PRIORITY = "P3"

FEATURE_SCOPES = (
    "frontend", "backend", "fullstack", "cli", "desktop", "android",
    "flutter", "react-native", "ios", "swift", "",
)
ISSUE_TYPES = ("bug", "improvement", "debt", "security", "performance")

# Per-project dependency policy values
SAME_PROJECT_ONLY = "same_project_only"
CROSS_PROJECT_ALLOWED = "cross_project_allowed"
DISABLED = "disabled"
DEPENDENCY_RULES = (SAME_PROJECT_ONLY, CROSS_PROJECT_ALLOWED, DISABLED)

CYCLE_DISALLOWED = "disallowed"

# Goal minimum lengths; development mode relaxes all of them to 2
GOAL_MIN_LENGTHS = {FEATURE: 300, TASK: 500, ISSUE: 200}
GOAL_MIN_LENGTH_DEVELOPMENT = 2

SYSTEM_ACTOR = "system"
UNKNOWN_ACTOR = "unknown"

# Event types written to events.jsonl
EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_READY = "ready"
EVENT_BLOCKED = "blocked"
EVENT_DELETED = "deleted"
