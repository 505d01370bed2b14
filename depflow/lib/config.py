"""
Configuration loaders for depflow.

Resolves the on-disk workspace layout and loads runtime settings from
workspace.json, the environment and git.
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from depflow.lib.constants import (
    DEFAULT_PRIORITY,
    GOAL_MIN_LENGTH_DEVELOPMENT,
    GOAL_MIN_LENGTHS,
    MANDOR_DIR,
    PROJECTS_DIR,
    UNKNOWN_ACTOR,
    WORKSPACE_FILE,
)
from depflow.lib import validate

logger = logging.getLogger(__name__)

DEVELOPMENT = "development"
PRODUCTION = "production"

DEFAULT_LOCK_TIMEOUT = 30


@dataclass
class WorkspacePaths:
    """Filesystem layout of a workspace rooted at `root`."""
    root: Path

    @property
    def mandor_dir(self) -> Path:
        return self.root / MANDOR_DIR

    @property
    def workspace_file(self) -> Path:
        return self.mandor_dir / WORKSPACE_FILE

    @property
    def projects_dir(self) -> Path:
        return self.mandor_dir / PROJECTS_DIR

    @property
    def locks_dir(self) -> Path:
        return self.mandor_dir / "locks"

    def project_dir(self, project_id: str) -> Path:
        return self.projects_dir / project_id

    def project_file(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "project.jsonl"

    def schema_file(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "schema.json"

    def events_file(self, project_id: str) -> Path:
        return self.project_dir(project_id) / "events.jsonl"

    def entity_file(self, kind: str, project_id: str) -> Path:
        """Entity file for a kind, e.g. projects/<id>/tasks.jsonl"""
        return self.project_dir(project_id) / f"{kind}s.jsonl"


@dataclass
class Settings:
    """Per-invocation settings. Passed explicitly, never stored globally."""
    environment: str = PRODUCTION
    actor: str = UNKNOWN_ACTOR
    default_priority: str = DEFAULT_PRIORITY
    strict_mode: bool = False
    lock_timeout: int = DEFAULT_LOCK_TIMEOUT
    goal_min_lengths: dict[str, int] = field(default_factory=lambda: dict(GOAL_MIN_LENGTHS))

    @property
    def development(self) -> bool:
        return self.environment == DEVELOPMENT

    def goal_min_length(self, kind: str) -> int:
        """Minimum goal length for a kind. Relaxed in development mode."""
        if self.development:
            return GOAL_MIN_LENGTH_DEVELOPMENT
        return self.goal_min_lengths.get(kind, 0)


def get_environment(environ: Mapping[str, str] | None = None) -> str:
    """Read the environment name from MANDOR_ENV, falling back to ENV."""
    env = os.environ if environ is None else environ
    value = env.get("MANDOR_ENV") or env.get("ENV") or PRODUCTION
    return value.strip().lower()


def get_git_username(cwd: Path | None = None) -> str:
    """Return `git config user.name`, or 'unknown' if git has none."""
    try:
        result = subprocess.run(
            ["git", "config", "user.name"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"[CONFIG] git user lookup failed: {e}")
        return UNKNOWN_ACTOR

    name = result.stdout.strip()
    if result.returncode != 0 or not name:
        return UNKNOWN_ACTOR
    return name


def load_settings(
    paths: WorkspacePaths,
    actor: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings for a workspace.

    Args:
        paths: Workspace layout
        actor: Explicit actor identity; defaults to the git user name
        environ: Environment mapping (defaults to os.environ)

    Raises:
        SchemaViolation: If workspace.json exists but is malformed
    """
    settings = Settings(environment=get_environment(environ))

    if paths.workspace_file.exists():
        data = validate.validate_file(paths.workspace_file, "workspace")
        ws_config = data.get("config", {})
        settings.default_priority = ws_config.get("default_priority", DEFAULT_PRIORITY)
        settings.strict_mode = ws_config.get("strict_mode", False)

    settings.actor = actor if actor else get_git_username(paths.root)
    return settings
