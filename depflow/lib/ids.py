"""
Composite ID scheme.

IDs are self-describing, so the owning project (and for tasks the owning
feature) can be recovered without a separate index:

    feature: <project>-feature-<nanoid>
    task:    <project>-feature-<featureNanoid>-task-<nanoid>
    issue:   <project>-issue-<nanoid>

Parsing locates the *last* occurrence of each marker so hyphenated
project names survive. A missing marker is a format error, never
"not found".
"""

import secrets
import string
from dataclasses import dataclass

from depflow.lib.constants import FEATURE, ISSUE, TASK
from depflow.lib.errors import IDFormatError

FEATURE_MARKER = "-feature-"
TASK_MARKER = "-task-"
ISSUE_MARKER = "-issue-"

NANOID_ALPHABET = string.ascii_letters + string.digits
NANOID_LENGTH = 4


@dataclass(frozen=True)
class ParsedID:
    """Components recovered from a composite ID."""
    kind: str
    project_id: str
    nanoid: str
    feature_id: str | None = None  # Only for tasks


def generate_nanoid(length: int = NANOID_LENGTH) -> str:
    """Generate a short random alphanumeric suffix."""
    return "".join(secrets.choice(NANOID_ALPHABET) for _ in range(length))


def _split_last(value: str, marker: str, kind: str, entity_id: str) -> tuple[str, str]:
    idx = value.rfind(marker)
    if idx == -1:
        raise IDFormatError(kind, entity_id)
    head, tail = value[:idx], value[idx + len(marker):]
    if not head or not tail:
        raise IDFormatError(kind, entity_id)
    return head, tail


def parse_feature_id(feature_id: str) -> ParsedID:
    project_id, nanoid = _split_last(feature_id, FEATURE_MARKER, FEATURE, feature_id)
    return ParsedID(kind=FEATURE, project_id=project_id, nanoid=nanoid)


def parse_task_id(task_id: str) -> ParsedID:
    feature_part, nanoid = _split_last(task_id, TASK_MARKER, TASK, task_id)
    project_id, _ = _split_last(feature_part, FEATURE_MARKER, TASK, task_id)
    return ParsedID(kind=TASK, project_id=project_id, nanoid=nanoid, feature_id=feature_part)


def parse_issue_id(issue_id: str) -> ParsedID:
    project_id, nanoid = _split_last(issue_id, ISSUE_MARKER, ISSUE, issue_id)
    return ParsedID(kind=ISSUE, project_id=project_id, nanoid=nanoid)


_PARSERS = {
    FEATURE: parse_feature_id,
    TASK: parse_task_id,
    ISSUE: parse_issue_id,
}


def parse_id(kind: str, entity_id: str) -> ParsedID:
    """Parse a composite ID of the given kind.

    Raises:
        IDFormatError: If the kind marker is missing or a component is empty
    """
    try:
        parser = _PARSERS[kind]
    except KeyError:
        raise ValueError(f"unknown entity kind: {kind}") from None
    return parser(entity_id)


def project_of(kind: str, entity_id: str) -> str:
    """Return the owning project of a composite ID."""
    return parse_id(kind, entity_id).project_id


def new_feature_id(project_id: str) -> str:
    return f"{project_id}{FEATURE_MARKER}{generate_nanoid()}"


def new_task_id(feature_id: str) -> str:
    return f"{feature_id}{TASK_MARKER}{generate_nanoid()}"


def new_issue_id(project_id: str) -> str:
    return f"{project_id}{ISSUE_MARKER}{generate_nanoid()}"
