"""
Per-kind capability descriptors.

Feature, Task and Issue share one engine; everything that differs between
them lives here: status enum, transition table, which statuses satisfy a
dependency, which statuses are rejected as new dependency targets, and
which named actions apply.

Any status that is not a key of the transition table is terminal for
plain status writes. Named actions may still leave terminal states
(reopen) or jump straight to one (cancel, resolve, wontfix).
"""

from dataclasses import dataclass, field

from depflow.lib.constants import FEATURE, FEATURE_SCOPES, ISSUE, ISSUE_TYPES, TASK
from depflow.models import RECORD_TYPES, Entity

CANCEL = "cancel"
REOPEN = "reopen"
START = "start"
RESOLVE = "resolve"
WONTFIX = "wontfix"


@dataclass(frozen=True)
class ActionSpec:
    """A named action that sets status outside the plain transition table."""
    name: str
    sources: frozenset[str]
    dest: str
    requires_reason: bool = False
    clears_reason: bool = False
    error: str = "Cannot {action} {kind} in status {status}."


@dataclass(frozen=True)
class KindSpec:
    name: str
    statuses: tuple[str, ...]
    initial_status: str                        # Created with no dependencies
    ready_status: str                          # Created or unblocked with all deps satisfied
    blocked_status: str
    transitions: dict[str, frozenset[str]]
    satisfying: frozenset[str]
    invalid_dependency: frozenset[str]
    actions: dict[str, ActionSpec]
    locked: frozenset[str] = frozenset()       # Statuses that reject every edit
    cancelled_status: str = "cancelled"
    cancel_checks_dependents: bool = True
    default_priority: str | None = None        # None means the workspace default
    required_lists: tuple[str, ...] = ()
    enum_fields: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def record_type(self) -> type[Entity]:
        return RECORD_TYPES[self.name]

    @property
    def terminal(self) -> frozenset[str]:
        return frozenset(s for s in self.statuses if s not in self.transitions)

    @property
    def non_terminal(self) -> frozenset[str]:
        return frozenset(self.transitions)

    def is_satisfied_by(self, status: str) -> bool:
        return status in self.satisfying


def _table(**edges: tuple[str, ...]) -> dict[str, frozenset[str]]:
    return {src: frozenset(dests) for src, dests in edges.items()}


# --- Feature -----------------------------------------------------------------

_FEATURE_TRANSITIONS = _table(
    draft=("active", "blocked", "cancelled"),
    active=("done", "blocked", "cancelled"),
    blocked=("draft", "active", "cancelled"),
)

FEATURE_KIND = KindSpec(
    name=FEATURE,
    statuses=("draft", "active", "done", "blocked", "cancelled"),
    initial_status="draft",
    ready_status="draft",
    blocked_status="blocked",
    transitions=_FEATURE_TRANSITIONS,
    satisfying=frozenset({"done", "cancelled"}),
    invalid_dependency=frozenset({"done", "cancelled"}),
    actions={
        CANCEL: ActionSpec(
            CANCEL, frozenset(_FEATURE_TRANSITIONS), "cancelled", requires_reason=True,
            error="Feature is already {status}.",
        ),
        REOPEN: ActionSpec(
            REOPEN, frozenset({"cancelled"}), "draft", clears_reason=True,
            error="Feature is not cancelled. Nothing to reopen.",
        ),
    },
    enum_fields={"scope": FEATURE_SCOPES},
)


# --- Task --------------------------------------------------------------------

_TASK_TRANSITIONS = _table(
    pending=("ready", "in_progress", "cancelled"),
    ready=("in_progress", "cancelled"),
    in_progress=("done", "blocked", "cancelled"),
    blocked=("ready", "cancelled"),
)

TASK_KIND = KindSpec(
    name=TASK,
    statuses=("pending", "ready", "in_progress", "blocked", "done", "cancelled"),
    initial_status="ready",
    ready_status="ready",
    blocked_status="blocked",
    transitions=_TASK_TRANSITIONS,
    satisfying=frozenset({"done", "cancelled"}),
    invalid_dependency=frozenset({"done", "cancelled"}),
    actions={
        CANCEL: ActionSpec(
            CANCEL, frozenset(_TASK_TRANSITIONS), "cancelled", requires_reason=True,
            error="Task is already {status}.",
        ),
        REOPEN: ActionSpec(
            REOPEN, frozenset({"cancelled"}), "pending", clears_reason=True,
            error="Task is not cancelled. Nothing to reopen.",
        ),
    },
    locked=frozenset({"done"}),
    required_lists=("implementation_steps", "test_cases", "derivable_files", "library_needs"),
)


# --- Issue -------------------------------------------------------------------

_ISSUE_TRANSITIONS = _table(
    open=("ready", "in_progress", "blocked", "resolved", "wontfix", "cancelled"),
    ready=("in_progress", "blocked", "resolved", "wontfix", "cancelled"),
    in_progress=("blocked", "resolved", "wontfix", "cancelled"),
    blocked=("ready", "resolved", "wontfix", "cancelled"),
)
_ISSUE_OPEN = frozenset(_ISSUE_TRANSITIONS)
_ISSUE_CLOSED_MESSAGE = "Issue is already resolved, wontfix, or cancelled."

ISSUE_KIND = KindSpec(
    name=ISSUE,
    statuses=("open", "ready", "in_progress", "blocked", "resolved", "wontfix", "cancelled"),
    initial_status="ready",
    ready_status="ready",
    blocked_status="blocked",
    transitions=_ISSUE_TRANSITIONS,
    # A cancelled issue never satisfies its dependents
    satisfying=frozenset({"resolved", "wontfix"}),
    invalid_dependency=frozenset({"cancelled"}),
    actions={
        CANCEL: ActionSpec(
            CANCEL, _ISSUE_OPEN, "cancelled", requires_reason=True, error=_ISSUE_CLOSED_MESSAGE,
        ),
        REOPEN: ActionSpec(
            REOPEN, frozenset({"resolved", "wontfix", "cancelled"}), "open", clears_reason=True,
            error="Issue is not in terminal state. Only resolved, wontfix, or cancelled issues can be reopened.",
        ),
        START: ActionSpec(
            START, frozenset({"open", "ready"}), "in_progress",
            error="Issue is not in startable state (open or ready).",
        ),
        RESOLVE: ActionSpec(RESOLVE, _ISSUE_OPEN, "resolved", error=_ISSUE_CLOSED_MESSAGE),
        WONTFIX: ActionSpec(
            WONTFIX, _ISSUE_OPEN, "wontfix", requires_reason=True, error=_ISSUE_CLOSED_MESSAGE,
        ),
    },
    cancel_checks_dependents=False,
    default_priority="P2",
    required_lists=("affected_files", "affected_tests", "implementation_steps"),
    enum_fields={"issue_type": ISSUE_TYPES},
)


KINDS: dict[str, KindSpec] = {
    FEATURE: FEATURE_KIND,
    TASK: TASK_KIND,
    ISSUE: ISSUE_KIND,
}


def get_kind(name: str) -> KindSpec:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"unknown entity kind: {name}") from None
