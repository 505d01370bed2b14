"""Status transitions with explicit validation.

Thin wrapper around the machine in fsm.py. All transition wiring lives
there; this module maps the destination-based API the workflow service
uses ("move this task to done") onto FSM triggers:
- transition() for plain status writes checked against the table
- apply_action() for named actions (cancel, reopen, start, resolve, wontfix)

Usage:
    from depflow.workflow.state_machine import transition
    from depflow.workflow.kinds import TASK_KIND

    new_status = transition(TASK_KIND, "in_progress", "done", task_id)
"""

import logging

from transitions import MachineError

from depflow.lib.errors import ValidationError
from depflow.workflow.fsm import TRIGGER_FOR, StatusMachine
from depflow.workflow.kinds import KindSpec

logger = logging.getLogger(__name__)


class InvalidTransition(ValidationError):
    """Raised when attempting an invalid status transition."""

    def __init__(self, from_state: str, to_state: str, entity_id: str = "", terminal: bool = False):
        self.from_state = from_state
        self.to_state = to_state
        self.entity_id = entity_id
        if terminal:
            message = f"Cannot transition from {from_state}"
        else:
            message = f"Invalid status transition from {from_state} to {to_state}"
        super().__init__(message)


def parse_state(kind: KindSpec, status: str | None) -> str | None:
    """Return status if it belongs to the kind's enum, else None."""
    if status in kind.statuses:
        return status
    return None


def require_state(kind: KindSpec, status: str) -> str:
    """Like parse_state, but unknown statuses are a ValidationError."""
    if parse_state(kind, status) is None:
        raise ValidationError(
            f"Invalid {kind.name} status: {status}. Must be one of: {', '.join(kind.statuses)}"
        )
    return status


def can_transition(kind: KindSpec, current: str, target: str) -> bool:
    """Check if a plain status write from current to target is allowed.

    Self-transition is always valid (no-op).
    """
    if current == target:
        return True
    return (current, target) in TRIGGER_FOR[kind.name]


def transition(kind: KindSpec, current: str, target: str, entity_id: str = "") -> str:
    """Validate a plain status write and return the resulting status.

    Args:
        kind: Kind descriptor
        current: Record's current status
        target: Requested status
        entity_id: For error and log messages

    Raises:
        ValidationError: If target isn't in the kind's enum
        InvalidTransition: If the table doesn't allow current -> target
    """
    require_state(kind, target)

    # Self-transition is a no-op
    if current == target:
        logger.debug(f"[STATE] {entity_id}: already {target}, no-op")
        return current

    trigger = TRIGGER_FOR[kind.name].get((current, target))
    if trigger is None:
        raise InvalidTransition(current, target, entity_id, terminal=current in kind.terminal)

    fsm = StatusMachine(kind, current, entity_id)
    try:
        return fsm.fire(trigger)
    except MachineError as e:
        raise InvalidTransition(current, target, entity_id) from e


def apply_action(kind: KindSpec, current: str, action_name: str, entity_id: str = "") -> str:
    """Run a named action and return the resulting status.

    Raises:
        ValidationError: If the kind doesn't support the action or the
            current status isn't one of its sources
    """
    action = kind.actions.get(action_name)
    if action is None:
        raise ValidationError(f"{action_name} is not supported for {kind.name}s.")

    if current not in action.sources:
        raise ValidationError(
            action.error.format(action=action_name, kind=kind.name, status=current)
        )

    fsm = StatusMachine(kind, current, entity_id)
    try:
        return fsm.fire(action.name)
    except MachineError as e:
        raise InvalidTransition(current, action.dest, entity_id) from e
