"""Entity status machine using the transitions library.

Every entity kind gets the same machine shape, built from its KindSpec:
- One plain trigger per table edge, named ``set_<dest>``
- One trigger per named action (cancel, reopen, start, resolve, wontfix)
  covering each of the action's source states

Usage:
    from depflow.workflow.fsm import StatusMachine
    from depflow.workflow.kinds import ISSUE_KIND

    fsm = StatusMachine(ISSUE_KIND, "open", issue_id)
    fsm.start()      # open -> in_progress
    fsm.resolve()    # in_progress -> resolved
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from depflow.lib.errors import ValidationError
from depflow.workflow.kinds import KINDS, KindSpec

logger = logging.getLogger(__name__)


def plain_trigger(dest: str) -> str:
    return f"set_{dest}"


def build_transitions(kind: KindSpec) -> list[dict[str, str]]:
    """Transitions for a kind as (trigger, source, dest) dicts."""
    result = []
    for source, dests in kind.transitions.items():
        for dest in sorted(dests):
            result.append({"trigger": plain_trigger(dest), "source": source, "dest": dest})
    for action in kind.actions.values():
        for source in sorted(action.sources):
            result.append({"trigger": action.name, "source": source, "dest": action.dest})
    return result


# Pre-computed lookup: kind -> (source, dest) -> trigger name, table edges only
def _build_trigger_lookup() -> dict[str, dict[tuple[str, str], str]]:
    lookup: dict[str, dict[tuple[str, str], str]] = {}
    for name, kind in KINDS.items():
        edges: dict[tuple[str, str], str] = {}
        for t in build_transitions(kind):
            if t["trigger"] not in kind.actions:
                edges.setdefault((t["source"], t["dest"]), t["trigger"])
        lookup[name] = edges
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class StatusMachine:
    """Status machine for a single entity record.

    Holds no I/O: the caller reads ``state`` after firing triggers and
    persists the record itself.
    """

    def __init__(
        self,
        kind: KindSpec,
        status: str,
        entity_id: str = "",
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        """Initialize the machine at the record's current status.

        Args:
            kind: Kind descriptor providing states and transitions
            status: Current status of the record
            entity_id: Used for log messages only
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions

        Raises:
            ValidationError: If status is not a member of the kind's enum
        """
        if status not in kind.statuses:
            raise ValidationError(f"Unknown {kind.name} status '{status}' on {entity_id or 'record'}")

        self.kind = kind
        self.entity_id = entity_id
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=list(kind.statuses),
            transitions=build_transitions(kind),
            initial=status,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition."""
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.kind.name} {self.entity_id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        """Check if a trigger can be executed in current state."""
        return trigger in self.machine.get_triggers(self.state)

    def get_available_triggers(self) -> list[str]:
        """Get list of triggers available in current state."""
        return self.machine.get_triggers(self.state)

    def fire(self, trigger: str) -> str:
        """Run a trigger and return the new state.

        Raises:
            MachineError: If the trigger isn't valid from the current state
        """
        if not self.can(trigger):
            raise MachineError(f"Can't trigger event {trigger} from state {self.state}!")
        getattr(self, trigger)()
        return self.state
