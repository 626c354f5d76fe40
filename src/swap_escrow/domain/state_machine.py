"""Escrow Lifecycle State Machine Guard.

Uses python-statemachine to enforce legal lifecycle transitions at the domain
level. The escrow record itself is deleted when a deal settles, so the status
of an address is read back from its append-only audit trail and replayed
into this machine before every operation.

Transition table:
    UNINITIALIZED -> OPEN        (initialize)
    OPEN          -> EXCHANGED   (exchange)
    OPEN          -> CANCELLED   (cancel)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class EscrowLifecycle(StateMachine):
    """State machine that guards escrow lifecycle transitions.

    Usage:
        sm = EscrowLifecycle(current_status="OPEN")
        sm.exchange()        # transitions to EXCHANGED
        sm.status            # "EXCHANGED"
    """

    # --- States ---
    UNINITIALIZED = State("UNINITIALIZED", initial=True)
    OPEN = State("OPEN")
    EXCHANGED = State("EXCHANGED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---
    initialize = UNINITIALIZED.to(OPEN)
    exchange = OPEN.to(EXCHANGED)
    cancel = OPEN.to(CANCELLED)

    def __init__(self, current_status: str = "UNINITIALIZED") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "OPEN").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a lifecycle transition and return the new status.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = EscrowLifecycle(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
