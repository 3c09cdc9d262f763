"""
Action State Machine

Validates every state change of a request against an explicit transition
map and keeps the transition history.
"""

import logging
from typing import Dict, List, Optional, Set

from ..errors import ErrorKind
from .models import (
    TERMINAL_STATES,
    ActionState,
    InvalidTransitionError,
    StateTransition,
)


class ActionStateMachine:
    """
    Tracks one request through the pipeline.

    Any non-terminal state may fail. A confirmed action whose post-state
    read failed goes straight to REPORTED (partial success).
    """

    TRANSITIONS: Dict[ActionState, Set[ActionState]] = {
        ActionState.RECEIVED: {
            ActionState.PARSED,
            ActionState.FAILED,
        },
        ActionState.PARSED: {
            ActionState.VALIDATED,
            ActionState.FAILED,
        },
        ActionState.VALIDATED: {
            ActionState.APPROVAL_PENDING,
            ActionState.SUBMITTED,
            ActionState.FAILED,
        },
        ActionState.APPROVAL_PENDING: {
            ActionState.APPROVAL_CONFIRMED,
            ActionState.TIMED_OUT,    # Approval never confirmed
            ActionState.FAILED,
        },
        ActionState.APPROVAL_CONFIRMED: {
            ActionState.SUBMITTED,
            ActionState.FAILED,
        },
        ActionState.SUBMITTED: {
            ActionState.CONFIRMED,
            ActionState.TIMED_OUT,
            ActionState.FAILED,
        },
        ActionState.CONFIRMED: {
            ActionState.REFRESHED,
            ActionState.REPORTED,     # State refresh failed
            ActionState.FAILED,
        },
        ActionState.REFRESHED: {
            ActionState.REPORTED,
            ActionState.FAILED,
        },
        ActionState.REPORTED: set(),
        ActionState.TIMED_OUT: set(),
        ActionState.FAILED: set(),
    }

    def __init__(self, request_id: str, logger: Optional[logging.Logger] = None):
        self.request_id = request_id
        self.logger = logger or logging.getLogger(__name__)
        self.current_state = ActionState.RECEIVED
        self.history: List[StateTransition] = []

    @property
    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    def can_transition_to(self, to_state: ActionState) -> bool:
        """Check if transition to given state is valid."""
        return to_state in self.TRANSITIONS.get(self.current_state, set())

    def get_allowed_transitions(self) -> Set[ActionState]:
        return self.TRANSITIONS.get(self.current_state, set())

    def transition_to(
        self,
        to_state: ActionState,
        reason: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ) -> StateTransition:
        """
        Move to ``to_state``.

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        from_state = self.current_state
        if not self.can_transition_to(to_state):
            raise InvalidTransitionError(
                from_state=from_state,
                to_state=to_state,
                message=f"Invalid transition from {from_state.value} to {to_state.value}. "
                        f"Allowed: {sorted(s.value for s in self.get_allowed_transitions())}",
            )

        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            reason=reason,
            error_kind=error_kind,
        )
        self.current_state = to_state
        self.history.append(transition)

        self.logger.info(
            f"Action {self.request_id}: {from_state.value} -> {to_state.value}"
            f"{f' ({reason})' if reason else ''}"
        )
        return transition

    def fail(self, error_kind: ErrorKind, reason: Optional[str] = None) -> StateTransition:
        """Transition to FAILED from any non-terminal state."""
        return self.transition_to(ActionState.FAILED, reason=reason, error_kind=error_kind)
