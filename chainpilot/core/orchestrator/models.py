"""
Orchestrator models: states, transitions, notifications, outcomes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..errors import ErrorKind
from ..execution.models import TxRecord
from ..intent.models import ActionRequest
from ..state.refresher import AccountSnapshot


class ActionState(str, Enum):
    """Lifecycle of one action request."""

    RECEIVED = "received"                        # Raw text accepted
    PARSED = "parsed"                            # ActionRequest built
    VALIDATED = "validated"                      # Preflight passed
    APPROVAL_PENDING = "approval_pending"        # Approval submitted, waiting
    APPROVAL_CONFIRMED = "approval_confirmed"    # Allowance in place
    SUBMITTED = "submitted"                      # Action tx accepted by the node
    CONFIRMED = "confirmed"                      # Action tx mined with status 1
    REFRESHED = "refreshed"                      # Post-state read
    REPORTED = "reported"                        # Final message emitted
    TIMED_OUT = "timed_out"                      # No receipt in time; outcome unknown
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    ActionState.REPORTED,
    ActionState.TIMED_OUT,
    ActionState.FAILED,
})


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        from_state: ActionState,
        to_state: ActionState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or f"Cannot transition from {from_state.value} to {to_state.value}"
        super().__init__(self.message)


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: ActionState
    to_state: ActionState
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromState": self.from_state.value,
            "toState": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "errorKind": self.error_kind.value if self.error_kind else None,
        }


@dataclass
class ActionOutcome:
    """The single terminal result of a request."""

    success: bool
    human_message: str
    tx_hash: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    warning: Optional[str] = None
    request: Optional[ActionRequest] = None
    transactions: List[TxRecord] = field(default_factory=list)
    snapshot: Optional[AccountSnapshot] = None
    explorer_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.human_message,
            "txHash": self.tx_hash,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "warning": self.warning,
            "request": self.request.to_dict() if self.request else None,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "explorerUrl": self.explorer_url,
        }


class NotificationType(str, Enum):
    INITIATED = "initiated"
    PROGRESS = "progress"
    FINAL = "final"


@dataclass
class Notification:
    """One message streamed to the caller. Only FINAL carries an outcome."""

    type: NotificationType
    text: str
    state: ActionState
    request_id: str = ""
    tx_hash: Optional[str] = None
    outcome: Optional[ActionOutcome] = None

    @property
    def is_final(self) -> bool:
        return self.type == NotificationType.FINAL

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "text": self.text,
            "state": self.state.value,
            "requestId": self.request_id,
        }
        if self.tx_hash:
            data["txHash"] = self.tx_hash
        if self.outcome is not None:
            data["outcome"] = self.outcome.to_dict()
        return data


@dataclass
class QueryResult:
    """Answer to a read-only query: a message plus the data behind it."""

    text: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.text, **self.data}


def new_request_id() -> str:
    return f"act_{uuid4().hex[:16]}"
