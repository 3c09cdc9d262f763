"""
Action error taxonomy.

Every component raises one of these instead of letting node, signer or HTTP
exceptions escape. The orchestrator maps each kind to exactly one terminal
outcome; ``message`` is safe to show a user, ``details`` is for logs only.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .execution.models import TxRecord


class ErrorKind(str, Enum):
    """Terminal failure categories reported in an ActionOutcome."""

    PARSE_ERROR = "parse_error"
    VALIDATION_FAILURE = "validation_failure"
    APPROVAL_FAILED = "approval_failed"
    SUBMISSION_ERROR = "submission_error"
    TIMED_OUT = "timed_out"
    TRANSACTION_REVERTED = "transaction_reverted"
    STATE_REFRESH_ERROR = "state_refresh_error"


class ValidationReason(str, Enum):
    """Why preflight refused an action."""

    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_COLLATERAL = "insufficient_collateral"
    BELOW_MINIMUM_HEALTH_FACTOR = "below_minimum_health_factor"
    UNSUPPORTED_TOKEN = "unsupported_token"
    INVALID_COUNTERPARTY = "invalid_counterparty"
    NO_OUTSTANDING_DEBT = "no_outstanding_debt"
    UNSUPPORTED_CHAIN = "unsupported_chain"
    UNSUPPORTED_PROTOCOL = "unsupported_protocol"
    INVALID_AMOUNT = "invalid_amount"


@dataclass
class ErrorContext:
    """Loggable context attached to an action error."""

    tx_hash: Optional[str] = None
    nonce: Optional[int] = None
    chain_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "tx_hash": self.tx_hash,
            "nonce": self.nonce,
            "chain_id": self.chain_id,
        }
        data.update(self.details)
        return {k: v for k, v in data.items() if v is not None}


class ActionError(Exception):
    """Base class for every failure the pipeline can report."""

    kind: ErrorKind = ErrorKind.SUBMISSION_ERROR

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        record: Optional["TxRecord"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        # Transaction that was broadcast before the failure, if any
        self.record = record


class ParseError(ActionError):
    """The text did not match any known action phrasing."""

    kind = ErrorKind.PARSE_ERROR


class ValidationFailure(ActionError):
    """Preflight (or the parser's symbol/address checks) rejected the action."""

    kind = ErrorKind.VALIDATION_FAILURE

    def __init__(
        self,
        reason: ValidationReason,
        message: str,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message, context)
        self.reason = reason


class ApprovalFailed(ActionError):
    """The allowance transaction was rejected or reverted."""

    kind = ErrorKind.APPROVAL_FAILED


class SubmissionError(ActionError):
    """The transaction never reached the mempool."""

    kind = ErrorKind.SUBMISSION_ERROR


class ConfirmationTimeout(ActionError):
    """No receipt within the deadline. The transaction may still land."""

    kind = ErrorKind.TIMED_OUT

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        during_approval: bool = False,
        record: Optional["TxRecord"] = None,
    ):
        super().__init__(message, context, record)
        self.during_approval = during_approval


class TransactionReverted(ActionError):
    """Receipt arrived with status 0."""

    kind = ErrorKind.TRANSACTION_REVERTED


class StateRefreshError(ActionError):
    """Post-confirmation reads failed; the action itself succeeded."""

    kind = ErrorKind.STATE_REFRESH_ERROR


class ChainClientError(Exception):
    """Low-level node failure. Never reaches the user directly."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


# Node error fragments -> normalized user-facing reasons
_RPC_ERROR_PATTERNS = (
    ("insufficient funds", "insufficient funds for gas"),
    ("nonce too low", "nonce already used"),
    ("already known", "transaction already submitted"),
    ("replacement transaction underpriced", "a pending transaction with this nonce exists"),
    ("execution reverted", "the contract rejected the call"),
    ("intrinsic gas too low", "gas limit too low"),
    ("max fee per gas less than block base fee", "fee below current base fee"),
)


def classify_rpc_error(error: BaseException) -> str:
    """Map a raw node/library error to a short reason safe to show a user."""
    text = str(error).lower()
    for fragment, reason in _RPC_ERROR_PATTERNS:
        if fragment in text:
            return reason
    if isinstance(error, ChainClientError):
        return "the node rejected the request"
    return "unexpected error"
