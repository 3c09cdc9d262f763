"""
Response composer.

Turns a finished request into the one human-readable message the caller
sees. A timeout never reads like a failure: the transaction may still land,
so the message says so and points at the explorer instead of suggesting a
retry.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from ..errors import (
    ActionError,
    ApprovalFailed,
    ConfirmationTimeout,
    ParseError,
    StateRefreshError,
    SubmissionError,
    TransactionReverted,
    ValidationFailure,
)
from ..execution.models import TxRecord
from ..intent.models import ActionRequest
from ..protocols.meth_staking import UnstakeRequestStatus
from ..state.refresher import AccountSnapshot
from ...services.chains import ChainContext
from ...services.tokens import format_amount, from_atomic


# Receipt tokens are written with their lowercase prefix
DISPLAY_SYMBOLS = {"METH": "mETH", "CMETH": "cmETH"}


def display_symbol(symbol: Optional[str]) -> str:
    if not symbol:
        return ""
    upper = symbol.upper()
    return DISPLAY_SYMBOLS.get(upper, upper)


class ResponseComposer:

    def __init__(self, chain: ChainContext):
        self.chain = chain

    @property
    def chain_label(self) -> str:
        return self.chain.name.title()

    def _fields(self, request: ActionRequest, tx_hash: Optional[str] = None) -> dict:
        return {
            "amount": request.amount,
            "token": display_symbol(request.token),
            "token_out": display_symbol(request.token_out),
            "to": request.counterparty or "",
            "chain": self.chain_label,
            "protocol": request.protocol or "",
            "hash": tx_hash or "",
        }

    def initiated(self, template: str, request: ActionRequest) -> str:
        return template.format(**self._fields(request))

    def success(
        self,
        template: str,
        request: ActionRequest,
        record: TxRecord,
        snapshot: Optional[AccountSnapshot] = None,
    ) -> str:
        lines = [template.format(**self._fields(request, record.hash))]
        if "{hash}" not in template:
            lines.append(f"Transaction Hash: {record.hash}")
        url = self.chain.tx_url(record.hash)
        if url:
            lines.append(f"View on Explorer: {url}")
        if snapshot is not None:
            summary = self.snapshot_lines(snapshot)
            if summary:
                lines.append("")
                lines.extend(summary)
        return "\n".join(lines)

    def partial_success(
        self,
        template: str,
        request: ActionRequest,
        record: TxRecord,
        error: StateRefreshError,
    ) -> str:
        message = self.success(template, request, record)
        return f"{message}\n\nNote: {error.message}. Check the explorer for the latest state."

    def failure(
        self,
        error: ActionError,
        request: Optional[ActionRequest] = None,
        verb: str = "complete the action",
    ) -> str:
        """Message for a request that ended in FAILED or TIMED_OUT."""
        if isinstance(error, ConfirmationTimeout):
            return self.timeout(error, request, verb)

        if isinstance(error, (ParseError, ValidationFailure)):
            return error.message

        what = self._describe(request)
        if isinstance(error, ApprovalFailed):
            return f"{error.message}. The {verb} of {what} was not sent." if what else error.message

        if isinstance(error, SubmissionError):
            prefix = f"Failed to {verb} {what}" if what else f"Failed to {verb}"
            return f"{prefix}: {error.message}"

        if isinstance(error, TransactionReverted):
            lines = [f"The {verb} of {what} was reverted on-chain." if what else error.message]
            if error.context.tx_hash:
                lines.append(f"Transaction Hash: {error.context.tx_hash}")
                url = self.chain.tx_url(error.context.tx_hash)
                if url:
                    lines.append(f"View on Explorer: {url}")
            return "\n".join(lines)

        if isinstance(error, StateRefreshError):
            return f"{error.message}."

        return error.message

    def timeout(
        self,
        error: ConfirmationTimeout,
        request: Optional[ActionRequest] = None,
        verb: str = "complete the action",
    ) -> str:
        tx_hash = error.context.tx_hash
        url = self.chain.tx_url(tx_hash) if tx_hash else None
        what = self._describe(request)

        if error.during_approval:
            head = (
                f"{error.message}, so the {verb} of {what} was not sent. "
                f"The approval may still complete."
            )
        else:
            head = (
                f"Your {verb} of {what} was submitted but is not confirmed yet. "
                f"It may still complete, so please check its status before trying again."
            )
        lines = [head]
        if tx_hash:
            lines.append(f"Transaction Hash: {tx_hash}")
        if url:
            lines.append(f"Track it on Explorer: {url}")
        return "\n".join(lines)

    def snapshot_lines(self, snapshot: AccountSnapshot) -> List[str]:
        lines = []
        for symbol, balance in snapshot.balances.items():
            lines.append(f"{display_symbol(symbol)} balance: {format_amount(balance)}")

        if snapshot.lending is not None:
            if snapshot.supplied_balance is not None:
                lines.append(f"Supplied: {format_amount(snapshot.supplied_balance)}")
            if snapshot.borrowed_balance is not None:
                lines.append(f"Borrowed: {format_amount(snapshot.borrowed_balance)}")
            lines.append(f"Total collateral value: {_value(snapshot.total_collateral_value)}")
            lines.append(f"Total debt value: {_value(snapshot.total_debt_value)}")
            lines.append(f"Available to borrow: {_value(snapshot.available_to_borrow_value)}")
            if snapshot.health_factor is None:
                lines.append("Health factor: no outstanding debt")
            else:
                lines.append(f"Health factor: {format_amount(snapshot.health_factor, 2)}")
        return lines

    def portfolio(self, address: str, snapshot: AccountSnapshot, names: Dict[str, str]) -> str:
        lines = [f"Your {self.chain_label} Portfolio:", ""]
        for symbol, balance in snapshot.balances.items():
            label = display_symbol(symbol)
            name = names.get(symbol)
            if name:
                label = f"{label} ({name})"
            lines.append(f"• {label}: {format_amount(balance)}")
        lines.extend(["", f"View on Explorer: {self.chain.address_url(address)}"])
        return "\n".join(lines)

    def unstake_status(self, status: UnstakeRequestStatus) -> str:
        filled = format_amount(from_atomic(status.filled_amount, self.chain.native_decimals))
        symbol = self.chain.native_symbol
        if status.claimable:
            return f"Unstake request #{status.request_id} is finalized: {filled} {symbol} ready to claim."
        if status.finalized:
            return f"Unstake request #{status.request_id} is finalized with nothing left to claim."
        return (
            f"Unstake request #{status.request_id} is still pending "
            f"({filled} {symbol} filled so far)."
        )

    def _describe(self, request: Optional[ActionRequest]) -> str:
        if request is None:
            return ""
        return f"{request.amount} {display_symbol(request.token)}"


def _value(value: Optional[Decimal]) -> str:
    return format_amount(value or Decimal(0), 4)
