"""
Allowance manager.

Approve-if-needed for ERC20 spends: a sufficient allowance costs zero
transactions; otherwise exactly ``amount`` is approved and the approval is
awaited before the caller may send the dependent action.

An exact approval is consumed by the spend that follows it, so callers hold
``spend_lock`` for a (token, spender) pair from the allowance check until
that spend is confirmed.
"""

import asyncio
import logging
from typing import Dict

from .errors import (
    ApprovalFailed,
    ChainClientError,
    ConfirmationTimeout,
    ErrorContext,
    SubmissionError,
)
from .execution.account import AccountContext
from .execution.chain_client import ChainClient
from .execution.confirmation import ConfirmationWaiter
from .execution.models import TxPurpose, TxRecord, TxStatus
from .execution.submitter import TransactionSubmitter
from .execution.tx_builder import TransactionBuilder
from ..services.tokens import TokenDescriptor


logger = logging.getLogger(__name__)


class AllowanceManager:

    def __init__(
        self,
        chain_client: ChainClient,
        submitter: TransactionSubmitter,
        waiter: ConfirmationWaiter,
    ):
        self.chain_client = chain_client
        self.submitter = submitter
        self.waiter = waiter
        self._locks: Dict[str, asyncio.Lock] = {}

    def spend_lock(self, account: AccountContext, token: TokenDescriptor, spender: str) -> asyncio.Lock:
        """Lock serializing approve-then-spend for one owner, token and spender."""
        key = (
            f"{account.chain_id}:{account.address.lower()}:"
            f"{token.contract_address.lower()}:{spender.lower()}"
        )
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def has_allowance(
        self,
        account: AccountContext,
        token: TokenDescriptor,
        spender: str,
        amount: int,
    ) -> bool:
        """True when no approval is needed before spending ``amount``."""
        if token.is_native:
            return True
        try:
            current = await self.chain_client.get_allowance(
                token.contract_address, account.address, spender
            )
        except ChainClientError as e:
            raise ApprovalFailed(
                f"Could not read the {token.symbol} allowance",
                ErrorContext(details={"node_error": e.message, "spender": spender}),
            ) from e
        logger.debug(f"{token.symbol} allowance for {spender}: {current} (need {amount})")
        return current >= amount

    async def approve(
        self,
        account: AccountContext,
        token: TokenDescriptor,
        spender: str,
        amount: int,
    ) -> TxRecord:
        """Approve exactly ``amount`` and wait for the receipt.

        Raises:
            ApprovalFailed: the approval could not be sent or reverted
            ConfirmationTimeout: no receipt in time (``during_approval`` set)
        """
        call = TransactionBuilder.build_erc20_approve(
            token.contract_address,
            spender,
            amount,
            description=f"Approve {token.symbol}",
        )
        try:
            record = await self.submitter.submit(account, call, TxPurpose.APPROVAL)
        except SubmissionError as e:
            raise ApprovalFailed(
                f"Approving {token.symbol} failed: {e.message}", e.context
            ) from e

        record = await self.waiter.wait(record)
        context = ErrorContext(tx_hash=record.hash, nonce=record.submitted_at_nonce)

        if record.status == TxStatus.FAILED:
            raise ApprovalFailed(f"The {token.symbol} approval was reverted", context, record=record)
        if record.status == TxStatus.TIMED_OUT:
            raise ConfirmationTimeout(
                f"The {token.symbol} approval was not confirmed in time",
                context,
                during_approval=True,
                record=record,
            )
        return record
