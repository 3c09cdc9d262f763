"""
Transaction submitter.

Estimates gas, takes the next nonce under the account lock, signs and
broadcasts. Returns a Pending TxRecord; waiting is the confirmation
waiter's job.
"""

import logging

from ..errors import ChainClientError, ErrorContext, SubmissionError, classify_rpc_error
from .account import AccountContext
from .chain_client import ChainClient
from .models import (
    ContractCall,
    GasEstimate,
    PreparedTransaction,
    TxPurpose,
    TxRecord,
    TxShape,
)


logger = logging.getLogger(__name__)

NATIVE_TRANSFER_GAS = 21_000


class TransactionSubmitter:
    """Signs and sends one transaction per call."""

    def __init__(self, chain_client: ChainClient, gas_multiplier: float = 1.2):
        self.chain_client = chain_client
        self.gas_multiplier = gas_multiplier

    async def estimate_gas(self, tx: PreparedTransaction, shape: TxShape) -> GasEstimate:
        """Padded gas limit plus current fee params."""
        try:
            gas_limit = await self.chain_client.estimate_gas(tx.call_object())
            fees = await self.chain_client.get_fee_params()
        except ChainClientError as e:
            logger.error(f"Gas estimation failed: {e}")
            raise SubmissionError(
                f"Could not estimate gas: {classify_rpc_error(e)}",
                ErrorContext(chain_id=tx.chain_id, details={"node_error": e.message}),
            ) from e

        gas_limit = int(gas_limit * self.gas_multiplier)
        if shape == TxShape.VALUE_TRANSFER:
            gas_limit = max(gas_limit, NATIVE_TRANSFER_GAS)
        return GasEstimate(gas_limit=gas_limit, fees=fees)

    async def submit(
        self,
        account: AccountContext,
        call: ContractCall,
        purpose: TxPurpose = TxPurpose.ACTION,
    ) -> TxRecord:
        """
        Submit ``call`` from ``account``.

        Raises:
            SubmissionError: gas estimation, signing or broadcast failed. No
                nonce is consumed in that case.
        """
        tx = PreparedTransaction(
            chain_id=account.chain_id,
            from_address=account.address,
            to_address=call.to,
            data=call.data,
            value=call.value,
        )
        tx.gas_estimate = await self.estimate_gas(tx, call.shape)

        try:
            async with account.reserve_nonce() as reservation:
                tx.nonce = reservation.nonce
                raw_tx = self._sign(account, tx)
                tx_hash = await self.chain_client.send_raw_transaction(raw_tx)
                reservation.commit()
        except SubmissionError:
            raise
        except ChainClientError as e:
            logger.error(
                f"Broadcast failed for {call.description or call.to} "
                f"(nonce={tx.nonce}): {e}"
            )
            if "nonce too low" in e.message.lower():
                # Local counter is behind another sender; next reservation starts fresh
                try:
                    await account.nonce_manager.sync_with_chain(account.address)
                except ChainClientError as sync_error:
                    logger.warning(f"Nonce resync for {account.address} failed: {sync_error}")
            raise SubmissionError(
                f"The network rejected the transaction: {classify_rpc_error(e)}",
                ErrorContext(
                    nonce=tx.nonce,
                    chain_id=tx.chain_id,
                    details={"node_error": e.message, "code": e.code},
                ),
            ) from e

        logger.info(
            f"Submitted {purpose.value} tx {tx_hash} "
            f"(nonce={tx.nonce}, gas={tx.gas_estimate.gas_limit}, shape={call.shape.value})"
        )
        return TxRecord(
            hash=tx_hash,
            submitted_at_nonce=tx.nonce,
            purpose=purpose,
            description=call.description,
        )

    def _sign(self, account: AccountContext, tx: PreparedTransaction) -> bytes:
        try:
            return account.signer.sign_transaction(tx.to_dict())
        except Exception as e:
            logger.error(f"Signing failed (nonce={tx.nonce}): {e}")
            raise SubmissionError(
                "The wallet could not sign the transaction",
                ErrorContext(nonce=tx.nonce, chain_id=tx.chain_id, details={"signer_error": str(e)}),
            ) from e
