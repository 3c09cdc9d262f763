"""
Confirmation waiter.

Polls for a receipt until one appears or the deadline passes. A missing
receipt at the deadline is TimedOut, never Failed: the transaction may
still be mined later.
"""

import asyncio
import logging
from typing import Optional

from ..errors import ChainClientError
from .chain_client import ChainClient
from .models import TxRecord, TxStatus


logger = logging.getLogger(__name__)


def _to_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    return int(value, 16)


class ConfirmationWaiter:
    """Bounded receipt polling for submitted transactions."""

    def __init__(
        self,
        chain_client: ChainClient,
        timeout_seconds: float = 60.0,
        poll_interval_seconds: float = 2.0,
    ):
        self.chain_client = chain_client
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    async def wait(self, record: TxRecord, timeout: Optional[float] = None) -> TxRecord:
        """
        Wait for ``record`` to reach a terminal status.

        Args:
            record: A Pending record returned by the submitter
            timeout: Override of the configured timeout, in seconds

        Returns:
            The same record, now Confirmed, Failed or TimedOut
        """
        if record.is_terminal:
            return record

        timeout = self.timeout_seconds if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                # A slow node must not stretch the wait past the deadline
                receipt = await asyncio.wait_for(
                    self.chain_client.get_transaction_receipt(record.hash),
                    timeout=max(deadline - loop.time(), 0),
                )
            except asyncio.TimeoutError:
                logger.warning(f"Receipt lookup for {record.hash} ran past the confirmation deadline")
                receipt = None
            except ChainClientError as e:
                logger.warning(f"Error checking transaction status for {record.hash}: {e}")
                receipt = None

            if receipt:
                block_number = _to_int(receipt.get("blockNumber"))
                gas_used = _to_int(receipt.get("gasUsed"))
                # 0x1 = success, 0x0 = revert
                status = _to_int(receipt.get("status"), 1)
                if status == 0:
                    logger.warning(
                        f"Transaction reverted: {record.hash} (nonce={record.submitted_at_nonce})"
                    )
                    return record.finalize(TxStatus.FAILED, block_number, gas_used)

                logger.info(f"Transaction confirmed: {record.hash} (block {block_number})")
                return record.finalize(TxStatus.CONFIRMED, block_number, gas_used)

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    f"Confirmation timeout after {timeout}s: {record.hash} "
                    f"(nonce={record.submitted_at_nonce})"
                )
                return record.finalize(TxStatus.TIMED_OUT)

            await asyncio.sleep(min(self.poll_interval_seconds, remaining))
