"""
Nonce sequencing for concurrent transactions.

One lock per (chain, address) is held from the moment a nonce is chosen
until the node has accepted (or rejected) the signed transaction, so
concurrently issued transactions from the same account can never share a
nonce. The local counter advances only when the send succeeded.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional

from .chain_client import ChainClient


logger = logging.getLogger(__name__)


@dataclass
class NonceState:
    """Tracks nonce state for an address on a chain."""
    address: str
    chain_id: int
    next_nonce: int                             # Lowest nonce not yet used locally
    last_submitted: Optional[int] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class NonceReservation:
    """A nonce handed out under the account lock."""
    address: str
    chain_id: int
    nonce: int
    committed: bool = False

    def commit(self) -> None:
        """Mark the nonce as consumed: the node accepted the transaction."""
        self.committed = True


class NonceManager:
    """
    Hands out strictly increasing nonces per account.

    The next nonce is max(node pending count, local counter), which covers
    both transactions sent by other processes and our own sends the node has
    not indexed yet.
    """

    def __init__(self, chain_client: ChainClient, chain_id: int):
        self.chain_client = chain_client
        self.chain_id = chain_id
        self._states: Dict[str, NonceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, address: str) -> str:
        return f"{self.chain_id}:{address.lower()}"

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def reserve(self, address: str) -> AsyncIterator[NonceReservation]:
        """
        Reserve the next nonce for ``address``.

        The lock is held for the whole ``async with`` body: sign and send
        inside it, then call ``reservation.commit()`` once the node accepted
        the transaction. Uncommitted reservations leave the counter unchanged.
        """
        key = self._get_key(address)
        lock = self._get_lock(key)

        async with lock:
            on_chain_nonce = await self.chain_client.get_transaction_count(address, "pending")

            state = self._states.get(key)
            if state is None:
                state = NonceState(
                    address=address.lower(),
                    chain_id=self.chain_id,
                    next_nonce=on_chain_nonce,
                )
                self._states[key] = state

            nonce = max(on_chain_nonce, state.next_nonce)
            reservation = NonceReservation(address=address, chain_id=self.chain_id, nonce=nonce)

            try:
                yield reservation
            finally:
                if reservation.committed:
                    state.next_nonce = nonce + 1
                    state.last_submitted = nonce
                    state.last_updated = datetime.now(timezone.utc)
                else:
                    logger.debug(f"Nonce {nonce} for {address} not consumed")

    async def sync_with_chain(self, address: str) -> int:
        """
        Reset local state to the node's pending count.

        Returns the current on-chain pending nonce.
        """
        key = self._get_key(address)
        lock = self._get_lock(key)

        async with lock:
            on_chain_nonce = await self.chain_client.get_transaction_count(address, "pending")
            self._states[key] = NonceState(
                address=address.lower(),
                chain_id=self.chain_id,
                next_nonce=on_chain_nonce,
            )
            return on_chain_nonce

    def get_state(self, address: str) -> Optional[NonceState]:
        """Get the current nonce state for an address."""
        return self._states.get(self._get_key(address))
