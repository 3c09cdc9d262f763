"""The acting wallet: address, signer and its nonce sequencer."""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Optional

from eth_utils import to_checksum_address

from ...config import Settings, settings as default_settings
from .chain_client import ChainClient
from .nonce_manager import NonceManager, NonceReservation
from .signer import LocalAccountSigner, Signer


@dataclass
class AccountContext:
    """One wallet, bound to one signer and one nonce sequencer."""
    address: str
    signer: Signer
    nonce_manager: NonceManager

    def __post_init__(self):
        self.address = to_checksum_address(self.address)
        if self.signer.address.lower() != self.address.lower():
            raise ValueError(
                f"Signer address {self.signer.address} does not match account {self.address}"
            )

    @property
    def chain_id(self) -> int:
        return self.nonce_manager.chain_id

    def reserve_nonce(self) -> AbstractAsyncContextManager[NonceReservation]:
        return self.nonce_manager.reserve(self.address)

    @classmethod
    def from_signer(cls, signer: Signer, chain_client: ChainClient, chain_id: int) -> "AccountContext":
        return cls(
            address=signer.address,
            signer=signer,
            nonce_manager=NonceManager(chain_client, chain_id),
        )

    @classmethod
    def from_settings(
        cls,
        chain_client: ChainClient,
        config: Optional[Settings] = None,
    ) -> "AccountContext":
        config = config or default_settings
        if config.address_format != "evm":
            # The local signer only produces EVM transactions
            raise ValueError(
                f"Cannot sign for {config.address_format!r} addresses; "
                "set ADDRESS_FORMAT=evm to execute actions"
            )
        signer = LocalAccountSigner(config.private_key)
        if config.wallet_address and config.wallet_address.lower() != signer.address.lower():
            raise ValueError("WALLET_ADDRESS does not match the configured private key")
        return cls.from_signer(signer, chain_client, config.chain_id)


_account: Optional[AccountContext] = None


def get_account_context() -> AccountContext:
    """Get the process-wide acting account. Its nonce sequencer is shared by every request."""
    global _account
    if _account is None:
        from .chain_client import get_chain_client
        _account = AccountContext.from_settings(get_chain_client())
    return _account
