"""Chain context shared read-only by every request."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..config import Settings, settings as default_settings
from .address import AddressFormat, EvmAddressFormat, get_address_format


@dataclass(frozen=True)
class ChainContext:
    """Static facts about the chain actions run on."""

    chain_id: int
    name: str
    rpc_endpoint: str
    explorer_base_url: str
    native_symbol: str
    native_decimals: int = 18
    address_format: AddressFormat = field(default_factory=EvmAddressFormat, compare=False)

    def tx_url(self, tx_hash: Optional[str]) -> Optional[str]:
        if not tx_hash:
            return None
        return f"{self.explorer_base_url.rstrip('/')}/tx/{tx_hash}"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_base_url.rstrip('/')}/address/{address}"

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ChainContext":
        config = config or default_settings
        return cls(
            chain_id=config.chain_id,
            name=config.chain_name,
            rpc_endpoint=config.rpc_url,
            explorer_base_url=config.explorer_url,
            native_symbol=config.native_symbol.upper(),
            address_format=get_address_format(config.address_format),
        )


_chain_context: Optional[ChainContext] = None


def get_chain_context() -> ChainContext:
    """Get the process-wide chain context built from settings."""
    global _chain_context
    if _chain_context is None:
        _chain_context = ChainContext.from_settings()
    return _chain_context
