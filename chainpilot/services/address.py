"""Address-format capabilities used to validate counterparties."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from functools import lru_cache

from eth_utils import to_checksum_address

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_CORE_ADDRESS_RE = re.compile(r"^(cfx|cfxtest|net\d+):[a-z0-9]{42}$", re.IGNORECASE)


class AddressFormat(ABC):
    """How a chain spells account addresses."""

    name: str = ""

    @abstractmethod
    def is_valid(self, address: str) -> bool:
        ...

    @abstractmethod
    def normalize(self, address: str) -> str:
        """Canonical spelling of a valid address."""
        ...


class EvmAddressFormat(AddressFormat):
    name = "evm"

    def is_valid(self, address: str) -> bool:
        return is_valid_evm_address(address)

    def normalize(self, address: str) -> str:
        return to_checksum_address(address)


class CoreAddressFormat(AddressFormat):
    """Conflux Core-style ``cfx:``-prefixed base32 addresses."""

    name = "core"

    def is_valid(self, address: str) -> bool:
        if not address:
            return False
        return bool(_CORE_ADDRESS_RE.match(address.strip()))

    def normalize(self, address: str) -> str:
        return address.strip().lower()


@lru_cache(maxsize=256)
def is_valid_evm_address(address: str) -> bool:
    if not address:
        return False
    return bool(_EVM_ADDRESS_RE.match(address.strip()))


_FORMATS = {
    "evm": EvmAddressFormat,
    "core": CoreAddressFormat,
}


def get_address_format(name: str) -> AddressFormat:
    """Return the address format registered under ``name`` (evm, core)."""
    try:
        return _FORMATS[name.strip().lower()]()
    except KeyError as exc:
        raise ValueError(f"Unknown address format: {name}") from exc
