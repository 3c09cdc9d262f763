"""Opaque signing capability bound to one account."""

from abc import ABC, abstractmethod
from typing import Any, Dict

from eth_account import Account
from eth_utils import to_checksum_address


class Signer(ABC):
    """
    A minimal signing interface for EVM transactions.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        """Return the raw signed transaction bytes."""
        raise NotImplementedError


class LocalAccountSigner(Signer):
    """Signs with a private key held in process memory."""

    def __init__(self, private_key: str) -> None:
        if not private_key:
            raise ValueError("A private key is required to sign transactions")
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        self._account = Account.from_key(key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        tx = dict(tx)
        if tx.get("to"):
            tx["to"] = to_checksum_address(tx["to"])
        signed = self._account.sign_transaction(tx)
        return bytes(signed.raw_transaction)
