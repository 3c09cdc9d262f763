"""
Transaction builder for the calls the agent sends.
"""

from typing import Any, Sequence

from .abi import encode_call
from .models import ContractCall


ERC20_APPROVE = "approve(address,uint256)"
ERC20_TRANSFER = "transfer(address,uint256)"
ERC20_TRANSFER_FROM = "transferFrom(address,address,uint256)"


class TransactionBuilder:
    """
    Builds ContractCall values.

    Handles:
    - Native value transfers
    - ERC20 approve / transfer / transferFrom
    - Arbitrary contract calls from a signature string
    """

    @staticmethod
    def build_native_transfer(to_address: str, amount: int, description: str = "") -> ContractCall:
        return ContractCall(
            to=to_address,
            data="0x",
            value=amount,
            description=description or f"Transfer {amount} wei",
        )

    @staticmethod
    def build_erc20_approve(
        token_address: str,
        spender_address: str,
        amount: int,
        description: str = "",
    ) -> ContractCall:
        """
        Build an ERC20 approval for exactly ``amount``.

        Args:
            token_address: The ERC20 token contract
            spender_address: The address being approved to spend
            amount: Allowance in base units
            description: Human-readable description
        """
        return ContractCall(
            to=token_address,
            data=encode_call(ERC20_APPROVE, [spender_address, amount]),
            description=description or f"Approve {spender_address}",
        )

    @staticmethod
    def build_erc20_transfer(
        token_address: str,
        to_address: str,
        amount: int,
        description: str = "",
    ) -> ContractCall:
        return ContractCall(
            to=token_address,
            data=encode_call(ERC20_TRANSFER, [to_address, amount]),
            description=description or f"Transfer to {to_address}",
        )

    @staticmethod
    def build_erc20_transfer_from(
        token_address: str,
        from_address: str,
        to_address: str,
        amount: int,
        description: str = "",
    ) -> ContractCall:
        return ContractCall(
            to=token_address,
            data=encode_call(ERC20_TRANSFER_FROM, [from_address, to_address, amount]),
            description=description or f"Transfer from {from_address} to {to_address}",
        )

    @staticmethod
    def build_contract_call(
        contract_address: str,
        signature: str,
        args: Sequence[Any] = (),
        value: int = 0,
        description: str = "",
    ) -> ContractCall:
        return ContractCall(
            to=contract_address,
            data=encode_call(signature, args),
            value=value,
            description=description or signature.split("(")[0],
        )
