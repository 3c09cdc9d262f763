"""Agni router swaps (V2-style path router with native MNT entry points)."""

from typing import List

from ..execution.chain_client import ChainClient
from ..execution.models import ContractCall
from ..execution.tx_builder import TransactionBuilder
from ...services.tokens import TokenDescriptor


AGNI_ROUTER = "0x319B69888b0d11cEC22caA5034e25FfFBDc88421"
WMNT_ADDRESS = "0x78c1b0C915c4FAA5FffA6CAbf0219DA63d7f4cb8"

GET_AMOUNTS_OUT = "getAmountsOut(uint256,address[])"
SWAP_EXACT_MNT_FOR_TOKENS = "swapExactMNTForTokens(uint256,address[],address,uint256)"
SWAP_EXACT_TOKENS_FOR_MNT = "swapExactTokensForMNT(uint256,uint256,address[],address,uint256)"
SWAP_EXACT_TOKENS_FOR_TOKENS = "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)"


def apply_slippage(amount: int, slippage_bps: int) -> int:
    """Minimum acceptable output for a quoted ``amount``."""
    return amount * (10_000 - slippage_bps) // 10_000


class AgniRouter:

    name = "agni"
    router_address = AGNI_ROUTER

    def __init__(self, chain_client: ChainClient, wrapped_native: str = WMNT_ADDRESS):
        self.chain_client = chain_client
        self.wrapped_native = wrapped_native

    def _leg(self, token: TokenDescriptor) -> str:
        return self.wrapped_native if token.is_native else token.contract_address

    def path(self, token_in: TokenDescriptor, token_out: TokenDescriptor) -> List[str]:
        """Direct two-hop path; native MNT is routed as WMNT."""
        return [self._leg(token_in), self._leg(token_out)]

    def is_routable(self, token_in: TokenDescriptor, token_out: TokenDescriptor) -> bool:
        leg_in, leg_out = self.path(token_in, token_out)
        return leg_in.lower() != leg_out.lower()

    async def quote(self, token_in: TokenDescriptor, token_out: TokenDescriptor, amount_in: int) -> int:
        (amounts,) = await self.chain_client.read_contract(
            AGNI_ROUTER,
            GET_AMOUNTS_OUT,
            [amount_in, self.path(token_in, token_out)],
            ["uint256[]"],
        )
        return amounts[-1]

    def build_swap(
        self,
        token_in: TokenDescriptor,
        token_out: TokenDescriptor,
        amount_in: int,
        min_amount_out: int,
        recipient: str,
        deadline: int,
    ) -> ContractCall:
        path = self.path(token_in, token_out)
        description = f"Swap {token_in.symbol} for {token_out.symbol} on Agni"
        if token_in.is_native:
            return TransactionBuilder.build_contract_call(
                AGNI_ROUTER,
                SWAP_EXACT_MNT_FOR_TOKENS,
                [min_amount_out, path, recipient, deadline],
                value=amount_in,
                description=description,
            )
        if token_out.is_native:
            return TransactionBuilder.build_contract_call(
                AGNI_ROUTER,
                SWAP_EXACT_TOKENS_FOR_MNT,
                [amount_in, min_amount_out, path, recipient, deadline],
                description=description,
            )
        return TransactionBuilder.build_contract_call(
            AGNI_ROUTER,
            SWAP_EXACT_TOKENS_FOR_TOKENS,
            [amount_in, min_amount_out, path, recipient, deadline],
            description=description,
        )
