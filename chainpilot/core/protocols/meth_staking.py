"""mETH liquid staking: stake native for mETH, request unstake back."""

from dataclasses import dataclass

from ..execution.chain_client import ChainClient
from ..execution.models import ContractCall
from ..execution.tx_builder import TransactionBuilder
from .agni import apply_slippage


STAKING_ADDRESS = "0xe3cBd06D7dadB3F4e6557bAb7EdD924CD1489E8f"
UNSTAKE_MANAGER_ADDRESS = "0x38fDF7b489316e03eD8754ad339cb5c4483FDcf9"

STAKE = "stake(uint256)"
UNSTAKE_REQUEST = "unstakeRequest(uint128,uint128)"
ETH_TO_METH = "ethToMETH(uint256)"
METH_TO_ETH = "mETHToETH(uint256)"
REQUEST_INFO = "requestInfo(uint256)"

UINT128_MAX = 2**128 - 1


@dataclass(frozen=True)
class UnstakeRequestStatus:
    """Where an unstake request stands in the unstake manager queue."""
    request_id: int
    finalized: bool
    filled_amount: int             # native wei already set aside for the request

    @property
    def claimable(self) -> bool:
        return self.finalized and self.filled_amount > 0


class MethStaking:

    name = "meth"
    staking_address = STAKING_ADDRESS

    def __init__(self, chain_client: ChainClient):
        self.chain_client = chain_client

    async def quote_stake(self, amount: int) -> int:
        (meth,) = await self.chain_client.read_contract(STAKING_ADDRESS, ETH_TO_METH, [amount])
        return meth

    async def quote_unstake(self, meth_amount: int) -> int:
        (native,) = await self.chain_client.read_contract(STAKING_ADDRESS, METH_TO_ETH, [meth_amount])
        return native

    def build_stake(self, amount: int, expected_meth: int, slippage_bps: int) -> ContractCall:
        return TransactionBuilder.build_contract_call(
            STAKING_ADDRESS,
            STAKE,
            [apply_slippage(expected_meth, slippage_bps)],
            value=amount,
            description="Stake for mETH",
        )

    def build_unstake_request(self, meth_amount: int, expected_native: int, slippage_bps: int) -> ContractCall:
        if meth_amount > UINT128_MAX:
            raise ValueError("unstake amount exceeds uint128")
        return TransactionBuilder.build_contract_call(
            STAKING_ADDRESS,
            UNSTAKE_REQUEST,
            [meth_amount, apply_slippage(expected_native, slippage_bps)],
            description="Request mETH unstake",
        )


    async def unstake_request_status(self, request_id: int) -> UnstakeRequestStatus:
        finalized, filled = await self.chain_client.read_contract(
            UNSTAKE_MANAGER_ADDRESS,
            REQUEST_INFO,
            [request_id],
            output_types=("bool", "uint256"),
        )
        return UnstakeRequestStatus(request_id=request_id, finalized=finalized, filled_amount=filled)
