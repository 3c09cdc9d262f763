"""
Lendle lending pool on Mantle (Aave v2 fork).

Reads account-level risk data and per-market balances, prices assets through
the Lendle oracle, and builds deposit / withdraw / borrow / repay calls.
Account values are in the oracle's base currency with 18 decimals.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from ..execution.chain_client import ChainClient
from ..execution.models import ContractCall
from ..execution.tx_builder import TransactionBuilder
from ...services.tokens import TokenDescriptor


logger = logging.getLogger(__name__)


LENDING_POOL = "0xCFa5aE7c2CE8Fadc6426C1ff872cA45378Fb7cF3"
PRICE_ORACLE = "0x870c9692Ab04944C86ec6FEeF63F261226506EfC"

VARIABLE_RATE_MODE = 2
REFERRAL_CODE = 0
BASE_DECIMALS = 18
PERCENT_BPS = 10_000

DEPOSIT = "deposit(address,uint256,address,uint16)"
WITHDRAW = "withdraw(address,uint256,address)"
BORROW = "borrow(address,uint256,uint256,uint16,address)"
REPAY = "repay(address,uint256,uint256,address)"
GET_USER_ACCOUNT_DATA = "getUserAccountData(address)"
GET_ASSET_PRICE = "getAssetPrice(address)"


@dataclass(frozen=True)
class LendleMarket:
    """Reserve tokens for one Lendle market."""
    symbol: str
    underlying: str
    a_token: str
    stable_debt_token: str
    variable_debt_token: str


LENDLE_MARKETS: Dict[str, LendleMarket] = {
    "USDC": LendleMarket(
        "USDC",
        "0x09Bc4E0D864854c6aFB6eB9A9cdF58aC190D0dF9",
        "0xf36afb467d1f05541d998bbbcd5f7167d67bd8fc",
        "0xd8A36c0E6148fFB374C6726d4c60Bbd55B745407",
        "0xB3f838d219A0cFba73193453C2023090277d6Af5",
    ),
    "USDT": LendleMarket(
        "USDT",
        "0x201EBa5CC46D216Ce6DC03F6a759e8E766e956aE",
        "0x8c56017b172226fe024dea197748fc1eaccc82b1",
        "0x6b8ccf1d5d1a0a10a7642f2a902c3e0c35e95d39",
        "0x5e0d74ac812ce56cc261469d3cda2a1f4c7c3d6e",
    ),
    "WBTC": LendleMarket(
        "WBTC",
        "0xCAbAE6f6Ea1ecaB08Ad02fE02ce9A44F09aebfA2",
        "0x35b2ece5b1ed6a7a99b83508f8ceeec7e424e5a2",
        "0x4645e0b6b5ee989de76718bf003ecb53c7d419c7",
        "0x7d2d076000731d6527a6661eb1cab3b77a98b1ff",
    ),
    "WMNT": LendleMarket(
        "WMNT",
        "0x78c1b0C915c4FAA5FffA6CAbf0219DA63d7f4cb8",
        "0x6e8244a3c89fb60168b3f2b7f8f29c500f3b83c6",
        "0x6e14f34c12f3e8cbd5a562b0e42fd56b1c3f0d16",
        "0x6b8b52c87ffd40f5d86b590e4cf2199e7a44a1e2",
    ),
    "METH": LendleMarket(
        "METH",
        "0xcDA86A272531e8640cD7F1a92c01839911B90bb0",
        "0x6f1c4f245ed5f9fca38664fb452c0ed5d6170cdf",
        "0x79f21bc30da8f5b9c0fb5c5d5f33ce4442611f8c",
        "0x5d0ec1f843c1233d304b96dbde0cab9ec04d71ef",
    ),
    "CMETH": LendleMarket(
        "CMETH",
        "0xE6829d9a7eE3040e1276Fa75293Bde931859e8fA",
        "0x7c7218af35c3c23827f3bc69aa3fb0f5b239d96b",
        "0x0f323deb2c7e11def8c04a1a7f6a0be3a6f1d41c",
        "0x5c3f3e18a83c1e5f2f6c9103e4d3d46c4b24b99d",
    ),
}


@dataclass
class LendleAccountData:
    """getUserAccountData, raw units."""
    total_collateral: int
    total_debt: int
    available_borrows: int
    liquidation_threshold_bps: int
    ltv_bps: int
    health_factor_raw: int

    @property
    def health_factor(self) -> Optional[Decimal]:
        """Health factor, or None when there is no debt (unbounded)."""
        if self.total_debt == 0:
            return None
        return Decimal(self.health_factor_raw).scaleb(-BASE_DECIMALS)


def base_to_decimal(value: int) -> Decimal:
    return Decimal(value).scaleb(-BASE_DECIMALS)


def project_health_factor(
    data: LendleAccountData,
    added_debt: int = 0,
    removed_collateral: int = 0,
) -> Optional[Decimal]:
    """
    Health factor after borrowing ``added_debt`` or withdrawing
    ``removed_collateral`` (both in base units).

    Uses the account's blended liquidation threshold, which is what the pool
    reports for the current collateral mix.
    """
    debt = data.total_debt + added_debt
    if debt <= 0:
        return None
    collateral = max(data.total_collateral - removed_collateral, 0)
    weighted = Decimal(collateral) * Decimal(data.liquidation_threshold_bps) / PERCENT_BPS
    return weighted / Decimal(debt)


class LendleProtocol:
    """Reads and call builders for the Lendle pool."""

    name = "lendle"
    pool_address = LENDING_POOL

    def __init__(self, chain_client: ChainClient, markets: Optional[Dict[str, LendleMarket]] = None):
        self.chain_client = chain_client
        self.markets = markets if markets is not None else LENDLE_MARKETS

    def market_for(self, token: TokenDescriptor) -> Optional[LendleMarket]:
        if token.is_native:
            return None
        market = self.markets.get(token.symbol.upper())
        if market and market.underlying.lower() != token.contract_address.lower():
            logger.warning(f"Lendle market {market.symbol} underlying does not match registry")
            return None
        return market

    async def get_account_data(self, user: str) -> LendleAccountData:
        values = await self.chain_client.read_contract(
            LENDING_POOL,
            GET_USER_ACCOUNT_DATA,
            [user],
            ["uint256"] * 6,
        )
        return LendleAccountData(*values)

    async def get_asset_price(self, asset: str) -> int:
        (price,) = await self.chain_client.read_contract(
            PRICE_ORACLE, GET_ASSET_PRICE, [asset], ["uint256"]
        )
        return price

    async def value_of(self, token: TokenDescriptor, amount: int) -> int:
        """Base-currency value of ``amount`` atomic units of ``token``."""
        price = await self.get_asset_price(token.contract_address)
        return amount * price // (10 ** token.decimal_places)

    async def supplied_balance(self, market: LendleMarket, user: str) -> int:
        return await self.chain_client.get_token_balance(market.a_token, user)

    async def debt_balance(self, market: LendleMarket, user: str) -> int:
        """Outstanding stable plus variable debt for one market."""
        variable = await self.chain_client.get_token_balance(market.variable_debt_token, user)
        stable = await self.chain_client.get_token_balance(market.stable_debt_token, user)
        return variable + stable

    def build_deposit(self, token: TokenDescriptor, amount: int, on_behalf_of: str) -> ContractCall:
        return TransactionBuilder.build_contract_call(
            LENDING_POOL,
            DEPOSIT,
            [token.contract_address, amount, on_behalf_of, REFERRAL_CODE],
            description=f"Deposit {token.symbol} to Lendle",
        )

    def build_withdraw(self, token: TokenDescriptor, amount: int, to: str) -> ContractCall:
        return TransactionBuilder.build_contract_call(
            LENDING_POOL,
            WITHDRAW,
            [token.contract_address, amount, to],
            description=f"Withdraw {token.symbol} from Lendle",
        )

    def build_borrow(self, token: TokenDescriptor, amount: int, on_behalf_of: str) -> ContractCall:
        return TransactionBuilder.build_contract_call(
            LENDING_POOL,
            BORROW,
            [token.contract_address, amount, VARIABLE_RATE_MODE, REFERRAL_CODE, on_behalf_of],
            description=f"Borrow {token.symbol} from Lendle",
        )

    def build_repay(self, token: TokenDescriptor, amount: int, on_behalf_of: str) -> ContractCall:
        return TransactionBuilder.build_contract_call(
            LENDING_POOL,
            REPAY,
            [token.contract_address, amount, VARIABLE_RATE_MODE, on_behalf_of],
            description=f"Repay {token.symbol} to Lendle",
        )
