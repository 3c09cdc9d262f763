"""
Account state reads.

``StateRefresher.read`` gathers exactly the fields an action kind cares
about; ``refresh`` is the post-confirmation entry point and
``read_portfolio`` backs the balance query. Snapshots are never cached:
every call goes to the node.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ChainClientError, ErrorContext, StateRefreshError
from ..execution.account import AccountContext
from ..execution.chain_client import ChainClient
from ..intent.models import ActionKind, ActionRequest
from ..protocols.lendle import LendleAccountData, LendleProtocol, base_to_decimal
from ...services.tokens import TokenDescriptor, TokenRegistry


logger = logging.getLogger(__name__)


class RefreshScope(str, Enum):
    """Which reads a snapshot includes besides the requested tokens."""

    WALLET = "wallet"          # balances of the involved tokens
    LENDING = "lending"        # plus pool account data and per-market positions
    STAKING = "staking"        # plus native and mETH balances

    @classmethod
    def for_kind(cls, kind: ActionKind) -> "RefreshScope":
        if kind.is_lending:
            return cls.LENDING
        if kind in (ActionKind.STAKE, ActionKind.UNSTAKE):
            return cls.STAKING
        return cls.WALLET


@dataclass
class AccountSnapshot:
    """Point-in-time view of the account, in token units and base-currency value."""
    wallet_balance: Optional[Decimal] = None
    supplied_balance: Optional[Decimal] = None
    borrowed_balance: Optional[Decimal] = None
    total_collateral_value: Optional[Decimal] = None
    total_debt_value: Optional[Decimal] = None
    available_to_borrow_value: Optional[Decimal] = None
    health_factor: Optional[Decimal] = None
    balances: Dict[str, Decimal] = field(default_factory=dict)
    lending: Optional[LendleAccountData] = None
    taken_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        def fmt(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else format(value, "f")

        return {
            "walletBalance": fmt(self.wallet_balance),
            "suppliedBalance": fmt(self.supplied_balance),
            "borrowedBalance": fmt(self.borrowed_balance),
            "totalCollateralValue": fmt(self.total_collateral_value),
            "totalDebtValue": fmt(self.total_debt_value),
            "availableToBorrowValue": fmt(self.available_to_borrow_value),
            "healthFactor": fmt(self.health_factor),
            "balances": {k: fmt(v) for k, v in self.balances.items()},
            "takenAt": self.taken_at.isoformat(),
        }


class StateRefresher:
    """Reads balances and lending positions relevant to one action."""

    def __init__(
        self,
        chain_client: ChainClient,
        registry: TokenRegistry,
        lendle: LendleProtocol,
    ):
        self.chain_client = chain_client
        self.registry = registry
        self.lendle = lendle

    async def wallet_balance(self, token: TokenDescriptor, owner: str) -> int:
        if token.is_native:
            return await self.chain_client.get_balance(owner)
        return await self.chain_client.get_token_balance(token.contract_address, owner)

    def _tokens_for(self, request: ActionRequest, scope: RefreshScope) -> List[TokenDescriptor]:
        symbols = [request.token]
        if request.token_out:
            symbols.append(request.token_out)
        if scope == RefreshScope.STAKING:
            native = self.registry.native
            symbols.extend([native.symbol if native else "MNT", "METH"])
        tokens = []
        for symbol in dict.fromkeys(symbols):
            token = self.registry.resolve_symbol(symbol)
            if token is not None:
                tokens.append(token)
        return tokens

    async def read(
        self,
        account: AccountContext,
        request: ActionRequest,
        scope: Optional[RefreshScope] = None,
    ) -> AccountSnapshot:
        """Read the snapshot for ``request``; node errors propagate as ChainClientError."""
        scope = scope or RefreshScope.for_kind(request.kind)
        snapshot = AccountSnapshot()
        tokens = self._tokens_for(request, scope)

        for token in tokens:
            raw = await self.wallet_balance(token, account.address)
            snapshot.balances[token.symbol] = token.from_atomic(raw)
        primary = self.registry.resolve_symbol(request.token)
        if primary is not None:
            snapshot.wallet_balance = snapshot.balances.get(primary.symbol)

        if scope == RefreshScope.LENDING:
            data = await self.lendle.get_account_data(account.address)
            snapshot.lending = data
            snapshot.total_collateral_value = base_to_decimal(data.total_collateral)
            snapshot.total_debt_value = base_to_decimal(data.total_debt)
            snapshot.available_to_borrow_value = base_to_decimal(data.available_borrows)
            snapshot.health_factor = data.health_factor

            market = self.lendle.market_for(primary) if primary is not None else None
            if market is not None:
                supplied = await self.lendle.supplied_balance(market, account.address)
                borrowed = await self.lendle.debt_balance(market, account.address)
                snapshot.supplied_balance = primary.from_atomic(supplied)
                snapshot.borrowed_balance = primary.from_atomic(borrowed)

        return snapshot

    async def read_portfolio(self, owner: str) -> AccountSnapshot:
        """
        Native balance plus every registered token the owner holds.

        Zero token balances are left out. A token whose balance cannot be
        read is skipped; a failed native read raises ChainClientError.
        """
        snapshot = AccountSnapshot()
        native = self.registry.native
        if native is not None:
            snapshot.balances[native.symbol] = native.from_atomic(await self.chain_client.get_balance(owner))
            snapshot.wallet_balance = snapshot.balances[native.symbol]

        for token in self.registry.all():
            if token.is_native:
                continue
            try:
                raw = await self.chain_client.get_token_balance(token.contract_address, owner)
            except ChainClientError as e:
                logger.warning(f"Skipping {token.symbol} in portfolio for {owner}: {e}")
                continue
            if raw > 0:
                snapshot.balances[token.symbol] = token.from_atomic(raw)
        return snapshot

    async def refresh(
        self,
        account: AccountContext,
        request: ActionRequest,
        scope: Optional[RefreshScope] = None,
    ) -> AccountSnapshot:
        """Post-confirmation snapshot. Raises StateRefreshError on any read failure."""
        try:
            return await self.read(account, request, scope)
        except ChainClientError as e:
            logger.warning(f"State refresh failed for {request.kind.value}: {e}")
            raise StateRefreshError(
                "The transaction went through, but I couldn't load your updated balances",
                ErrorContext(details={"node_error": e.message}),
            ) from e
