"""
Preflight validation.

Read-only gate that must pass before anything is signed. Checks run in a
fixed order (support, balance, solvency, debt) and stop at the first
failure. Running it twice against unchanged chain state gives the same
answer.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from ..errors import (
    ChainClientError,
    ErrorContext,
    StateRefreshError,
    ValidationFailure,
    ValidationReason,
)
from ..execution.account import AccountContext
from ..intent.models import ActionKind, ActionRequest
from ..protocols.agni import AgniRouter
from ..protocols.lendle import LendleProtocol, base_to_decimal, project_health_factor
from ..state.refresher import AccountSnapshot, StateRefresher
from ...services.chains import ChainContext
from ...services.tokens import TokenDescriptor, TokenRegistry, format_amount


logger = logging.getLogger(__name__)


class PreflightCheck(str, Enum):
    """State checks that follow the always-on support check, in run order."""

    WALLET_BALANCE = "wallet_balance"
    SUPPLIED_BALANCE = "supplied_balance"
    BORROW_CAPACITY = "borrow_capacity"
    WITHDRAW_HEALTH = "withdraw_health"
    OUTSTANDING_DEBT = "outstanding_debt"


CHECK_ORDER = list(PreflightCheck)

DEFAULT_CHECKS: Dict[ActionKind, Tuple[PreflightCheck, ...]] = {
    ActionKind.TRANSFER: (PreflightCheck.WALLET_BALANCE,),
    ActionKind.SWAP: (PreflightCheck.WALLET_BALANCE,),
    ActionKind.DEPOSIT: (PreflightCheck.WALLET_BALANCE,),
    ActionKind.WITHDRAW: (PreflightCheck.SUPPLIED_BALANCE, PreflightCheck.WITHDRAW_HEALTH),
    ActionKind.BORROW: (PreflightCheck.BORROW_CAPACITY,),
    ActionKind.REPAY: (PreflightCheck.WALLET_BALANCE, PreflightCheck.OUTSTANDING_DEBT),
    ActionKind.STAKE: (PreflightCheck.WALLET_BALANCE,),
    ActionKind.UNSTAKE: (PreflightCheck.WALLET_BALANCE,),
}

PROTOCOLS_BY_KIND = {
    ActionKind.TRANSFER: {None},
    ActionKind.SWAP: {"agni"},
    ActionKind.DEPOSIT: {"lendle"},
    ActionKind.WITHDRAW: {"lendle"},
    ActionKind.BORROW: {"lendle"},
    ActionKind.REPAY: {"lendle"},
    ActionKind.STAKE: {"meth"},
    ActionKind.UNSTAKE: {"meth"},
}

VERBS = {
    ActionKind.TRANSFER: "send",
    ActionKind.SWAP: "swap",
    ActionKind.DEPOSIT: "deposit",
    ActionKind.WITHDRAW: "withdraw",
    ActionKind.BORROW: "borrow",
    ActionKind.REPAY: "repay",
    ActionKind.STAKE: "stake",
    ActionKind.UNSTAKE: "unstake",
}


@dataclass
class PreflightReport:
    """Outcome of the gate: ok, or the first failure found."""
    ok: bool
    snapshot: Optional[AccountSnapshot] = None
    failure: Optional[ValidationFailure] = None
    amount_atomic: int = 0
    projected_health_factor: Optional[Decimal] = None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise self.failure


class PreflightValidator:

    def __init__(
        self,
        chain: ChainContext,
        registry: TokenRegistry,
        state: StateRefresher,
        lendle: LendleProtocol,
        agni: AgniRouter,
        min_health_factor: Decimal = Decimal("1.05"),
    ):
        self.chain = chain
        self.registry = registry
        self.state = state
        self.lendle = lendle
        self.agni = agni
        self.min_health_factor = Decimal(min_health_factor)

    async def validate(
        self,
        request: ActionRequest,
        account: AccountContext,
        checks: Optional[Sequence[PreflightCheck]] = None,
    ) -> PreflightReport:
        """
        Run the support check and then ``checks`` (default: the kind's
        standard set) for ``request`` against live chain state.

        Returns a report; validation failures are carried in the report,
        not raised. Node read errors raise StateRefreshError since nothing
        can be decided without state.
        """
        wanted = set(DEFAULT_CHECKS[request.kind] if checks is None else checks)
        try:
            token = self._check_support(request)
            amount = self._atomic(request, token)
        except ValidationFailure as failure:
            return PreflightReport(ok=False, failure=failure)

        report = PreflightReport(ok=True, amount_atomic=amount)
        try:
            report.snapshot = await self.state.read(account, request)
            for check in CHECK_ORDER:
                if check not in wanted:
                    continue
                if check == PreflightCheck.WALLET_BALANCE:
                    self._check_wallet_balance(request, token, report)
                elif check == PreflightCheck.SUPPLIED_BALANCE:
                    self._check_supplied_balance(request, token, report)
                elif check == PreflightCheck.BORROW_CAPACITY:
                    await self._check_borrow(request, token, report)
                elif check == PreflightCheck.WITHDRAW_HEALTH:
                    await self._check_withdraw(request, token, report)
                elif check == PreflightCheck.OUTSTANDING_DEBT:
                    self._check_debt(request, report)
        except ValidationFailure as failure:
            logger.info(f"Preflight rejected {request.kind.value}: {failure.reason.value}")
            report.ok = False
            report.failure = failure
            return report
        except ChainClientError as e:
            logger.warning(f"Preflight reads failed: {e}")
            raise StateRefreshError(
                "I couldn't read your account state, so nothing was sent",
                ErrorContext(details={"node_error": e.message}),
            ) from e

        return report

    # (a) token / chain / protocol support
    def _check_support(self, request: ActionRequest) -> TokenDescriptor:
        if request.chain and request.chain.lower() != self.chain.name.lower():
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_CHAIN,
                f"{request.chain} is not supported. I can only act on {self.chain.name.title()}.",
            )

        if request.protocol not in PROTOCOLS_BY_KIND[request.kind]:
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_PROTOCOL,
                f"{request.protocol} does not support {request.kind.value}.",
            )

        token = self.registry.resolve_symbol(request.token)
        if token is None:
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_TOKEN, f"Unsupported token {request.token}."
            )

        if request.kind.is_lending and self.lendle.market_for(token) is None:
            hint = " Use WMNT for Lendle markets." if token.is_native else ""
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_TOKEN,
                f"{token.symbol} is not available on Lendle.{hint}",
            )

        if request.kind == ActionKind.SWAP:
            token_out = self.registry.resolve_symbol(request.token_out or "")
            if token_out is None:
                raise ValidationFailure(
                    ValidationReason.UNSUPPORTED_TOKEN, f"Unsupported token {request.token_out}."
                )
            if not self.agni.is_routable(token, token_out):
                raise ValidationFailure(
                    ValidationReason.UNSUPPORTED_TOKEN,
                    f"Cannot swap {token.symbol} for {token_out.symbol} on Agni.",
                )

        if request.kind == ActionKind.STAKE and not token.is_native:
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_TOKEN,
                f"Only {self.chain.native_symbol} can be staked for mETH.",
            )
        if request.kind == ActionKind.UNSTAKE and token.symbol != "METH":
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_TOKEN, "Only mETH can be unstaked."
            )

        if request.kind == ActionKind.TRANSFER:
            if not request.counterparty or not self.chain.address_format.is_valid(request.counterparty):
                raise ValidationFailure(
                    ValidationReason.INVALID_COUNTERPARTY,
                    f"Invalid recipient address: {request.counterparty}",
                )
        return token

    def _atomic(self, request: ActionRequest, token: TokenDescriptor) -> int:
        try:
            return token.to_atomic(request.amount_decimal)
        except ValueError as e:
            raise ValidationFailure(
                ValidationReason.INVALID_AMOUNT,
                f"Cannot use {request.amount} {token.symbol}: {token.symbol} supports at most "
                f"{token.decimal_places} decimal places.",
            ) from e

    # (b) spendable balance
    def _check_supplied_balance(self, request: ActionRequest, token: TokenDescriptor, report: PreflightReport) -> None:
        supplied = report.snapshot.supplied_balance or Decimal(0)
        if supplied < request.amount_decimal:
            raise ValidationFailure(
                ValidationReason.INSUFFICIENT_BALANCE,
                f"Insufficient {token.symbol} supplied. You have {format_amount(supplied)} "
                f"{token.symbol} supplied, but trying to withdraw {request.amount} {token.symbol}",
            )

    def _check_wallet_balance(self, request: ActionRequest, token: TokenDescriptor, report: PreflightReport) -> None:
        balance = report.snapshot.wallet_balance or Decimal(0)
        if balance < request.amount_decimal:
            raise ValidationFailure(
                ValidationReason.INSUFFICIENT_BALANCE,
                f"Insufficient {token.symbol} balance. You have {format_amount(balance)} "
                f"{token.symbol}, but trying to {VERBS[request.kind]} {request.amount} {token.symbol}",
            )

    # (c) solvency
    async def _check_borrow(self, request: ActionRequest, token: TokenDescriptor, report: PreflightReport) -> None:
        data = report.snapshot.lending
        value = await self.lendle.value_of(token, report.amount_atomic)

        if value > data.available_borrows:
            raise ValidationFailure(
                ValidationReason.INSUFFICIENT_COLLATERAL,
                f"Insufficient collateral to borrow {request.amount} {token.symbol}. "
                f"Available to borrow: {format_amount(base_to_decimal(data.available_borrows), 4)} "
                f"(requested {format_amount(base_to_decimal(value), 4)}).",
                ErrorContext(details={"requested_value": value, "available": data.available_borrows}),
            )

        projected = project_health_factor(data, added_debt=value)
        report.projected_health_factor = projected
        if projected is not None and projected < self.min_health_factor:
            raise ValidationFailure(
                ValidationReason.BELOW_MINIMUM_HEALTH_FACTOR,
                f"Borrowing {request.amount} {token.symbol} would drop your health factor to "
                f"{format_amount(projected, 2)}, below the minimum of {self.min_health_factor}.",
            )

    async def _check_withdraw(self, request: ActionRequest, token: TokenDescriptor, report: PreflightReport) -> None:
        data = report.snapshot.lending
        if data.total_debt == 0:
            return
        value = await self.lendle.value_of(token, report.amount_atomic)
        projected = project_health_factor(data, removed_collateral=value)
        report.projected_health_factor = projected
        if projected is not None and projected < self.min_health_factor:
            raise ValidationFailure(
                ValidationReason.BELOW_MINIMUM_HEALTH_FACTOR,
                f"Withdrawing {request.amount} {token.symbol} would drop your health factor to "
                f"{format_amount(projected, 2)}, below the minimum of {self.min_health_factor}.",
            )

    # (d) outstanding debt
    def _check_debt(self, request: ActionRequest, report: PreflightReport) -> None:
        debt = report.snapshot.borrowed_balance or Decimal(0)
        if debt <= 0:
            raise ValidationFailure(
                ValidationReason.NO_OUTSTANDING_DEBT,
                f"You don't have any {request.token} debt to repay.",
            )
