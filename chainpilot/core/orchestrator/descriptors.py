"""
Action descriptor table.

One entry per action kind: naming and examples for the agent runtime, the
preflight checks to run, message templates, and the planner that turns a
validated request into an ExecutionPlan (optional approval + one call).
The orchestrator's dispatch loop is the same for every entry.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Optional, Tuple

from ..errors import ChainClientError, ErrorContext, SubmissionError
from ..execution.account import AccountContext
from ..execution.models import ContractCall
from ..execution.tx_builder import TransactionBuilder
from ..intent.models import ActionKind, ActionRequest
from ..preflight.validator import PreflightCheck
from ..protocols.agni import AgniRouter, apply_slippage
from ..protocols.lendle import LendleProtocol
from ..protocols.meth_staking import MethStaking
from ..state.refresher import RefreshScope
from ...services.chains import ChainContext
from ...services.tokens import TokenDescriptor, TokenRegistry, format_amount


@dataclass(frozen=True)
class ApprovalRequirement:
    """An ERC20 allowance the action's call will spend."""
    token: TokenDescriptor
    spender: str
    spender_name: str
    amount: int


@dataclass(frozen=True)
class ExecutionPlan:
    call: ContractCall
    approval: Optional[ApprovalRequirement] = None
    note: Optional[str] = None


@dataclass
class PlanContext:
    """Collaborators and policy values planners may use."""
    chain: ChainContext
    registry: TokenRegistry
    lendle: LendleProtocol
    agni: AgniRouter
    meth: MethStaking
    swap_slippage_bps: int = 50
    stake_slippage_bps: int = 100
    swap_deadline_seconds: int = 1200
    direct_erc20_transfers: bool = False
    clock: Callable[[], float] = field(default=time.time)


Planner = Callable[
    [PlanContext, ActionRequest, TokenDescriptor, int, AccountContext],
    Awaitable[ExecutionPlan],
]


@dataclass(frozen=True)
class ActionDescriptor:
    kind: ActionKind
    name: str
    description: str
    similes: Tuple[str, ...]
    examples: Tuple[str, ...]
    checks: Tuple[PreflightCheck, ...]
    refresh_scope: RefreshScope
    verb: str
    initiated_template: str
    success_template: str
    planner: Planner

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "description": self.description,
            "similes": list(self.similes),
            "examples": list(self.examples),
            "checks": [c.value for c in self.checks],
            "refreshScope": self.refresh_scope.value,
        }


def _pct(bps: int) -> str:
    return format((Decimal(bps) / 100).normalize(), "f")


def _quote_failed(what: str, error: ChainClientError) -> SubmissionError:
    return SubmissionError(
        f"Could not fetch a {what} quote",
        ErrorContext(details={"node_error": error.message}),
    )


async def plan_transfer(ctx, request, token, amount, account) -> ExecutionPlan:
    to = request.counterparty
    if token.is_native:
        return ExecutionPlan(
            call=TransactionBuilder.build_native_transfer(
                to, amount, description=f"Send {token.symbol}"
            )
        )
    if ctx.direct_erc20_transfers:
        return ExecutionPlan(
            call=TransactionBuilder.build_erc20_transfer(
                token.contract_address, to, amount, description=f"Send {token.symbol}"
            )
        )
    # Spend goes through the account's own allowance, then transferFrom
    return ExecutionPlan(
        approval=ApprovalRequirement(token, account.address, "the transfer", amount),
        call=TransactionBuilder.build_erc20_transfer_from(
            token.contract_address, account.address, to, amount,
            description=f"Send {token.symbol}",
        ),
    )


async def plan_swap(ctx, request, token, amount, account) -> ExecutionPlan:
    token_out = ctx.registry.resolve_symbol(request.token_out)
    try:
        quoted = await ctx.agni.quote(token, token_out, amount)
    except ChainClientError as e:
        raise _quote_failed("swap", e) from e

    min_out = apply_slippage(quoted, ctx.swap_slippage_bps)
    deadline = int(ctx.clock()) + ctx.swap_deadline_seconds
    approval = None
    if not token.is_native:
        approval = ApprovalRequirement(token, ctx.agni.router_address, "Agni", amount)
    return ExecutionPlan(
        approval=approval,
        call=ctx.agni.build_swap(token, token_out, amount, min_out, account.address, deadline),
        note=(
            f"Swapping {request.amount} {token.symbol} for at least "
            f"{format_amount(token_out.from_atomic(min_out))} {token_out.symbol} "
            f"(with {_pct(ctx.swap_slippage_bps)}% slippage protection)..."
        ),
    )


async def plan_deposit(ctx, request, token, amount, account) -> ExecutionPlan:
    return ExecutionPlan(
        approval=ApprovalRequirement(token, ctx.lendle.pool_address, "Lendle", amount),
        call=ctx.lendle.build_deposit(token, amount, account.address),
        note=f"Depositing {request.amount} {token.symbol} to Lendle...",
    )


async def plan_withdraw(ctx, request, token, amount, account) -> ExecutionPlan:
    return ExecutionPlan(
        call=ctx.lendle.build_withdraw(token, amount, account.address),
        note=f"Withdrawing {request.amount} {token.symbol} from Lendle...",
    )


async def plan_borrow(ctx, request, token, amount, account) -> ExecutionPlan:
    return ExecutionPlan(
        call=ctx.lendle.build_borrow(token, amount, account.address),
        note=f"Borrowing {request.amount} {token.symbol} from Lendle...",
    )


async def plan_repay(ctx, request, token, amount, account) -> ExecutionPlan:
    return ExecutionPlan(
        approval=ApprovalRequirement(token, ctx.lendle.pool_address, "Lendle", amount),
        call=ctx.lendle.build_repay(token, amount, account.address),
        note=f"Repaying {request.amount} {token.symbol} to Lendle...",
    )


async def plan_stake(ctx, request, token, amount, account) -> ExecutionPlan:
    try:
        expected = await ctx.meth.quote_stake(amount)
    except ChainClientError as e:
        raise _quote_failed("staking", e) from e
    meth = ctx.registry.resolve_symbol("METH")
    return ExecutionPlan(
        call=ctx.meth.build_stake(amount, expected, ctx.stake_slippage_bps),
        note=(
            f"Staking {request.amount} {token.symbol} for approximately "
            f"{format_amount(meth.from_atomic(expected))} mETH "
            f"(with {_pct(ctx.stake_slippage_bps)}% slippage protection)..."
        ),
    )


async def plan_unstake(ctx, request, token, amount, account) -> ExecutionPlan:
    try:
        expected = await ctx.meth.quote_unstake(amount)
    except ChainClientError as e:
        raise _quote_failed("unstaking", e) from e
    native = ctx.registry.native
    return ExecutionPlan(
        approval=ApprovalRequirement(token, ctx.meth.staking_address, "mETH staking", amount),
        call=ctx.meth.build_unstake_request(amount, expected, ctx.stake_slippage_bps),
        note=(
            f"Unstaking {request.amount} mETH for approximately "
            f"{format_amount(native.from_atomic(expected))} {native.symbol} "
            f"(with {_pct(ctx.stake_slippage_bps)}% slippage protection)..."
        ),
    )


_INITIATED_SUFFIX = "You will receive a confirmation once the transaction is complete."
_LENDING_SUFFIX = "Please hold on while I process the transaction."

DESCRIPTORS: Dict[ActionKind, ActionDescriptor] = {
    ActionKind.TRANSFER: ActionDescriptor(
        kind=ActionKind.TRANSFER,
        name="SEND_TOKEN",
        description="Transfer MNT or an ERC20 token to another address",
        similes=("TRANSFER_TOKEN", "SEND_MNT", "SEND_ERC20", "PAY"),
        examples=("Send 0.1 MNT to 0x...", "Transfer 50 USDC to 0x..."),
        checks=(PreflightCheck.WALLET_BALANCE,),
        refresh_scope=RefreshScope.WALLET,
        verb="transfer",
        initiated_template=(
            "The transaction of {amount} {token} to {to} on {chain} has been initiated. "
            + _INITIATED_SUFFIX
        ),
        success_template="{amount} {token} sent to {to}: {hash}",
        planner=plan_transfer,
    ),
    ActionKind.SWAP: ActionDescriptor(
        kind=ActionKind.SWAP,
        name="SWAP_TOKENS",
        description="Swap tokens on Agni DEX",
        similes=("TRADE_TOKENS", "EXCHANGE_TOKENS", "AGNI_SWAP"),
        examples=("Swap 10 MNT for USDC", "Trade 100 USDT to WETH on Agni"),
        checks=(PreflightCheck.WALLET_BALANCE,),
        refresh_scope=RefreshScope.WALLET,
        verb="swap",
        initiated_template=(
            "The swap of {amount} {token} for {token_out} on Agni DEX has been initiated. "
            + _INITIATED_SUFFIX
        ),
        success_template="{amount} {token} swapped for {token_out}: {hash}",
        planner=plan_swap,
    ),
    ActionKind.DEPOSIT: ActionDescriptor(
        kind=ActionKind.DEPOSIT,
        name="DEPOSIT_LENDING",
        description="Deposit tokens into Lendle lending pools on Mantle",
        similes=("SUPPLY_LENDING", "LEND_TOKENS"),
        examples=("Deposit 100 USDC to Lendle", "Supply 1 WETH"),
        checks=(PreflightCheck.WALLET_BALANCE,),
        refresh_scope=RefreshScope.LENDING,
        verb="deposit",
        initiated_template=(
            "Let's proceed with depositing {amount} {token} to Lendle on the {chain} network. "
            + _LENDING_SUFFIX
        ),
        success_template="Successfully deposited {amount} {token} to Lendle",
        planner=plan_deposit,
    ),
    ActionKind.WITHDRAW: ActionDescriptor(
        kind=ActionKind.WITHDRAW,
        name="WITHDRAW_LENDING",
        description="Withdraw supplied tokens from Lendle lending pools on Mantle",
        similes=("REDEEM_LENDING",),
        examples=("Withdraw 50 USDC from Lendle",),
        checks=(PreflightCheck.SUPPLIED_BALANCE, PreflightCheck.WITHDRAW_HEALTH),
        refresh_scope=RefreshScope.LENDING,
        verb="withdraw",
        initiated_template=(
            "Let's proceed with withdrawing {amount} {token} from Lendle on the {chain} network. "
            + _LENDING_SUFFIX
        ),
        success_template="Successfully withdrew {amount} {token} from Lendle",
        planner=plan_withdraw,
    ),
    ActionKind.BORROW: ActionDescriptor(
        kind=ActionKind.BORROW,
        name="BORROW_LENDING",
        description="Borrow tokens from Lendle lending pools on Mantle",
        similes=("TAKE_LOAN",),
        examples=("Borrow 100 USDC from Lendle",),
        checks=(PreflightCheck.BORROW_CAPACITY,),
        refresh_scope=RefreshScope.LENDING,
        verb="borrow",
        initiated_template=(
            "Let's proceed with borrowing {amount} {token} from Lendle on the {chain} network. "
            + _LENDING_SUFFIX
        ),
        success_template="Successfully borrowed {amount} {token} from Lendle",
        planner=plan_borrow,
    ),
    ActionKind.REPAY: ActionDescriptor(
        kind=ActionKind.REPAY,
        name="REPAY_LENDING",
        description="Repay borrowed tokens to Lendle lending pools on Mantle",
        similes=("PAY_BACK_LOAN",),
        examples=("Repay 100 USDC to Lendle",),
        checks=(PreflightCheck.WALLET_BALANCE, PreflightCheck.OUTSTANDING_DEBT),
        refresh_scope=RefreshScope.LENDING,
        verb="repay",
        initiated_template=(
            "Let's proceed with repaying {amount} {token} to Lendle on the {chain} network. "
            + _LENDING_SUFFIX
        ),
        success_template="Successfully repaid {amount} {token} to Lendle",
        planner=plan_repay,
    ),
    ActionKind.STAKE: ActionDescriptor(
        kind=ActionKind.STAKE,
        name="STAKE_METH",
        description="Stake MNT for mETH",
        similes=("LIQUID_STAKE",),
        examples=("Stake 1 MNT",),
        checks=(PreflightCheck.WALLET_BALANCE,),
        refresh_scope=RefreshScope.STAKING,
        verb="stake",
        initiated_template=(
            "The stake of {amount} {token} for mETH has been initiated. " + _INITIATED_SUFFIX
        ),
        success_template="Successfully staked {amount} {token} for mETH",
        planner=plan_stake,
    ),
    ActionKind.UNSTAKE: ActionDescriptor(
        kind=ActionKind.UNSTAKE,
        name="UNSTAKE_METH",
        description="Request an unstake of mETH",
        similes=("UNSTAKE_REQUEST",),
        examples=("Unstake 0.5 mETH",),
        checks=(PreflightCheck.WALLET_BALANCE,),
        refresh_scope=RefreshScope.STAKING,
        verb="unstake",
        initiated_template=(
            "The unstake request for {amount} {token} has been initiated. " + _INITIATED_SUFFIX
        ),
        success_template="Successfully requested unstake of {amount} {token}",
        planner=plan_unstake,
    ),
}
