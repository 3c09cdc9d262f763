"""
Tests for the read-only preflight gate.
"""

from decimal import Decimal

import pytest

from chainpilot.core.errors import ChainClientError, StateRefreshError, ValidationReason
from chainpilot.core.intent.models import ActionKind, ActionRequest
from chainpilot.core.preflight import DEFAULT_CHECKS, PreflightCheck, PreflightValidator
from chainpilot.core.protocols.agni import AgniRouter
from chainpilot.core.protocols.lendle import LendleProtocol
from chainpilot.core.state import StateRefresher


USDC_UNIT = 10**6
MNT_UNIT = 10**18


@pytest.fixture
def validator(fake_chain, chain_context, registry):
    lendle = LendleProtocol(fake_chain)
    return PreflightValidator(
        chain_context,
        registry,
        StateRefresher(fake_chain, registry, lendle),
        lendle,
        AgniRouter(fake_chain),
        min_health_factor=Decimal("1.05"),
    )


def lending(kind: ActionKind, amount: str, token: str = "USDC") -> ActionRequest:
    return ActionRequest(kind, amount, token, protocol="lendle")


# ============================================================================
# Support checks (no chain reads)
# ============================================================================

class TestSupport:

    @pytest.mark.asyncio
    async def test_unsupported_chain(self, validator, account, recipient, fake_chain):
        request = ActionRequest(ActionKind.TRANSFER, "1", "MNT", counterparty=recipient, chain="ethereum")

        report = await validator.validate(request, account)

        assert not report.ok
        assert report.failure.reason == ValidationReason.UNSUPPORTED_CHAIN
        assert "Mantle" in report.failure.message
        assert fake_chain.read_count == 0

    @pytest.mark.asyncio
    async def test_unsupported_protocol(self, validator, account):
        report = await validator.validate(
            ActionRequest(ActionKind.BORROW, "1", "USDC", protocol="aave"), account
        )

        assert report.failure.reason == ValidationReason.UNSUPPORTED_PROTOCOL

    @pytest.mark.asyncio
    async def test_native_token_on_lendle_suggests_wrapped(self, validator, account):
        report = await validator.validate(lending(ActionKind.DEPOSIT, "1", "MNT"), account)

        assert report.failure.reason == ValidationReason.UNSUPPORTED_TOKEN
        assert "WMNT" in report.failure.message

    @pytest.mark.asyncio
    async def test_token_without_lendle_market(self, validator, account):
        report = await validator.validate(lending(ActionKind.DEPOSIT, "1", "AGNI"), account)

        assert report.failure.reason == ValidationReason.UNSUPPORTED_TOKEN
        assert report.failure.message == "AGNI is not available on Lendle."

    @pytest.mark.asyncio
    async def test_swap_between_native_and_wrapped_is_not_routable(self, validator, account):
        request = ActionRequest(ActionKind.SWAP, "1", "MNT", token_out="WMNT", protocol="agni")

        report = await validator.validate(request, account)

        assert report.failure.reason == ValidationReason.UNSUPPORTED_TOKEN

    @pytest.mark.asyncio
    async def test_only_native_can_be_staked(self, validator, account):
        report = await validator.validate(
            ActionRequest(ActionKind.STAKE, "1", "USDC", protocol="meth"), account
        )

        assert report.failure.reason == ValidationReason.UNSUPPORTED_TOKEN

    @pytest.mark.asyncio
    async def test_excess_precision(self, validator, account):
        report = await validator.validate(lending(ActionKind.DEPOSIT, "0.0000001"), account)

        assert report.failure.reason == ValidationReason.INVALID_AMOUNT
        assert report.failure.message.endswith("USDC supports at most 6 decimal places.")

    @pytest.mark.asyncio
    async def test_bad_counterparty(self, validator, account):
        request = ActionRequest(ActionKind.TRANSFER, "1", "MNT", counterparty="0xnothex")

        report = await validator.validate(request, account)

        assert report.failure.reason == ValidationReason.INVALID_COUNTERPARTY


# ============================================================================
# Balances
# ============================================================================

class TestBalances:

    @pytest.mark.asyncio
    async def test_insufficient_native_balance(self, validator, account, fake_chain, recipient):
        fake_chain.set_native_balance(account.address, 1 * MNT_UNIT)
        request = ActionRequest(ActionKind.TRANSFER, "5", "MNT", counterparty=recipient)

        report = await validator.validate(request, account)

        assert report.failure.reason == ValidationReason.INSUFFICIENT_BALANCE
        assert report.failure.message == (
            "Insufficient MNT balance. You have 1 MNT, but trying to send 5 MNT"
        )

    @pytest.mark.asyncio
    async def test_sufficient_balance_passes(self, validator, account, fake_chain, recipient, token_address):
        fake_chain.set_token_balance(token_address("USDC"), account.address, 25 * USDC_UNIT)
        request = ActionRequest(ActionKind.TRANSFER, "25", "USDC", counterparty=recipient)

        report = await validator.validate(request, account)

        assert report.ok
        assert report.amount_atomic == 25 * USDC_UNIT
        assert report.snapshot.wallet_balance == Decimal(25)

    @pytest.mark.asyncio
    async def test_withdraw_more_than_supplied(self, validator, account, lendle_position):
        lendle_position(collateral=50, available=37, supplied={"USDC": 50 * USDC_UNIT})

        report = await validator.validate(lending(ActionKind.WITHDRAW, "100"), account)

        assert report.failure.reason == ValidationReason.INSUFFICIENT_BALANCE
        assert report.failure.message == (
            "Insufficient USDC supplied. You have 50 USDC supplied, but trying to withdraw 100 USDC"
        )


# ============================================================================
# Solvency
# ============================================================================

class TestSolvency:

    @pytest.mark.asyncio
    async def test_borrow_beyond_available(self, validator, account, lendle_position, fake_chain):
        lendle_position(collateral=1000, available=100)

        report = await validator.validate(lending(ActionKind.BORROW, "500"), account)

        assert report.failure.reason == ValidationReason.INSUFFICIENT_COLLATERAL
        assert "Available to borrow: 100" in report.failure.message
        assert fake_chain.sent == []

    @pytest.mark.asyncio
    async def test_borrow_below_minimum_health_factor(self, validator, account, lendle_position):
        lendle_position(collateral=1000, available=790)

        report = await validator.validate(lending(ActionKind.BORROW, "780"), account)

        assert report.failure.reason == ValidationReason.BELOW_MINIMUM_HEALTH_FACTOR
        assert "1.03" in report.failure.message
        assert report.projected_health_factor < Decimal("1.05")

    @pytest.mark.asyncio
    async def test_healthy_borrow(self, validator, account, lendle_position):
        lendle_position(collateral=1000, available=750)

        report = await validator.validate(lending(ActionKind.BORROW, "100"), account)

        assert report.ok
        assert report.projected_health_factor == Decimal(8)
        assert report.snapshot.health_factor is None
        assert report.snapshot.available_to_borrow_value == Decimal(750)

    @pytest.mark.asyncio
    async def test_borrow_priced_through_oracle(self, validator, account, lendle_position):
        # WBTC at 30000 base units: 0.01 WBTC is worth 300
        lendle_position(collateral=1000, available=250, prices={"WBTC": 30_000 * 10**18})

        report = await validator.validate(lending(ActionKind.BORROW, "0.01", "WBTC"), account)

        assert report.failure.reason == ValidationReason.INSUFFICIENT_COLLATERAL

    @pytest.mark.asyncio
    async def test_withdraw_that_breaks_health_factor(self, validator, account, lendle_position):
        lendle_position(collateral=1000, debt=780, available=0, supplied={"USDC": 1000 * USDC_UNIT})

        report = await validator.validate(lending(ActionKind.WITHDRAW, "100"), account)

        assert report.failure.reason == ValidationReason.BELOW_MINIMUM_HEALTH_FACTOR

    @pytest.mark.asyncio
    async def test_withdraw_without_debt_skips_health_check(self, validator, account, lendle_position):
        lendle_position(collateral=1000, available=750, supplied={"USDC": 1000 * USDC_UNIT})

        report = await validator.validate(lending(ActionKind.WITHDRAW, "1000"), account)

        assert report.ok
        assert report.projected_health_factor is None


# ============================================================================
# Outstanding debt
# ============================================================================

class TestDebt:

    @pytest.mark.asyncio
    async def test_repay_without_debt(self, validator, account, lendle_position, fake_chain, token_address):
        fake_chain.set_token_balance(token_address("USDC"), account.address, 100 * USDC_UNIT)
        lendle_position(collateral=1000, available=750)

        report = await validator.validate(lending(ActionKind.REPAY, "50"), account)

        assert report.failure.reason == ValidationReason.NO_OUTSTANDING_DEBT
        assert report.failure.message == "You don't have any USDC debt to repay."

    @pytest.mark.asyncio
    async def test_repay_with_debt(self, validator, account, lendle_position, fake_chain, token_address):
        fake_chain.set_token_balance(token_address("USDC"), account.address, 100 * USDC_UNIT)
        lendle_position(collateral=1000, debt=200, available=550, borrowed={"USDC": 200 * USDC_UNIT})

        report = await validator.validate(lending(ActionKind.REPAY, "50"), account)

        assert report.ok
        assert report.snapshot.borrowed_balance == Decimal(200)


# ============================================================================
# Gate behaviour
# ============================================================================

class TestGate:

    @pytest.mark.asyncio
    async def test_repeatable_against_unchanged_state(self, validator, account, lendle_position, fake_chain):
        lendle_position(collateral=1000, available=100)
        request = lending(ActionKind.BORROW, "500")

        first = await validator.validate(request, account)
        second = await validator.validate(request, account)

        assert first.ok == second.ok
        assert first.failure.reason == second.failure.reason
        assert first.failure.message == second.failure.message
        assert fake_chain.sent == []

    @pytest.mark.asyncio
    async def test_explicit_check_list(self, validator, account, recipient):
        request = ActionRequest(ActionKind.TRANSFER, "5", "MNT", counterparty=recipient)

        report = await validator.validate(request, account, checks=())

        assert report.ok

    @pytest.mark.asyncio
    async def test_read_failure_stops_the_action(self, validator, account, fake_chain, recipient):
        fake_chain.read_error = ChainClientError("RPC error: upstream request timeout")
        request = ActionRequest(ActionKind.TRANSFER, "1", "MNT", counterparty=recipient)

        with pytest.raises(StateRefreshError, match="nothing was sent"):
            await validator.validate(request, account)

    def test_default_checks_cover_every_kind(self):
        assert set(DEFAULT_CHECKS) == set(ActionKind)
        assert DEFAULT_CHECKS[ActionKind.REPAY] == (
            PreflightCheck.WALLET_BALANCE,
            PreflightCheck.OUTSTANDING_DEBT,
        )
