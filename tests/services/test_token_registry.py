"""
Tests for the token registry and amount conversion.
"""

from decimal import Decimal

import pytest

from chainpilot.services.tokens import (
    MANTLE_TOKENS,
    TokenDescriptor,
    TokenKind,
    TokenRegistry,
    format_amount,
    from_atomic,
    to_atomic,
)


USDC_ADDRESS = "0x09Bc4E0D864854c6aFB6eB9A9cdF58aC190D0dF9"


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry(MANTLE_TOKENS)


class TestResolution:

    def test_symbol_lookup_is_case_insensitive(self, registry):
        assert registry.resolve_symbol("usdc").symbol == "USDC"
        assert registry.resolve_symbol("  Usdc ").symbol == "USDC"

    def test_aliases_resolve_to_canonical_symbol(self, registry):
        assert registry.resolve_symbol("tether").symbol == "USDT"
        assert registry.resolve_symbol("btc").symbol == "WBTC"
        assert registry.resolve_symbol("mantle").symbol == "MNT"

    def test_unknown_symbol_returns_none(self, registry):
        assert registry.resolve_symbol("DOGE") is None
        assert registry.resolve_symbol("") is None

    def test_address_lookup_is_case_insensitive(self, registry):
        assert registry.resolve_address(USDC_ADDRESS.lower()).symbol == "USDC"
        assert registry.resolve_address(USDC_ADDRESS.upper().replace("0X", "0x")).symbol == "USDC"
        assert registry.resolve_address("0x" + "ab" * 20) is None

    def test_native_token(self, registry):
        native = registry.native
        assert native.symbol == "MNT"
        assert native.is_native
        assert native.contract_address is None

    def test_contains_and_len(self, registry):
        assert "meth" in registry
        assert "XYZ" not in registry
        assert len(registry) == len(MANTLE_TOKENS)


class TestRegistration:

    def test_duplicate_symbol_rejected(self, registry):
        with pytest.raises(ValueError, match="Duplicate token symbol"):
            registry.register(
                TokenDescriptor("usdc", "Other", 6, TokenKind.FUNGIBLE, "0x" + "12" * 20)
            )

    def test_duplicate_address_rejected(self, registry):
        with pytest.raises(ValueError, match="Duplicate token address"):
            registry.register(
                TokenDescriptor("USDC2", "Copy", 6, TokenKind.FUNGIBLE, USDC_ADDRESS.lower())
            )

    def test_native_with_address_rejected(self):
        with pytest.raises(ValueError):
            TokenDescriptor("ETH", "Ether", 18, TokenKind.NATIVE, "0x" + "12" * 20)

    def test_fungible_without_address_rejected(self):
        with pytest.raises(ValueError):
            TokenDescriptor("FOO", "Foo", 18, TokenKind.FUNGIBLE)


class TestAmounts:

    def test_to_atomic_scales_by_decimals(self):
        assert to_atomic(Decimal("1.5"), 6) == 1_500_000
        assert to_atomic(Decimal("0.000001"), 6) == 1
        assert to_atomic(Decimal("2"), 18) == 2 * 10**18

    def test_to_atomic_keeps_every_digit_of_large_amounts(self):
        assert to_atomic(Decimal("12345678901.123456789012345678"), 18) == 12345678901123456789012345678

    def test_from_atomic_keeps_every_digit_of_large_values(self):
        raw = 2**200 + 1
        assert format(from_atomic(raw, 18), "f").replace(".", "") == str(raw)

    def test_to_atomic_rejects_excess_precision(self):
        with pytest.raises(ValueError, match="decimal places"):
            to_atomic(Decimal("0.0000001"), 6)

    @pytest.mark.parametrize("amount", ["0", "-1", "NaN"])
    def test_to_atomic_rejects_non_positive(self, amount):
        with pytest.raises(ValueError):
            to_atomic(Decimal(amount), 18)

    def test_from_atomic(self):
        assert from_atomic(1_500_000, 6) == Decimal("1.5")

    def test_format_amount_trims(self):
        assert format_amount(Decimal("100.000000")) == "100"
        assert format_amount(Decimal("1.23456789")) == "1.234568"
        assert format_amount(Decimal("0")) == "0"
        assert format_amount(Decimal("0.00000001")) == "0.00000001"
