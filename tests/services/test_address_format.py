"""
Tests for counterparty address formats.
"""

import pytest
from eth_utils import to_checksum_address

from chainpilot.services.address import (
    CoreAddressFormat,
    EvmAddressFormat,
    get_address_format,
)


CORE_ADDRESS = "cfx:aak2rra2njvd77ezwjvx04kkds9fzagfe6ku8scz91"


class TestEvmAddressFormat:

    def test_accepts_hex_address(self):
        fmt = EvmAddressFormat()
        assert fmt.is_valid("0x2222222222222222222222222222222222222222")
        assert fmt.is_valid("0xAbCdEf0123456789aBcDeF0123456789AbCdEf01")

    @pytest.mark.parametrize(
        "address",
        [
            "",
            "0x123",
            "2222222222222222222222222222222222222222",
            "0xZZ22222222222222222222222222222222222222",
            "0x22222222222222222222222222222222222222222",
            CORE_ADDRESS,
        ],
    )
    def test_rejects_malformed(self, address):
        assert not EvmAddressFormat().is_valid(address)

    def test_normalizes_to_checksum(self):
        raw = "0xabcdef0123456789abcdef0123456789abcdef01"
        normalized = EvmAddressFormat().normalize(raw)
        assert normalized == to_checksum_address(raw)
        assert EvmAddressFormat().normalize(normalized.lower()) == normalized


class TestCoreAddressFormat:

    def test_accepts_prefixed_base32(self):
        fmt = CoreAddressFormat()
        assert fmt.is_valid(CORE_ADDRESS)
        assert fmt.is_valid(CORE_ADDRESS.upper())
        assert fmt.is_valid("cfxtest:" + CORE_ADDRESS.split(":")[1])

    def test_rejects_hex_and_short(self):
        fmt = CoreAddressFormat()
        assert not fmt.is_valid("0x2222222222222222222222222222222222222222")
        assert not fmt.is_valid("cfx:short")
        assert not fmt.is_valid("")

    def test_normalizes_to_lowercase(self):
        assert CoreAddressFormat().normalize(CORE_ADDRESS.upper()) == CORE_ADDRESS


def test_get_address_format():
    assert isinstance(get_address_format("EVM"), EvmAddressFormat)
    assert isinstance(get_address_format("core"), CoreAddressFormat)
    with pytest.raises(ValueError):
        get_address_format("solana")
