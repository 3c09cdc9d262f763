"""
Tests for building the acting account from settings.
"""

import pytest
from eth_account import Account

from chainpilot.config import Settings
from chainpilot.core.execution.account import AccountContext


KEY = "0x" + "11" * 32


def test_from_settings_binds_key_and_chain(fake_chain):
    account = AccountContext.from_settings(fake_chain, Settings(private_key=KEY, chain_id=5000))

    assert account.address == Account.from_key(KEY).address
    assert account.chain_id == 5000


def test_wallet_address_must_match_key(fake_chain):
    config = Settings(private_key=KEY, wallet_address="0x" + "22" * 20)

    with pytest.raises(ValueError, match="does not match"):
        AccountContext.from_settings(fake_chain, config)


def test_core_address_format_cannot_sign(fake_chain):
    config = Settings(private_key=KEY, address_format="core")

    with pytest.raises(ValueError, match="Cannot sign for 'core' addresses"):
        AccountContext.from_settings(fake_chain, config)
