from decimal import Decimal

import pytest
from pydantic import ValidationError

from chainpilot.config import Settings


def test_rpc_url_alias(monkeypatch):
    """RPC endpoint should load from the chain-specific alias when present."""

    monkeypatch.delenv("RPC_URL", raising=False)
    monkeypatch.setenv("MANTLE_RPC_URL", "https://rpc.example.org")

    settings = Settings()

    assert settings.rpc_url == "https://rpc.example.org"


def test_private_key_alias(monkeypatch):
    """Signer key may come from EVM_PRIVATE_KEY."""

    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    monkeypatch.delenv("MANTLE_PRIVATE_KEY", raising=False)
    monkeypatch.setenv("EVM_PRIVATE_KEY", "0x" + "11" * 32)

    settings = Settings()

    assert settings.private_key == "0x" + "11" * 32
    assert settings.has_signer


def test_policy_values_from_env(monkeypatch):
    monkeypatch.setenv("MIN_HEALTH_FACTOR", "1.5")
    monkeypatch.setenv("SWAP_SLIPPAGE_BPS", "100")
    monkeypatch.setenv("DIRECT_ERC20_TRANSFERS", "true")

    settings = Settings()

    assert settings.min_health_factor == Decimal("1.5")
    assert settings.swap_slippage_bps == 100
    assert settings.direct_erc20_transfers is True


def test_address_format_is_normalized():
    assert Settings(address_format=" CORE ").address_format == "core"


@pytest.mark.parametrize(
    "overrides",
    [
        {"address_format": "solana"},
        {"gas_limit_multiplier": 0.5},
        {"swap_slippage_bps": 10_001},
        {"stake_slippage_bps": -1},
        {"confirmation_timeout_seconds": 0},
        {"confirmation_poll_interval_seconds": -2},
    ],
)
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_explorer_tx_url():
    settings = Settings(explorer_url="https://explorer.mantle.xyz/")

    assert settings.explorer_tx_url("0xabc") == "https://explorer.mantle.xyz/tx/0xabc"
    assert settings.explorer_tx_url(None) is None
