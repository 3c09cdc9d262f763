from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    cors_origins: List[str] = Field(default=["*"], description="Allowed CORS origins (JSON list in env)")

    # Chain
    chain_id: int = Field(default=5000, description="EVM chain id actions are executed on")
    chain_name: str = Field(default="mantle", description="Human-readable chain name")
    rpc_url: str = Field(
        default="https://rpc.mantle.xyz",
        description="JSON-RPC endpoint",
        validation_alias=AliasChoices("rpc_url", "MANTLE_RPC_URL", "RPC_URL"),
    )
    explorer_url: str = Field(
        default="https://explorer.mantle.xyz",
        description="Block explorer base URL used for transaction links",
    )
    native_symbol: str = Field(default="MNT", description="Native gas token symbol")
    address_format: str = Field(
        default="evm",
        description="Counterparty address format accepted by the parser (evm or core)",
    )

    # Signer
    private_key: str = Field(
        default="",
        description="Hex private key of the acting wallet",
        validation_alias=AliasChoices("private_key", "EVM_PRIVATE_KEY", "MANTLE_PRIVATE_KEY"),
    )
    wallet_address: str = Field(
        default="",
        description="Optional expected wallet address, checked against the private key",
    )

    # Execution policy
    gas_limit_multiplier: float = Field(
        default=1.2,
        description="Safety multiplier applied to eth_estimateGas results",
    )
    confirmation_timeout_seconds: float = Field(
        default=60.0,
        description="How long to wait for a receipt before reporting a timeout",
    )
    confirmation_poll_interval_seconds: float = Field(
        default=2.0,
        description="Delay between receipt polls",
    )
    rpc_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for RPC calls")
    direct_erc20_transfers: bool = Field(
        default=False,
        description="Send ERC20 transfers as a single transfer() instead of approve + transferFrom",
    )

    # Risk policy
    min_health_factor: Decimal = Field(
        default=Decimal("1.05"),
        description="Lowest projected health factor a borrow or withdraw may leave behind",
    )
    swap_slippage_bps: int = Field(default=50, description="Swap slippage tolerance in basis points")
    stake_slippage_bps: int = Field(default=100, description="Stake/unstake slippage tolerance in basis points")
    swap_deadline_seconds: int = Field(default=1200, description="Router deadline offset for swaps")

    # Protocol defaults
    default_lending_protocol: str = Field(default="lendle", description="Lending protocol used when none is named")
    default_swap_protocol: str = Field(default="agni", description="DEX used when none is named")

    @field_validator("gas_limit_multiplier")
    @classmethod
    def _check_multiplier(cls, value: float) -> float:
        if value < 1:
            raise ValueError("gas_limit_multiplier must be >= 1")
        return value

    @field_validator("swap_slippage_bps", "stake_slippage_bps")
    @classmethod
    def _check_bps(cls, value: int) -> int:
        if not 0 <= value <= 10_000:
            raise ValueError("slippage must be between 0 and 10000 bps")
        return value

    @field_validator(
        "confirmation_timeout_seconds",
        "confirmation_poll_interval_seconds",
        "rpc_timeout_seconds",
        "swap_deadline_seconds",
    )
    @classmethod
    def _check_positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("address_format")
    @classmethod
    def _check_address_format(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"evm", "core"}:
            raise ValueError("address_format must be 'evm' or 'core'")
        return normalized

    @property
    def has_signer(self) -> bool:
        return bool(self.private_key)

    def explorer_tx_url(self, tx_hash: Optional[str]) -> Optional[str]:
        if not tx_hash:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


# Global settings instance
settings = Settings()
