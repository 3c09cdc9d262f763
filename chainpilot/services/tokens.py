"""
Token registry.

Resolves user-typed symbols (and aliases) and contract addresses to token
descriptors, and converts between human decimal amounts and atomic units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


# Enough significant digits for any uint256 amount
UINT256_DIGITS = 78


class TokenKind(str, Enum):
    NATIVE = "native"
    FUNGIBLE = "fungible"


@dataclass(frozen=True)
class TokenDescriptor:
    """A token the agent knows how to move."""

    symbol: str
    display_name: str
    decimal_places: int
    kind: TokenKind
    contract_address: Optional[str] = None
    aliases: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.kind == TokenKind.NATIVE and self.contract_address is not None:
            raise ValueError(f"Native token {self.symbol} cannot have a contract address")
        if self.kind == TokenKind.FUNGIBLE and not self.contract_address:
            raise ValueError(f"Fungible token {self.symbol} needs a contract address")

    @property
    def is_native(self) -> bool:
        return self.kind == TokenKind.NATIVE

    def to_atomic(self, amount: Decimal) -> int:
        return to_atomic(amount, self.decimal_places)

    def from_atomic(self, value: int) -> Decimal:
        return from_atomic(value, self.decimal_places)


def to_atomic(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to integer base units.

    Raises ValueError when the amount is not positive or carries more
    precision than the token supports.
    """
    try:
        amount = Decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValueError("Amount must be a positive number")
    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def from_atomic(value: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS
        return Decimal(int(value)).scaleb(-decimals)


def format_amount(amount: Decimal, max_places: int = 6) -> str:
    """Trim an amount for display: no exponent, no trailing zeros."""
    quantum = Decimal(1).scaleb(-max_places)
    if amount != 0 and abs(amount) < quantum:
        text = format(amount.normalize(), "f")
    else:
        text = format(amount.quantize(quantum).normalize(), "f")
    return text


class TokenRegistry:
    """Lookup table keyed by symbol (plus aliases) and by contract address."""

    def __init__(self, tokens: Iterable[TokenDescriptor] = ()):
        self._by_symbol: Dict[str, TokenDescriptor] = {}
        self._by_alias: Dict[str, TokenDescriptor] = {}
        self._by_address: Dict[str, TokenDescriptor] = {}
        for token in tokens:
            self.register(token)

    def register(self, token: TokenDescriptor) -> None:
        key = token.symbol.upper()
        if key in self._by_symbol:
            raise ValueError(f"Duplicate token symbol: {token.symbol}")
        self._by_symbol[key] = token
        for alias in token.aliases:
            self._by_alias.setdefault(alias.upper(), token)
        if token.contract_address:
            address_key = token.contract_address.lower()
            if address_key in self._by_address:
                raise ValueError(f"Duplicate token address: {token.contract_address}")
            self._by_address[address_key] = token

    def resolve_symbol(self, symbol: str) -> Optional[TokenDescriptor]:
        if not symbol:
            return None
        key = symbol.strip().upper()
        return self._by_symbol.get(key) or self._by_alias.get(key)

    def resolve_address(self, address: str) -> Optional[TokenDescriptor]:
        if not address:
            return None
        return self._by_address.get(address.strip().lower())

    @property
    def native(self) -> Optional[TokenDescriptor]:
        for token in self._by_symbol.values():
            if token.is_native:
                return token
        return None

    def all(self) -> List[TokenDescriptor]:
        return list(self._by_symbol.values())

    def __contains__(self, symbol: str) -> bool:
        return self.resolve_symbol(symbol) is not None

    def __len__(self) -> int:
        return len(self._by_symbol)


MANTLE_TOKENS: Tuple[TokenDescriptor, ...] = (
    TokenDescriptor("MNT", "Mantle", 18, TokenKind.NATIVE, aliases=("MANTLE",)),
    TokenDescriptor(
        "USDT", "Tether USD", 6, TokenKind.FUNGIBLE,
        "0x201EBa5CC46D216Ce6DC03F6a759e8E766e956aE", aliases=("TETHER",),
    ),
    TokenDescriptor(
        "USDC", "USD Coin", 6, TokenKind.FUNGIBLE,
        "0x09Bc4E0D864854c6aFB6eB9A9cdF58aC190D0dF9",
    ),
    TokenDescriptor(
        "METH", "Mantle Staked Ether", 18, TokenKind.FUNGIBLE,
        "0xcDA86A272531e8640cD7F1a92c01839911B90bb0",
    ),
    TokenDescriptor(
        "CMETH", "Restaked mETH", 18, TokenKind.FUNGIBLE,
        "0xE6829d9a7eE3040e1276Fa75293Bde931859e8fA",
    ),
    TokenDescriptor(
        "WMNT", "Wrapped Mantle", 18, TokenKind.FUNGIBLE,
        "0x78c1b0C915c4FAA5FffA6CAbf0219DA63d7f4cb8",
    ),
    TokenDescriptor(
        "WBTC", "Wrapped Bitcoin", 8, TokenKind.FUNGIBLE,
        "0xCAbAE6f6Ea1ecaB08Ad02fE02ce9A44F09aebfA2", aliases=("BTC",),
    ),
    TokenDescriptor(
        "WETH", "Wrapped Ether", 18, TokenKind.FUNGIBLE,
        "0xdEaddEaDdeadDEadDEADDEAddEADDEAddead1111", aliases=("ETH",),
    ),
    TokenDescriptor(
        "AGNI", "Agni Finance", 18, TokenKind.FUNGIBLE,
        "0x45579918686B26951b899A1A5e7282e53f4c8136",
    ),
)


_token_registry: Optional[TokenRegistry] = None


def get_token_registry() -> TokenRegistry:
    """Get the singleton registry loaded with the Mantle token table."""
    global _token_registry
    if _token_registry is None:
        _token_registry = TokenRegistry(MANTLE_TOKENS)
    return _token_registry
