"""Typed action requests produced by the intent parser."""

from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class ActionKind(str, Enum):
    TRANSFER = "transfer"
    SWAP = "swap"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    STAKE = "stake"
    UNSTAKE = "unstake"

    @property
    def is_lending(self) -> bool:
        return self in LENDING_KINDS


LENDING_KINDS = frozenset({
    ActionKind.DEPOSIT,
    ActionKind.WITHDRAW,
    ActionKind.BORROW,
    ActionKind.REPAY,
})


@dataclass(frozen=True)
class ActionRequest:
    """One requested action. ``amount`` is a decimal string in token units."""
    kind: ActionKind
    amount: str
    token: str
    token_out: Optional[str] = None
    counterparty: Optional[str] = None
    protocol: Optional[str] = None
    chain: Optional[str] = None

    @property
    def amount_decimal(self) -> Decimal:
        return Decimal(self.amount)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return {k: v for k, v in data.items() if v is not None}
