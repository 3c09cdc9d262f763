"""
Intent parser: free text -> ActionRequest.

Pure and synchronous. Symbols are resolved through the token registry and
counterparties checked with the chain's address format, so every request
that leaves the parser names tokens the registry knows.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import ErrorContext, ParseError, ValidationFailure, ValidationReason
from ...services.address import AddressFormat, EvmAddressFormat
from ...services.tokens import TokenRegistry
from .grammar import CANONICAL, Phrasing, compile_grammar
from .models import ActionKind, ActionRequest


logger = logging.getLogger(__name__)

DEFAULT_PROTOCOLS = {
    ActionKind.SWAP: "agni",
    ActionKind.DEPOSIT: "lendle",
    ActionKind.WITHDRAW: "lendle",
    ActionKind.BORROW: "lendle",
    ActionKind.REPAY: "lendle",
    ActionKind.STAKE: "meth",
    ActionKind.UNSTAKE: "meth",
}

PROTOCOL_ALIASES = {
    "lendle": "lendle",
    "agni": "agni",
    "agnifinance": "agni",
    "meth": "meth",
    "mantle-lsp": "meth",
}

STAKE_INPUT_TOKEN = "MNT"
UNSTAKE_INPUT_TOKEN = "METH"


class IntentParser:
    """Matches text against the phrasing table and builds a request."""

    def __init__(
        self,
        registry: TokenRegistry,
        address_format: Optional[AddressFormat] = None,
        chain_name: str = "mantle",
        phrasings: Optional[List[Phrasing]] = None,
        default_protocols: Optional[Dict[ActionKind, str]] = None,
    ):
        self.registry = registry
        self.address_format = address_format or EvmAddressFormat()
        self.chain_name = chain_name.lower()
        self.phrasings = phrasings or compile_grammar()
        self.default_protocols = {**DEFAULT_PROTOCOLS, **(default_protocols or {})}

    def parse(self, text: str, kinds: Optional[Iterable[ActionKind]] = None) -> ActionRequest:
        """
        Parse ``text`` into an ActionRequest.

        Args:
            text: User message
            kinds: Restrict matching to these action kinds

        Raises:
            ParseError: nothing in the phrasing table matches
            ValidationFailure: matched, but names an unknown token or a
                malformed counterparty address
        """
        cleaned = " ".join((text or "").split()).rstrip(".!?")
        if not cleaned:
            raise ParseError("Please tell me what you would like to do.")

        allowed = set(kinds) if kinds is not None else None
        for phrasing in self.phrasings:
            if allowed is not None and phrasing.kind not in allowed:
                continue
            match = phrasing.pattern.match(cleaned)
            if match:
                logger.debug(f"Matched {phrasing.kind.value} phrasing: {phrasing.template}")
                return self._build(phrasing.kind, match.groupdict())

        raise ParseError(
            f"I couldn't understand \"{text.strip()}\". "
            "Try something like \"send 1 MNT to 0x...\" or \"borrow 100 USDC from Lendle\"."
        )

    def _build(self, kind: ActionKind, fields: dict) -> ActionRequest:
        amount = self._amount(fields["amount"])

        if kind == ActionKind.SWAP:
            token = self._token(fields["token_in"])
            token_out = self._token(fields["token_out"])
        else:
            symbol = fields.get("token")
            if not symbol:
                symbol = STAKE_INPUT_TOKEN if kind == ActionKind.STAKE else UNSTAKE_INPUT_TOKEN
            token = self._token(symbol)
            token_out = None

        counterparty = None
        if kind == ActionKind.TRANSFER:
            counterparty = self._address(fields["address"])

        protocol, chain = self._venue(kind, fields.get("venue"))

        return ActionRequest(
            kind=kind,
            amount=amount,
            token=token,
            token_out=token_out,
            counterparty=counterparty,
            protocol=protocol,
            chain=chain,
        )

    def _amount(self, raw: str) -> str:
        try:
            value = Decimal(raw.replace(",", ""))
        except InvalidOperation as e:
            raise ParseError(f"\"{raw}\" is not a valid amount") from e
        if value <= 0:
            raise ParseError("The amount must be greater than zero")
        return format(value.normalize(), "f")

    def _token(self, raw: str) -> str:
        symbol = raw.lstrip("$")
        token = self.registry.resolve_symbol(symbol)
        if token is None:
            supported = ", ".join(t.symbol for t in self.registry.all())
            raise ValidationFailure(
                ValidationReason.UNSUPPORTED_TOKEN,
                f"Unsupported token {symbol.upper()}. Supported tokens: {supported}",
                ErrorContext(details={"symbol": symbol}),
            )
        return token.symbol

    def _address(self, raw: str) -> str:
        if not self.address_format.is_valid(raw):
            raise ValidationFailure(
                ValidationReason.INVALID_COUNTERPARTY,
                f"Invalid address format: {raw}. "
                f"Expected a valid {self.address_format.name.upper()} address.",
                ErrorContext(details={"address": raw}),
            )
        return self.address_format.normalize(raw)

    def _venue(self, kind: ActionKind, venue: Optional[str]):
        protocol = self.default_protocols.get(kind)
        chain = None
        if venue:
            key = venue.lower()
            if key in PROTOCOL_ALIASES:
                protocol = PROTOCOL_ALIASES[key]
            else:
                # Anything that is not a protocol is read as a chain name
                chain = key
        return protocol, chain


def format_request(request: ActionRequest) -> str:
    """Render a request in canonical phrasing; parses back to the same fields."""
    template = CANONICAL[request.kind]
    text = template.format(
        amount=request.amount,
        token=request.token,
        token_in=request.token,
        token_out=request.token_out or "",
        address=request.counterparty or "",
    )
    if request.kind == ActionKind.TRANSFER:
        if request.chain:
            text += f" on {request.chain}"
    elif request.protocol:
        text += f" on {request.protocol}"
    return text


def supported_phrasings(phrasings: Optional[Sequence[Phrasing]] = None) -> List[str]:
    return [p.template for p in (phrasings or compile_grammar())]
