"""
Declarative phrasing table for action intents.

Each action kind lists phrasing templates in a small notation:

    word          literal (case-insensitive)
    (a|b)         one of several literals
    [ ... ]       optional part
    {name}        placeholder: amount, token, token_in, token_out, address, venue
    single space  one or more whitespace characters

Templates compile to anchored regular expressions. Placeholders are loose on
purpose: symbols and addresses are checked against the registry and the
chain's address format after matching, so a typo becomes a precise
validation error instead of "not understood".
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .models import ActionKind


PLACEHOLDERS: Dict[str, str] = {
    "amount": r"(?P<amount>\d[\d,]*(?:\.\d+)?|\.\d+)",
    "token": r"(?P<token>\$?[A-Za-z][A-Za-z0-9]*)",
    "token_in": r"(?P<token_in>\$?[A-Za-z][A-Za-z0-9]*)",
    "token_out": r"(?P<token_out>\$?[A-Za-z][A-Za-z0-9]*)",
    "address": r"(?P<address>[^\s,]+)",
    "venue": r"(?P<venue>[A-Za-z][\w-]*)",
}

POLITE_PREFIX = r"(?:(?:please|pls|can you|could you|i want to|i'd like to|i would like to)\s+)?"

GRAMMAR: Dict[ActionKind, Tuple[str, ...]] = {
    ActionKind.TRANSFER: (
        "(send|transfer|pay) {amount} {token} to {address}[ on {venue}]",
    ),
    ActionKind.SWAP: (
        "(swap|trade|exchange|convert) {amount} {token_in} (for|to|into) {token_out}[ (on|via|using) {venue}]",
    ),
    ActionKind.DEPOSIT: (
        "(deposit|supply|lend) {amount} {token}[ (to|into|on|in) {venue}]",
    ),
    ActionKind.WITHDRAW: (
        "(withdraw|redeem) {amount} {token}[ (from|on) {venue}]",
    ),
    ActionKind.BORROW: (
        "borrow {amount} {token}[ (from|on) {venue}]",
    ),
    ActionKind.REPAY: (
        "(repay|pay back) {amount} {token}[ (to|on) {venue}]",
    ),
    ActionKind.STAKE: (
        "stake {amount}[ {token}][ (on|with|via) {venue}]",
    ),
    ActionKind.UNSTAKE: (
        "unstake[ request] {amount}[ {token}][ (from|on|via) {venue}]",
    ),
}

# Canonical phrasing used to render a request back to text
CANONICAL: Dict[ActionKind, str] = {
    ActionKind.TRANSFER: "send {amount} {token} to {address}",
    ActionKind.SWAP: "swap {amount} {token_in} for {token_out}",
    ActionKind.DEPOSIT: "deposit {amount} {token}",
    ActionKind.WITHDRAW: "withdraw {amount} {token}",
    ActionKind.BORROW: "borrow {amount} {token}",
    ActionKind.REPAY: "repay {amount} {token}",
    ActionKind.STAKE: "stake {amount} {token}",
    ActionKind.UNSTAKE: "unstake {amount} {token}",
}

_TOKEN_RE = re.compile(r"\{(\w+)\}|\(|\)|\[|\]|\||\s+|[^\s{}()\[\]|]+")


def compile_template(template: str) -> "re.Pattern[str]":
    """Translate one phrasing template into an anchored, case-insensitive regex."""
    parts: List[str] = []
    for match in _TOKEN_RE.finditer(template):
        piece = match.group(0)
        if match.group(1):
            name = match.group(1)
            if name not in PLACEHOLDERS:
                raise ValueError(f"Unknown placeholder {{{name}}} in {template!r}")
            parts.append(PLACEHOLDERS[name])
        elif piece == "(" or piece == "[":
            parts.append("(?:")
        elif piece == ")":
            parts.append(")")
        elif piece == "]":
            parts.append(")?")
        elif piece == "|":
            parts.append("|")
        elif piece.isspace():
            parts.append(r"\s+")
        else:
            parts.append(re.escape(piece))
    return re.compile(rf"^{POLITE_PREFIX}{''.join(parts)}$", re.IGNORECASE)


@dataclass(frozen=True)
class Phrasing:
    kind: ActionKind
    template: str
    pattern: "re.Pattern[str]"


def compile_grammar(
    grammar: Optional[Dict[ActionKind, Sequence[str]]] = None,
) -> List[Phrasing]:
    grammar = grammar or GRAMMAR
    return [
        Phrasing(kind, template, compile_template(template))
        for kind, templates in grammar.items()
        for template in templates
    ]
