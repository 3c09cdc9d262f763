"""Calldata encoding and return-data decoding from human-readable signatures."""

from functools import lru_cache
from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address


@lru_cache(maxsize=256)
def function_selector(signature: str) -> bytes:
    """4-byte selector of e.g. ``transfer(address,uint256)``."""
    return function_signature_to_4byte_selector(signature)


@lru_cache(maxsize=256)
def argument_types(signature: str) -> Tuple[str, ...]:
    """Split the argument list of a canonical signature into ABI types.

    Handles nested tuples and arrays, e.g. ``f(address[],(uint256,bool))``.
    """
    start = signature.index("(")
    if not signature.endswith(")"):
        raise ValueError(f"Malformed signature: {signature}")
    inner = signature[start + 1:-1]
    if not inner:
        return ()

    types: List[str] = []
    depth = 0
    current = ""
    for char in inner:
        if char == "," and depth == 0:
            types.append(current)
            current = ""
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        current += char
    types.append(current)
    return tuple(t.strip() for t in types)


def _coerce(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type == "address[]":
        return [to_checksum_address(v) for v in value]
    return value


def encode_call(signature: str, args: Sequence[Any] = ()) -> str:
    """Hex calldata (0x-prefixed) for calling ``signature`` with ``args``."""
    types = argument_types(signature)
    if len(types) != len(args):
        raise ValueError(
            f"{signature} takes {len(types)} arguments, got {len(args)}"
        )
    coerced = [_coerce(t, a) for t, a in zip(types, args)]
    payload = function_selector(signature) + encode(list(types), coerced)
    return "0x" + payload.hex()


def decode_result(output_types: Sequence[str], data: str) -> Tuple[Any, ...]:
    raw = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    if not output_types:
        return ()
    return decode(list(output_types), raw)
