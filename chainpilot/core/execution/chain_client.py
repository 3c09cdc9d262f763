"""
Chain client capability.

Everything the pipeline needs from a node: balances, allowances, read-only
contract calls, gas and fee data, nonce counts, raw transaction submission
and receipt lookup. ``JsonRpcChainClient`` speaks plain JSON-RPC over httpx;
tests substitute an in-memory implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from ..errors import ChainClientError
from .abi import decode_result, encode_call
from .models import FeeParams


logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_000_000  # Mantle tips are tiny


class ChainClient(ABC):
    """Node access used by every pipeline stage."""

    @abstractmethod
    async def get_chain_id(self) -> int:
        ...

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        ...

    @abstractmethod
    async def read_contract(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        ...

    @abstractmethod
    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def get_fee_params(self) -> FeeParams:
        ...

    @abstractmethod
    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        ...

    @abstractmethod
    async def send_raw_transaction(self, raw_tx: Union[bytes, str]) -> str:
        """Broadcast a signed transaction and return its hash."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt dict, or None while the transaction is not yet mined."""
        ...

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        (balance,) = await self.read_contract(
            token_address, "balanceOf(address)", [owner], ["uint256"]
        )
        return balance

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        (allowance,) = await self.read_contract(
            token_address, "allowance(address,address)", [owner, spender], ["uint256"]
        )
        return allowance

    async def close(self) -> None:
        return None


class JsonRpcChainClient(ChainClient):
    """ChainClient backed by an HTTP JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call, raising ChainClientError on transport or node errors."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            raise ChainClientError(f"{method} transport error: {e}") from e
        except ValueError as e:
            raise ChainClientError(f"{method} returned invalid JSON") from e

        if "error" in result and result["error"]:
            error = result["error"]
            if isinstance(error, dict):
                raise ChainClientError(
                    f"RPC error: {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data"),
                )
            raise ChainClientError(f"RPC error: {error}")

        return result.get("result")

    async def get_chain_id(self) -> int:
        return int(await self._rpc_call("eth_chainId", []), 16)

    async def get_balance(self, address: str) -> int:
        return int(await self._rpc_call("eth_getBalance", [address, "latest"]), 16)

    async def read_contract(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        data = encode_call(signature, args)
        raw = await self._rpc_call("eth_call", [{"to": address, "data": data}, "latest"])
        if not raw or raw == "0x":
            raise ChainClientError(f"{signature} on {address} returned no data")
        try:
            return decode_result(output_types, raw)
        except Exception as e:
            raise ChainClientError(f"Could not decode {signature} result: {e}") from e

    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        return int(await self._rpc_call("eth_estimateGas", [call]), 16)

    async def get_fee_params(self) -> FeeParams:
        try:
            fee_history = await self._rpc_call("eth_feeHistory", [1, "latest", [50]])
        except ChainClientError as e:
            logger.debug(f"eth_feeHistory unavailable, using legacy gas price: {e}")
            fee_history = None

        base_fees = (fee_history or {}).get("baseFeePerGas") or []
        if base_fees:
            base_fee = int(base_fees[-1], 16)
            rewards = fee_history.get("reward") or []
            if rewards and rewards[0]:
                priority_fee = int(rewards[0][0], 16)
            else:
                priority_fee = DEFAULT_PRIORITY_FEE_WEI
            return FeeParams(
                max_fee_per_gas=base_fee * 2 + priority_fee,
                max_priority_fee_per_gas=priority_fee,
            )

        gas_price = int(await self._rpc_call("eth_gasPrice", []), 16)
        return FeeParams(gas_price=gas_price)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(await self._rpc_call("eth_getTransactionCount", [address, block]), 16)

    async def send_raw_transaction(self, raw_tx: Union[bytes, str]) -> str:
        if isinstance(raw_tx, (bytes, bytearray)):
            raw_tx = "0x" + bytes(raw_tx).hex()
        tx_hash = await self._rpc_call("eth_sendRawTransaction", [raw_tx])
        logger.info(f"Transaction submitted: {tx_hash}")
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._rpc_call("eth_getTransactionReceipt", [tx_hash])

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


_chain_client: Optional[ChainClient] = None


def get_chain_client() -> ChainClient:
    """Get the singleton JSON-RPC client for the configured chain."""
    global _chain_client
    if _chain_client is None:
        from ...config import settings
        _chain_client = JsonRpcChainClient(settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    return _chain_client
