import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from eth_utils import to_checksum_address

from chainpilot.config import Settings
from chainpilot.core.errors import ChainClientError
from chainpilot.core.execution.abi import decode_result, function_selector
from chainpilot.core.execution.account import AccountContext
from chainpilot.core.execution.chain_client import ChainClient
from chainpilot.core.execution.models import FeeParams
from chainpilot.core.execution.signer import Signer
from chainpilot.core.execution.tx_builder import ERC20_APPROVE, ERC20_TRANSFER, ERC20_TRANSFER_FROM
from chainpilot.core.orchestrator import build_action_orchestrator
from chainpilot.core.protocols.agni import AGNI_ROUTER, SWAP_EXACT_TOKENS_FOR_MNT, SWAP_EXACT_TOKENS_FOR_TOKENS
from chainpilot.core.protocols.lendle import (
    DEPOSIT,
    GET_ASSET_PRICE,
    GET_USER_ACCOUNT_DATA,
    LENDING_POOL,
    LENDLE_MARKETS,
    PRICE_ORACLE,
    REPAY,
)
from chainpilot.core.protocols.meth_staking import STAKING_ADDRESS, UNSTAKE_REQUEST
from chainpilot.services.chains import ChainContext
from chainpilot.services.tokens import MANTLE_TOKENS, TokenRegistry


WALLET = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"

APPROVE_SELECTOR = "0x" + function_selector(ERC20_APPROVE).hex()
TRANSFER_SELECTOR = "0x" + function_selector(ERC20_TRANSFER).hex()
TRANSFER_FROM_SELECTOR = "0x" + function_selector(ERC20_TRANSFER_FROM).hex()
DEPOSIT_SELECTOR = "0x" + function_selector(DEPOSIT).hex()
REPAY_SELECTOR = "0x" + function_selector(REPAY).hex()
TOKEN_SWAP_SELECTORS = tuple(
    "0x" + function_selector(sig).hex()
    for sig in (SWAP_EXACT_TOKENS_FOR_MNT, SWAP_EXACT_TOKENS_FOR_TOKENS)
)
UNSTAKE_SELECTOR = "0x" + function_selector(UNSTAKE_REQUEST).hex()

METH_ADDRESS = TokenRegistry(MANTLE_TOKENS).resolve_symbol("METH").contract_address

MAX_UINT = 2**256 - 1


class FakeSigner(Signer):
    """Signs by serializing the transaction to JSON bytes."""

    def __init__(self, address: str = WALLET, fail: bool = False):
        self._address = to_checksum_address(address)
        self.fail = fail
        self.signed: List[Dict[str, Any]] = []

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, tx: Dict[str, Any]) -> bytes:
        if self.fail:
            raise RuntimeError("hardware wallet disconnected")
        self.signed.append(dict(tx))
        return json.dumps({**tx, "from": self._address}).encode()


class FakeChain(ChainClient):
    """
    In-memory chain: native and token balances, allowances, contract read
    handlers, nonces, receipts. Knobs on the instance inject node lag,
    delays and failures.
    """

    def __init__(self, chain_id: int = 5000):
        self.chain_id = chain_id
        self.native: Dict[str, int] = {}
        self.tokens: Dict[Tuple[str, str], int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.reads: Dict[Tuple[str, str], Any] = {}
        self.nonces: Dict[str, int] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.sent: List[Dict[str, Any]] = []

        self.gas = 60_000
        self.fees = FeeParams(max_fee_per_gas=2 * 10**9, max_priority_fee_per_gas=10**6)
        self.pending_lag = 0                # node under-reports the pending count
        self.send_delay = 0.0
        self.send_errors: List[ChainClientError] = []
        self.estimate_error: Optional[ChainClientError] = None
        self.read_error: Optional[ChainClientError] = None
        self.fail_reads_after_sends: Optional[int] = None
        self.receipt_errors = 0             # receipt lookups that fail before one succeeds
        self.receipt_delay = 0.0
        self.mine = True
        self.revert_to: set = set()
        self.read_count = 0

    # Seeding helpers

    def set_native_balance(self, owner: str, amount: int) -> None:
        self.native[owner.lower()] = amount

    def set_token_balance(self, token: str, owner: str, amount: int) -> None:
        self.tokens[(token.lower(), owner.lower())] = amount

    def set_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        self.allowances[(token.lower(), owner.lower(), spender.lower())] = amount

    def set_read(self, address: str, signature: str, result: Any) -> None:
        """``result`` is a tuple of outputs or a callable taking the call args."""
        self.reads[(address.lower(), signature)] = result

    def sent_by_selector(self, selector: str) -> List[Dict[str, Any]]:
        return [tx for tx in self.sent if tx["data"].startswith(selector)]

    # ChainClient

    def _check_read(self) -> None:
        self.read_count += 1
        if self.read_error is not None:
            raise self.read_error
        if self.fail_reads_after_sends is not None and len(self.sent) >= self.fail_reads_after_sends:
            raise ChainClientError("RPC error: upstream request timeout", code=-32603)

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def get_balance(self, address: str) -> int:
        self._check_read()
        return self.native.get(address.lower(), 0)

    async def read_contract(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Tuple[Any, ...]:
        self._check_read()
        address = address.lower()
        if signature == "balanceOf(address)":
            return (self.tokens.get((address, args[0].lower()), 0),)
        if signature == "allowance(address,address)":
            return (self.allowances.get((address, args[0].lower(), args[1].lower()), 0),)

        handler = self.reads.get((address, signature))
        if handler is None:
            raise ChainClientError(f"RPC error: execution reverted ({signature})", code=3)
        result = handler(*args) if callable(handler) else handler
        return tuple(result)

    async def estimate_gas(self, call: Dict[str, Any]) -> int:
        if self.estimate_error is not None:
            raise self.estimate_error
        if call.get("data") in (None, "0x"):
            return 21_000
        return self.gas

    async def get_fee_params(self) -> FeeParams:
        return self.fees

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return max(self.nonces.get(address.lower(), 0) - self.pending_lag, 0)

    async def send_raw_transaction(self, raw_tx) -> str:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_errors:
            raise self.send_errors.pop(0)

        tx = json.loads(raw_tx)
        sender = tx["from"].lower()
        expected = self.nonces.get(sender, 0)
        if tx["nonce"] < expected:
            raise ChainClientError("RPC error: nonce too low", code=-32000)
        self.nonces[sender] = tx["nonce"] + 1

        tx_hash = "0x" + f"{len(self.sent) + 1:064x}"
        tx["hash"] = tx_hash
        self.sent.append(tx)

        reverted = tx["to"].lower() in self.revert_to or not self._apply(tx)
        self.receipts[tx_hash] = {
            "transactionHash": tx_hash,
            "status": "0x0" if reverted else "0x1",
            "blockNumber": hex(1000 + len(self.sent)),
            "gasUsed": hex(tx["gas"] // 2),
        }
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        if self.receipt_delay:
            await asyncio.sleep(self.receipt_delay)
        if self.receipt_errors > 0:
            self.receipt_errors -= 1
            raise ChainClientError("RPC error: header not found")
        if not self.mine:
            return None
        return self.receipts.get(tx_hash)

    def _apply(self, tx: Dict[str, Any]) -> bool:
        """Apply ``tx`` to state. False, with nothing changed, when it would revert."""
        sender = tx["from"].lower()
        to = tx["to"].lower()
        data = tx["data"]

        spend = self._token_spend(sender, to, data)
        if spend is not None:
            token, owner, spender, dst, amount = spend
            if self.tokens.get((token, owner), 0) < amount:
                return False
            if spender is not None and self.allowances.get((token, owner, spender), 0) < amount:
                return False

        if tx["value"]:
            self.native[sender] = self.native.get(sender, 0) - tx["value"]
            if data == "0x":
                self.native[to] = self.native.get(to, 0) + tx["value"]

        if data.startswith(APPROVE_SELECTOR):
            spender, amount = decode_result(["address", "uint256"], "0x" + data[10:])
            self.allowances[(to, sender, spender.lower())] = amount
        elif spend is not None:
            token, owner, spender, dst, amount = spend
            key = (token, owner, spender)
            if spender is not None and self.allowances[key] != MAX_UINT:
                self.allowances[key] -= amount
            self._move(token, owner, dst, amount)
        return True

    def _token_spend(self, sender: str, to: str, data: str) -> Optional[Tuple[str, str, Optional[str], str, int]]:
        """(token, owner, spender, recipient, amount) for calls that move ERC20s.

        ``spender`` is None for a plain transfer, which needs no allowance.
        """
        args = "0x" + data[10:]
        if data.startswith(TRANSFER_SELECTOR):
            dst, amount = decode_result(["address", "uint256"], args)
            return to, sender, None, dst.lower(), amount
        if data.startswith(TRANSFER_FROM_SELECTOR):
            src, dst, amount = decode_result(["address", "address", "uint256"], args)
            return to, src.lower(), sender, dst.lower(), amount

        # Protocol contracts pull the input token from the caller
        if to == LENDING_POOL.lower() and data.startswith((DEPOSIT_SELECTOR, REPAY_SELECTOR)):
            asset, amount = decode_result(["address", "uint256"], "0x" + data[10:138])
            return asset.lower(), sender, to, to, amount
        if to == AGNI_ROUTER.lower() and data.startswith(TOKEN_SWAP_SELECTORS):
            amount, _, path, _, _ = decode_result(
                ["uint256", "uint256", "address[]", "address", "uint256"], args
            )
            return path[0].lower(), sender, to, to, amount
        if to == STAKING_ADDRESS.lower() and data.startswith(UNSTAKE_SELECTOR):
            amount, _ = decode_result(["uint128", "uint128"], args)
            return METH_ADDRESS.lower(), sender, to, to, amount
        return None

    def _move(self, token: str, src: str, dst: str, amount: int) -> None:
        self.tokens[(token, src)] = self.tokens.get((token, src), 0) - amount
        self.tokens[(token, dst)] = self.tokens.get((token, dst), 0) + amount


@pytest.fixture
def wallet() -> str:
    return to_checksum_address(WALLET)


@pytest.fixture
def recipient() -> str:
    return to_checksum_address(RECIPIENT)


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def account(fake_chain, signer) -> AccountContext:
    return AccountContext.from_signer(signer, fake_chain, fake_chain.chain_id)


@pytest.fixture
def registry() -> TokenRegistry:
    return TokenRegistry(MANTLE_TOKENS)


@pytest.fixture
def chain_context() -> ChainContext:
    return ChainContext(
        chain_id=5000,
        name="mantle",
        rpc_endpoint="http://fake-node",
        explorer_base_url="https://explorer.mantle.xyz",
        native_symbol="MNT",
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        confirmation_timeout_seconds=0.2,
        confirmation_poll_interval_seconds=0.01,
        private_key="",
        wallet_address="",
    )


@pytest.fixture
def orchestrator(fake_chain, chain_context, registry, test_settings):
    return build_action_orchestrator(
        fake_chain, chain=chain_context, registry=registry, config=test_settings
    )


@pytest.fixture
def run_action(orchestrator, account) -> Callable:
    """Collect every notification for one instruction."""

    async def _run(text: str, acct: Optional[AccountContext] = None):
        return [n async for n in orchestrator.execute_action(text, acct or account)]

    return _run


@pytest.fixture
def token_address(registry) -> Callable[[str], str]:
    def _address(symbol: str) -> str:
        return registry.resolve_symbol(symbol).contract_address

    return _address


@pytest.fixture
def lendle_position(fake_chain, wallet) -> Callable:
    """
    Seed a Lendle position. Values are whole base-currency units (18
    decimals on chain); every asset is priced at 1 base unit per token unless
    ``prices`` overrides it.
    """

    def _seed(
        collateral: int = 0,
        debt: int = 0,
        available: int = 0,
        liquidation_threshold_bps: int = 8000,
        ltv_bps: int = 7500,
        prices: Optional[Dict[str, int]] = None,
        supplied: Optional[Dict[str, int]] = None,
        borrowed: Optional[Dict[str, int]] = None,
    ) -> None:
        base = 10**18
        if debt:
            health = collateral * liquidation_threshold_bps * base // (10_000 * debt)
        else:
            health = MAX_UINT
        fake_chain.set_read(
            LENDING_POOL,
            GET_USER_ACCOUNT_DATA,
            (collateral * base, debt * base, available * base, liquidation_threshold_bps, ltv_bps, health),
        )

        price_table = {
            market.underlying.lower(): (prices or {}).get(symbol, base)
            for symbol, market in LENDLE_MARKETS.items()
        }
        fake_chain.set_read(PRICE_ORACLE, GET_ASSET_PRICE, lambda asset: (price_table[asset.lower()],))

        for symbol, amount in (supplied or {}).items():
            fake_chain.set_token_balance(LENDLE_MARKETS[symbol].a_token, wallet, amount)
        for symbol, amount in (borrowed or {}).items():
            fake_chain.set_token_balance(LENDLE_MARKETS[symbol].variable_debt_token, wallet, amount)

    return _seed
