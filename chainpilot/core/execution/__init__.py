"""
Transaction Execution Layer

Provides the infrastructure for putting transactions on chain:
- ChainClient: node access (JSON-RPC over httpx)
- NonceManager: per-account nonce sequencing under a lock
- TransactionBuilder: calldata for transfers, approvals and contract calls
- TransactionSubmitter: gas, nonce, sign, broadcast
- ConfirmationWaiter: bounded receipt polling

Usage:
    from chainpilot.core.execution import (
        JsonRpcChainClient,
        AccountContext,
        LocalAccountSigner,
        TransactionSubmitter,
        ConfirmationWaiter,
        TransactionBuilder,
    )

    client = JsonRpcChainClient("https://rpc.mantle.xyz")
    account = AccountContext.from_signer(LocalAccountSigner(key), client, 5000)
    record = await TransactionSubmitter(client).submit(
        account, TransactionBuilder.build_native_transfer(to, amount)
    )
    record = await ConfirmationWaiter(client).wait(record)
"""

from .models import (
    ContractCall,
    FeeParams,
    GasEstimate,
    PreparedTransaction,
    TxPurpose,
    TxRecord,
    TxShape,
    TxStatus,
)

from .chain_client import (
    ChainClient,
    JsonRpcChainClient,
    get_chain_client,
)

from .signer import (
    LocalAccountSigner,
    Signer,
)

from .nonce_manager import (
    NonceManager,
    NonceReservation,
    NonceState,
)

from .account import AccountContext, get_account_context

from .tx_builder import TransactionBuilder

from .submitter import TransactionSubmitter

from .confirmation import ConfirmationWaiter


__all__ = [
    # Models
    "ContractCall",
    "FeeParams",
    "GasEstimate",
    "PreparedTransaction",
    "TxPurpose",
    "TxRecord",
    "TxShape",
    "TxStatus",
    # Chain access
    "ChainClient",
    "JsonRpcChainClient",
    "get_chain_client",
    # Signing and nonces
    "LocalAccountSigner",
    "Signer",
    "NonceManager",
    "NonceReservation",
    "NonceState",
    "AccountContext",
    "get_account_context",
    # Submission
    "TransactionBuilder",
    "TransactionSubmitter",
    "ConfirmationWaiter",
]
