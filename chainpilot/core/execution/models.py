"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class TxStatus(str, Enum):
    """On-chain lifecycle of a submitted transaction."""
    PENDING = "pending"          # Accepted by the node, no receipt yet
    CONFIRMED = "confirmed"      # Receipt with status 1
    FAILED = "failed"            # Receipt with status 0
    TIMED_OUT = "timed_out"      # No receipt before the deadline


class TxPurpose(str, Enum):
    APPROVAL = "approval"
    ACTION = "action"


class TxShape(str, Enum):
    """How a call is classified before submission."""
    VALUE_TRANSFER = "value_transfer"    # Plain native send, no calldata
    PAYABLE_CALL = "payable_call"        # Contract call carrying value
    CONTRACT_CALL = "contract_call"      # Contract call, zero value


@dataclass(frozen=True)
class ContractCall:
    """Target, calldata and value of a single transaction to send."""
    to: str
    data: str = "0x"
    value: int = 0
    description: str = ""

    @property
    def shape(self) -> TxShape:
        if self.data in ("", "0x"):
            return TxShape.VALUE_TRANSFER
        if self.value > 0:
            return TxShape.PAYABLE_CALL
        return TxShape.CONTRACT_CALL


@dataclass
class FeeParams:
    """Fee fields for a transaction: EIP-1559 when available, legacy otherwise."""
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None


@dataclass
class GasEstimate:
    """Gas estimation for a transaction."""
    gas_limit: int
    fees: FeeParams


@dataclass
class PreparedTransaction:
    """A transaction ready to be signed and broadcast."""
    chain_id: int
    from_address: str
    to_address: str
    data: str
    value: int = 0
    nonce: Optional[int] = None
    gas_estimate: Optional[GasEstimate] = None

    def call_object(self) -> Dict[str, Any]:
        """JSON-RPC call object used for eth_estimateGas."""
        call = {
            "from": self.from_address,
            "to": self.to_address,
            "data": self.data,
        }
        if self.value > 0:
            call["value"] = hex(self.value)
        return call

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dictionary shape a signer expects."""
        if self.nonce is None or self.gas_estimate is None:
            raise ValueError("nonce and gas estimate are required before signing")
        tx = {
            "chainId": self.chain_id,
            "to": self.to_address,
            "data": self.data,
            "value": self.value,
            "nonce": self.nonce,
            "gas": self.gas_estimate.gas_limit,
        }
        fees = self.gas_estimate.fees
        if fees.is_eip1559:
            tx["maxFeePerGas"] = fees.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = fees.max_priority_fee_per_gas or 0
        else:
            tx["gasPrice"] = fees.gas_price
        return tx


class TerminalStatusError(RuntimeError):
    """A TxRecord was asked to leave a terminal status."""


@dataclass
class TxRecord:
    """A transaction this process submitted, tracked until it is terminal."""
    hash: str
    submitted_at_nonce: int
    purpose: TxPurpose = TxPurpose.ACTION
    status: TxStatus = TxStatus.PENDING
    description: str = ""
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    finalized_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != TxStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self.status == TxStatus.CONFIRMED

    def finalize(
        self,
        status: TxStatus,
        block_number: Optional[int] = None,
        gas_used: Optional[int] = None,
    ) -> "TxRecord":
        """Move from Pending to a terminal status. Allowed exactly once."""
        if self.is_terminal:
            raise TerminalStatusError(
                f"Transaction {self.hash} is already {self.status.value}"
            )
        if status == TxStatus.PENDING:
            raise ValueError("finalize() needs a terminal status")
        self.status = status
        self.block_number = block_number
        self.gas_used = gas_used
        self.finalized_at = datetime.now(timezone.utc)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "nonce": self.submitted_at_nonce,
            "purpose": self.purpose.value,
            "status": self.status.value,
            "description": self.description,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
            "submittedAt": self.submitted_at.isoformat(),
        }
