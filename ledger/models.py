"""
Ledger data models for the supply-chain tracker.
Provides the status codec and the dataclasses returned by ledger/client.py.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


class ProductStatus(str, enum.Enum):
    Created = "Created"
    InTransit = "InTransit"
    Delivered = "Delivered"


UNKNOWN_STATUS = "Unknown"

# On-chain enum ordering of the SupplyChain contract
STATUS_TO_CODE = {
    ProductStatus.Created.value: 0,
    ProductStatus.InTransit.value: 1,
    ProductStatus.Delivered.value: 2,
}
CODE_TO_STATUS = {code: status for status, code in STATUS_TO_CODE.items()}


def encode_status(status: Union[str, ProductStatus]) -> int:
    """
    Translate a store status into the contract's integer encoding.

    Raises:
        ValueError: If the status is not one of Created, InTransit, Delivered.
    """
    key = status.value if isinstance(status, ProductStatus) else status
    try:
        return STATUS_TO_CODE[key]
    except (KeyError, TypeError):
        raise ValueError(
            f"Invalid status {status!r}. Must be Created, InTransit, or Delivered"
        ) from None


def decode_status(code) -> str:
    """Translate a contract status integer; anything out of range is 'Unknown'."""
    try:
        return CODE_TO_STATUS.get(int(code), UNKNOWN_STATUS)
    except (TypeError, ValueError):
        return UNKNOWN_STATUS


@dataclass
class TxResult:
    """Outcome of a mined ledger write."""
    transaction_hash: str
    block_number: int
    chain_assigned_id: Optional[str] = None


@dataclass
class ChainProduct:
    """Read-back of a product entry from the contract."""
    status: str
    timestamp: Optional[datetime]
    exists: bool


@dataclass
class LedgerEvent:
    """A chain-observed status record. Immutable once mined."""
    status: str
    timestamp: datetime
    transaction_hash: str
    kind: str = "status"            # "created" | "status"
    block_number: int = 0
    log_index: int = 0

    @property
    def is_creation(self) -> bool:
        return self.kind == "created"
