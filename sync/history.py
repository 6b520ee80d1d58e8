"""
History merge — combines on-chain events with the stored Product record.

Rules:
1. If the chain reports status updates but no creation event, the store's
   created_at stands in as the creation entry (never later than the first
   chain event).
2. Entries are sorted ascending by timestamp; on equal timestamps the
   creation entry comes first.
3. An empty result is replaced by a single entry synthesized from the
   product's current status, updated_at and last_tx_hash.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ledger.models import LedgerEvent


@dataclass
class HistoryEntry:
    status: str
    timestamp: datetime
    transaction_hash: Optional[str]
    source: str = "chain"           # "chain" | "store"
    is_creation: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "transaction_hash": self.transaction_hash,
            "source": self.source,
        }


def as_utc(dt: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def merge_history(product, events: Iterable[LedgerEvent]) -> List[HistoryEntry]:
    entries = [
        HistoryEntry(
            status=e.status,
            timestamp=as_utc(e.timestamp),
            transaction_hash=e.transaction_hash,
            is_creation=e.is_creation,
        )
        for e in events
    ]

    if entries and not any(e.is_creation for e in entries) and product.created_at:
        earliest = min(e.timestamp for e in entries)
        entries.append(HistoryEntry(
            status="Created",
            timestamp=min(as_utc(product.created_at), earliest),
            transaction_hash=None,
            source="store",
            is_creation=True,
        ))

    entries.sort(key=lambda e: (e.timestamp, 0 if e.is_creation else 1))

    if not entries:
        stamp = product.updated_at or product.created_at or datetime.now(timezone.utc)
        entries = [HistoryEntry(
            status=_status_value(product.status),
            timestamp=as_utc(stamp),
            transaction_hash=product.last_tx_hash,
            source="store",
        )]
    return entries
