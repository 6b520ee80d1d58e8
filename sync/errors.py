"""
Sync Coordinator failure taxonomy.

Ledger-side failures (ledger.errors) propagate through the coordinator
unchanged; the classes here cover store-side validation and the
partial-failure states of the two-phase write.
"""
from typing import Dict, Optional


class SyncError(Exception):
    """Base class for coordinator failures."""


class NotFound(SyncError):
    def __init__(self, product_id: str):
        super().__init__(f"Product '{product_id}' not found")
        self.product_id = product_id


class NotLinked(SyncError):
    """The product was never assigned a chain identifier."""

    def __init__(self, product_id: str):
        super().__init__(f"Product '{product_id}' has no blockchain ID")
        self.product_id = product_id


class InvalidStatus(SyncError):
    def __init__(self, status):
        super().__init__(
            f"Invalid status {status!r}. Must be Created, InTransit, or Delivered"
        )
        self.status = status


class StoreError(SyncError):
    """The persistent store failed to complete a write."""


class DesyncAfterLedgerCommit(SyncError):
    """
    The ledger write succeeded but the store write that mirrors it failed.

    Retrying the whole operation would submit a second transaction; replay
    only the store side with `SyncCoordinator.retry_store_write`.
    """

    def __init__(
        self,
        operation: str,
        transaction_hash: str,
        product_id: Optional[str] = None,
        status: Optional[str] = None,
        chain_id: Optional[str] = None,
        fields: Optional[Dict] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            f"Ledger committed {operation} in {transaction_hash} "
            f"but the store write failed: {cause}"
        )
        self.operation = operation
        self.transaction_hash = transaction_hash
        self.product_id = product_id
        self.status = status
        self.chain_id = chain_id
        self.fields = fields or {}
        self.cause = cause


class DeletionIncomplete(SyncError):
    """At most one side of a delete succeeded. Not reconciled automatically."""

    def __init__(self, product_id: str, ledger_deleted: bool, store_deleted: bool, errors: Dict[str, str]):
        detail = "; ".join(f"{side}: {msg}" for side, msg in errors.items())
        super().__init__(f"Delete of product '{product_id}' incomplete: {detail}")
        self.product_id = product_id
        self.ledger_deleted = ledger_deleted
        self.store_deleted = store_deleted
        self.errors = errors
