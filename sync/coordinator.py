"""
Sync Coordinator — two-phase writes between the ledger and the store.

Every write calls the Ledger Client first and only mirrors the outcome into
the store once the transaction is mined. Phase-1 failures leave the store
untouched and propagate unchanged; phase-2 failures raise
DesyncAfterLedgerCommit so the stale store side can be replayed on its own.
"""

import enum
import logging
import os
import secrets
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ledger.errors import LedgerError
from ledger.models import ChainProduct, ProductStatus
from sync.errors import (
    DeletionIncomplete,
    DesyncAfterLedgerCommit,
    InvalidStatus,
    NotFound,
    NotLinked,
    StoreError,
)
from sync.history import HistoryEntry, merge_history
from sync.store import ProductStore

logger = logging.getLogger(__name__)


class ChainIdSource(str, enum.Enum):
    """
    Where a new product's chain identifier comes from.

    CONTRACT_ASSIGNED: the contract's own counter, read from the creation
        receipt. The only source usable for on-chain read-back.
    CLIENT_GENERATED: an ObjectId-like id minted here. Not known to the
        contract: collisions are possible and read-back lookups will miss.
    NONE: no chain id is recorded; products cannot be status-updated.
    """
    CONTRACT_ASSIGNED = "contract"
    CLIENT_GENERATED = "client"
    NONE = "none"

    @classmethod
    def from_env(cls) -> "ChainIdSource":
        return cls(os.environ.get("CHAIN_ID_SOURCE", cls.CONTRACT_ASSIGNED.value).lower())


def generate_client_chain_id() -> str:
    """Timestamp + random, 12 bytes rendered as 0x-hex."""
    return "0x" + format(int(time.time()), "08x") + secrets.token_hex(8)


def parse_status(value) -> ProductStatus:
    try:
        return ProductStatus(value.value if isinstance(value, ProductStatus) else value)
    except ValueError:
        raise InvalidStatus(value) from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncCoordinator:
    def __init__(self, ledger, store: ProductStore, chain_id_source: ChainIdSource = ChainIdSource.CONTRACT_ASSIGNED):
        self.ledger = ledger
        self.store = store
        self.chain_id_source = chain_id_source

    # ── Reads ─────────────────────────────────────────────────────────────────

    def list_products(self):
        return self.store.list_recent()

    def find(self, product_id: str):
        product = self.store.get(product_id)
        if product is None:
            raise NotFound(product_id)
        return product

    def get_product(self, product_id: str) -> Tuple[object, Optional[ChainProduct], Optional[str]]:
        """
        Return the stored product with its on-chain read-back.
        A failed read-back is reported as the third element, not raised.
        """
        product = self.find(product_id)
        if not product.chain_id:
            return product, None, None
        try:
            return product, self.ledger.fetch_current(product.chain_id), None
        except LedgerError as e:
            logger.warning("On-chain read-back failed for product %s: %s", product_id, e)
            return product, None, str(e)

    def get_history(self, product_id: str) -> Tuple[object, List[HistoryEntry]]:
        product = self.find(product_id)
        events = self.ledger.fetch_history(product.chain_id) if product.chain_id else []
        return product, merge_history(product, events)

    # ── Writes ────────────────────────────────────────────────────────────────

    def create_product(self, name: str, description: str, manufacturer: Optional[str] = None):
        result = self.ledger.submit_create(name, description)

        if self.chain_id_source is ChainIdSource.CONTRACT_ASSIGNED:
            chain_id = result.chain_assigned_id
            if chain_id is None:
                logger.warning(
                    "Create %s mined without an observed product id; record stays unlinked",
                    result.transaction_hash,
                )
        elif self.chain_id_source is ChainIdSource.CLIENT_GENERATED:
            chain_id = generate_client_chain_id()
        else:
            chain_id = None

        fields = {
            "name": name,
            "description": description,
            "manufacturer": manufacturer,
            "status": ProductStatus.Created,
            "chain_id": chain_id,
            "last_tx_hash": result.transaction_hash,
        }
        try:
            product = self.store.insert(**fields)
        except StoreError as e:
            logger.critical(
                "DESYNC: product created on-chain in %s (chain id %s) but not stored: %s",
                result.transaction_hash, chain_id, e,
            )
            raise DesyncAfterLedgerCommit(
                "create",
                result.transaction_hash,
                status=ProductStatus.Created.value,
                chain_id=chain_id,
                fields=fields,
                cause=e,
            ) from e

        logger.info("Product %s created (chain id %s, tx %s)", product.id, chain_id, result.transaction_hash)
        return product

    def request_status_change(self, product_id: str, new_status):
        """
        Move a product to `new_status`. Transitions are not restricted to
        Created → InTransit → Delivered; any status may follow any other.
        """
        status = parse_status(new_status)
        product = self.find(product_id)
        chain_id = product.chain_id
        if not chain_id:
            raise NotLinked(product_id)

        result = self.ledger.submit_status_update(chain_id, status)

        try:
            updated = self.commit_status(product_id, status, result.transaction_hash)
        except (StoreError, NotFound) as e:
            logger.critical(
                "DESYNC: product %s moved to %s on-chain in %s but the store is stale: %s",
                product_id, status.value, result.transaction_hash, e,
            )
            raise DesyncAfterLedgerCommit(
                "update_status",
                result.transaction_hash,
                product_id=product_id,
                status=status.value,
                chain_id=chain_id,
                cause=e,
            ) from e

        logger.info("Product %s status → %s (tx %s)", product_id, status.value, result.transaction_hash)
        return updated

    def commit_status(self, product_id: str, status, transaction_hash: str):
        """Store-only half of a status change. Never touches the ledger."""
        return self.store.update_fields(product_id, {
            "status": parse_status(status),
            "last_tx_hash": transaction_hash,
            "updated_at": _utcnow(),
        })

    def retry_store_write(self, desync: DesyncAfterLedgerCommit):
        """
        Replay only the store side of a DesyncAfterLedgerCommit, reusing its
        transaction hash. No second ledger transaction is submitted.
        """
        logger.info("Replaying store write for %s (tx %s)", desync.operation, desync.transaction_hash)
        if desync.operation == "create":
            return self.store.insert(**desync.fields)
        return self.commit_status(desync.product_id, desync.status, desync.transaction_hash)

    def delete_product(self, product_id: str) -> None:
        """
        Delete on both sides. The two deletes are independent: a failure on
        one side does not stop or undo the other.
        """
        product = self.find(product_id)
        errors = {}
        ledger_deleted = store_deleted = False

        if product.chain_id:
            try:
                self.ledger.submit_delete(product.chain_id)
                ledger_deleted = True
            except LedgerError as e:
                logger.error("Ledger delete failed for product %s: %s", product_id, e)
                errors["ledger"] = str(e)
        else:
            ledger_deleted = True

        try:
            store_deleted = self.store.delete(product_id)
        except StoreError as e:
            errors["store"] = str(e)
        else:
            if not store_deleted:
                logger.warning("Product %s vanished from the store before it could be deleted", product_id)
                errors["store"] = f"Product '{product_id}' was no longer in the store"

        if errors:
            raise DeletionIncomplete(product_id, ledger_deleted, store_deleted, errors)
        logger.info("Product %s deleted", product_id)
