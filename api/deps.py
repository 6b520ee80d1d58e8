"""
Shared FastAPI dependencies — ledger client and sync coordinator.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from api.database import get_db
from ledger.client import LedgerClient
from sync.coordinator import ChainIdSource, SyncCoordinator
from sync.store import ProductStore


def get_ledger(request: Request) -> LedgerClient:
    """The process-wide ledger client built once in the app lifespan."""
    return request.app.state.ledger


def get_chain_id_source(request: Request) -> ChainIdSource:
    return getattr(request.app.state, "chain_id_source", ChainIdSource.CONTRACT_ASSIGNED)


def get_coordinator(
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    chain_id_source: ChainIdSource = Depends(get_chain_id_source),
) -> SyncCoordinator:
    return SyncCoordinator(ledger, ProductStore(db), chain_id_source)
