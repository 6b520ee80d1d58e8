"""Shared test fixtures and configuration for the supply-chain tracker test suite."""

import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.database import Base
from api.models import db_models  # noqa: F401
from ledger.client import parse_chain_ref
from ledger.models import ChainProduct, LedgerEvent, TxResult, encode_status, decode_status
from sync.coordinator import ChainIdSource, SyncCoordinator
from sync.store import ProductStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeLedger:
    """
    In-memory stand-in for LedgerClient. Records every call; a failure can
    be armed per operation via `fail_next[op] = exc`.
    """

    def __init__(self):
        self.calls = []
        self.fail_next = {}
        self.next_tx_hash = None
        self.assign_ids = True
        self.events = {}
        self.products = {}
        self._counter = 0
        self._block = 100

    def _tx(self) -> str:
        self._counter += 1
        self._block += 1
        if self.next_tx_hash:
            tx, self.next_tx_hash = self.next_tx_hash, None
            return tx
        return "0x" + format(self._counter, "064x")

    def _maybe_fail(self, op):
        exc = self.fail_next.pop(op, None)
        if exc is not None:
            raise exc

    def _stamp(self) -> datetime:
        return T0 + timedelta(minutes=self._block)

    def submit_create(self, name, description):
        self.calls.append(("create", name, description))
        self._maybe_fail("create")
        tx = self._tx()
        chain_id = None
        if self.assign_ids:
            chain_id = str(len(self.products) + 1)
            self.products[chain_id] = encode_status("Created")
            self.events.setdefault(chain_id, []).append(LedgerEvent(
                status="Created", timestamp=self._stamp(), transaction_hash=tx,
                kind="created", block_number=self._block,
            ))
        return TxResult(transaction_hash=tx, block_number=self._block, chain_assigned_id=chain_id)

    def submit_status_update(self, chain_id, new_status):
        parse_chain_ref(chain_id)
        self.calls.append(("update", chain_id, new_status))
        self._maybe_fail("update")
        tx = self._tx()
        code = encode_status(new_status)
        self.products[str(chain_id)] = code
        self.events.setdefault(str(chain_id), []).append(LedgerEvent(
            status=decode_status(code), timestamp=self._stamp(), transaction_hash=tx,
            block_number=self._block,
        ))
        return TxResult(transaction_hash=tx, block_number=self._block)

    def submit_delete(self, chain_id):
        parse_chain_ref(chain_id)
        self.calls.append(("delete", chain_id))
        self._maybe_fail("delete")
        self.products.pop(str(chain_id), None)
        return TxResult(transaction_hash=self._tx(), block_number=self._block)

    def fetch_current(self, chain_id):
        parse_chain_ref(chain_id)
        self.calls.append(("current", chain_id))
        self._maybe_fail("current")
        code = self.products.get(str(chain_id))
        if code is None:
            return ChainProduct(status="Unknown", timestamp=None, exists=False)
        return ChainProduct(status=decode_status(code), timestamp=self._stamp(), exists=True)

    def fetch_history(self, chain_id):
        parse_chain_ref(chain_id)
        self.calls.append(("history", chain_id))
        self._maybe_fail("history")
        return list(self.events.get(str(chain_id), []))

    def is_connected(self):
        return True

    def network_info(self):
        return {"chain_id": 1337, "network_name": "Fake", "is_connected": True}

    def writes(self):
        return [c for c in self.calls if c[0] in ("create", "update", "delete")]


@pytest.fixture()
def db_engine():
    """In-memory SQLite shared across connections for one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    Session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture()
def ledger():
    return FakeLedger()


@pytest.fixture()
def store(db_session):
    return ProductStore(db_session)


@pytest.fixture()
def coordinator(ledger, store):
    return SyncCoordinator(ledger, store, ChainIdSource.CONTRACT_ASSIGNED)


@pytest.fixture()
def client(db_engine, ledger):
    """FastAPI TestClient wired to the in-memory DB and the fake ledger."""
    from fastapi.testclient import TestClient
    from api.database import get_db
    from api.deps import get_ledger
    from api.main import app

    Session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)

    def _get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.state.ledger = ledger
    yield TestClient(app)
    app.dependency_overrides.clear()
