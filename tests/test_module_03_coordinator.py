"""
Tests for Module 03 — Sync Coordinator.
Two-phase write ordering, zero side effects on ledger failure, and the
DesyncAfterLedgerCommit recovery path.
"""
import pytest
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from api.models.db_models import Product
from ledger.errors import InvalidReference, LedgerRejected, LedgerTimeout, LedgerUnavailable
from sync.coordinator import ChainIdSource, SyncCoordinator, generate_client_chain_id
from sync.errors import (
    DeletionIncomplete, DesyncAfterLedgerCommit, InvalidStatus, NotFound, NotLinked, StoreError,
)
from sync.store import ProductStore


def _snapshot(db_session, product_id):
    db_session.expire_all()
    return db_session.query(Product).filter(Product.id == product_id).one().to_dict()


def _widget(coordinator):
    return coordinator.create_product("Widget", "A widget", "Acme")


class TestCreate:
    def test_scenario_a_created_with_ledger_hash(self, coordinator, ledger):
        ledger.next_tx_hash = "0xabc"
        product = _widget(coordinator)
        assert product.status == "Created"
        assert product.last_tx_hash == "0xabc"
        assert product.name == "Widget"
        assert product.manufacturer == "Acme"
        assert product.chain_id == "1"

    def test_ledger_called_before_store(self, coordinator, ledger, store):
        ledger.fail_next["create"] = LedgerUnavailable("no node")
        with pytest.raises(LedgerUnavailable):
            _widget(coordinator)
        assert store.list_recent() == []

    def test_rejection_propagates_unchanged(self, coordinator, ledger, store):
        err = LedgerRejected("out of gas")
        ledger.fail_next["create"] = err
        with pytest.raises(LedgerRejected) as exc:
            _widget(coordinator)
        assert exc.value is err
        assert store.list_recent() == []

    def test_unobserved_contract_id_leaves_product_unlinked(self, coordinator, ledger):
        ledger.assign_ids = False
        product = _widget(coordinator)
        assert product.chain_id is None
        assert product.last_tx_hash is not None

    def test_client_generated_ids(self, ledger, store):
        coordinator = SyncCoordinator(ledger, store, ChainIdSource.CLIENT_GENERATED)
        a = _widget(coordinator)
        b = _widget(coordinator)
        assert a.chain_id.startswith("0x") and len(a.chain_id) == 26
        assert a.chain_id != b.chain_id

    def test_no_chain_id_source(self, ledger, store):
        coordinator = SyncCoordinator(ledger, store, ChainIdSource.NONE)
        product = _widget(coordinator)
        assert product.chain_id is None
        with pytest.raises(NotLinked):
            coordinator.request_status_change(product.id, "InTransit")

    def test_store_failure_after_ledger_is_desync(self, coordinator, ledger, store):
        ledger.next_tx_hash = "0xfeed"
        with patch.object(ProductStore, "insert", side_effect=StoreError("db down")):
            with pytest.raises(DesyncAfterLedgerCommit) as exc:
                _widget(coordinator)
        desync = exc.value
        assert desync.operation == "create"
        assert desync.transaction_hash == "0xfeed"
        assert store.list_recent() == []

        product = coordinator.retry_store_write(desync)
        assert product.last_tx_hash == "0xfeed"
        assert product.chain_id == desync.chain_id
        assert len(ledger.writes()) == 1


class TestStatusChange:
    def test_success_mirrors_ledger_result(self, coordinator, ledger, db_session):
        product = _widget(coordinator)
        updated = coordinator.request_status_change(product.id, "InTransit")
        last_update = ledger.writes()[-1]
        assert last_update[0] == "update"
        assert updated.status == "InTransit"
        assert updated.last_tx_hash == ledger.events[product.chain_id][-1].transaction_hash
        assert _snapshot(db_session, product.id)["status"] == "InTransit"

    def test_updated_at_advances(self, coordinator):
        product = _widget(coordinator)
        before = product.updated_at
        updated = coordinator.request_status_change(product.id, "Delivered")
        assert updated.updated_at >= before

    def test_unknown_product(self, coordinator, ledger):
        with pytest.raises(NotFound):
            coordinator.request_status_change("does-not-exist", "InTransit")
        assert ledger.writes() == []

    def test_invalid_status_never_reaches_ledger(self, coordinator, ledger):
        product = _widget(coordinator)
        with pytest.raises(InvalidStatus):
            coordinator.request_status_change(product.id, "Lost")
        assert len(ledger.writes()) == 1

    def test_scenario_b_unlinked_product(self, coordinator, ledger, store, db_session):
        product = store.insert(name="Widget", description="A widget", status="Created")
        before = _snapshot(db_session, product.id)
        with pytest.raises(NotLinked):
            coordinator.request_status_change(product.id, "InTransit")
        assert ledger.writes() == []
        assert _snapshot(db_session, product.id) == before

    def test_scenario_c_rejection_leaves_store_untouched(self, coordinator, ledger, db_session):
        product = _widget(coordinator)
        before = _snapshot(db_session, product.id)
        err = LedgerRejected("execution reverted")
        ledger.fail_next["update"] = err
        with pytest.raises(LedgerRejected) as exc:
            coordinator.request_status_change(product.id, "InTransit")
        assert exc.value is err
        after = _snapshot(db_session, product.id)
        assert after == before
        assert after["status"] == "Created"
        assert after["updated_at"] == before["updated_at"]

    @pytest.mark.parametrize("exc", [
        LedgerUnavailable("no node"),
        LedgerTimeout("not mined", transaction_hash="0x99"),
        InvalidReference("bad id"),
    ])
    def test_any_ledger_failure_leaves_store_untouched(self, coordinator, ledger, db_session, exc):
        product = _widget(coordinator)
        before = _snapshot(db_session, product.id)
        ledger.fail_next["update"] = exc
        with pytest.raises(type(exc)):
            coordinator.request_status_change(product.id, "Delivered")
        assert _snapshot(db_session, product.id) == before

    def test_timeout_is_not_reported_as_rejection(self, coordinator, ledger):
        product = _widget(coordinator)
        ledger.fail_next["update"] = LedgerTimeout("not mined", transaction_hash="0x99")
        with pytest.raises(LedgerTimeout) as exc:
            coordinator.request_status_change(product.id, "InTransit")
        assert not isinstance(exc.value, LedgerRejected)
        assert exc.value.transaction_hash == "0x99"

    def test_scenario_d_desync_then_store_only_retry(self, coordinator, ledger, db_session):
        product = _widget(coordinator)
        with patch.object(ProductStore, "update_fields", side_effect=StoreError("disk full")):
            with pytest.raises(DesyncAfterLedgerCommit) as exc:
                coordinator.request_status_change(product.id, "InTransit")
        desync = exc.value
        tx = ledger.events[product.chain_id][-1].transaction_hash
        assert desync.transaction_hash == tx
        assert desync.status == "InTransit"
        assert _snapshot(db_session, product.id)["status"] == "Created"

        writes_before_retry = len(ledger.writes())
        fixed = coordinator.retry_store_write(desync)
        assert len(ledger.writes()) == writes_before_retry
        assert fixed.status == "InTransit"
        assert fixed.last_tx_hash == tx
        assert _snapshot(db_session, product.id)["last_tx_hash"] == tx

    def test_sqlalchemy_failure_is_wrapped_as_desync(self, coordinator, db_session):
        product = _widget(coordinator)
        failure = OperationalError("UPDATE products", {}, Exception("database is locked"))
        with patch.object(db_session, "commit", side_effect=failure):
            with pytest.raises(DesyncAfterLedgerCommit) as exc:
                coordinator.request_status_change(product.id, "Delivered")
        assert isinstance(exc.value.cause, StoreError)
        assert _snapshot(db_session, product.id)["status"] == "Created"

    def test_row_removed_after_ledger_commit_is_desync(self, coordinator, ledger, store):
        product = _widget(coordinator)
        product_id = product.id
        submit = ledger.submit_status_update

        def submit_then_remove_row(chain_id, new_status):
            result = submit(chain_id, new_status)
            store.delete(product_id)
            return result

        ledger.submit_status_update = submit_then_remove_row
        with pytest.raises(DesyncAfterLedgerCommit) as exc:
            coordinator.request_status_change(product_id, "InTransit")
        desync = exc.value
        assert isinstance(desync.cause, NotFound)
        assert desync.transaction_hash == ledger.events[desync.chain_id][-1].transaction_hash
        assert desync.status == "InTransit"

    def test_transitions_are_permissive(self, coordinator):
        # Backward and repeated transitions are accepted on purpose: the
        # contract does not enforce ordering either.
        product = _widget(coordinator)
        for status in ("Delivered", "Created", "InTransit", "InTransit"):
            product = coordinator.request_status_change(product.id, status)
            assert product.status == status


class TestDelete:
    def test_deletes_both_sides(self, coordinator, ledger, store):
        product = _widget(coordinator)
        product_id, chain_id = product.id, product.chain_id
        coordinator.delete_product(product_id)
        assert store.get(product_id) is None
        assert chain_id not in ledger.products

    def test_unknown_product(self, coordinator):
        with pytest.raises(NotFound):
            coordinator.delete_product("nope")

    def test_ledger_failure_still_deletes_store_side(self, coordinator, ledger, store):
        product_id = _widget(coordinator).id
        ledger.fail_next["delete"] = LedgerRejected("reverted")
        with pytest.raises(DeletionIncomplete) as exc:
            coordinator.delete_product(product_id)
        assert exc.value.ledger_deleted is False
        assert exc.value.store_deleted is True
        assert "ledger" in exc.value.errors
        assert store.get(product_id) is None

    def test_store_failure_after_ledger_delete(self, coordinator, ledger, store):
        product = _widget(coordinator)
        with patch.object(ProductStore, "delete", side_effect=StoreError("db down")):
            with pytest.raises(DeletionIncomplete) as exc:
                coordinator.delete_product(product.id)
        assert exc.value.ledger_deleted is True
        assert exc.value.store_deleted is False
        assert store.get(product.id) is not None

    def test_row_already_gone_is_incomplete(self, coordinator, ledger, store):
        product_id = _widget(coordinator).id
        with patch.object(ProductStore, "delete", return_value=False):
            with pytest.raises(DeletionIncomplete) as exc:
                coordinator.delete_product(product_id)
        assert exc.value.ledger_deleted is True
        assert exc.value.store_deleted is False
        assert "store" in exc.value.errors

    def test_unlinked_product_skips_ledger(self, coordinator, ledger, store):
        product = store.insert(name="Widget", description="A widget", status="Created")
        coordinator.delete_product(product.id)
        assert ledger.writes() == []


class TestReads:
    def test_list_newest_first(self, coordinator):
        first = _widget(coordinator)
        second = coordinator.create_product("Gadget", "A gadget")
        ids = [p.id for p in coordinator.list_products()]
        assert set(ids) == {first.id, second.id}
        assert ids[0] == second.id

    def test_get_product_includes_chain_state(self, coordinator):
        product = _widget(coordinator)
        coordinator.request_status_change(product.id, "InTransit")
        _, chain, error = coordinator.get_product(product.id)
        assert chain.exists is True
        assert chain.status == "InTransit"
        assert error is None

    def test_get_product_reports_ledger_error(self, coordinator, ledger):
        product = _widget(coordinator)
        ledger.fail_next["current"] = LedgerUnavailable("no node")
        found, chain, error = coordinator.get_product(product.id)
        assert found.id == product.id
        assert chain is None
        assert "no node" in error


    def test_store_read_failure_is_store_error(self, coordinator, db_session):
        failure = OperationalError("SELECT products", {}, Exception("connection lost"))
        with patch.object(db_session, "query", side_effect=failure):
            with pytest.raises(StoreError):
                coordinator.list_products()
            with pytest.raises(StoreError):
                coordinator.find("any-id")


class TestChainIdSourceFromEnv:
    def test_default_is_contract_assigned(self, monkeypatch):
        monkeypatch.delenv("CHAIN_ID_SOURCE", raising=False)
        assert ChainIdSource.from_env() is ChainIdSource.CONTRACT_ASSIGNED

    @pytest.mark.parametrize("value,expected", [
        ("client", ChainIdSource.CLIENT_GENERATED),
        ("NONE", ChainIdSource.NONE),
        ("Contract", ChainIdSource.CONTRACT_ASSIGNED),
    ])
    def test_reads_environment(self, monkeypatch, value, expected):
        monkeypatch.setenv("CHAIN_ID_SOURCE", value)
        assert ChainIdSource.from_env() is expected

    def test_invalid_value_fails_at_startup(self, monkeypatch):
        monkeypatch.setenv("CHAIN_ID_SOURCE", "random")
        with pytest.raises(ValueError):
            ChainIdSource.from_env()


class TestClientGeneratedId:
    def test_format(self):
        chain_id = generate_client_chain_id()
        assert chain_id.startswith("0x")
        int(chain_id, 16)
        assert len(chain_id) == 26


if __name__ == "__main__":
    import subprocess, sys
    sys.exit(subprocess.call(["pytest", __file__, "-v"]))
