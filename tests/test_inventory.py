import threading
from datetime import timezone
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from conftest import add_stock
from logistics.db import create_db_and_tables, make_engine, new_session
from logistics.error import InsufficientStock, ItemNotFound, StockInconsistency, ValidationError
from logistics.models import StockItem, User, utcnow
from logistics.roles import Actor
from logistics.schemas import IssuanceStatus, MAX_QUANTITY, RequestCreate
from logistics.services.issuance import IssuanceJournal
from logistics.services.requests import RequestService
from logistics.services.inventory import InventoryLedger, StockTransaction, check_quantity


def test_deduct_lowers_quantity_and_stamps_actor(session, officer):
    add_stock(session, quantity=50, min_quantity=10)

    change = InventoryLedger(session).deduct("Rifle", 20, officer.id)
    session.commit()

    assert change.item.quantity == 30
    assert change.item.updated_by == officer.id
    assert change.delta == -20
    assert change.low_stock is False


@pytest.mark.parametrize("start,requested", [(0, 1), (5, 10), (49, 50)])
def test_deduct_more_than_available_leaves_quantity(session, start, requested):
    item = add_stock(session, quantity=start)

    with pytest.raises(InsufficientStock) as exc:
        InventoryLedger(session).deduct("Rifle", requested)
    session.rollback()

    assert exc.value.fields == {"item_name": "Rifle", "available": start, "requested": requested}
    session.refresh(item)
    assert item.quantity == start


def test_deduct_unknown_item(session):
    with pytest.raises(ItemNotFound):
        InventoryLedger(session).deduct("Mortar", 1)


@pytest.mark.parametrize("bad", [0, -3, 2.5, True, "4", float("nan"), float("inf"), -float("inf"), 10**20])
def test_deduct_rejects_bad_quantities(session, bad):
    add_stock(session)
    with pytest.raises(ValidationError):
        InventoryLedger(session).deduct("Rifle", bad)


def test_low_stock_advisory_at_threshold(session):
    add_stock(session, quantity=50, min_quantity=10)

    change = InventoryLedger(session).deduct("Rifle", 40)

    assert change.item.quantity == 10
    assert change.low_stock is True
    advisory = change.advisory()
    assert advisory.low_stock is True
    assert advisory.min_quantity == 10


def test_restore_adds_back(session):
    add_stock(session, quantity=5)
    ledger = InventoryLedger(session)

    change = ledger.restore("Rifle", 7)
    session.commit()

    assert change.item.quantity == 12
    with pytest.raises(ItemNotFound):
        ledger.restore("Mortar", 1)


def test_stock_transaction_rolls_back_on_domain_error(session):
    item = add_stock(session, quantity=10)
    ledger = InventoryLedger(session)

    with pytest.raises(InsufficientStock):
        with StockTransaction(session, "test", "Rifle") as tx:
            ledger.deduct("Rifle", 4)
            tx.deducted = True
            ledger.deduct("Rifle", 100)

    session.refresh(item)
    assert item.quantity == 10


def test_storage_failure_after_deduction_is_flagged(session):
    item = add_stock(session, quantity=10)
    ledger = InventoryLedger(session)

    with pytest.raises(StockInconsistency) as exc:
        with StockTransaction(session, "test", "Rifle") as tx:
            ledger.deduct("Rifle", 4)
            tx.deducted = True
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    assert exc.value.fields["operation"] == "test"
    session.refresh(item)
    assert item.quantity == 10


def test_concurrent_deducts_never_overdraw(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'stock.db'}")
    create_db_and_tables(engine)
    with new_session(engine) as s:
        s.add(StockItem(name="Ration", category="food", quantity=20, min_quantity=0,
                        unit="box", location="Depot"))
        s.commit()

    workers = 10
    barrier = threading.Barrier(workers)

    def take_three(_):
        with new_session(engine) as s:
            barrier.wait()
            try:
                InventoryLedger(s).deduct("Ration", 3)
                s.commit()
                return True
            except InsufficientStock:
                s.rollback()
                return False

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(take_three, range(workers)))

    assert sum(results) == 6
    with new_session(engine) as s:
        assert InventoryLedger(s).get_by_name("Ration").quantity == 2
    engine.dispose()


def test_check_quantity_bounds():
    assert check_quantity(3.0) == 3
    assert check_quantity(MAX_QUANTITY) == MAX_QUANTITY
    with pytest.raises(ValidationError) as exc:
        check_quantity(MAX_QUANTITY + 1, "amount")
    assert exc.value.fields == {"field": "amount"}


def test_timestamps_are_timezone_aware(session):
    item = add_stock(session, quantity=10)

    assert utcnow().tzinfo is timezone.utc
    assert StockItem(name="Helmet", category="gear", unit="pcs", location="Store").last_updated.tzinfo is timezone.utc
    session.refresh(item)
    assert item.last_updated is not None


def test_concurrent_completions_never_overdraw(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'stock.db'}")
    create_db_and_tables(engine)
    workers = 8
    with new_session(engine) as s:
        requester = User(username="private", role="User")
        officer = User(username="quartermaster", role="LogisticsOfficer")
        admin = User(username="captain", role="Admin")
        s.add_all([requester, officer, admin])
        s.add(StockItem(name="Ration", category="food", quantity=20, min_quantity=0,
                        unit="box", location="Depot"))
        s.commit()
        requester_id, officer_id, admin_id = requester.id, officer.id, admin.id

        service = RequestService(s)
        request_ids = []
        for _ in range(workers):
            t = service.create(Actor.of(requester_id, "User"), _ration_request(6))
            service.transition(Actor.of(admin_id, "Admin"), t.entity_id, "approved")
            request_ids.append(t.entity_id)

    barrier = threading.Barrier(workers)

    def complete(request_id):
        with new_session(engine) as s:
            barrier.wait()
            try:
                RequestService(s).transition(Actor.of(officer_id, "LogisticsOfficer"),
                                             request_id, "completed")
                return True
            except InsufficientStock:
                return False

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(complete, request_ids))

    assert sum(results) == 3
    with new_session(engine) as s:
        item = InventoryLedger(s).get_by_name("Ration")
        assert item.quantity == 2
        issued = IssuanceJournal(s).search(item_id=item.id, status=IssuanceStatus.COMPLETED)
        assert len(issued) == 3
    engine.dispose()


def _ration_request(quantity):
    return RequestCreate(item_name="Ration", quantity=quantity, unit="box", purpose="Field rations")
