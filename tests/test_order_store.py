import threading
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool

from hotel_billing.core.database import Base, build_engine, build_session_factory
from hotel_billing.core.errors import ConflictError, NotFoundError, VersionConflictError
from hotel_billing.core.metrics import billing_signals
from hotel_billing.models.audit_log import AuditLog
from hotel_billing.models.order import TableOrder
from hotel_billing.services import orders as order_service
from tests.fixtures_data import HOTEL_ID, OTHER_HOTEL_ID, SCENARIO_ITEMS


def _build_session():
    engine = build_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return engine, build_session_factory(engine)()


def _build_file_sessions(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    Base.metadata.create_all(bind=engine)
    return engine, build_session_factory(engine)


def _run_concurrently(count, target):
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def _worker(index):
        barrier.wait()
        outcome = target(index)
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_worker, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_create_order_starts_open_at_version_one():
    _engine, db = _build_session()

    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=4, items=SCENARIO_ITEMS, notes="window")

    assert order.status == "OPEN"
    assert order.version == 1
    assert len(order.order_id) == 36
    assert order.items[0] == {
        "reference_id": "m-101",
        "name": "Paneer Tikka",
        "unit_price": "15.99",
        "quantity": 2,
    }
    assert order_service.get_active_order(db, HOTEL_ID, 4).order_id == order.order_id
    assert order_service.get_active_order(db, OTHER_HOTEL_ID, 4) is None


def test_create_order_rejects_second_open_order_for_table():
    _engine, db = _build_session()
    order_service.create_order(db, hotel_id=HOTEL_ID, table_number=4, items=SCENARIO_ITEMS)

    with pytest.raises(ConflictError) as exc:
        order_service.create_order(db, hotel_id=HOTEL_ID, table_number=4, items=[])

    assert "Table 4 already has an active order" in exc.value.message
    # Same table number in another hotel is a different table.
    other = order_service.create_order(db, hotel_id=OTHER_HOTEL_ID, table_number=4, items=[])
    assert other.status == "OPEN"


def test_create_order_validates_items():
    _engine, db = _build_session()

    with pytest.raises(ValueError):
        order_service.create_order(
            db,
            hotel_id=HOTEL_ID,
            table_number=1,
            items=[{"name": "Tea", "unit_price": "2", "quantity": 0}],
        )
    with pytest.raises(ValueError):
        order_service.create_order(
            db,
            hotel_id=HOTEL_ID,
            table_number=1,
            items=[{"name": "Tea", "unit_price": "-2", "quantity": 1}],
        )
    with pytest.raises(ValueError):
        order_service.create_order(db, hotel_id=HOTEL_ID, table_number=0, items=[])


def test_update_order_bumps_version_and_keeps_id():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=2, items=SCENARIO_ITEMS)
    order_id = order.order_id

    versions = []
    for expected in (1, 2, 3):
        updated = order_service.update_order(
            db,
            order_id=order_id,
            items=SCENARIO_ITEMS[:1],
            notes=f"round {expected}",
            expected_version=expected,
            hotel_id=HOTEL_ID,
        )
        versions.append(updated.version)
        assert updated.order_id == order_id

    assert versions == [2, 3, 4]
    assert db.query(TableOrder).count() == 1


def test_update_order_with_stale_version_reports_current_state():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=2, items=SCENARIO_ITEMS)
    order_service.update_order(db, order_id=order.order_id, items=[], notes=None, expected_version=1)

    with pytest.raises(VersionConflictError) as exc:
        order_service.update_order(db, order_id=order.order_id, items=SCENARIO_ITEMS, notes="late", expected_version=1)

    assert exc.value.current_version == 2
    assert exc.value.current_status == "OPEN"
    stored = order_service.get_order(db, order.order_id)
    assert stored.items == []
    assert stored.version == 2


def test_update_order_for_other_hotel_is_treated_as_missing():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=2, items=SCENARIO_ITEMS)

    with pytest.raises(VersionConflictError) as exc:
        order_service.update_order(
            db,
            order_id=order.order_id,
            items=[],
            notes=None,
            expected_version=1,
            hotel_id=OTHER_HOTEL_ID,
        )

    assert exc.value.current_version is None
    assert exc.value.current_status is None
    with pytest.raises(NotFoundError):
        order_service.get_order(db, order.order_id, hotel_id=OTHER_HOTEL_ID)


def test_cancelled_order_can_no_longer_change_and_frees_table():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=6, items=SCENARIO_ITEMS)

    cancelled = order_service.cancel_order(db, order_id=order.order_id, expected_version=1, hotel_id=HOTEL_ID)

    assert cancelled.status == "CANCELLED"
    assert cancelled.version == 2
    with pytest.raises(VersionConflictError) as exc:
        order_service.update_order(db, order_id=order.order_id, items=[], notes=None, expected_version=2)
    assert exc.value.current_status == "CANCELLED"
    assert order_service.get_active_order(db, HOTEL_ID, 6) is None
    assert order_service.create_order(db, hotel_id=HOTEL_ID, table_number=6, items=[]).status == "OPEN"


def test_list_open_orders_sorted_by_table():
    _engine, db = _build_session()
    order_service.create_order(db, hotel_id=HOTEL_ID, table_number=9, items=[])
    order_service.create_order(db, hotel_id=HOTEL_ID, table_number=3, items=[])
    order_service.create_order(db, hotel_id=OTHER_HOTEL_ID, table_number=1, items=[])

    open_orders = order_service.list_open_orders(db, HOTEL_ID)

    assert [order.table_number for order in open_orders] == [3, 9]


def test_lock_for_billing_is_idempotent_for_same_holder():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=1, items=SCENARIO_ITEMS)

    locked = order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1")
    again = order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1")

    assert locked.version == 2
    assert again.version == 2
    assert again.lock_holder == "till-1"


def test_lock_for_billing_rejects_other_holder_until_expiry():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=1, items=SCENARIO_ITEMS)
    locked = order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1", ttl=300)

    with pytest.raises(ConflictError) as exc:
        order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-2")
    assert "another session" in exc.value.message

    later = locked.lock_expires_at + timedelta(seconds=1)
    taken_over = order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-2", now=later)
    assert taken_over.lock_holder == "till-2"
    assert taken_over.version == 3


def test_lock_for_billing_missing_order():
    _engine, db = _build_session()

    with pytest.raises(NotFoundError):
        order_service.lock_for_billing(db, order_id="does-not-exist", holder_id="till-1")


def test_mark_billed_closes_order_and_writes_audit():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=5, items=SCENARIO_ITEMS)
    locked = order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1")

    billed = order_service.mark_billed(
        db,
        order_id=order.order_id,
        invoice_id="invoice-1",
        expected_version=locked.version,
    )

    assert billed.status == "BILLED"
    assert billed.invoice_id == "invoice-1"
    assert billed.lock_holder is None
    assert billed.version == locked.version + 1
    assert order_service.get_active_order(db, HOTEL_ID, 5) is None

    actions = [row.action for row in db.query(AuditLog).order_by(AuditLog.id).all()]
    assert actions == ["order_created", "invoice_generated", "table_freed"]

    with pytest.raises(ConflictError) as exc:
        order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1")
    assert "BILLED" in exc.value.message


def test_mark_billed_with_stale_version_fails():
    _engine, db = _build_session()
    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=5, items=SCENARIO_ITEMS)
    order_service.lock_for_billing(db, order_id=order.order_id, holder_id="till-1")

    with pytest.raises(VersionConflictError):
        order_service.mark_billed(db, order_id=order.order_id, invoice_id="invoice-1", expected_version=1)

    assert order_service.get_order(db, order.order_id).status == "OPEN"


def test_missing_audit_table_does_not_block_transitions():
    engine, db = _build_session()
    AuditLog.__table__.drop(bind=engine)
    billing_signals.reset()

    order = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=8, items=SCENARIO_ITEMS)
    updated = order_service.update_order(db, order_id=order.order_id, items=[], notes=None, expected_version=1)

    assert updated.version == 2
    assert order_service.get_order(db, order.order_id).items == []
    assert billing_signals.count("audit_skipped") == 2


def test_concurrent_updates_with_same_version_allow_exactly_one(tmp_path):
    _engine, session_factory = _build_file_sessions(tmp_path)
    with session_factory() as db:
        order_id = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=3, items=SCENARIO_ITEMS).order_id

    def _attempt(index):
        with session_factory() as db:
            try:
                order_service.update_order(
                    db,
                    order_id=order_id,
                    items=SCENARIO_ITEMS[:1],
                    notes=f"waiter {index}",
                    expected_version=1,
                )
                return "ok"
            except VersionConflictError:
                return "conflict"

    outcomes = _run_concurrently(8, _attempt)

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    with session_factory() as db:
        assert order_service.get_order(db, order_id).version == 2


def test_concurrent_creates_for_same_table_allow_exactly_one(tmp_path):
    _engine, session_factory = _build_file_sessions(tmp_path)

    def _attempt(index):
        with session_factory() as db:
            try:
                order_service.create_order(db, hotel_id=HOTEL_ID, table_number=12, items=[], notes=str(index))
                return "ok"
            except ConflictError:
                return "conflict"

    outcomes = _run_concurrently(8, _attempt)

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    with session_factory() as db:
        assert len(order_service.list_open_orders(db, HOTEL_ID)) == 1


def test_concurrent_billing_locks_allow_exactly_one_holder(tmp_path):
    _engine, session_factory = _build_file_sessions(tmp_path)
    with session_factory() as db:
        order_id = order_service.create_order(db, hotel_id=HOTEL_ID, table_number=5, items=SCENARIO_ITEMS).order_id

    def _attempt(index):
        with session_factory() as db:
            try:
                order_service.lock_for_billing(db, order_id=order_id, holder_id=f"till-{index}")
                return "ok"
            except ConflictError:
                return "conflict"

    outcomes = _run_concurrently(8, _attempt)

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    with session_factory() as db:
        order = order_service.get_order(db, order_id)
        assert order.version == 2
        assert order.lock_holder.startswith("till-")
