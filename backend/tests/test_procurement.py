from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.db.models.models_v1 import StockAdjustment
from backend.app.db.models.core_types import LocationKind, MovementType, POStatus
from backend.services.errors import InvalidStateError, NotFoundError, ValidationError
from backend.services.inventory import get_quantity, resolve_location
from backend.services.procurement import (
    OrderLine,
    OrderReceivedLine,
    create_purchase_order,
    list_purchase_orders,
    max_receivable,
    receive_order,
    update_order_status,
)

from backend.tests.factories import STORE, USER, WAREHOUSE


@pytest.fixture
def order_100(db_session, supplier, make_product):
    """100 units of P at 10.00 => total 1000.00"""
    p = make_product()
    po = create_purchase_order(
        db_session,
        supplier_id=supplier.id,
        items=[OrderLine(p.id, 100, Decimal("10"))],
        user_id=USER,
    )
    db_session.commit()
    return p, po


def test_create_order_totals_and_number(db_session, order_100):
    p, po = order_100

    assert po.status == POStatus.pending
    assert po.order_number.startswith("OC-")
    assert po.total == Decimal("1000.00")
    assert po.items[0].product_name == p.name
    assert po.items[0].received_quantity is None


def test_tolerance_cap():
    assert max_receivable(100) == 110
    assert max_receivable(7) == 8  # ceil(7.7)
    assert max_receivable(100, Decimal("0")) == 100


def test_partial_reception_recomputes_total(db_session, order_100):
    """
    GIVEN
    - order of 100 at 10.00

    WHEN
    - 95 received into the warehouse

    THEN
    - warehouse += 95, total == 950, status partial
    """
    p, po = order_100

    receive_order(
        db_session,
        po.id,
        [OrderReceivedLine(po.items[0].id, 95)],
        stock_location=WAREHOUSE,
        user_id=USER,
        invoice_number=" FV-2231 ",
    )
    db_session.commit()

    assert get_quantity(db_session, p.id, WAREHOUSE) == 95
    assert po.total == Decimal("950.00")
    assert po.items[0].total == Decimal("950.00")
    assert po.status == POStatus.partial
    assert po.invoice_number == "FV-2231"
    assert po.received_location_kind == LocationKind.warehouse
    assert po.received_date is not None

    rec = db_session.execute(select(StockAdjustment).where(StockAdjustment.reference == po.order_number)).scalar_one()
    assert rec.movement_type == MovementType.purchase_receipt
    assert rec.delta == 95


def test_over_tolerance_rejected_without_mutation(db_session, order_100):
    p, po = order_100

    with pytest.raises(ValidationError) as exc:
        receive_order(
            db_session,
            po.id,
            [OrderReceivedLine(po.items[0].id, 115)],
            stock_location=WAREHOUSE,
            user_id=USER,
        )
    db_session.rollback()

    detail = exc.value.details[0]
    assert detail["max_allowed"] == 110
    assert detail["received_quantity"] == 115
    assert get_quantity(db_session, p.id, WAREHOUSE) == 0
    assert po.status == POStatus.pending


def test_reception_at_cap_is_accepted(db_session, order_100):
    p, po = order_100

    receive_order(db_session, po.id, [OrderReceivedLine(po.items[0].id, 110)], stock_location=STORE, user_id=USER)
    db_session.commit()

    assert get_quantity(db_session, p.id, STORE) == 110
    assert po.status == POStatus.received
    assert po.total == Decimal("1100.00")


def test_one_bad_line_rejects_whole_reception(db_session, supplier, make_product):
    a = make_product()
    b = make_product()
    po = create_purchase_order(
        db_session,
        supplier_id=supplier.id,
        items=[OrderLine(a.id, 10, Decimal("2.50")), OrderLine(b.id, 10, Decimal("1"))],
    )
    db_session.commit()
    ia, ib = po.items

    with pytest.raises(ValidationError) as exc:
        receive_order(
            db_session,
            po.id,
            [OrderReceivedLine(ia.id, 10), OrderReceivedLine(ib.id, 12)],
            stock_location=WAREHOUSE,
            user_id=USER,
        )
    db_session.rollback()

    assert [d["item_id"] for d in exc.value.details] == [ib.id]
    assert get_quantity(db_session, a.id, WAREHOUSE) == 0


def test_reception_into_micro_store(db_session, order_100, micro_store):
    p, po = order_100
    loc = resolve_location(db_session, "store", micro_store.id)

    receive_order(db_session, po.id, [OrderReceivedLine(po.items[0].id, 100)], stock_location=loc, user_id=USER)
    db_session.commit()

    assert get_quantity(db_session, p.id, loc) == 100
    assert get_quantity(db_session, p.id, WAREHOUSE) == 0
    assert po.received_store_id == micro_store.id


def test_reception_replay_and_terminal_states(db_session, order_100):
    p, po = order_100
    lines = [OrderReceivedLine(po.items[0].id, 100)]

    receive_order(db_session, po.id, lines, stock_location=WAREHOUSE, user_id=USER, idempotency_key="r-1")
    db_session.commit()
    receive_order(db_session, po.id, lines, stock_location=WAREHOUSE, user_id=USER, idempotency_key="r-1")
    db_session.commit()
    assert get_quantity(db_session, p.id, WAREHOUSE) == 100

    with pytest.raises(InvalidStateError):
        receive_order(db_session, po.id, lines, stock_location=WAREHOUSE, user_id=USER)


def test_status_transitions(db_session, order_100):
    _, po = order_100

    update_order_status(db_session, po.id, POStatus.in_transit)
    db_session.commit()
    assert po.status == POStatus.in_transit

    with pytest.raises(InvalidStateError):
        update_order_status(db_session, po.id, POStatus.received)
    db_session.rollback()

    update_order_status(db_session, po.id, POStatus.cancelled)
    db_session.commit()

    with pytest.raises(InvalidStateError):
        receive_order(db_session, po.id, [OrderReceivedLine(po.items[0].id, 1)], stock_location=WAREHOUSE, user_id=USER)


def test_create_order_validation(db_session, supplier, make_product):
    p = make_product()

    with pytest.raises(NotFoundError):
        create_purchase_order(db_session, supplier_id=999, items=[OrderLine(p.id, 1, Decimal("1"))])
    with pytest.raises(ValidationError):
        create_purchase_order(db_session, supplier_id=supplier.id, items=[])
    with pytest.raises(ValidationError):
        create_purchase_order(db_session, supplier_id=supplier.id, items=[OrderLine(p.id, 0, Decimal("1"))])
    with pytest.raises(NotFoundError):
        create_purchase_order(db_session, supplier_id=supplier.id, items=[OrderLine(4040, 1, Decimal("1"))])


def test_list_orders_by_status(db_session, order_100, supplier):
    _, po = order_100

    assert [o.id for o in list_purchase_orders(db_session, status=POStatus.pending)] == [po.id]
    assert list_purchase_orders(db_session, status=POStatus.received) == []
    assert [o.id for o in list_purchase_orders(db_session, supplier_id=supplier.id)] == [po.id]
