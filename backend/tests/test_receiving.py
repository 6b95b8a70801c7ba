import pytest
from sqlalchemy import func, select

from backend.app.db.models.models_v1 import StockAdjustment
from backend.app.db.models.core_types import MovementType, TransferStatus
from backend.services.errors import InvalidStateError, NotFoundError, ValidationError
from backend.services.inventory import get_quantity
from backend.services.receiving import ReceivedLine, confirm_receipt, discrepancy_report
from backend.services.transfers import TransferLine, cancel_transfer, create_transfer

from backend.tests.factories import STORE, USER, WAREHOUSE


@pytest.fixture
def in_transit(db_session, make_product):
    """P: warehouse=50, store=10, with 20 units on their way to the store."""
    p = make_product(warehouse=50, store=10)
    t = create_transfer(db_session, from_location=WAREHOUSE, to_location=STORE, items=[TransferLine(p.id, 20)], user_id=USER)
    db_session.commit()
    return p, t


def test_shortfall_receipt(db_session, in_transit):
    """
    GIVEN
    - 20 units in transit warehouse -> store

    WHEN
    - 15 arrive

    THEN
    - store == 25, discrepancy == 5, partially_received
    """
    p, t = in_transit

    confirm_receipt(
        db_session,
        t.id,
        [ReceivedLine(t.items[0].id, 15, note="caja aplastada")],
        user_id="u-dest",
        user_name="Luis",
    )
    db_session.commit()

    assert get_quantity(db_session, p.id, STORE) == 25
    assert get_quantity(db_session, p.id, WAREHOUSE) == 30
    assert t.status == TransferStatus.partially_received
    assert t.received_by == "u-dest"
    assert t.received_by_name == "Luis"
    assert t.received_at is not None

    item = t.items[0]
    assert item.quantity_received == 15
    assert item.discrepancy == 5
    assert item.note == "caja aplastada"


def test_full_receipt_when_no_lines_given(db_session, in_transit):
    p, t = in_transit

    confirm_receipt(db_session, t.id, [], user_id=USER)
    db_session.commit()

    assert t.status == TransferStatus.received
    assert t.items[0].discrepancy == 0
    assert get_quantity(db_session, p.id, STORE) == 30

    rec = db_session.execute(
        select(StockAdjustment).where(StockAdjustment.movement_type == MovementType.transfer_in)
    ).scalar_one()
    assert rec.delta == 20
    assert rec.reference == t.transfer_number


def test_over_receipt_rejected(db_session, in_transit):
    p, t = in_transit

    with pytest.raises(ValidationError) as exc:
        confirm_receipt(db_session, t.id, [ReceivedLine(t.items[0].id, 21)], user_id=USER)
    db_session.rollback()

    assert exc.value.details[0]["expected"] == 20
    assert get_quantity(db_session, p.id, STORE) == 10
    assert t.status == TransferStatus.in_transit


def test_nothing_received_rejected(db_session, in_transit):
    _, t = in_transit
    with pytest.raises(ValidationError):
        confirm_receipt(db_session, t.id, [ReceivedLine(t.items[0].id, 0)], user_id=USER)


def test_unknown_item_rejected(db_session, in_transit):
    _, t = in_transit
    with pytest.raises(ValidationError) as exc:
        confirm_receipt(db_session, t.id, [ReceivedLine(99999, 1)], user_id=USER)
    assert exc.value.details[0]["error"] == "item not in transfer"


def test_omitted_lines_count_as_not_received(db_session, make_product):
    a = make_product(warehouse=10)
    b = make_product(warehouse=10)
    t = create_transfer(
        db_session,
        from_location=WAREHOUSE,
        to_location=STORE,
        items=[TransferLine(a.id, 4), TransferLine(b.id, 6)],
        user_id=USER,
    )
    db_session.commit()
    first = next(it for it in t.items if it.product_id == a.id)

    confirm_receipt(db_session, t.id, [ReceivedLine(first.id, 4)], user_id=USER)
    db_session.commit()

    by_product = {r["product_id"]: r for r in discrepancy_report(t)}
    assert by_product[a.id]["discrepancy"] == 0
    assert by_product[b.id]["received"] == 0
    assert by_product[b.id]["discrepancy"] == 6
    assert get_quantity(db_session, b.id, STORE) == 0
    assert t.status == TransferStatus.partially_received


def test_receipt_replay_does_not_add_twice(db_session, in_transit):
    p, t = in_transit
    lines = [ReceivedLine(t.items[0].id, 20)]

    confirm_receipt(db_session, t.id, lines, user_id=USER, idempotency_key="rcpt-1")
    db_session.commit()
    again = confirm_receipt(db_session, t.id, lines, user_id=USER, idempotency_key="rcpt-1")
    db_session.commit()

    assert again.id == t.id
    assert get_quantity(db_session, p.id, STORE) == 30
    n = db_session.scalar(
        select(func.count()).select_from(StockAdjustment).where(StockAdjustment.movement_type == MovementType.transfer_in)
    )
    assert n == 1


def test_second_receipt_without_key_is_invalid(db_session, in_transit):
    p, t = in_transit
    confirm_receipt(db_session, t.id, [], user_id=USER)
    db_session.commit()

    with pytest.raises(InvalidStateError):
        confirm_receipt(db_session, t.id, [], user_id=USER)
    db_session.rollback()
    assert get_quantity(db_session, p.id, STORE) == 30


def test_receive_cancelled_transfer_is_invalid(db_session, in_transit):
    p, t = in_transit
    cancel_transfer(db_session, t.id, user_id=USER)
    db_session.commit()

    with pytest.raises(InvalidStateError):
        confirm_receipt(db_session, t.id, [], user_id=USER)
    db_session.rollback()
    assert get_quantity(db_session, p.id, STORE) == 10
    assert get_quantity(db_session, p.id, WAREHOUSE) == 50


def test_unknown_transfer(db_session):
    with pytest.raises(NotFoundError):
        confirm_receipt(db_session, 12345, [], user_id=USER)
