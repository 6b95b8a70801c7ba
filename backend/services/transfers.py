"""
Transfer ledger: create / cancel stock transfers between two locations.

Source stock is decremented when the transfer is created (the goods are
in transit and no longer available at the source). Cancelling returns
exactly what was reserved. Completion lives in backend.services.receiving.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import select, or_, and_
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.db.models.models_v1 import Store, StockTransfer, TransferItem
from backend.app.db.models.core_types import (
    MovementType,
    TransferStatus,
    OPEN_TRANSFER_STATUSES,
)
from backend.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from backend.services.idempotency import make_idempotency_key, scoped_key
from backend.services.inventory import StockLocation, get_quantity, lock_products
from backend.services.numbering import next_document_number
from backend.services.stock_adjustments import adjust_stock, flush_or_conflict, validate_reason

logger = logging.getLogger(__name__)

RECEIVED_STATUSES = (TransferStatus.received, TransferStatus.partially_received)


@dataclass(frozen=True)
class TransferLine:
    product_id: int
    quantity: int


def source_of(transfer: StockTransfer) -> StockLocation:
    return StockLocation(kind=transfer.from_kind, store_id=transfer.from_store_id)


def destination_of(transfer: StockTransfer) -> StockLocation:
    return StockLocation(kind=transfer.to_kind, store_id=transfer.to_store_id)


def _validate_lines(lines: Sequence[TransferLine]) -> None:
    if not lines:
        raise ValidationError("A transfer needs at least one item", [{"field": "items"}])

    problems: list[dict] = []
    seen: set[int] = set()
    for idx, ln in enumerate(lines):
        qty = ln.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            problems.append({"line": idx, "product_id": ln.product_id, "quantity": qty, "error": "quantity must be > 0"})
        if ln.product_id in seen:
            problems.append({"line": idx, "product_id": ln.product_id, "error": "duplicate product"})
        seen.add(ln.product_id)

    if problems:
        raise ValidationError("Invalid transfer items", problems)


def _find_by_key(db: Session, column, key: str) -> StockTransfer | None:
    return db.execute(select(StockTransfer).where(column == key)).scalar_one_or_none()


def create_transfer(
    db: Session,
    *,
    from_location: StockLocation,
    to_location: StockLocation,
    items: Sequence[TransferLine],
    user_id: str,
    user_name: str | None = None,
    reason: str | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> StockTransfer:
    """
    Create a transfer and take its quantities out of the source.

    All lines are validated (after locking their rows) before any write:
    one bad line rejects the whole transfer and nothing is mutated.
    """
    reason = validate_reason(reason)
    creation_key = scoped_key("transfer", idempotency_key)
    if creation_key:
        existing = _find_by_key(db, StockTransfer.idempotency_key, creation_key)
        if existing:
            logger.info("transfer replay %s", existing.transfer_number)
            return existing

    if from_location == to_location:
        raise ValidationError(
            "Source and destination must differ",
            [{"field": "to_location", "location": to_location.kind.value, "store_id": to_location.store_id}],
        )
    _validate_lines(items)

    # lock in product id order, then read what is really available
    products = lock_products(db, (ln.product_id for ln in items))
    available: dict[int, int] = {}
    for pid in sorted(products):
        available[pid] = get_quantity(db, pid, from_location, lock=True)

    short = [
        {
            "product_id": ln.product_id,
            "product_name": products[ln.product_id].name,
            "available": available[ln.product_id],
            "requested": ln.quantity,
        }
        for ln in items
        if ln.quantity > available[ln.product_id]
    ]
    if short:
        logger.warning("transfer rejected, insufficient stock at %s: %s", from_location.label(), short)
        first = short[0]
        raise InsufficientStockError(
            f"Not enough stock in {from_location.label()} for {first['product_name']}. "
            f"Available: {first['available']}",
            short,
        )

    number = next_document_number(db, settings.TRANSFER_NUMBER_PREFIX)
    transfer = StockTransfer(
        transfer_number=number,
        from_kind=from_location.kind,
        from_store_id=from_location.store_id,
        to_kind=to_location.kind,
        to_store_id=to_location.store_id,
        status=TransferStatus.in_transit,
        notes=(notes or reason or None),
        created_by=str(user_id),
        created_by_name=user_name,
        idempotency_key=creation_key,
    )
    db.add(transfer)
    db.flush()

    for ln in items:
        product = products[ln.product_id]
        before = available[ln.product_id]
        adjust_stock(
            db,
            product_id=ln.product_id,
            location=from_location,
            new_quantity=before - ln.quantity,
            user_id=user_id,
            user_name=user_name,
            reason=f"Transferencia {number}",
            movement_type=MovementType.transfer_out,
            reference=number,
            idempotency_key=make_idempotency_key("transfer-out", transfer.id, ln.product_id),
        )
        transfer.items.append(
            TransferItem(
                product_id=ln.product_id,
                product_name=product.name,
                product_reference=product.reference,
                source_stock_snapshot=before,
                quantity=ln.quantity,
            )
        )

    flush_or_conflict(db)
    logger.info(
        "transfer %s created: %s -> %s, %d line(s), by=%s",
        number,
        from_location.label(),
        to_location.label(),
        len(items),
        user_id,
    )
    return transfer


def get_transfer(db: Session, transfer_id: int, *, lock: bool = False) -> StockTransfer:
    if lock:
        transfer = (
            db.execute(
                select(StockTransfer)
                .where(StockTransfer.id == transfer_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            .scalar_one_or_none()
        )
    else:
        transfer = db.get(StockTransfer, transfer_id)
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found", [{"transfer_id": transfer_id}])
    return transfer


def cancel_transfer(
    db: Session,
    transfer_id: int,
    *,
    user_id: str,
    user_name: str | None = None,
) -> StockTransfer:
    """Cancel an open transfer and put every reserved unit back at the source."""
    transfer = get_transfer(db, transfer_id, lock=True)
    if transfer.status not in OPEN_TRANSFER_STATUSES:
        raise InvalidStateError(
            f"Transfer {transfer.transfer_number} is {transfer.status.value} and cannot be cancelled",
            [{"transfer_id": transfer.id, "status": transfer.status.value}],
        )

    source = source_of(transfer)
    lock_products(db, (it.product_id for it in transfer.items))

    for item in transfer.items:
        current = get_quantity(db, item.product_id, source, lock=True)
        adjust_stock(
            db,
            product_id=item.product_id,
            location=source,
            new_quantity=current + item.quantity,
            user_id=user_id,
            user_name=user_name,
            reason=f"Cancelación de transferencia {transfer.transfer_number}",
            movement_type=MovementType.transfer_return,
            reference=transfer.transfer_number,
            idempotency_key=make_idempotency_key("transfer-return", transfer.id, item.id),
        )

    transfer.status = TransferStatus.cancelled
    transfer.cancelled_at = datetime.now(timezone.utc)
    flush_or_conflict(db)

    logger.info("transfer %s cancelled by=%s", transfer.transfer_number, user_id)
    return transfer


def _store_clause(column, store_id: int, is_main: bool):
    # main-store transfers are stored with store_id NULL
    if is_main:
        return column.is_(None)
    return column == store_id


def list_transfers(
    db: Session,
    *,
    status: TransferStatus | None = None,
    store_id: int | None = None,
    direction: str = "all",
    limit: int = 200,
) -> list[StockTransfer]:
    """
    direction (only with store_id):
        sent     -> transfers leaving the store
        pending  -> open transfers on their way to the store
        received -> transfers the store has received (fully or partially)
        all      -> either side
    """
    if direction not in {"all", "sent", "pending", "received"}:
        raise ValidationError(f"Invalid direction {direction!r}", [{"field": "direction", "value": direction}])

    stmt = select(StockTransfer).order_by(StockTransfer.id.desc()).limit(limit)
    if status is not None:
        stmt = stmt.where(StockTransfer.status == status)

    if store_id is not None:
        store = db.get(Store, store_id)
        if not store:
            raise NotFoundError(f"Store {store_id} not found", [{"store_id": store_id}])
        sent = _store_clause(StockTransfer.from_store_id, store_id, store.is_main)
        incoming = _store_clause(StockTransfer.to_store_id, store_id, store.is_main)

        if direction == "sent":
            stmt = stmt.where(sent)
        elif direction == "pending":
            stmt = stmt.where(and_(incoming, StockTransfer.status.in_(OPEN_TRANSFER_STATUSES)))
        elif direction == "received":
            stmt = stmt.where(and_(incoming, StockTransfer.status.in_(RECEIVED_STATUSES)))
        else:
            stmt = stmt.where(or_(sent, incoming))

    return list(db.execute(stmt).scalars().all())