"""
Procurement service.

Purchase orders and their reception. Stock is never written here
directly: receipts go through backend.services.stock_adjustments.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.db.models.models_v1 import (
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
)
from backend.app.db.models.core_types import MovementType, POStatus, OPEN_PO_STATUSES
from backend.services.errors import InvalidStateError, NotFoundError, ValidationError
from backend.services.idempotency import make_idempotency_key, scoped_key
from backend.services.inventory import StockLocation, get_quantity, lock_products
from backend.services.numbering import next_document_number
from backend.services.stock_adjustments import adjust_stock, flush_or_conflict

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# status changes allowed outside of receive_order
STATUS_TRANSITIONS = {
    POStatus.pending: {POStatus.in_transit, POStatus.cancelled},
    POStatus.in_transit: {POStatus.cancelled},
}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderReceivedLine:
    item_id: int
    received_quantity: int


def max_receivable(ordered: int, tolerance: Decimal | None = None) -> int:
    """ceil(ordered * (1 + tolerance)); Decimal so 100 * 1.1 is exactly 110."""
    if tolerance is None:
        tolerance = settings.SUPPLIER_RECEIPT_TOLERANCE
    return math.ceil(Decimal(ordered) * (Decimal(1) + tolerance))


def line_total(quantity: int, unit_price: Decimal) -> Decimal:
    return (Decimal(quantity) * Decimal(unit_price)).quantize(CENT)


# ---------- ORDERS ----------
def create_purchase_order(
    db: Session,
    *,
    supplier_id: int,
    items: Sequence[OrderLine],
    user_id: str | None = None,
    estimated_delivery_date: date | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found", [{"supplier_id": supplier_id}])
    if not supplier.active:
        raise ValidationError(f"Supplier {supplier.name} is inactive", [{"supplier_id": supplier_id}])
    if not items:
        raise ValidationError("A purchase order needs at least one item", [{"field": "items"}])

    problems: list[dict] = []
    seen: set[int] = set()
    for idx, ln in enumerate(items):
        if isinstance(ln.quantity, bool) or not isinstance(ln.quantity, int) or ln.quantity <= 0:
            problems.append({"line": idx, "product_id": ln.product_id, "quantity": ln.quantity, "error": "quantity must be > 0"})
        if Decimal(ln.unit_price) < 0:
            problems.append({"line": idx, "product_id": ln.product_id, "unit_price": str(ln.unit_price), "error": "unit price cannot be negative"})
        if ln.product_id in seen:
            problems.append({"line": idx, "product_id": ln.product_id, "error": "duplicate product"})
        seen.add(ln.product_id)
    if problems:
        raise ValidationError("Invalid purchase order items", problems)

    products = {
        int(p.id): p
        for p in db.execute(select(Product).where(Product.id.in_(seen))).scalars().all()
    }
    missing = sorted(pid for pid in seen if pid not in products)
    if missing:
        raise NotFoundError(
            f"Unknown product(s): {', '.join(str(m) for m in missing)}",
            [{"product_id": m} for m in missing],
        )

    order = PurchaseOrder(
        order_number=next_document_number(db, settings.PURCHASE_ORDER_NUMBER_PREFIX),
        supplier_id=supplier_id,
        status=POStatus.pending,
        estimated_delivery_date=estimated_delivery_date,
        notes=notes,
        created_by=str(user_id) if user_id is not None else None,
    )
    for ln in items:
        order.items.append(
            PurchaseOrderItem(
                product_id=ln.product_id,
                product_name=products[ln.product_id].name,
                quantity=ln.quantity,
                unit_price=Decimal(ln.unit_price).quantize(CENT),
                total=line_total(ln.quantity, ln.unit_price),
            )
        )
    order.total = sum((it.total for it in order.items), Decimal("0.00"))

    db.add(order)
    db.flush()
    logger.info("purchase order %s created, supplier=%s total=%s", order.order_number, supplier_id, order.total)
    return order


def get_purchase_order(db: Session, order_id: int, *, lock: bool = False) -> PurchaseOrder:
    if lock:
        order = (
            db.execute(
                select(PurchaseOrder)
                .where(PurchaseOrder.id == order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            .scalar_one_or_none()
        )
    else:
        order = db.get(PurchaseOrder, order_id)
    if not order:
        raise NotFoundError(f"Purchase order {order_id} not found", [{"order_id": order_id}])
    return order


def list_purchase_orders(
    db: Session,
    *,
    status: POStatus | None = None,
    supplier_id: int | None = None,
    limit: int = 200,
) -> list[PurchaseOrder]:
    stmt = select(PurchaseOrder).order_by(PurchaseOrder.id.desc()).limit(limit)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    return list(db.execute(stmt).scalars().all())


def update_order_status(db: Session, order_id: int, status: POStatus) -> PurchaseOrder:
    """Dispatch (pending -> in_transit) or cancel an open order."""
    order = get_purchase_order(db, order_id, lock=True)
    allowed = STATUS_TRANSITIONS.get(order.status, set())
    if status not in allowed:
        raise InvalidStateError(
            f"Purchase order {order.order_number} cannot go from {order.status.value} to {status.value}",
            [{"order_id": order.id, "status": order.status.value, "requested": status.value}],
        )
    order.status = status
    db.flush()
    logger.info("purchase order %s -> %s", order.order_number, status.value)
    return order


# ---------- RECEPTION ----------
def _plan_reception(order: PurchaseOrder, lines: Sequence[OrderReceivedLine]) -> dict[int, int]:
    if not lines:
        raise ValidationError("At least one product must be received", [{"field": "received_lines"}])

    items = {it.id: it for it in order.items}
    plan: dict[int, int] = {}
    problems: list[dict] = []

    for idx, ln in enumerate(lines):
        item = items.get(ln.item_id)
        if item is None:
            problems.append({"line": idx, "item_id": ln.item_id, "error": "item not in order"})
            continue
        if ln.item_id in plan:
            problems.append({"line": idx, "item_id": ln.item_id, "error": "duplicate item"})
            continue

        qty = ln.received_quantity
        cap = max_receivable(item.quantity)
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            problems.append({
                "line": idx,
                "item_id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "received_quantity": qty,
                "error": "received quantity cannot be negative",
            })
        elif qty > cap:
            problems.append({
                "line": idx,
                "item_id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "ordered": item.quantity,
                "received_quantity": qty,
                "max_allowed": cap,
                "error": "received quantity exceeds the over-delivery tolerance",
            })
        plan[item.id] = qty

    if problems:
        logger.warning("reception of %s rejected: %s", order.order_number, problems)
        raise ValidationError("Invalid received quantities", problems)

    for it in order.items:
        plan.setdefault(it.id, 0)
    return plan


def receive_order(
    db: Session,
    order_id: int,
    received_lines: Sequence[OrderReceivedLine],
    *,
    stock_location: StockLocation,
    user_id: str,
    user_name: str | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> PurchaseOrder:
    """
    Put the received goods into stock_location and settle the order.

    One location for the whole receipt. Line and order totals are
    recomputed from received quantities. Status: received if every line
    got at least what was ordered, otherwise partial.
    """
    receipt_key = scoped_key(f"po-receipt:{order_id}", idempotency_key)
    order = get_purchase_order(db, order_id, lock=True)

    if order.status not in OPEN_PO_STATUSES:
        if receipt_key and order.receipt_idempotency_key == receipt_key:
            logger.info("reception replay %s", order.order_number)
            return order
        raise InvalidStateError(
            f"Purchase order {order.order_number} is {order.status.value} and cannot be received",
            [{"order_id": order.id, "status": order.status.value}],
        )

    plan = _plan_reception(order, received_lines)
    lock_products(db, (it.product_id for it in order.items))

    for item in order.items:
        qty = plan[item.id]
        if qty > 0:
            current = get_quantity(db, item.product_id, stock_location, lock=True)
            adjust_stock(
                db,
                product_id=item.product_id,
                location=stock_location,
                new_quantity=current + qty,
                user_id=user_id,
                user_name=user_name,
                reason=f"Recepción de orden {order.order_number}",
                movement_type=MovementType.purchase_receipt,
                reference=order.order_number,
                idempotency_key=make_idempotency_key("po-receipt", order.id, item.id),
            )
        item.received_quantity = qty
        item.total = line_total(qty, item.unit_price)

    order.total = sum((it.total for it in order.items), Decimal("0.00"))
    complete = all(it.received_quantity >= it.quantity for it in order.items)
    order.status = POStatus.received if complete else POStatus.partial
    order.received_date = datetime.now(timezone.utc)
    order.received_location_kind = stock_location.kind
    order.received_store_id = stock_location.store_id
    order.receipt_idempotency_key = receipt_key
    if invoice_number and invoice_number.strip():
        order.invoice_number = invoice_number.strip()
    if notes and notes.strip():
        order.notes = notes.strip()
    flush_or_conflict(db)

    logger.info(
        "purchase order %s %s into %s, total=%s by=%s",
        order.order_number,
        order.status.value,
        stock_location.label(),
        order.total,
        user_id,
    )
    return order
