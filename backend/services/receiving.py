"""
Receiving reconciler: completes an in-flight transfer at its destination.

Only what actually arrived is added to the destination. Per-line
discrepancy (expected - received) is the record of what was lost/short.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import StockTransfer
from backend.app.db.models.core_types import (
    MovementType,
    TransferStatus,
    OPEN_TRANSFER_STATUSES,
)
from backend.services.errors import InvalidStateError, ValidationError
from backend.services.idempotency import make_idempotency_key, scoped_key
from backend.services.inventory import get_quantity, lock_products
from backend.services.stock_adjustments import adjust_stock, flush_or_conflict
from backend.services.transfers import destination_of, get_transfer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceivedLine:
    item_id: int
    quantity_received: int
    note: str | None = None


def _plan_receipt(transfer: StockTransfer, lines: Sequence[ReceivedLine] | None) -> dict[int, tuple[int, str | None]]:
    """item_id -> (quantity_received, note). No lines == receive everything."""
    if not lines:
        return {it.id: (it.quantity, None) for it in transfer.items}

    items = {it.id: it for it in transfer.items}
    plan: dict[int, tuple[int, str | None]] = {}
    problems: list[dict] = []

    for idx, ln in enumerate(lines):
        item = items.get(ln.item_id)
        if item is None:
            problems.append({"line": idx, "item_id": ln.item_id, "error": "item not in transfer"})
            continue
        if ln.item_id in plan:
            problems.append({"line": idx, "item_id": ln.item_id, "error": "duplicate item"})
            continue

        qty = ln.quantity_received
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 0:
            problems.append({
                "line": idx,
                "item_id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity_received": qty,
                "error": "received quantity cannot be negative",
            })
        elif qty > item.quantity:
            # over-receipt between internal locations goes through a separate adjustment
            problems.append({
                "line": idx,
                "item_id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "expected": item.quantity,
                "quantity_received": qty,
                "error": "received quantity exceeds expected",
            })
        plan[item.id] = (qty, ln.note)

    if problems:
        raise ValidationError("Invalid received quantities", problems)

    for it in transfer.items:
        plan.setdefault(it.id, (0, None))
    return plan


def confirm_receipt(
    db: Session,
    transfer_id: int,
    received_lines: Sequence[ReceivedLine] | None,
    *,
    user_id: str,
    user_name: str | None = None,
    idempotency_key: str | None = None,
) -> StockTransfer:
    """
    Apply the destination increments and settle the transfer.

    Final status: received when every line arrived in full, otherwise
    partially_received. A retried call with the same idempotency key
    returns the settled transfer without adding stock twice.
    """
    receipt_key = scoped_key(f"transfer-receipt:{transfer_id}", idempotency_key)
    transfer = get_transfer(db, transfer_id, lock=True)

    if transfer.status not in OPEN_TRANSFER_STATUSES:
        if receipt_key and transfer.receipt_idempotency_key == receipt_key:
            logger.info("receipt replay %s", transfer.transfer_number)
            return transfer
        raise InvalidStateError(
            f"Transfer {transfer.transfer_number} is {transfer.status.value} and cannot be received",
            [{"transfer_id": transfer.id, "status": transfer.status.value}],
        )

    plan = _plan_receipt(transfer, received_lines)
    if not any(qty > 0 for qty, _ in plan.values()):
        raise ValidationError(
            "At least one unit of one product must be received",
            [{"field": "received_lines"}],
        )

    destination = destination_of(transfer)
    lock_products(db, (it.product_id for it in transfer.items))

    for item in transfer.items:
        qty, note = plan[item.id]
        if qty > 0:
            current = get_quantity(db, item.product_id, destination, lock=True)
            adjust_stock(
                db,
                product_id=item.product_id,
                location=destination,
                new_quantity=current + qty,
                user_id=user_id,
                user_name=user_name,
                reason=f"Recepción de transferencia {transfer.transfer_number}",
                movement_type=MovementType.transfer_in,
                reference=transfer.transfer_number,
                idempotency_key=make_idempotency_key("transfer-in", transfer.id, item.id),
            )
        item.quantity_received = qty
        item.note = note.strip() if note and note.strip() else None

    shortfall = [it for it in transfer.items if it.discrepancy]
    transfer.status = TransferStatus.partially_received if shortfall else TransferStatus.received
    transfer.received_at = datetime.now(timezone.utc)
    transfer.received_by = str(user_id)
    transfer.received_by_name = user_name
    transfer.receipt_idempotency_key = receipt_key
    flush_or_conflict(db)

    if shortfall:
        logger.warning(
            "transfer %s received with shortfall: %s",
            transfer.transfer_number,
            {it.product_id: it.discrepancy for it in shortfall},
        )
    else:
        logger.info("transfer %s received in full by=%s", transfer.transfer_number, user_id)
    return transfer


def discrepancy_report(transfer: StockTransfer) -> list[dict]:
    return [
        {
            "item_id": it.id,
            "product_id": it.product_id,
            "product_name": it.product_name,
            "expected": it.quantity,
            "received": it.quantity_received,
            "discrepancy": it.discrepancy,
            "note": it.note,
        }
        for it in transfer.items
    ]
