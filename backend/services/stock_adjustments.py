"""
Stock adjustment service.

adjust_stock() is the single write path to the stock ledger. Transfers,
receipts and manual corrections all compute an absolute target quantity
and call it, so every mutation leaves one StockAdjustment row behind.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import settings
from backend.app.db.models.models_v1 import StockAdjustment
from backend.app.db.models.core_types import MovementType
from backend.services.errors import ConcurrencyConflictError, ValidationError
from backend.services.inventory import (
    StockLocation,
    _write_quantity,
    quantity_of,
    stock_row,
)

logger = logging.getLogger(__name__)


def validate_reason(reason: str | None) -> str | None:
    """Reason is optional; when given it must be meaningful (min length)."""
    if reason is None or not reason.strip():
        return None
    reason = reason.strip()
    min_len = settings.ADJUSTMENT_REASON_MIN_LENGTH
    if len(reason) < min_len:
        raise ValidationError(
            f"Reason must be at least {min_len} characters",
            [{"field": "reason", "min_length": min_len, "length": len(reason)}],
        )
    return reason


def flush_or_conflict(db: Session) -> None:
    """Flush; a stale version or a lost insert race becomes ConcurrencyConflictError."""
    try:
        db.flush()
    except StaleDataError as e:
        raise ConcurrencyConflictError("Stock changed concurrently, retry with fresh data") from e
    except IntegrityError as e:
        raise ConcurrencyConflictError("Concurrent write on the same stock row, retry with fresh data") from e


def _find_existing_adjustment(db: Session, idem: str) -> StockAdjustment | None:
    return db.execute(
        select(StockAdjustment).where(StockAdjustment.idempotency_key == idem)
    ).scalar_one_or_none()


def adjust_stock(
    db: Session,
    *,
    product_id: int,
    location: StockLocation,
    new_quantity: int,
    user_id: str,
    reason: str | None = None,
    user_name: str | None = None,
    movement_type: MovementType = MovementType.adjustment,
    reference: str | None = None,
    idempotency_key: str | None = None,
    expected_version: int | None = None,
) -> StockAdjustment:
    """
    Set the quantity of (product, location) to new_quantity (absolute).

    - new_quantity < 0 -> ValidationError
    - unknown product -> NotFoundError
    - expected_version given and the row moved on -> ConcurrencyConflictError
    - idempotency_key already used -> the earlier record, nothing written

    Flushes, never commits: the caller owns the transaction.
    """
    if idempotency_key:
        existing = _find_existing_adjustment(db, idempotency_key)
        if existing:
            logger.info("adjustment replay key=%s id=%s", idempotency_key[:12], existing.id)
            return existing

    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise ValidationError("Quantity must be an integer", [{"field": "new_quantity", "value": new_quantity}])
    if new_quantity < 0:
        raise ValidationError(
            "Quantity cannot be negative",
            [{"field": "new_quantity", "value": new_quantity, "product_id": product_id}],
        )
    if not user_id:
        raise ValidationError("user_id is required", [{"field": "user_id"}])
    reason = validate_reason(reason)

    row = stock_row(db, product_id, location, lock=True, create=True)

    if expected_version is not None:
        current_version = row.version_id or 0
        if current_version != expected_version:
            raise ConcurrencyConflictError(
                "Stock row version mismatch",
                [{
                    "product_id": product_id,
                    "location": location.kind.value,
                    "store_id": location.store_id,
                    "expected_version": expected_version,
                    "current_version": current_version,
                }],
            )

    previous = quantity_of(row, location)
    _write_quantity(row, location, new_quantity)

    record = StockAdjustment(
        product_id=product_id,
        location_kind=location.kind,
        store_id=location.store_id,
        previous_quantity=previous,
        new_quantity=new_quantity,
        delta=new_quantity - previous,
        movement_type=movement_type,
        reason=reason,
        reference=reference,
        user_id=str(user_id),
        user_name=user_name,
        idempotency_key=idempotency_key,
    )
    db.add(record)
    flush_or_conflict(db)

    logger.info(
        "stock %s product=%s %s: %s -> %s (delta=%+d) by=%s ref=%s",
        movement_type.value,
        product_id,
        location.label(),
        previous,
        new_quantity,
        record.delta,
        user_id,
        reference,
    )
    return record


def list_adjustments(
    db: Session,
    *,
    product_id: int | None = None,
    reference: str | None = None,
    limit: int = 200,
) -> list[StockAdjustment]:
    stmt = select(StockAdjustment).order_by(StockAdjustment.id.desc()).limit(limit)
    if product_id is not None:
        stmt = stmt.where(StockAdjustment.product_id == product_id)
    if reference is not None:
        stmt = stmt.where(StockAdjustment.reference == reference)
    return list(db.execute(stmt).scalars().all())
