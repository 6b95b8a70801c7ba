from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.db.models.core_types import LocationKind
from backend.app.db.session import transactional
from backend.app.schemas.stock_level import StockAdjustmentRead
from backend.services.errors import ValidationError
from backend.services.idempotency import scoped_key
from backend.services.inventory import resolve_location
from backend.services.stock_adjustments import adjust_stock, list_adjustments

router = APIRouter(prefix="/stock-adjustments")


def _etag_version(value: str | None) -> int | None:
    """
    Version from an If-Match header: 3, "3" and W/"3" all mean 3.
    Missing or * means no version check.
    """
    if value is None:
        return None
    tag = value.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    tag = tag.strip().strip('"')
    if tag in ("", "*"):
        return None
    if not tag.isdigit():
        raise ValidationError("If-Match must carry the version_id read from /stock", [{"field": "If-Match", "value": value}])
    return int(tag)


class StockAdjustmentCreate(BaseModel):
    product_id: int
    location: LocationKind
    store_id: int | None = None
    new_quantity: int = Field(ge=0)
    reason: str | None = Field(default=None, max_length=1000)


@router.get("", response_model=list[StockAdjustmentRead])
def get_adjustments(
    product_id: int | None = None,
    reference: str | None = None,
    limit: int = 200,
    db: Session = Depends(get_db),
):
    return list_adjustments(db, product_id=product_id, reference=reference, limit=limit)


@router.post("", response_model=StockAdjustmentRead, status_code=201)
def create_adjustment(
    payload: StockAdjustmentCreate,
    if_match: str | None = Header(default=None, alias="If-Match"),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """
    Set the absolute quantity of one product at one location.

    If-Match carries the version_id read from /stock; a stale version is a 409.
    """
    expected_version = _etag_version(if_match)
    with transactional(db):
        location = resolve_location(db, payload.location, payload.store_id)
        record = adjust_stock(
            db,
            product_id=payload.product_id,
            location=location,
            new_quantity=payload.new_quantity,
            user_id=actor.user_id,
            user_name=actor.user_name,
            reason=payload.reason,
            idempotency_key=scoped_key("adjustment", idempotency_key),
            expected_version=expected_version,
        )
    return StockAdjustmentRead.model_validate(record)
