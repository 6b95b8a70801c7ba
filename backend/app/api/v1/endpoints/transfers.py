from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.db.models.core_types import LocationKind, TransferStatus
from backend.app.db.session import transactional
from backend.app.schemas.transfers import DiscrepancyRead, TransferRead
from backend.services.inventory import resolve_location
from backend.services.receiving import ReceivedLine, confirm_receipt, discrepancy_report
from backend.services.transfers import (
    TransferLine,
    cancel_transfer,
    create_transfer,
    get_transfer,
    list_transfers,
)

router = APIRouter(prefix="/transfers")


class LocationIn(BaseModel):
    location: LocationKind
    store_id: int | None = None


class TransferItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class TransferCreate(BaseModel):
    from_location: LocationIn
    to_location: LocationIn
    items: list[TransferItemIn] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=1000)


class ReceivedItemIn(BaseModel):
    item_id: int
    quantity_received: int = Field(ge=0)
    note: str | None = Field(default=None, max_length=500)


class ReceiptCreate(BaseModel):
    # empty -> everything arrived as sent
    items: list[ReceivedItemIn] = Field(default_factory=list)


@router.get("", response_model=list[TransferRead])
def get_transfers(
    status: TransferStatus | None = None,
    store_id: int | None = None,
    direction: str = "all",
    limit: int = 200,
    db: Session = Depends(get_db),
):
    return list_transfers(db, status=status, store_id=store_id, direction=direction, limit=limit)


@router.post("", response_model=TransferRead, status_code=201)
def post_transfer(
    payload: TransferCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        transfer = create_transfer(
            db,
            from_location=resolve_location(db, payload.from_location.location, payload.from_location.store_id),
            to_location=resolve_location(db, payload.to_location.location, payload.to_location.store_id),
            items=[TransferLine(product_id=i.product_id, quantity=i.quantity) for i in payload.items],
            user_id=actor.user_id,
            user_name=actor.user_name,
            reason=payload.reason,
            notes=payload.notes,
            idempotency_key=idempotency_key,
        )
    return TransferRead.model_validate(transfer)


@router.get("/{transfer_id}", response_model=TransferRead)
def get_one(transfer_id: int, db: Session = Depends(get_db)):
    return TransferRead.model_validate(get_transfer(db, transfer_id))


@router.post("/{transfer_id}/cancel", response_model=TransferRead)
def post_cancel(
    transfer_id: int,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        transfer = cancel_transfer(db, transfer_id, user_id=actor.user_id, user_name=actor.user_name)
    return TransferRead.model_validate(transfer)


@router.post("/{transfer_id}/receive", response_model=TransferRead)
def post_receive(
    transfer_id: int,
    payload: ReceiptCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        transfer = confirm_receipt(
            db,
            transfer_id,
            [ReceivedLine(item_id=i.item_id, quantity_received=i.quantity_received, note=i.note) for i in payload.items],
            user_id=actor.user_id,
            user_name=actor.user_name,
            idempotency_key=idempotency_key,
        )
    return TransferRead.model_validate(transfer)


@router.get("/{transfer_id}/discrepancies", response_model=list[DiscrepancyRead])
def get_discrepancies(transfer_id: int, db: Session = Depends(get_db)):
    return discrepancy_report(get_transfer(db, transfer_id))
