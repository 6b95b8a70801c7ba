from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from backend.app.api.deps import Actor, get_actor, get_db
from backend.app.db.models.core_types import LocationKind, POStatus
from backend.app.db.session import transactional
from backend.app.schemas.purchase_orders import PurchaseOrderRead
from backend.services.inventory import resolve_location
from backend.services.procurement import (
    OrderLine,
    OrderReceivedLine,
    create_purchase_order,
    get_purchase_order,
    list_purchase_orders,
    receive_order,
    update_order_status,
)

router = APIRouter(prefix="/purchase-orders")


class POItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)


class POCreate(BaseModel):
    supplier_id: int
    estimated_delivery_date: date | None = None
    notes: str | None = Field(default=None, max_length=1000)
    items: list[POItemCreate] = Field(min_length=1)


class POStatusUpdate(BaseModel):
    status: POStatus


class POReceivedItem(BaseModel):
    item_id: int
    received_quantity: int = Field(ge=0)


class POReceive(BaseModel):
    stock_location: LocationKind = LocationKind.warehouse
    store_id: int | None = None
    invoice_number: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=1000)
    items: list[POReceivedItem] = Field(min_length=1)


@router.get("", response_model=list[PurchaseOrderRead])
def list_pos(
    status: POStatus | None = None,
    supplier_id: int | None = None,
    limit: int = 200,
    db: Session = Depends(get_db),
):
    return list_purchase_orders(db, status=status, supplier_id=supplier_id, limit=limit)


@router.get("/{order_id}", response_model=PurchaseOrderRead)
def get_po(order_id: int, db: Session = Depends(get_db)):
    return PurchaseOrderRead.model_validate(get_purchase_order(db, order_id))


@router.post("", response_model=PurchaseOrderRead, status_code=201)
def create_po(
    payload: POCreate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        order = create_purchase_order(
            db,
            supplier_id=payload.supplier_id,
            items=[OrderLine(product_id=i.product_id, quantity=i.quantity, unit_price=i.unit_price) for i in payload.items],
            user_id=actor.user_id,
            estimated_delivery_date=payload.estimated_delivery_date,
            notes=payload.notes,
        )
    return PurchaseOrderRead.model_validate(order)


@router.post("/{order_id}/status", response_model=PurchaseOrderRead)
def post_status(
    order_id: int,
    payload: POStatusUpdate,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        order = update_order_status(db, order_id, payload.status)
    return PurchaseOrderRead.model_validate(order)


@router.post("/{order_id}/receive", response_model=PurchaseOrderRead)
def post_receive(
    order_id: int,
    payload: POReceive,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    with transactional(db):
        order = receive_order(
            db,
            order_id,
            [OrderReceivedLine(item_id=i.item_id, received_quantity=i.received_quantity) for i in payload.items],
            stock_location=resolve_location(db, payload.stock_location, payload.store_id),
            user_id=actor.user_id,
            user_name=actor.user_name,
            invoice_number=payload.invoice_number,
            notes=payload.notes,
            idempotency_key=idempotency_key,
        )
    return PurchaseOrderRead.model_validate(order)
