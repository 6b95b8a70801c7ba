from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from backend.app.db.models.core_types import LocationKind, POStatus


class PurchaseOrderItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    received_quantity: int | None

    class Config:
        from_attributes = True


class PurchaseOrderRead(BaseModel):
    id: int
    order_number: str
    supplier_id: int
    status: POStatus
    total: Decimal
    estimated_delivery_date: date | None
    received_date: datetime | None
    invoice_number: str | None
    notes: str | None
    received_location_kind: LocationKind | None
    received_store_id: int | None
    created_at: datetime
    created_by: str | None

    items: list[PurchaseOrderItemRead]

    class Config:
        from_attributes = True
