from datetime import datetime

from pydantic import BaseModel

from backend.app.db.models.core_types import LocationKind, TransferStatus


class TransferItemRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_reference: str | None
    source_stock_snapshot: int
    quantity: int
    quantity_received: int | None
    discrepancy: int | None
    note: str | None

    class Config:
        from_attributes = True


class TransferRead(BaseModel):
    id: int
    transfer_number: str
    from_kind: LocationKind
    from_store_id: int | None
    to_kind: LocationKind
    to_store_id: int | None
    status: TransferStatus
    notes: str | None

    created_at: datetime
    created_by: str
    created_by_name: str | None
    received_at: datetime | None
    received_by: str | None
    received_by_name: str | None
    cancelled_at: datetime | None

    items: list[TransferItemRead]

    class Config:
        from_attributes = True


class DiscrepancyRead(BaseModel):
    item_id: int
    product_id: int
    product_name: str
    expected: int
    received: int | None
    discrepancy: int | None
    note: str | None
