from datetime import datetime

from pydantic import BaseModel

from backend.app.db.models.core_types import LocationKind, MovementType


class StoreStockRead(BaseModel):
    store_id: int
    quantity: int
    version_id: int


class ProductStockRead(BaseModel):
    product_id: int
    reference: str
    name: str

    warehouse: int
    store: int
    total: int  # READ ONLY: warehouse + store, never written
    version_id: int
    stores: list[StoreStockRead] = []


class StockAdjustmentRead(BaseModel):
    id: int
    product_id: int
    location_kind: LocationKind
    store_id: int | None
    previous_quantity: int
    new_quantity: int
    delta: int
    movement_type: MovementType
    reason: str | None
    reference: str | None
    user_id: str
    user_name: str | None
    created_at: datetime

    class Config:
        from_attributes = True
