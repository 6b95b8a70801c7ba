from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product
from backend.app.schemas.stock_level import ProductStockRead
from backend.services.inventory import stock_snapshot

router = APIRouter(prefix="/stock")


@router.get(
    "",
    response_model=list[ProductStockRead],
)
def get_stock(
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    """
    Stock (READ ONLY)
    - total = warehouse + store, computed, never written
    - quantities change only through /stock-adjustments, transfers and receipts
    """
    stmt = select(Product.id).order_by(Product.reference)
    if active is not None:
        stmt = stmt.where(Product.active == active)

    ids = db.execute(stmt).scalars().all()
    return [stock_snapshot(db, pid) for pid in ids]


@router.get(
    "/{product_id}",
    response_model=ProductStockRead,
)
def get_product_stock(product_id: int, db: Session = Depends(get_db)):
    return stock_snapshot(db, product_id)
