from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Product

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    reference: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    active: bool = True


def _product_out(p: Product) -> dict:
    return {
        "id": p.id,
        "reference": p.reference,
        "name": p.name,
        "active": p.active,
        "stock": {
            "warehouse": p.stock_warehouse,
            "store": p.stock_store,
            "total": p.stock_total,
        },
        "version_id": p.version_id,
    }


@router.get("")
def list_products(db: Session = Depends(get_db)):
    rows = db.execute(select(Product).order_by(Product.reference)).scalars().all()
    return [_product_out(p) for p in rows]


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    p = db.get(Product, product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return _product_out(p)


@router.post("")
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Product).where(Product.reference == payload.reference)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Reference already exists")

    # stock starts at 0; quantities only change through stock adjustments
    p = Product(
        reference=payload.reference,
        name=payload.name,
        active=payload.active,
        stock_warehouse=0,
        stock_store=0,
    )
    db.add(p)
    db.commit()
    db.refresh(p)

    return {"id": p.id, "reference": p.reference, "name": p.name}
