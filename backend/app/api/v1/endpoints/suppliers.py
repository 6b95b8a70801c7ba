from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Supplier
from backend.app.schemas.suppliers import SupplierRead
from backend.services.errors import NotFoundError

# Suppliers are maintained elsewhere; purchase orders only look them up.
router = APIRouter(prefix="/suppliers")


@router.get("", response_model=list[SupplierRead])
def get_suppliers(
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Supplier).order_by(Supplier.name)
    if active is not None:
        stmt = stmt.where(Supplier.active == active)
    return db.execute(stmt).scalars().all()


@router.get("/{supplier_id}", response_model=SupplierRead)
def get_supplier(supplier_id: int, db: Session = Depends(get_db)):
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found", [{"supplier_id": supplier_id}])
    return supplier
