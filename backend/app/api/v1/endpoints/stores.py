from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import Store

router = APIRouter(prefix="/stores")


class StoreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    is_main: bool = False
    active: bool = True


@router.get("")
def list_stores(
    active: bool | None = None,
    db: Session = Depends(get_db),
):
    stmt = select(Store).order_by(Store.id)
    if active is not None:
        stmt = stmt.where(Store.active == active)

    rows = db.execute(stmt).scalars().all()
    return [
        {
            "id": s.id,
            "name": s.name,
            "is_main": s.is_main,
            "active": s.active,
        }
        for s in rows
    ]


@router.post("")
def create_store(payload: StoreCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Store).where(Store.name == payload.name)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="Store already exists")

    if payload.is_main:
        main = db.execute(select(Store).where(Store.is_main.is_(True))).scalar_one_or_none()
        if main:
            raise HTTPException(status_code=409, detail=f"Main store already defined ({main.name})")

    s = Store(name=payload.name, is_main=payload.is_main, active=payload.active)
    db.add(s)
    db.commit()
    db.refresh(s)
    return {"id": s.id, "name": s.name, "is_main": s.is_main}
