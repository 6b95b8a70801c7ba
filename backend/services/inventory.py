"""
Stock ledger.

Authoritative per-(product, location) quantities:
    - main store: products.stock_warehouse / products.stock_store
    - other stores: store_stock.quantity (store/local location only)

Reads are public. The only writer is backend.services.stock_adjustments,
which goes through _write_quantity so every change is audited.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import Product, Store, StoreStock
from backend.app.db.models.core_types import LocationKind
from backend.services.errors import NotFoundError, ValidationError


@dataclass(frozen=True)
class StockLocation:
    kind: LocationKind
    store_id: int | None = None  # None == main store

    @property
    def is_main_store(self) -> bool:
        return self.store_id is None

    def label(self) -> str:
        name = "Bodega" if self.kind == LocationKind.warehouse else "Local"
        if self.store_id is None:
            return name
        return f"{name} (tienda {self.store_id})"


def resolve_location(db: Session, kind: LocationKind | str, store_id: int | None = None) -> StockLocation:
    """
    Normalise a (kind, store_id) pair through the store registry.

    The main store id collapses to store_id=None, so the same physical
    location always compares equal.
    """
    try:
        kind = LocationKind(kind)
    except ValueError:
        raise ValidationError(f"Invalid location {kind!r}", [{"field": "location", "value": str(kind)}])

    if store_id is None:
        return StockLocation(kind=kind)

    store = db.get(Store, store_id)
    if not store:
        raise NotFoundError(f"Store {store_id} not found", [{"field": "store_id", "value": store_id}])
    if not store.active:
        raise ValidationError(f"Store {store.name} is inactive", [{"field": "store_id", "value": store_id}])

    if store.is_main:
        return StockLocation(kind=kind)

    if kind != LocationKind.store:
        raise ValidationError(
            f"Store {store.name} has no warehouse location",
            [{"field": "location", "value": kind.value, "store_id": store_id}],
        )
    return StockLocation(kind=LocationKind.store, store_id=int(store.id))


def get_product(db: Session, product_id: int, *, lock: bool = False) -> Product:
    if lock:
        product = (
            db.execute(
                select(Product)
                .where(Product.id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            .scalar_one_or_none()
        )
    else:
        product = db.get(Product, product_id)

    if not product:
        raise NotFoundError(f"Product {product_id} not found", [{"product_id": product_id}])
    return product


def lock_products(db: Session, product_ids: Iterable[int]) -> dict[int, Product]:
    """
    Lock product rows FOR UPDATE in ascending id order.

    A fixed lock order keeps two multi-line commands from deadlocking.
    Unknown ids raise NotFoundError listing all of them.
    """
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    found = {int(p.id): p for p in rows}

    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise NotFoundError(
            f"Unknown product(s): {', '.join(str(m) for m in missing)}",
            [{"product_id": m} for m in missing],
        )
    return found


def _get_store_stock(db: Session, product_id: int, store_id: int, *, lock: bool) -> StoreStock | None:
    stmt = (
        select(StoreStock)
        .where(StoreStock.store_id == store_id)
        .where(StoreStock.product_id == product_id)
    )
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def stock_row(
    db: Session,
    product_id: int,
    location: StockLocation,
    *,
    lock: bool = False,
    create: bool = False,
) -> Product | StoreStock | None:
    """
    Row that holds the quantity for (product, location).

    For a non-main store the row may not exist yet; with create=True an
    empty one is added (not flushed).
    """
    product = get_product(db, product_id, lock=lock and location.is_main_store)
    if location.is_main_store:
        return product

    row = _get_store_stock(db, product_id, location.store_id, lock=lock)
    if row is None and create:
        row = StoreStock(store_id=location.store_id, product_id=product_id, quantity=0)
        db.add(row)
    return row


def quantity_of(row: Product | StoreStock | None, location: StockLocation) -> int:
    if row is None:
        return 0
    if isinstance(row, StoreStock):
        return int(row.quantity or 0)
    if location.kind == LocationKind.warehouse:
        return int(row.stock_warehouse or 0)
    return int(row.stock_store or 0)


def get_quantity(db: Session, product_id: int, location: StockLocation, *, lock: bool = False) -> int:
    row = stock_row(db, product_id, location, lock=lock)
    return quantity_of(row, location)


def _write_quantity(row: Product | StoreStock, location: StockLocation, new_quantity: int) -> None:
    # private: only stock_adjustments.adjust_stock may call this
    if isinstance(row, StoreStock):
        row.quantity = new_quantity
    elif location.kind == LocationKind.warehouse:
        row.stock_warehouse = new_quantity
    else:
        row.stock_store = new_quantity


def stock_snapshot(db: Session, product_id: int) -> dict:
    product = get_product(db, product_id)
    stores = (
        db.execute(
            select(StoreStock)
            .where(StoreStock.product_id == product_id)
            .order_by(StoreStock.store_id.asc())
        )
        .scalars()
        .all()
    )
    return {
        "product_id": int(product.id),
        "reference": product.reference,
        "name": product.name,
        "warehouse": product.stock_warehouse,
        "store": product.stock_store,
        "total": product.stock_total,
        "version_id": product.version_id,
        "stores": [
            {"store_id": int(s.store_id), "quantity": s.quantity, "version_id": s.version_id}
            for s in stores
        ],
    }
