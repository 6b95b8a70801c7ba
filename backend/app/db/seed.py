from __future__ import annotations

import logging

from sqlalchemy import select

from backend.app.core.logging import configure_logging
from backend.app.db.session import SessionLocal, transactional
from backend.app.db.models.models_v1 import Product, Store, Supplier

logger = logging.getLogger(__name__)


def run_seed():
    db = SessionLocal()
    try:
        with transactional(db):
            # 1) Main store (stock held on products.stock_warehouse / stock_store)
            main = db.scalar(select(Store).where(Store.is_main.is_(True)))
            if not main:
                main = Store(name="Principal", is_main=True, active=True)
                db.add(main)

            # 2) One micro store to transfer into
            if not db.scalar(select(Store).where(Store.name == "Local Centro")):
                db.add(Store(name="Local Centro", is_main=False, active=True))

            # 3) Demo supplier + product, stock starts at 0
            if not db.scalar(select(Supplier).where(Supplier.name == "Proveedor Demo")):
                db.add(Supplier(name="Proveedor Demo", nit="900000000-1", active=True))
            if not db.scalar(select(Product).where(Product.reference == "DEMO-001")):
                db.add(Product(reference="DEMO-001", name="Producto demo", stock_warehouse=0, stock_store=0))

        logger.info("seed ok: main store=%s", main.name)
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
