import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.db.models.models_v1 import Base, Product, Store, Supplier
from backend.services.stock_adjustments import adjust_stock
from backend.tests.factories import STORE, USER, WAREHOUSE

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite://")


def _make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        # one shared in-memory DB, usable from the TestClient worker thread
        return create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(TEST_DATABASE_URL, pool_pre_ping=True)


@pytest.fixture(scope="session")
def engine():
    eng = _make_engine()
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    """
    Fresh schema per test.

    Services commit through transactional(), so a rollback-only fixture
    would not isolate them: the tables are rebuilt instead.
    """
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def main_store(db_session) -> Store:
    store = Store(name="Principal", is_main=True, active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def micro_store(db_session) -> Store:
    store = Store(name="Local Norte", is_main=False, active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture
def supplier(db_session) -> Supplier:
    s = Supplier(name="Proveedor Uno", nit="900123456-7", active=True)
    db_session.add(s)
    db_session.commit()
    return s


@pytest.fixture
def make_product(db_session):
    """Product factory; initial stock is written through adjust_stock like any other change."""
    counter = {"n": 0}

    def _make(warehouse: int = 0, store: int = 0, name: str | None = None) -> Product:
        counter["n"] += 1
        n = counter["n"]
        p = Product(reference=f"REF-{n:03d}", name=name or f"Producto {n}")
        db_session.add(p)
        db_session.flush()
        if warehouse:
            adjust_stock(db_session, product_id=p.id, location=WAREHOUSE, new_quantity=warehouse, user_id=USER)
        if store:
            adjust_stock(db_session, product_id=p.id, location=STORE, new_quantity=store, user_id=USER)
        db_session.commit()
        return p

    return _make
