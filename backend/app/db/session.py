from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def transactional(db: Session) -> Iterator[Session]:
    """
    One command == one transaction.

    Commit if the block finishes, rollback on any exception (then re-raise).
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
