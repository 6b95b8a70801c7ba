from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.models.models_v1 import NumberSeries
from backend.services.stock_adjustments import flush_or_conflict


def next_document_number(db: Session, prefix: str, *, width: int = 3, now: datetime | None = None) -> str:
    """
    Allocate the next sequential number, e.g. TR-2026-007.

    The series row is locked FOR UPDATE; the lock is held until the caller's
    transaction ends, so concurrent commands never get the same number.
    """
    year = (now or datetime.now(timezone.utc)).year

    series = (
        db.execute(
            select(NumberSeries)
            .where(NumberSeries.code == prefix)
            .where(NumberSeries.year == year)
            .with_for_update()
        )
        .scalar_one_or_none()
    )
    if not series:
        series = NumberSeries(code=prefix, year=year, next_number=1)
        db.add(series)
        # two first documents of the year race on this insert; the loser gets a 409
        flush_or_conflict(db)

    current = series.next_number
    series.next_number = current + 1
    flush_or_conflict(db)

    return f"{prefix}-{year}-{str(current).zfill(width)}"
