from __future__ import annotations

from dataclasses import dataclass
from typing import Generator

from fastapi import Header, HTTPException

from backend.app.db.session import SessionLocal


@dataclass(frozen=True)
class Actor:
    user_id: str
    user_name: str | None = None


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_name: str | None = Header(default=None, alias="X-User-Name"),
) -> Actor:
    # identity comes from the session layer in front of this service
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    name = x_user_name.strip() if x_user_name and x_user_name.strip() else None
    return Actor(user_id=x_user_id.strip(), user_name=name)
