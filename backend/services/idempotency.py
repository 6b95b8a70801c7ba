from __future__ import annotations

import hashlib


def make_idempotency_key(*parts: object) -> str:
    """
    Stable key from its parts (sha256, fits the 64-char columns).

    Same parts -> same key, so a retried command maps onto the rows it
    already wrote.
    """
    raw = ":".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def scoped_key(scope: str, provided: str | None) -> str | None:
    """Namespace a client-supplied Idempotency-Key; None/blank stays None."""
    if not provided or not provided.strip():
        return None
    return make_idempotency_key(scope, provided.strip())
