"""
Typed errors raised by the stock services.

Each error carries an HTTP status code and an optional list of per-line
details, so the API can report which line/product failed and why.
"""

from __future__ import annotations

from typing import Any


class StockError(Exception):
    status_code = 400

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        self.message = message
        self.details = details or []
        super().__init__(message)


class ValidationError(StockError):
    status_code = 422


class NotFoundError(StockError):
    status_code = 404


class InsufficientStockError(StockError):
    """Requested quantity exceeds the stock available at the source."""

    status_code = 409


class InvalidStateError(StockError):
    status_code = 409


class ConcurrencyConflictError(StockError):
    """
    The stock row changed between read and write.

    Retry the whole operation with fresh data; do not resubmit the same
    absolute target.
    """

    status_code = 409
