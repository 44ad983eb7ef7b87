"""
Shared helpers for the CRUD routes.

- fetch_or_404 / require_id: record lookup with the API's error wording
- parse_amount: form-number validation that raises HTTP 400
- record_changed: clears the rollup cache after any successful write
"""

import logging
import math
import sqlite3
from typing import Any

from fastapi import HTTPException

from utils.cache import TTLCache
from utils.config import AppConfig
from utils.strings import optional_float

logger = logging.getLogger(__name__)

_cfg = AppConfig.from_env()

# Overview rollups keyed by (endpoint, params); cleared on every write.
rollup_cache: TTLCache = TTLCache(maxsize=64, ttl_seconds=_cfg.cache_ttl)


def record_changed(table: str, action: str, record_id: Any) -> None:
    """Log a write and invalidate cached rollups."""
    rollup_cache.clear()
    logger.info("%s %s id=%s", action, table, record_id)


def bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=400, detail=message)


def require_id(record_id: Any, message: str = "ID is required") -> int:
    if record_id is None:
        raise bad_request(message)
    return record_id


def fetch_one(conn: sqlite3.Connection, table: str, record_id: int) -> sqlite3.Row | None:
    return conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()


def fetch_or_404(conn: sqlite3.Connection, table: str, record_id: int,
                 label: str) -> sqlite3.Row:
    """Return the row or raise ``404 "<label> not found"``."""
    row = fetch_one(conn, table, record_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return row


def parse_amount(value: Any, message: str, required: bool = False,
                 allow_negative: bool = False, allow_zero: bool = True) -> float | None:
    """Validate a numeric form field.

    Args:
        value: Raw value from the request body (number, numeric string, None).
        message: Error text used for every failure mode.
        required: Reject a missing value.
        allow_negative: Accept values below zero.
        allow_zero: Accept exactly zero.

    Returns:
        The parsed float, or None when the field was omitted and optional.

    Raises:
        HTTPException: 400 with ``message``.
    """
    if value is None:
        if required:
            raise bad_request(message)
        return None
    parsed = optional_float(value)
    if parsed is None:
        raise bad_request(message)
    if parsed < 0 and not allow_negative:
        raise bad_request(message)
    if parsed == 0 and not allow_zero:
        raise bad_request(message)
    return parsed


def clean_monthly(data: dict[str, Any] | None) -> dict[str, float] | None:
    """Drop null months from a submitted monthly map (None stays None).

    Raises:
        HTTPException: 400 when a month holds inf or nan.
    """
    if data is None:
        return None
    cleaned = {k: float(v) for k, v in data.items() if v is not None}
    if not all(math.isfinite(v) for v in cleaned.values()):
        raise bad_request("Monthly amounts must be valid numbers")
    return cleaned
