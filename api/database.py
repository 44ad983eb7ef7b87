"""
Database connection management for the API.

Provides a get_db() dependency that opens a per-request SQLite connection
and closes it after the response is sent.  The database path is resolved
at startup from the APP_DB_PATH environment variable (default:
ecdc_budget.sqlite); create_app(db_path=...) overrides it for tests.

The schema is created on application startup (init_database) and lazily
the first time a connection to a given path is opened.
"""

import logging
import os
import sqlite3
import threading
from collections.abc import Generator
from pathlib import Path

from fastapi import HTTPException

from utils.database import create_schema, init_pragmas, seed_reference_data

logger = logging.getLogger(__name__)

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "ecdc_budget.sqlite"))

_initialized: set[str] = set()
_init_lock = threading.Lock()


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def _make_conn(db_path: Path) -> sqlite3.Connection:
    """Open a single SQLite connection with standard pragmas."""
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    init_pragmas(conn)
    return conn


def init_database(db_path: Path | None = None) -> Path:
    """Create the schema and seed reference rows if needed (idempotent).

    Returns:
        The path that was initialised.
    """
    path = db_path or _DB_PATH
    key = str(path.resolve())
    with _init_lock:
        if key in _initialized and path.exists():
            return path
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = _make_conn(path)
        try:
            create_schema(conn)
            seed_reference_data(conn)
        finally:
            conn.close()
        _initialized.add(key)
    logger.info("Database ready at %s", path)
    return path


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 with a friendly message if the database file is
    missing, instead of silently creating an empty one mid-request.

    Usage in a route::

        from api.database import get_db
        from fastapi import Depends

        @router.get("/example")
        def example(conn=Depends(get_db)):
            ...
    """
    if not _DB_PATH.exists():
        raise HTTPException(
            status_code=503,
            detail=(
                f"Database not found at '{_DB_PATH}'. "
                "Start the server with 'python main.py' to create it."
            ),
        )
    if str(_DB_PATH.resolve()) not in _initialized:
        init_database(_DB_PATH)
    conn = _make_conn(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()
