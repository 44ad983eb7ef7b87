"""Database utilities for the ECDC budget tools.

Provides reusable functions for:
- SQLite pragmas and schema creation
- Seeding reference data into an empty database
- JSON columns holding per-month amount maps
- Row-to-dict conversion helpers
"""

import json
import logging
import sqlite3
from typing import List, Dict, Any, Iterable

from utils.config import KnownValues

logger = logging.getLogger(__name__)

CORE_TABLES = (
    "locations", "funders", "budgets", "employees", "employee_allocations",
    "expenses", "program_budget_line_items", "time_entries",
    "expense_categories",
)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS funders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        description TEXT,
        color_code TEXT DEFAULT '#3B82F6',
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS budgets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        budget_number TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        location_id INTEGER REFERENCES locations(id),
        funder_id INTEGER REFERENCES funders(id),
        fiscal_year_start TEXT NOT NULL,
        fiscal_year_end TEXT NOT NULL,
        total_budget REAL NOT NULL DEFAULT 0,
        fringe_rate REAL,
        fringe_benefits_amount REAL DEFAULT 0,
        indirect_cost REAL,
        -- per-month overrides, JSON {"YYYY-MM": amount}
        monthly_fringe_allocations TEXT,
        monthly_indirect_allocations TEXT,
        gl_code TEXT,
        notes TEXT,
        color_code TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS employees (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        title TEXT,
        -- NULL location = Admin (serves both locations)
        location_id INTEGER REFERENCES locations(id),
        annual_salary REAL,
        hourly_rate REAL,
        status TEXT NOT NULL DEFAULT 'active',
        tbh_budget_id INTEGER REFERENCES budgets(id) ON DELETE SET NULL,
        tbh_notes TEXT,
        date_of_hire TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS employee_allocations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id INTEGER NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
        budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
        allocated_amount REAL NOT NULL DEFAULT 0,
        fiscal_year_start TEXT,
        fiscal_year_end TEXT,
        notes TEXT,
        monthly_allocations TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS expenses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
        category TEXT NOT NULL,
        amount REAL NOT NULL DEFAULT 0,
        description TEXT,
        notes TEXT,
        expense_month TEXT,
        monthly_allocations TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS program_budget_line_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
        category TEXT NOT NULL,
        budget_month TEXT NOT NULL,
        budgeted_amount REAL NOT NULL DEFAULT 0,
        spent_amount REAL NOT NULL DEFAULT 0,
        balance REAL NOT NULL DEFAULT 0,
        notes TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS time_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id INTEGER NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
        budget_id INTEGER REFERENCES budgets(id) ON DELETE CASCADE,
        pay_period_start TEXT NOT NULL,
        pay_period_end TEXT NOT NULL,
        hours_worked REAL NOT NULL DEFAULT 0,
        wage_amount REAL NOT NULL DEFAULT 0,
        manual_adjustment REAL NOT NULL DEFAULT 0,
        bonus REAL NOT NULL DEFAULT 0,
        notes TEXT,
        is_biweekly INTEGER NOT NULL DEFAULT 1,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS expense_categories (
        name TEXT PRIMARY KEY,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_budgets_location ON budgets(location_id);
    CREATE INDEX IF NOT EXISTS idx_budgets_fy ON budgets(fiscal_year_start);
    CREATE INDEX IF NOT EXISTS idx_alloc_employee ON employee_allocations(employee_id);
    CREATE INDEX IF NOT EXISTS idx_alloc_budget ON employee_allocations(budget_id);
    CREATE INDEX IF NOT EXISTS idx_expenses_budget ON expenses(budget_id);
    CREATE INDEX IF NOT EXISTS idx_line_items_budget ON program_budget_line_items(budget_id);
    CREATE INDEX IF NOT EXISTS idx_time_entries_employee ON time_entries(employee_id);
"""


def init_pragmas(conn: sqlite3.Connection) -> None:
    """Initialize SQLite reliability pragmas.

    - WAL mode so the dashboard can read while a write is in flight
    - NORMAL synchronous mode
    - busy_timeout so concurrent writers wait instead of failing
    - foreign keys, which SQLite leaves off per connection

    Args:
        conn: SQLite connection to configure
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes (idempotent)."""
    conn.executescript(_SCHEMA)
    conn.commit()


def seed_reference_data(conn: sqlite3.Connection) -> int:
    """Insert the known locations into an empty locations table.

    Returns:
        Number of rows inserted (0 when the table already had data).
    """
    if get_table_count(conn, "locations") > 0:
        return 0
    conn.executemany(
        "INSERT INTO locations (code, name) VALUES (?, ?)",
        [(loc["code"], loc["name"]) for loc in KnownValues.LOCATIONS],
    )
    conn.commit()
    logger.info("Seeded %d locations", len(KnownValues.LOCATIONS))
    return len(KnownValues.LOCATIONS)


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Get row count for a table.

    Args:
        conn: SQLite connection
        table: Table name (must come from trusted code, not user input)

    Returns:
        Number of rows in table
    """
    result = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return result[0] if result else 0


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Check if a table exists in the database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,)
    )
    return cursor.fetchone() is not None


def decode_json_map(raw: Any) -> Dict[str, float]:
    """Decode a monthly-amount JSON column into ``{"YYYY-MM": float}``.

    NULL, blank, or malformed values decode to an empty map.  Months whose
    value is null are dropped; non-numeric month values become 0.
    """
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed monthly map: %r", raw)
            return {}
    if not isinstance(data, dict):
        return {}
    result: Dict[str, float] = {}
    for key, value in data.items():
        if value is None:
            continue
        try:
            result[str(key)] = float(value)
        except (TypeError, ValueError):
            result[str(key)] = 0.0
    return result


def encode_json_map(data: Dict[str, Any] | None) -> str | None:
    """Encode a monthly-amount map for storage (None stays NULL)."""
    if data is None:
        return None
    return json.dumps({str(k): v for k, v in data.items()}, sort_keys=True)


def rows_to_dicts(rows: Iterable[sqlite3.Row],
                  json_columns: tuple[str, ...] = ()) -> List[Dict[str, Any]]:
    """Convert sqlite3.Row objects to dicts, decoding the named JSON columns."""
    result = []
    for row in rows:
        d = dict(row)
        for col in json_columns:
            if col in d:
                d[col] = decode_json_map(d[col])
        result.append(d)
    return result


def query_to_dicts(conn: sqlite3.Connection, query: str,
                   params: tuple | list = (),
                   json_columns: tuple[str, ...] = ()) -> List[Dict[str, Any]]:
    """Execute a query and return results as a list of dicts.

    Example:
        rows = query_to_dicts(conn, "SELECT * FROM budgets WHERE id = ?", (1,))
    """
    return rows_to_dicts(conn.execute(query, params).fetchall(), json_columns)
