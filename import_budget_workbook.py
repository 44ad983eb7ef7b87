#!/usr/bin/env python3
"""
Import budgets from an Excel workbook into the dashboard database.

The workbook is read with openpyxl in read-only mode.  The first row of the
sheet (default "Budgets", falling back to the first sheet) is the header;
columns are matched by name, so a file produced by POST /api/export-excel
can be edited and re-imported:

    Budget Number | Name | Location | Funder | Fiscal Year Start |
    Fiscal Year End | Total Budget | Notes

Optional extra columns: Fringe Rate, Fringe Benefits, Indirect Cost, GL Code.

Budgets are upserted by budget number.  Location and funder cells may hold
either the code or the name.  Rows that cannot be imported are skipped and
logged with the reason.

Usage:
    python import_budget_workbook.py budget.xlsx
    python import_budget_workbook.py budget.xlsx --db ecdc_budget.sqlite \\
        --fiscal-year-start 2025-10-01 --fiscal-year-end 2026-09-30
    python import_budget_workbook.py budget.xlsx --dry-run
"""

import argparse
import logging
import sqlite3
import sys
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from budget.fiscal import parse_date
from utils.config import AppConfig, KnownValues
from utils.database import create_schema, init_pragmas, seed_reference_data
from utils.formatting import TableFormatter
from utils.strings import clean_optional, normalize_whitespace, optional_float

logger = logging.getLogger("import_budget_workbook")

DEFAULT_SHEET = "Budgets"

# Normalized header text -> budget field
_HEADER_MAP = {
    "budget number": "budget_number",
    "contract number": "budget_number",
    "name": "name",
    "budget name": "name",
    "location": "location",
    "funder": "funder",
    "fiscal year start": "fiscal_year_start",
    "fiscal year end": "fiscal_year_end",
    "total budget": "total_budget",
    "notes": "notes",
    "fringe rate": "fringe_rate",
    "fringe benefits": "fringe_benefits_amount",
    "fringe benefits amount": "fringe_benefits_amount",
    "indirect cost": "indirect_cost",
    "gl code": "gl_code",
}

_NUMERIC_FIELDS = ("total_budget", "fringe_rate", "fringe_benefits_amount", "indirect_cost")


class SkipRow(Exception):
    """Raised for a workbook row that cannot be imported."""


@dataclass
class ImportReport:
    inserted: int = 0
    updated: int = 0
    skipped: list[tuple[int, str]] = field(default_factory=list)

    def to_string(self) -> str:
        lines = [
            f"Inserted: {self.inserted}",
            f"Updated:  {self.updated}",
            f"Skipped:  {len(self.skipped)}",
        ]
        if self.skipped:
            table = TableFormatter(["Row", "Reason"])
            for row_no, reason in self.skipped:
                table.add_row([row_no, reason])
            lines += ["", table.to_string()]
        return "\n".join(lines)


def read_budget_rows(path: Path, sheet: str = DEFAULT_SHEET) -> list[tuple[int, dict[str, Any]]]:
    """Return ``(row_number, fields)`` for every non-blank data row.

    Raises:
        ValueError: No recognizable budget header in the sheet.
    """
    wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
    try:
        ws = wb[sheet] if sheet in wb.sheetnames else wb[wb.sheetnames[0]]
        rows_iter = ws.iter_rows(values_only=True)
        header = next(rows_iter, None) or ()
        columns = [
            _HEADER_MAP.get(normalize_whitespace(str(h)).lower()) if h is not None else None
            for h in header
        ]
        if "budget_number" not in columns:
            raise ValueError(f"No 'Budget Number' column in sheet {ws.title!r}")

        result = []
        for row_no, row in enumerate(rows_iter, start=2):
            fields = {
                col: clean_optional(val)
                for col, val in zip(columns, row)
                if col is not None
            }
            if all(v is None for v in fields.values()):
                continue
            result.append((row_no, fields))
        return result
    finally:
        wb.close()


def _lookup(conn: sqlite3.Connection, table: str, value: Any) -> sqlite3.Row | None:
    """Match a location/funder cell against code or name, case-insensitively."""
    text = normalize_whitespace(str(value))
    return conn.execute(
        f"SELECT * FROM {table} WHERE upper(code) = upper(?) OR upper(name) = upper(?)",
        (text, text),
    ).fetchone()


def _prepare(conn: sqlite3.Connection, fields: dict[str, Any],
             fiscal_year_start: str | None, fiscal_year_end: str | None) -> dict[str, Any]:
    """Validate one row and return the column values to store."""
    number = fields.get("budget_number")
    if number is None:
        raise SkipRow("Budget number is required")
    number = normalize_whitespace(str(number))
    name = fields.get("name")
    if name is None:
        raise SkipRow("Budget name is required")

    if fields.get("location") is None:
        raise SkipRow("Location is required")
    location = _lookup(conn, "locations", fields["location"])
    if location is None:
        raise SkipRow(f"Unknown location {fields['location']!r}")
    suffix = KnownValues.contract_suffix(location["code"])
    if not number.endswith(suffix):
        raise SkipRow(f"Contract code must end with {suffix} for {location['code']} location")

    funder_id = None
    if fields.get("funder") is not None:
        funder = _lookup(conn, "funders", fields["funder"])
        if funder is None:
            raise SkipRow(f"Unknown funder {fields['funder']!r}")
        funder_id = funder["id"]

    start = parse_date(fiscal_year_start or fields.get("fiscal_year_start"))
    end = parse_date(fiscal_year_end or fields.get("fiscal_year_end"))
    if start is None:
        raise SkipRow("Invalid fiscal year start date")
    if end is None:
        raise SkipRow("Invalid fiscal year end date")
    if end <= start:
        raise SkipRow("Fiscal year end date must be after start date")

    values: dict[str, Any] = {
        "budget_number": number,
        "name": normalize_whitespace(str(name)),
        "location_id": location["id"],
        "funder_id": funder_id,
        "fiscal_year_start": start.isoformat(),
        "fiscal_year_end": end.isoformat(),
        "notes": fields.get("notes"),
        "gl_code": fields.get("gl_code"),
    }
    for col in _NUMERIC_FIELDS:
        raw = fields.get(col)
        parsed = optional_float(raw) if raw is not None else None
        if raw is not None and (parsed is None or parsed < 0):
            raise SkipRow(f"{col.replace('_', ' ').capitalize()} must be a positive number")
        values[col] = parsed
    if values["total_budget"] is None:
        raise SkipRow("Total budget must be a positive number")
    if values["fringe_benefits_amount"] is None:
        values["fringe_benefits_amount"] = 0.0
    return values


def import_budgets(
    conn: sqlite3.Connection,
    rows: list[tuple[int, dict[str, Any]]],
    fiscal_year_start: str | None = None,
    fiscal_year_end: str | None = None,
) -> ImportReport:
    """Upsert budget rows by budget_number; the caller commits."""
    report = ImportReport()
    for row_no, fields in rows:
        try:
            values = _prepare(conn, fields, fiscal_year_start, fiscal_year_end)
        except SkipRow as e:
            logger.warning("row %d skipped: %s", row_no, e)
            report.skipped.append((row_no, str(e)))
            continue

        existing = conn.execute(
            "SELECT id FROM budgets WHERE budget_number = ?", (values["budget_number"],)
        ).fetchone()
        if existing is None:
            cols = list(values)
            conn.execute(
                f"INSERT INTO budgets ({', '.join(cols)}) VALUES ({', '.join('?' * len(cols))})",
                [values[c] for c in cols],
            )
            report.inserted += 1
        else:
            # Blank optional cells leave the stored value alone.
            changes = {k: v for k, v in values.items() if v is not None}
            assignments = ", ".join(f"{c} = ?" for c in changes)
            conn.execute(
                f"UPDATE budgets SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                [*changes.values(), existing[0]],
            )
            report.updated += 1
    return report


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run the import."""
    parser = argparse.ArgumentParser(description="Import budgets from an Excel workbook")
    parser.add_argument("workbook", type=Path, help="Path to the .xlsx file")
    parser.add_argument("--db", type=Path, default=AppConfig.from_env().db_path,
                        help="Database path (default: APP_DB_PATH or ecdc_budget.sqlite)")
    parser.add_argument("--sheet", default=DEFAULT_SHEET,
                        help=f"Worksheet to read (default: {DEFAULT_SHEET})")
    parser.add_argument("--fiscal-year-start", metavar="YYYY-MM-DD",
                        help="Use this fiscal year start for every row")
    parser.add_argument("--fiscal-year-end", metavar="YYYY-MM-DD",
                        help="Use this fiscal year end for every row")
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate and report without saving")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s %(message)s")

    for flag in ("fiscal_year_start", "fiscal_year_end"):
        value = getattr(args, flag)
        if value is not None and parse_date(value) is None:
            print(f"ERROR: --{flag.replace('_', '-')} must be a YYYY-MM-DD date")
            return 2
    if not args.workbook.exists():
        print(f"ERROR: workbook not found: {args.workbook}")
        return 1

    try:
        rows = read_budget_rows(args.workbook, args.sheet)
    except (ValueError, zipfile.BadZipFile, InvalidFileException) as e:
        print(f"ERROR: {e}")
        return 1
    logger.info("Read %d budget rows from %s", len(rows), args.workbook)

    conn = sqlite3.connect(str(args.db))
    conn.row_factory = sqlite3.Row
    try:
        init_pragmas(conn)
        create_schema(conn)
        seed_reference_data(conn)
        report = import_budgets(conn, rows, args.fiscal_year_start, args.fiscal_year_end)
        if args.dry_run:
            conn.rollback()
            logger.info("Dry run: no changes saved")
        else:
            conn.commit()
    finally:
        conn.close()

    print(report.to_string())
    return 0


if __name__ == "__main__":
    sys.exit(main())
