"""
POST /api/export-excel endpoint.

Builds an .xlsx workbook with one sheet per requested collection and returns
it as an attachment named budget-export-YYYY-MM-DD.xlsx.  Uses openpyxl in
write_only mode; each sheet gets a header row followed by one row per record.
"""

import io
import logging
import sqlite3
from datetime import date
from typing import Any, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.database import get_db
from api.models import ExportOptions
from api.records import bad_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export-excel", tags=["export"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _full_name(first: str | None, last: str | None) -> str:
    return f"{first or ''} {last or ''}".strip()


def _budget_rows(conn: sqlite3.Connection) -> list[list[Any]]:
    rows = conn.execute(
        "SELECT b.*, l.code AS location_code, f.code AS funder_code "
        "FROM budgets b LEFT JOIN locations l ON l.id = b.location_id "
        "LEFT JOIN funders f ON f.id = b.funder_id ORDER BY b.budget_number"
    ).fetchall()
    return [
        [r["budget_number"], r["name"] or "", r["location_code"] or "",
         r["funder_code"] or "", r["fiscal_year_start"], r["fiscal_year_end"],
         r["total_budget"] or 0, r["notes"] or ""]
        for r in rows
    ]


def _employee_rows(conn: sqlite3.Connection) -> list[list[Any]]:
    rows = conn.execute(
        "SELECT e.*, l.code AS location_code FROM employees e "
        "LEFT JOIN locations l ON l.id = e.location_id ORDER BY e.last_name, e.first_name"
    ).fetchall()
    return [
        [r["first_name"], r["last_name"], r["location_code"] or "",
         r["annual_salary"] or 0, r["hourly_rate"] or 0, r["status"] or "active",
         r["tbh_budget_id"] or "", r["tbh_notes"] or ""]
        for r in rows
    ]


def _allocation_rows(conn: sqlite3.Connection) -> list[list[Any]]:
    rows = conn.execute(
        "SELECT a.*, e.first_name, e.last_name, e.annual_salary, b.budget_number "
        "FROM employee_allocations a "
        "LEFT JOIN employees e ON e.id = a.employee_id "
        "LEFT JOIN budgets b ON b.id = a.budget_id ORDER BY a.fiscal_year_start, a.id"
    ).fetchall()
    result = []
    for r in rows:
        salary = r["annual_salary"] or 0
        pct = round((r["allocated_amount"] or 0) / salary * 100, 2) if salary > 0 else 0
        result.append([
            _full_name(r["first_name"], r["last_name"]), r["budget_number"] or "",
            pct, r["allocated_amount"] or 0, r["fiscal_year_start"],
            r["fiscal_year_end"], r["notes"] or "",
        ])
    return result


def _time_entry_rows(conn: sqlite3.Connection) -> list[list[Any]]:
    rows = conn.execute(
        "SELECT t.*, e.first_name, e.last_name, b.budget_number FROM time_entries t "
        "LEFT JOIN employees e ON e.id = t.employee_id "
        "LEFT JOIN budgets b ON b.id = t.budget_id ORDER BY t.pay_period_start DESC, t.id DESC"
    ).fetchall()
    return [
        [_full_name(r["first_name"], r["last_name"]), r["budget_number"] or "",
         r["pay_period_start"], r["pay_period_end"], r["hours_worked"] or 0,
         r["notes"] or ""]
        for r in rows
    ]


def _expense_rows(conn: sqlite3.Connection) -> list[list[Any]]:
    rows = conn.execute(
        "SELECT x.*, b.budget_number FROM expenses x "
        "LEFT JOIN budgets b ON b.id = x.budget_id ORDER BY x.expense_month DESC, x.id"
    ).fetchall()
    return [
        [r["budget_number"] or "", r["expense_month"], r["category"] or "",
         r["amount"] or 0, r["description"] or "", r["notes"] or ""]
        for r in rows
    ]


# (option flag, sheet title, header row, row builder)
SHEETS: list[tuple[str, str, list[str], Callable[[sqlite3.Connection], list[list[Any]]]]] = [
    ("includeBudgets", "Budgets",
     ["Budget Number", "Name", "Location", "Funder", "Fiscal Year Start",
      "Fiscal Year End", "Total Budget", "Notes"], _budget_rows),
    ("includeEmployees", "Employees",
     ["First Name", "Last Name", "Location", "Annual Salary", "Hourly Rate",
      "Status", "TBH Budget ID", "TBH Notes"], _employee_rows),
    ("includeAllocations", "Allocations",
     ["Employee", "Budget Number", "Allocation %", "Allocated Amount",
      "Fiscal Year Start", "Fiscal Year End", "Notes"], _allocation_rows),
    ("includeTimeEntries", "Time Entries",
     ["Employee", "Budget Number", "Pay Period Start", "Pay Period End",
      "Hours Worked", "Notes"], _time_entry_rows),
    ("includeExpenses", "Expenses",
     ["Budget Number", "Expense Month", "Category", "Amount", "Description",
      "Notes"], _expense_rows),
]


def build_workbook(conn: sqlite3.Connection, options: ExportOptions) -> bytes:
    """Return the workbook bytes for the selected sheets."""
    import openpyxl

    wb = openpyxl.Workbook(write_only=True)
    for flag, title, header, builder in SHEETS:
        if not getattr(options, flag):
            continue
        ws = wb.create_sheet(title)
        ws.append(header)
        rows = builder(conn)
        for row in rows:
            ws.append(row)
        logger.info("export sheet=%s rows=%d", title, len(rows))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@router.post("", summary="Export selected collections to Excel",
             response_class=StreamingResponse)
def export_excel(
    options: ExportOptions,
    conn: sqlite3.Connection = Depends(get_db),
) -> StreamingResponse:
    if not any(getattr(options, flag) for flag, *_ in SHEETS):
        raise bad_request("Select at least one sheet to export")

    content = build_workbook(conn, options)
    filename = f"budget-export-{date.today().isoformat()}.xlsx"
    return StreamingResponse(
        iter([content]),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(content)),
        },
    )
