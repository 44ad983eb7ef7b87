"""
Time entry endpoints.

GET    /api/time-entries?employee_id=&budget_id=&month=YYYY-MM   list, newest first
POST   /api/time-entries                                         create
PUT    /api/time-entries                                         partial update
DELETE /api/time-entries?id=                                     delete

wage_amount is always hours_worked x the employee's hourly_rate; manual
adjustments and bonuses are stored separately and never folded into it.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import DeleteResult, TimeEntryIn, TimeEntryOut, TimeEntryUpdate
from api.records import (
    bad_request, fetch_one, fetch_or_404, parse_amount, record_changed, require_id,
)
from budget.fiscal import first_of_month, last_of_month, parse_date
from utils.database import rows_to_dicts
from utils.query import build_update_clause, build_where_clause
from utils.strings import safe_float

router = APIRouter(prefix="/time-entries", tags=["time-entries"])

_UPDATABLE = {
    "employee_id", "budget_id", "pay_period_start", "pay_period_end",
    "hours_worked", "wage_amount", "manual_adjustment", "bonus", "notes",
    "is_biweekly",
}


def wage_for(hours: float | None, hourly_rate: float | None) -> float:
    return safe_float(hours) * safe_float(hourly_rate)


def query_time_entries(
    conn: sqlite3.Connection,
    employee_id: int | None = None,
    budget_id: int | None = None,
    month: str | None = None,
    entry_ids: list[int] | None = None,
) -> list[dict[str, Any]]:
    extra = []
    if month:
        start = first_of_month(month)
        if start is None:
            raise bad_request("Month must be in YYYY-MM format")
        extra.append(("pay_period_start >= ?", [start.isoformat()]))
        extra.append(("pay_period_end <= ?", [last_of_month(start).isoformat()]))
    where, params = build_where_clause(
        filters={"employee_id": employee_id, "budget_id": budget_id},
        in_filters={"id": entry_ids},
        extra_conditions=extra,
    )
    rows = rows_to_dicts(conn.execute(
        f"SELECT * FROM time_entries {where} ORDER BY pay_period_start DESC, id DESC",
        params,
    ).fetchall())
    for row in rows:
        row["is_biweekly"] = bool(row["is_biweekly"])
    return rows


def _employee_rate(conn: sqlite3.Connection, employee_id: int | None) -> float | None:
    employee = fetch_one(conn, "employees", employee_id) if employee_id is not None else None
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee["hourly_rate"]


def _check_period(start_raw: Any, end_raw: Any) -> tuple[str, str]:
    start = parse_date(start_raw)
    end = parse_date(end_raw)
    if start is None or end is None:
        raise bad_request("Pay period start and end dates are required")
    if end < start:
        raise bad_request("Pay period end must not be before pay period start")
    return start.isoformat(), end.isoformat()


@router.get("", response_model=list[TimeEntryOut], summary="List time entries")
def list_time_entries(
    employee_id: int | None = Query(None),
    budget_id: int | None = Query(None),
    month: str | None = Query(None, description="YYYY-MM"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    return query_time_entries(conn, employee_id=employee_id, budget_id=budget_id, month=month)


@router.post("", response_model=TimeEntryOut, status_code=201, summary="Create a time entry")
def create_time_entry(body: TimeEntryIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    rate = _employee_rate(conn, body.employee_id)
    if body.budget_id is not None:
        fetch_or_404(conn, "budgets", body.budget_id, "Budget")
    start, end = _check_period(body.pay_period_start, body.pay_period_end)
    hours = parse_amount(body.hours_worked, "Hours worked must be a positive number") or 0.0

    cur = conn.execute(
        "INSERT INTO time_entries (employee_id, budget_id, pay_period_start, "
        "pay_period_end, hours_worked, wage_amount, manual_adjustment, bonus, notes, "
        "is_biweekly) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            body.employee_id, body.budget_id, start, end, hours,
            wage_for(hours, rate),
            safe_float(body.manual_adjustment), safe_float(body.bonus),
            body.notes, 0 if body.is_biweekly is False else 1,
        ),
    )
    conn.commit()
    record_changed("time_entries", "create", cur.lastrowid)
    return query_time_entries(conn, entry_ids=[cur.lastrowid])[0]


@router.put("", response_model=TimeEntryOut, summary="Update a time entry")
def update_time_entry(body: TimeEntryUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    entry_id = require_id(changes.pop("id", None))
    existing = fetch_or_404(conn, "time_entries", entry_id, "Time entry")

    if changes.get("budget_id") is not None:
        fetch_or_404(conn, "budgets", changes["budget_id"], "Budget")
    if "pay_period_start" in changes or "pay_period_end" in changes:
        changes["pay_period_start"], changes["pay_period_end"] = _check_period(
            changes.get("pay_period_start", existing["pay_period_start"]),
            changes.get("pay_period_end", existing["pay_period_end"]),
        )
    if "hours_worked" in changes or "employee_id" in changes:
        hours = parse_amount(changes.get("hours_worked", existing["hours_worked"]),
                             "Hours worked must be a positive number") or 0.0
        rate = _employee_rate(conn, changes.get("employee_id", existing["employee_id"]))
        changes["hours_worked"] = hours
        changes["wage_amount"] = wage_for(hours, rate)
    for col in ("manual_adjustment", "bonus"):
        if col in changes:
            changes[col] = safe_float(changes[col])
    if "is_biweekly" in changes:
        changes["is_biweekly"] = 0 if changes["is_biweekly"] is False else 1

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        conn.execute(f"UPDATE time_entries {set_clause} WHERE id = ?", params + [entry_id])
        conn.commit()
        record_changed("time_entries", "update", entry_id)
    return query_time_entries(conn, entry_ids=[entry_id])[0]


@router.delete("", response_model=DeleteResult, summary="Delete a time entry")
def delete_time_entry(
    id: int | None = Query(None, description="Time entry id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    entry_id = require_id(id)
    fetch_or_404(conn, "time_entries", entry_id, "Time entry")
    conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
    conn.commit()
    record_changed("time_entries", "delete", entry_id)
    return {"success": True, "message": "Time entry deleted successfully"}
