"""
Employee allocation endpoints.

GET    /api/allocations?employee_id=&budget_id=   list
POST   /api/allocations                            create
PUT    /api/allocations                            merge provided fields (id in body)
DELETE /api/allocations?id=                        delete

An allocation charges part of an employee's salary to a budget.  Its
``monthly_allocations`` map ("YYYY-MM" -> amount) is the per-month
breakdown the dashboard edits inline; it is not required to add up to
``allocated_amount``.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import AllocationIn, AllocationOut, AllocationUpdate, DeleteResult
from api.records import (
    bad_request, clean_monthly, fetch_one, fetch_or_404, parse_amount,
    record_changed, require_id,
)
from utils.database import encode_json_map, rows_to_dicts
from utils.query import build_update_clause, build_where_clause

router = APIRouter(prefix="/allocations", tags=["allocations"])

_UPDATABLE = {
    "employee_id", "budget_id", "allocated_amount", "fiscal_year_start",
    "fiscal_year_end", "notes", "monthly_allocations",
}


def query_allocations(
    conn: sqlite3.Connection,
    employee_id: int | None = None,
    budget_id: int | None = None,
    employee_ids: list[int] | None = None,
    allocation_ids: list[int] | None = None,
) -> list[dict[str, Any]]:
    """Allocations with a nested ``budget`` reference (id, number, name)."""
    where, params = build_where_clause(
        filters={"a.employee_id": employee_id, "a.budget_id": budget_id},
        in_filters={"a.employee_id": employee_ids, "a.id": allocation_ids},
    )
    rows = conn.execute(
        f"SELECT a.*, b.budget_number AS _budget_number, b.name AS _budget_name "
        f"FROM employee_allocations a LEFT JOIN budgets b ON b.id = a.budget_id "
        f"{where} ORDER BY a.id",
        params,
    ).fetchall()
    result = []
    for d in rows_to_dicts(rows, ("monthly_allocations",)):
        number = d.pop("_budget_number", None)
        name = d.pop("_budget_name", None)
        d["budget"] = ({"id": d["budget_id"], "budget_number": number, "name": name}
                       if number is not None else None)
        result.append(d)
    return result


def _get_allocation(conn: sqlite3.Connection, allocation_id: int) -> dict[str, Any]:
    return query_allocations(conn, allocation_ids=[allocation_id])[0]


@router.get("", response_model=list[AllocationOut], summary="List allocations")
def list_allocations(
    employee_id: int | None = Query(None),
    budget_id: int | None = Query(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    return query_allocations(conn, employee_id=employee_id, budget_id=budget_id)


@router.post("", response_model=AllocationOut, status_code=201, summary="Create an allocation")
def create_allocation(body: AllocationIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    if body.employee_id is None:
        raise bad_request("Employee is required")
    if body.budget_id is None:
        raise bad_request("Budget is required")
    if fetch_one(conn, "employees", body.employee_id) is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    budget = fetch_or_404(conn, "budgets", body.budget_id, "Budget")

    amount = parse_amount(body.allocated_amount,
                          "Allocated amount must be a positive number") or 0.0
    cur = conn.execute(
        "INSERT INTO employee_allocations (employee_id, budget_id, allocated_amount, "
        "fiscal_year_start, fiscal_year_end, notes, monthly_allocations) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            body.employee_id, body.budget_id, amount,
            body.fiscal_year_start or budget["fiscal_year_start"],
            body.fiscal_year_end or budget["fiscal_year_end"],
            body.notes,
            encode_json_map(clean_monthly(body.monthly_allocations) or {}),
        ),
    )
    conn.commit()
    record_changed("employee_allocations", "create", cur.lastrowid)
    return _get_allocation(conn, cur.lastrowid)


@router.put("", response_model=AllocationOut, summary="Update an allocation")
def update_allocation(body: AllocationUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    allocation_id = require_id(changes.pop("id", None))
    fetch_or_404(conn, "employee_allocations", allocation_id, "Allocation")

    if "allocated_amount" in changes:
        changes["allocated_amount"] = parse_amount(
            changes["allocated_amount"], "Allocated amount must be a positive number",
        ) or 0.0
    if "monthly_allocations" in changes:
        changes["monthly_allocations"] = encode_json_map(
            clean_monthly(changes["monthly_allocations"]) or {})
    if "employee_id" in changes:
        if changes["employee_id"] is None or fetch_one(conn, "employees", changes["employee_id"]) is None:
            raise HTTPException(status_code=404, detail="Employee not found")
    if "budget_id" in changes:
        if changes["budget_id"] is None or fetch_one(conn, "budgets", changes["budget_id"]) is None:
            raise HTTPException(status_code=404, detail="Budget not found")

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        conn.execute(f"UPDATE employee_allocations {set_clause} WHERE id = ?",
                     params + [allocation_id])
        conn.commit()
        record_changed("employee_allocations", "update", allocation_id)
    return _get_allocation(conn, allocation_id)


@router.delete("", response_model=DeleteResult, summary="Delete an allocation")
def delete_allocation(
    id: int | None = Query(None, description="Allocation id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    allocation_id = require_id(id)
    fetch_or_404(conn, "employee_allocations", allocation_id, "Allocation")
    conn.execute("DELETE FROM employee_allocations WHERE id = ?", (allocation_id,))
    conn.commit()
    record_changed("employee_allocations", "delete", allocation_id)
    return {"success": True, "message": "Allocation deleted successfully"}
