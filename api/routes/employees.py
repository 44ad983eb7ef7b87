"""
Employee endpoints.

GET    /api/employees?location_id=&status=&include_admin=   list with allocations
POST   /api/employees                                       create
PUT    /api/employees                                       partial update (id in body)
DELETE /api/employees?id=                                   delete (allocations cascade)

Employees with no location are Admin staff who serve both locations;
``include_admin=true`` keeps them in a location-filtered list.
TBH ("to be hired") positions are employees with status "tbh" and
optionally the budget expected to fund them (tbh_budget_id).
"""

import sqlite3
from collections import defaultdict
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import DeleteResult, EmployeeIn, EmployeeOut, EmployeeUpdate
from api.records import (
    bad_request, fetch_one, fetch_or_404, parse_amount, record_changed, require_id,
)
from api.routes.allocations import query_allocations
from budget.fiscal import parse_date
from utils.config import KnownValues
from utils.database import rows_to_dicts
from utils.query import build_update_clause, build_where_clause

router = APIRouter(prefix="/employees", tags=["employees"])

_UPDATABLE = {
    "first_name", "last_name", "title", "location_id", "annual_salary",
    "hourly_rate", "status", "tbh_budget_id", "tbh_notes", "date_of_hire",
}


def query_employees(
    conn: sqlite3.Connection,
    location_id: int | None = None,
    status: str | None = None,
    include_admin: bool = False,
    employee_ids: list[int] | None = None,
) -> list[dict[str, Any]]:
    """Employees ordered by last name, each with its allocations."""
    extra = []
    filters: dict[str, Any] = {"status": status}
    if location_id is not None:
        if include_admin:
            extra.append(("(location_id = ? OR location_id IS NULL)", [location_id]))
        else:
            filters["location_id"] = location_id
    where, params = build_where_clause(
        filters=filters, in_filters={"id": employee_ids}, extra_conditions=extra,
    )
    employees = rows_to_dicts(conn.execute(
        f"SELECT * FROM employees {where} ORDER BY last_name, first_name", params
    ).fetchall())
    if not employees:
        return []

    by_employee: dict[int, list[dict]] = defaultdict(list)
    for alloc in query_allocations(conn, employee_ids=[e["id"] for e in employees]):
        by_employee[alloc["employee_id"]].append(alloc)
    for emp in employees:
        emp["allocations"] = by_employee.get(emp["id"], [])
    return employees


def _validate(conn: sqlite3.Connection, data: dict[str, Any]) -> None:
    """Validate/normalize the fields present in ``data`` (in place)."""
    if "status" in data:
        status = (data["status"] or "active").lower()
        if not KnownValues.is_valid_status(status):
            raise bad_request("Status must be 'active' or 'tbh'")
        data["status"] = status
    if "annual_salary" in data:
        data["annual_salary"] = parse_amount(
            data["annual_salary"], "Annual salary must be a positive number")
    if "hourly_rate" in data:
        data["hourly_rate"] = parse_amount(
            data["hourly_rate"], "Hourly rate must be a positive number")
    if data.get("date_of_hire") is not None:
        hired = parse_date(data["date_of_hire"])
        if hired is None:
            raise bad_request("Invalid date of hire")
        data["date_of_hire"] = hired.isoformat()
    if data.get("location_id") is not None and fetch_one(conn, "locations", data["location_id"]) is None:
        raise bad_request("Invalid location selected")
    if data.get("tbh_budget_id") is not None and fetch_one(conn, "budgets", data["tbh_budget_id"]) is None:
        raise bad_request("Invalid TBH budget selected")


@router.get("", response_model=list[EmployeeOut], summary="List employees")
def list_employees(
    location_id: int | None = Query(None),
    status: str | None = Query(None, pattern="^(active|tbh)$"),
    include_admin: bool = Query(False, description="Also return employees with no location"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    return query_employees(conn, location_id=location_id, status=status,
                           include_admin=include_admin)


@router.post("", response_model=EmployeeOut, status_code=201, summary="Create an employee")
def create_employee(body: EmployeeIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    data = body.model_dump()
    if not data["first_name"]:
        raise bad_request("First name is required")
    if not data["last_name"]:
        raise bad_request("Last name is required")
    data["status"] = data["status"] or "active"
    _validate(conn, data)

    columns = [c for c in data if c in _UPDATABLE]
    cur = conn.execute(
        f"INSERT INTO employees ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' * len(columns))})",
        [data[c] for c in columns],
    )
    conn.commit()
    record_changed("employees", "create", cur.lastrowid)
    return query_employees(conn, employee_ids=[cur.lastrowid])[0]


@router.put("", response_model=EmployeeOut, summary="Update an employee")
def update_employee(body: EmployeeUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    employee_id = require_id(changes.pop("id", None))
    fetch_or_404(conn, "employees", employee_id, "Employee")
    for field in ("first_name", "last_name"):
        if field in changes and not changes[field]:
            raise bad_request(f"{field.replace('_', ' ').capitalize()} cannot be empty")
    _validate(conn, changes)

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        conn.execute(f"UPDATE employees {set_clause} WHERE id = ?", params + [employee_id])
        conn.commit()
        record_changed("employees", "update", employee_id)
    return query_employees(conn, employee_ids=[employee_id])[0]


@router.delete("", response_model=DeleteResult, summary="Delete an employee")
def delete_employee(
    id: int | None = Query(None, description="Employee id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    employee_id = require_id(id)
    existing = fetch_or_404(conn, "employees", employee_id, "Employee")
    conn.execute("DELETE FROM employees WHERE id = ?", (employee_id,))
    conn.commit()
    record_changed("employees", "delete", employee_id)
    name = f"{existing['first_name']} {existing['last_name']}"
    return {"success": True, "message": f'Employee "{name}" deleted successfully'}
