"""
Budget endpoints.

GET    /api/budgets?location_id=&fiscal_year=   list (ordered by budget_number)
POST   /api/budgets                              create
PUT    /api/budgets                              partial update (id in body)
DELETE /api/budgets?id=                          delete

Budget numbers carry a contract-code suffix tied to the location: budgets
at the VA location end in "-30", all others in "-33".
"""

import sqlite3
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import BudgetIn, BudgetOut, BudgetUpdate, DeleteResult
from api.records import (
    bad_request, clean_monthly, fetch_one, fetch_or_404, parse_amount,
    record_changed, require_id,
)
from budget.fiscal import current_fiscal_year_start, parse_date
from utils.config import KnownValues
from utils.database import encode_json_map, rows_to_dicts
from utils.query import build_order_clause, build_update_clause, build_where_clause

router = APIRouter(prefix="/budgets", tags=["budgets"])

_JSON_COLUMNS = ("monthly_fringe_allocations", "monthly_indirect_allocations")
_UPDATABLE = {
    "budget_number", "name", "location_id", "funder_id", "fiscal_year_start",
    "fiscal_year_end", "total_budget", "fringe_rate", "fringe_benefits_amount",
    "indirect_cost", "gl_code", "notes", "color_code", *_JSON_COLUMNS,
}
_ALLOWED_SORT = {"budget_number", "name", "total_budget", "fiscal_year_start"}

_SELECT = """
    SELECT b.*,
           l.code AS _location_code, l.name AS _location_name,
           f.code AS _funder_code, f.name AS _funder_name,
           f.color_code AS _funder_color
    FROM budgets b
    LEFT JOIN locations l ON l.id = b.location_id
    LEFT JOIN funders f ON f.id = b.funder_id
"""


def _shape(row: dict[str, Any]) -> dict[str, Any]:
    """Move the joined location/funder columns into nested objects."""
    loc_code = row.pop("_location_code", None)
    loc_name = row.pop("_location_name", None)
    f_code = row.pop("_funder_code", None)
    f_name = row.pop("_funder_name", None)
    f_color = row.pop("_funder_color", None)
    row["location"] = (
        {"id": row["location_id"], "code": loc_code, "name": loc_name}
        if loc_code is not None else None
    )
    row["funder"] = (
        {"id": row["funder_id"], "code": f_code, "name": f_name, "color_code": f_color}
        if f_code is not None else None
    )
    return row


def query_budgets(
    conn: sqlite3.Connection,
    location_id: int | None = None,
    fiscal_year: str | None = None,
    budget_ids: list[int] | None = None,
    order: str = "ORDER BY b.budget_number ASC",
) -> list[dict[str, Any]]:
    """Budgets with nested location and funder, as the API returns them."""
    where, params = build_where_clause(
        filters={"b.location_id": location_id, "b.fiscal_year_start": fiscal_year},
        in_filters={"b.id": budget_ids},
    )
    rows = conn.execute(f"{_SELECT} {where} {order}", params).fetchall()
    return [_shape(d) for d in rows_to_dicts(rows, _JSON_COLUMNS)]


def resolve_fiscal_year(conn: sqlite3.Connection, fiscal_year: str | None,
                        today: date | None = None) -> str | None:
    """Fiscal-year filter for the dashboard and overview rollups.

    When no filter is given, the current fiscal year is selected if any
    budget starts on it; otherwise every year is shown.  "" and "all" always
    mean every year.
    """
    if fiscal_year is None:
        start = current_fiscal_year_start(today).isoformat()
        row = conn.execute(
            "SELECT 1 FROM budgets WHERE fiscal_year_start = ? LIMIT 1", (start,)
        ).fetchone()
        return start if row is not None else None
    if fiscal_year.strip().lower() in ("", "all"):
        return None
    return fiscal_year


def _get_budget(conn: sqlite3.Connection, budget_id: int) -> dict[str, Any]:
    return query_budgets(conn, budget_ids=[budget_id])[0]


def _check_contract_suffix(conn: sqlite3.Connection, budget_number: str,
                           location_id: int) -> None:
    location = fetch_one(conn, "locations", location_id)
    if location is None:
        raise bad_request("Invalid location selected")
    suffix = KnownValues.contract_suffix(location["code"])
    if not budget_number.endswith(suffix):
        raise bad_request(
            f"Contract code must end with {suffix} for {location['code']} location"
        )


def _check_unique_number(conn: sqlite3.Connection, budget_number: str,
                         exclude_id: int | None = None) -> None:
    row = conn.execute(
        "SELECT id FROM budgets WHERE budget_number = ? AND id != ?",
        (budget_number, exclude_id if exclude_id is not None else -1),
    ).fetchone()
    if row is not None:
        raise bad_request(f'Budget number "{budget_number}" already exists')


def _check_funder(conn: sqlite3.Connection, funder_id: int | None) -> None:
    if funder_id is not None and fetch_one(conn, "funders", funder_id) is None:
        raise bad_request("Invalid funder selected")


def _validate_amounts(data: dict[str, Any], required_total: bool) -> None:
    """Parse numeric fields in place; raises 400 on bad input."""
    if "total_budget" in data or required_total:
        data["total_budget"] = parse_amount(
            data.get("total_budget"), "Total budget must be a positive number",
            required=True,
        )
    if "fringe_rate" in data:
        data["fringe_rate"] = parse_amount(
            data["fringe_rate"], "Fringe rate must be a positive number")
    if "fringe_benefits_amount" in data:
        data["fringe_benefits_amount"] = parse_amount(
            data["fringe_benefits_amount"],
            "Fringe benefits amount must be a positive number") or 0.0
    if "indirect_cost" in data:
        data["indirect_cost"] = parse_amount(
            data["indirect_cost"], "Indirect cost must be a positive number")
    for col in _JSON_COLUMNS:
        if col in data:
            data[col] = encode_json_map(clean_monthly(data[col]))


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=list[BudgetOut], summary="List budgets")
def list_budgets(
    location_id: int | None = Query(None, description="Filter by location"),
    fiscal_year: str | None = Query(None, description="Fiscal year start date (YYYY-MM-DD)"),
    sort_by: str = Query("budget_number", description="Sort column"),
    sort_dir: str = Query("asc", pattern="^(asc|desc)$"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    """Return budgets with their location and funder."""
    order = build_order_clause(sort_by, sort_dir, _ALLOWED_SORT, "budget_number")
    return query_budgets(conn, location_id=location_id, fiscal_year=fiscal_year,
                         order=order.replace("ORDER BY ", "ORDER BY b.", 1))


@router.post("", response_model=BudgetOut, status_code=201, summary="Create a budget")
def create_budget(body: BudgetIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    data = body.model_dump()

    if not data["budget_number"]:
        raise bad_request("Budget number is required")
    if not data["name"]:
        raise bad_request("Budget name is required")
    if data["location_id"] is None:
        raise bad_request("Location is required")
    if not data["fiscal_year_start"]:
        raise bad_request("Fiscal year start date is required")
    if not data["fiscal_year_end"]:
        raise bad_request("Fiscal year end date is required")

    _validate_amounts(data, required_total=True)
    if data["fringe_benefits_amount"] is None:
        data["fringe_benefits_amount"] = 0.0

    start = parse_date(data["fiscal_year_start"])
    end = parse_date(data["fiscal_year_end"])
    if start is None:
        raise bad_request("Invalid fiscal year start date")
    if end is None:
        raise bad_request("Invalid fiscal year end date")
    if end <= start:
        raise bad_request("Fiscal year end date must be after start date")
    data["fiscal_year_start"] = start.isoformat()
    data["fiscal_year_end"] = end.isoformat()

    _check_unique_number(conn, data["budget_number"])
    _check_contract_suffix(conn, data["budget_number"], data["location_id"])
    _check_funder(conn, data["funder_id"])

    columns = [c for c in data if c in _UPDATABLE]
    try:
        cur = conn.execute(
            f"INSERT INTO budgets ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' * len(columns))})",
            [data[c] for c in columns],
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        raise bad_request("A budget with this number already exists") from exc
    record_changed("budgets", "create", cur.lastrowid)
    return _get_budget(conn, cur.lastrowid)


@router.put("", response_model=BudgetOut, summary="Update a budget")
def update_budget(body: BudgetUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    budget_id = require_id(changes.pop("id", None), "Budget ID is required for update")
    existing = dict(fetch_or_404(conn, "budgets", budget_id, "Budget"))

    if "budget_number" in changes and not changes["budget_number"]:
        raise bad_request("Budget number cannot be empty")
    if "name" in changes and not changes["name"]:
        raise bad_request("Budget name cannot be empty")

    _validate_amounts(changes, required_total=False)

    if "fiscal_year_start" in changes or "fiscal_year_end" in changes:
        start = parse_date(changes.get("fiscal_year_start", existing["fiscal_year_start"]))
        end = parse_date(changes.get("fiscal_year_end", existing["fiscal_year_end"]))
        if start is None or end is None:
            raise bad_request("Invalid date format")
        if end <= start:
            raise bad_request("Fiscal year end date must be after start date")
        if "fiscal_year_start" in changes:
            changes["fiscal_year_start"] = start.isoformat()
        if "fiscal_year_end" in changes:
            changes["fiscal_year_end"] = end.isoformat()

    number = changes.get("budget_number", existing["budget_number"])
    if "budget_number" in changes:
        _check_unique_number(conn, number, exclude_id=budget_id)
    if "budget_number" in changes or "location_id" in changes:
        location_id = changes.get("location_id", existing["location_id"])
        if location_id is None:
            raise bad_request("Location is required")
        _check_contract_suffix(conn, number, location_id)
    if "funder_id" in changes:
        _check_funder(conn, changes["funder_id"])

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        try:
            conn.execute(f"UPDATE budgets {set_clause} WHERE id = ?", params + [budget_id])
            conn.commit()
        except sqlite3.IntegrityError as exc:
            raise bad_request("A budget with this number already exists") from exc
        record_changed("budgets", "update", budget_id)
    return _get_budget(conn, budget_id)


@router.delete("", response_model=DeleteResult, summary="Delete a budget")
def delete_budget(
    id: int | None = Query(None, description="Budget id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    budget_id = require_id(id, "Budget ID is required")
    existing = fetch_or_404(conn, "budgets", budget_id, "Budget")
    conn.execute("DELETE FROM budgets WHERE id = ?", (budget_id,))
    conn.commit()
    record_changed("budgets", "delete", budget_id)
    return {"success": True, "message": f'Budget "{existing["budget_number"]}" deleted successfully'}
