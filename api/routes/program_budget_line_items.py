"""
Program budget line item endpoints.

GET    /api/program-budget-line-items?budget_id=&month=YYYY-MM   list
GET    /api/program-budget-line-items/summary?budget_id=         per-category totals
POST   /api/program-budget-line-items                            create
PUT    /api/program-budget-line-items                            partial update
DELETE /api/program-budget-line-items?id=                        delete

Line items track a budgeted vs. spent amount per category per month.
budget_month is always stored as the first of its month, and balance is
recomputed as budgeted - spent on every write.
"""

import sqlite3
from collections import OrderedDict
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import (
    DeleteResult, LineItemCategorySummary, LineItemIn, LineItemOut, LineItemUpdate,
)
from api.records import bad_request, fetch_or_404, record_changed, require_id
from budget.fiscal import first_of_month, last_of_month
from utils.database import rows_to_dicts
from utils.query import build_update_clause, build_where_clause
from utils.strings import parse_number_input, safe_float

router = APIRouter(prefix="/program-budget-line-items", tags=["line-items"])

_UPDATABLE = {"budget_id", "category", "budget_month", "budgeted_amount",
              "spent_amount", "balance", "notes"}


def _month_bounds(month: str) -> tuple[str, str]:
    start = first_of_month(month)
    if start is None:
        raise bad_request("Month must be in YYYY-MM format")
    return start.isoformat(), last_of_month(start).isoformat()


def query_line_items(
    conn: sqlite3.Connection,
    budget_id: int | None = None,
    month: str | None = None,
    item_ids: list[int] | None = None,
) -> list[dict[str, Any]]:
    extra = []
    if month:
        start, end = _month_bounds(month)
        extra.append(("budget_month BETWEEN ? AND ?", [start, end]))
    where, params = build_where_clause(
        filters={"budget_id": budget_id}, in_filters={"id": item_ids},
        extra_conditions=extra,
    )
    return rows_to_dicts(conn.execute(
        f"SELECT * FROM program_budget_line_items {where} "
        f"ORDER BY budget_month, category",
        params,
    ).fetchall())


def summarize_by_category(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Totals per category in first-seen order, with spent as % of budgeted."""
    groups: "OrderedDict[str, dict[str, Any]]" = OrderedDict()
    for item in items:
        g = groups.setdefault(item["category"], {
            "category": item["category"],
            "total_budgeted": 0.0,
            "total_spent": 0.0,
            "total_balance": 0.0,
        })
        g["total_budgeted"] += safe_float(item.get("budgeted_amount"))
        g["total_spent"] += safe_float(item.get("spent_amount"))
        g["total_balance"] += safe_float(item.get("balance"))
    for g in groups.values():
        budgeted = g["total_budgeted"]
        g["running_percentage"] = (g["total_spent"] / budgeted * 100) if budgeted > 0 else 0.0
    return list(groups.values())


@router.get("", response_model=list[LineItemOut], summary="List program budget line items")
def list_line_items(
    budget_id: int | None = Query(None),
    month: str | None = Query(None, description="YYYY-MM"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    return query_line_items(conn, budget_id=budget_id, month=month)


@router.get("/summary", response_model=list[LineItemCategorySummary],
            summary="Line item totals per category")
def line_item_summary(
    budget_id: int | None = Query(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    return summarize_by_category(query_line_items(conn, budget_id=budget_id))


@router.post("", response_model=LineItemOut, status_code=201, summary="Create a line item")
def create_line_item(body: LineItemIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    if body.budget_id is None:
        raise bad_request("Budget is required")
    if not body.category:
        raise bad_request("Category is required")
    month = first_of_month(body.budget_month)
    if month is None:
        raise bad_request("Budget month is required (YYYY-MM)")
    fetch_or_404(conn, "budgets", body.budget_id, "Budget")

    budgeted = parse_number_input(body.budgeted_amount)
    spent = parse_number_input(body.spent_amount)
    cur = conn.execute(
        "INSERT INTO program_budget_line_items (budget_id, category, budget_month, "
        "budgeted_amount, spent_amount, balance, notes) VALUES (?, ?, ?, ?, ?, ?, ?)",
        (body.budget_id, body.category, month.isoformat(), budgeted, spent,
         budgeted - spent, body.notes),
    )
    conn.commit()
    record_changed("program_budget_line_items", "create", cur.lastrowid)
    return query_line_items(conn, item_ids=[cur.lastrowid])[0]


@router.put("", response_model=LineItemOut, summary="Update a line item")
def update_line_item(body: LineItemUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    item_id = require_id(changes.pop("id", None))
    existing = fetch_or_404(conn, "program_budget_line_items", item_id, "Line item")

    if "budget_id" in changes:
        if changes["budget_id"] is None:
            raise bad_request("Budget is required")
        fetch_or_404(conn, "budgets", changes["budget_id"], "Budget")
    if "budget_month" in changes:
        month = first_of_month(changes["budget_month"])
        if month is None:
            raise bad_request("Budget month must be in YYYY-MM format")
        changes["budget_month"] = month.isoformat()
    if "category" in changes and not changes["category"]:
        raise bad_request("Category is required")
    for col in ("budgeted_amount", "spent_amount"):
        if col in changes:
            changes[col] = parse_number_input(changes[col])
    if "budgeted_amount" in changes or "spent_amount" in changes:
        changes["balance"] = (
            changes.get("budgeted_amount", existing["budgeted_amount"])
            - changes.get("spent_amount", existing["spent_amount"])
        )

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        conn.execute(f"UPDATE program_budget_line_items {set_clause} WHERE id = ?",
                     params + [item_id])
        conn.commit()
        record_changed("program_budget_line_items", "update", item_id)
    return query_line_items(conn, item_ids=[item_id])[0]


@router.delete("", response_model=DeleteResult, summary="Delete a line item")
def delete_line_item(
    id: int | None = Query(None, description="Line item id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    item_id = require_id(id)
    fetch_or_404(conn, "program_budget_line_items", item_id, "Line item")
    conn.execute("DELETE FROM program_budget_line_items WHERE id = ?", (item_id,))
    conn.commit()
    record_changed("program_budget_line_items", "delete", item_id)
    return {"success": True, "message": "Line item deleted successfully"}
