"""
Expense endpoints.

GET    /api/expenses?budget_id=&category=&kind=   list (kind: other | dca)
POST   /api/expenses                               create (category + amount > 0)
PUT    /api/expenses                               partial update (id in body)
DELETE /api/expenses?id=                           delete

Each row is tagged ``is_dca`` using the Direct Client Assistance table in
budget.categories; ``kind`` filters on that tag.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import DeleteResult, ExpenseIn, ExpenseOut, ExpenseUpdate
from api.records import (
    bad_request, clean_monthly, fetch_or_404, parse_amount, record_changed,
    require_id,
)
from budget.categories import is_dca
from budget.fiscal import parse_date
from utils.database import encode_json_map, rows_to_dicts
from utils.query import build_update_clause, build_where_clause
from utils.strings import normalize_whitespace

router = APIRouter(prefix="/expenses", tags=["expenses"])

_UPDATABLE = {
    "budget_id", "category", "amount", "description", "notes",
    "expense_month", "monthly_allocations",
}


def query_expenses(
    conn: sqlite3.Connection,
    budget_id: int | None = None,
    category: str | None = None,
    expense_ids: list[int] | None = None,
) -> list[dict[str, Any]]:
    where, params = build_where_clause(
        filters={"budget_id": budget_id},
        in_filters={"id": expense_ids},
        extra_conditions=(
            [("upper(category) = upper(?)", [category])] if category else []
        ),
    )
    rows = rows_to_dicts(conn.execute(
        f"SELECT * FROM expenses {where} ORDER BY budget_id, category, id", params
    ).fetchall(), ("monthly_allocations",))
    for row in rows:
        row["is_dca"] = is_dca(row["category"])
    return rows


@router.get("", response_model=list[ExpenseOut], summary="List expenses")
def list_expenses(
    budget_id: int | None = Query(None),
    category: str | None = Query(None, description="Exact category (case-insensitive)"),
    kind: str | None = Query(None, pattern="^(other|dca)$", description="Other vs. DCA"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    rows = query_expenses(conn, budget_id=budget_id, category=category)
    if kind is not None:
        want_dca = kind == "dca"
        rows = [r for r in rows if r["is_dca"] == want_dca]
    return rows


@router.post("", response_model=ExpenseOut, status_code=201, summary="Create an expense")
def create_expense(body: ExpenseIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    if body.budget_id is None:
        raise bad_request("Budget is required")
    if not body.category:
        raise bad_request("Category is required")
    amount = parse_amount(body.amount, "Amount must be greater than 0",
                          required=True, allow_zero=False)
    budget = fetch_or_404(conn, "budgets", body.budget_id, "Budget")

    expense_month = budget["fiscal_year_start"]
    if body.expense_month:
        month = parse_date(body.expense_month)
        if month is None:
            raise bad_request("Invalid expense month")
        expense_month = month.isoformat()

    cur = conn.execute(
        "INSERT INTO expenses (budget_id, category, amount, description, notes, "
        "expense_month, monthly_allocations) VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            body.budget_id, normalize_whitespace(body.category), amount,
            body.description, body.notes, expense_month,
            encode_json_map(clean_monthly(body.monthly_allocations) or {}),
        ),
    )
    conn.commit()
    record_changed("expenses", "create", cur.lastrowid)
    return query_expenses(conn, expense_ids=[cur.lastrowid])[0]


@router.put("", response_model=ExpenseOut, summary="Update an expense")
def update_expense(body: ExpenseUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    expense_id = require_id(changes.pop("id", None))
    fetch_or_404(conn, "expenses", expense_id, "Expense")

    if "category" in changes:
        if not changes["category"]:
            raise bad_request("Category is required")
        changes["category"] = normalize_whitespace(changes["category"])
    if "amount" in changes:
        changes["amount"] = parse_amount(changes["amount"], "Amount must be greater than 0",
                                         required=True, allow_zero=False)
    if "budget_id" in changes:
        if changes["budget_id"] is None:
            raise bad_request("Budget is required")
        fetch_or_404(conn, "budgets", changes["budget_id"], "Budget")
    if "monthly_allocations" in changes:
        changes["monthly_allocations"] = encode_json_map(
            clean_monthly(changes["monthly_allocations"]) or {})

    set_clause, params = build_update_clause(changes, _UPDATABLE)
    if set_clause:
        conn.execute(f"UPDATE expenses {set_clause} WHERE id = ?", params + [expense_id])
        conn.commit()
        record_changed("expenses", "update", expense_id)
    return query_expenses(conn, expense_ids=[expense_id])[0]


@router.delete("", response_model=DeleteResult, summary="Delete an expense")
def delete_expense(
    id: int | None = Query(None, description="Expense id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    expense_id = require_id(id)
    fetch_or_404(conn, "expenses", expense_id, "Expense")
    conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
    conn.commit()
    record_changed("expenses", "delete", expense_id)
    return {"success": True, "message": "Expense deleted successfully"}
