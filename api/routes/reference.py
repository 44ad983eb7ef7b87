"""
Reference data endpoints.

GET    /api/fiscal-years             fiscal years derived from budget date ranges
GET    /api/expense-categories       default + custom expense categories,
                                     DCA map and program line item categories
POST   /api/expense-categories       add a custom category
DELETE /api/expense-categories?name= remove a custom category
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from api.database import get_db
from api.models import CategoryIn, ExpenseCategoriesOut, FiscalYearOut
from api.records import bad_request, record_changed
from budget.categories import (
    DCA_CATEGORY_MAP, PROGRAM_LINE_ITEM_CATEGORIES, all_expense_categories,
)
from budget.fiscal import derive_fiscal_years
from utils.database import rows_to_dicts
from utils.strings import normalize_category

router = APIRouter(tags=["reference"])


def _custom_categories(conn: sqlite3.Connection) -> list[str]:
    return [r["name"] for r in conn.execute(
        "SELECT name FROM expense_categories ORDER BY name").fetchall()]


def _categories_payload(conn: sqlite3.Connection) -> dict[str, Any]:
    custom = _custom_categories(conn)
    return {
        "categories": all_expense_categories(custom),
        "custom": custom,
        "dca_categories": dict(DCA_CATEGORY_MAP),
        "line_item_categories": list(PROGRAM_LINE_ITEM_CATEGORIES),
    }


@router.get(
    "/fiscal-years",
    response_model=list[FiscalYearOut],
    summary="List fiscal years",
)
def list_fiscal_years(conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    """Return every distinct budget fiscal year, newest first."""
    budgets = rows_to_dicts(conn.execute(
        "SELECT fiscal_year_start, fiscal_year_end FROM budgets").fetchall())
    return derive_fiscal_years(budgets)


@router.get(
    "/expense-categories",
    response_model=ExpenseCategoriesOut,
    summary="List expense categories",
)
def list_expense_categories(conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    return _categories_payload(conn)


@router.post(
    "/expense-categories",
    response_model=ExpenseCategoriesOut,
    status_code=201,
    summary="Add a custom expense category",
)
def add_expense_category(body: CategoryIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    name = normalize_category(body.name)
    if not name:
        raise bad_request("Category name is required")
    if name in all_expense_categories(_custom_categories(conn)):
        raise bad_request(f'Category "{name}" already exists')
    conn.execute("INSERT INTO expense_categories (name) VALUES (?)", (name,))
    conn.commit()
    record_changed("expense_categories", "create", name)
    return _categories_payload(conn)


@router.delete(
    "/expense-categories",
    response_model=ExpenseCategoriesOut,
    summary="Remove a custom expense category",
)
def delete_expense_category(
    name: str | None = Query(None, description="Category name"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    norm = normalize_category(name)
    if not norm:
        raise bad_request("Category name is required")
    cur = conn.execute("DELETE FROM expense_categories WHERE name = ?", (norm,))
    if cur.rowcount == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    conn.commit()
    record_changed("expense_categories", "delete", norm)
    return _categories_payload(conn)
