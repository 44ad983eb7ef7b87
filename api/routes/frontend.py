"""
Frontend HTML routes.

Serves the Jinja2 dashboard and the printable single-budget page.

Routes:
    GET /                     -> dashboard.html (summary cards, funder rollup,
                                 expandable budget tables with inline editing)
                                 defaults to the current fiscal year when it
                                 has budgets
    GET /budgets/{id}/print   -> budget_print.html

The nested per-budget tables are built by budget_view(); monthly inputs on
the dashboard PUT their updated map back to /api/allocations or
/api/expenses from a small inline script.
"""

import sqlite3
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from api.database import get_db
from api.routes.allocations import query_allocations
from api.routes.budgets import query_budgets, resolve_fiscal_year
from api.routes.employees import query_employees
from api.routes.expenses import query_expenses
from budget import aggregation
from budget.categories import dca_by_display_name, partition_expenses
from budget.fiscal import derive_fiscal_years, fiscal_months, ytd_months
from utils.database import query_to_dicts

router = APIRouter(tags=["frontend"])

# Templates instance is set by create_app() after mounting.
_templates: Jinja2Templates | None = None


def set_templates(t: Jinja2Templates) -> None:
    global _templates
    _templates = t


def _tmpl() -> Jinja2Templates:
    if _templates is None:
        raise RuntimeError("Templates not initialised; call set_templates() first")
    return _templates


def _monthly_row(label: str, row: dict, months, window, kind: str | None = None) -> dict[str, Any]:
    monthly = aggregation.monthly_map(row)
    return {
        "id": row.get("id"),
        "kind": kind,
        "label": label,
        "amount": aggregation.row_amount(row),
        "monthly": monthly,
        "cells": [monthly.get(m.key) for m in months],
        "ytd": aggregation.month_total(monthly, window),
        "balance": aggregation.row_balance(row, months),
    }


def budget_view(
    budget: dict,
    allocations: list[dict],
    expenses: list[dict],
    employees_by_id: dict[int, dict],
    today: date | None = None,
) -> dict[str, Any]:
    """Everything the nested tables of one budget need, in display order."""
    months = fiscal_months(budget.get("fiscal_year_start"), budget.get("fiscal_year_end"))
    window = ytd_months(months, today)
    n = len(months)
    allocations = aggregation.rows_for_budget(allocations, budget["id"])
    other, dca = partition_expenses(aggregation.rows_for_budget(expenses, budget["id"]))

    alloc_rows = []
    for a in allocations:
        emp = employees_by_id.get(a.get("employee_id"), {})
        name = f"{emp.get('first_name', '')} {emp.get('last_name', '')}".strip() or "Unknown"
        alloc_rows.append(_monthly_row(name, a, months, window, "allocations"))

    fringe_cells = [aggregation.fringe_for_month(budget, m.key, n) for m in months]
    indirect_cells = [aggregation.indirect_for_month(budget, m.key, n) for m in months]
    ytd_keys = {m.key for m in window}

    return {
        "budget": budget,
        "months": months,
        "summary": aggregation.budget_summary(budget, allocations, expenses, today),
        "allocations": alloc_rows,
        "fringe": {
            "cells": fringe_cells,
            "ytd": sum(v for m, v in zip(months, fringe_cells) if m.key in ytd_keys),
        },
        "indirect": {
            "cells": indirect_cells,
            "ytd": sum(v for m, v in zip(months, indirect_cells) if m.key in ytd_keys),
        },
        "other": [_monthly_row(e["category"], e, months, window, "expenses") for e in other],
        "dca": [_monthly_row(name, e, months, window, "expenses")
                for name, group in dca_by_display_name(dca).items() for e in group],
        "program_cost": aggregation.total_program_cost(budget, allocations, expenses, today),
    }


def _dashboard_context(conn: sqlite3.Connection, fiscal_year: str | None,
                       location_id: int | None) -> dict[str, Any]:
    budgets = query_budgets(conn, location_id=location_id, fiscal_year=fiscal_year)
    ids = {b["id"] for b in budgets}
    allocations = [a for a in query_allocations(conn) if a["budget_id"] in ids]
    expenses = [e for e in query_expenses(conn) if e["budget_id"] in ids]
    employees = query_employees(conn, location_id=location_id, include_admin=True)
    employees_by_id = {e["id"]: e for e in query_employees(conn)}
    funders = query_to_dicts(conn, "SELECT * FROM funders")
    locations = query_to_dicts(conn, "SELECT * FROM locations ORDER BY code")
    all_years = query_to_dicts(conn, "SELECT fiscal_year_start, fiscal_year_end FROM budgets")

    return {
        "cards": aggregation.summary_cards(budgets, employees),
        "funders": aggregation.funder_rollup(budgets, allocations, expenses, funders),
        "views": [budget_view(b, allocations, expenses, employees_by_id) for b in budgets],
        "fiscal_years": derive_fiscal_years(all_years),
        "locations": locations,
        "selected_fiscal_year": fiscal_year or "",
        "selected_location": location_id,
    }


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def dashboard(
    request: Request,
    fiscal_year: str | None = Query(None),
    location_id: int | None = Query(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    """Main budget dashboard."""
    return _tmpl().TemplateResponse(
        request,
        "dashboard.html",
        _dashboard_context(conn, resolve_fiscal_year(conn, fiscal_year), location_id),
    )


@router.get("/budgets/{budget_id}/print", response_class=HTMLResponse, include_in_schema=False)
def budget_print(
    budget_id: int,
    request: Request,
    conn: sqlite3.Connection = Depends(get_db),
) -> HTMLResponse:
    """Printable view of a single budget."""
    budgets = query_budgets(conn, budget_ids=[budget_id])
    if not budgets:
        raise HTTPException(status_code=404, detail="Budget not found")
    employees_by_id = {e["id"]: e for e in query_employees(conn)}
    view = budget_view(
        budgets[0],
        query_allocations(conn, budget_id=budget_id),
        query_expenses(conn, budget_id=budget_id),
        employees_by_id,
    )
    return _tmpl().TemplateResponse(
        request, "budget_print.html", {"view": view, "printed_on": date.today()},
    )
