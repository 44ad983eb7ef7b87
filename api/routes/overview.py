"""
Dashboard rollup endpoints.

GET /api/overview/budgets?fiscal_year=        per-budget summary
GET /api/overview/funders?fiscal_year=        totals grouped by funder
GET /api/overview/program-cost?budget_id=     month-by-month program cost
GET /api/overview/employees                   salary utilization per employee
GET /api/overview/tbh?fiscal_year=            budgets with room for a TBH hire
GET /api/overview/summary?fiscal_year=        headline counts and totals

All figures come from budget.aggregation over the stored records.  Results
are cached in api.records.rollup_cache, which every write route clears.

Without a fiscal_year parameter the rollups cover the current fiscal year
when it has budgets, otherwise every year; fiscal_year=all covers every year.
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import (
    BudgetSummaryOut, FunderRollupOut, ProgramCostOut, SummaryCardsOut,
    TbhCandidateOut, UtilizationOut,
)
from api.records import fetch_or_404, require_id, rollup_cache
from api.routes.allocations import query_allocations
from api.routes.budgets import query_budgets, resolve_fiscal_year
from api.routes.employees import query_employees
from api.routes.expenses import query_expenses
from budget.aggregation import (
    budget_summary, employee_utilization, funder_rollup, summary_cards,
    tbh_candidates, total_program_cost,
)
from utils.database import query_to_dicts

router = APIRouter(prefix="/overview", tags=["overview"])


def _records(conn: sqlite3.Connection, fiscal_year: str | None):
    budgets = query_budgets(conn, fiscal_year=fiscal_year)
    ids = {b["id"] for b in budgets}
    allocations = [a for a in query_allocations(conn) if a["budget_id"] in ids]
    expenses = [e for e in query_expenses(conn) if e["budget_id"] in ids]
    return budgets, allocations, expenses


@router.get("/budgets", response_model=list[BudgetSummaryOut], summary="Per-budget summary")
def overview_budgets(
    fiscal_year: str | None = Query(None, description="Fiscal year start date (YYYY-MM-DD)"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    fiscal_year = resolve_fiscal_year(conn, fiscal_year)

    def compute():
        budgets, allocations, expenses = _records(conn, fiscal_year)
        return [budget_summary(b, allocations, expenses).to_dict() for b in budgets]

    return rollup_cache.get_or_compute(("budgets", fiscal_year), compute)


@router.get("/funders", response_model=list[FunderRollupOut], summary="Totals by funder")
def overview_funders(
    fiscal_year: str | None = Query(None, description="Fiscal year start date (YYYY-MM-DD)"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    fiscal_year = resolve_fiscal_year(conn, fiscal_year)

    def compute():
        budgets, allocations, expenses = _records(conn, fiscal_year)
        funders = query_to_dicts(conn, "SELECT * FROM funders")
        return funder_rollup(budgets, allocations, expenses, funders)

    return rollup_cache.get_or_compute(("funders", fiscal_year), compute)


@router.get("/program-cost", response_model=ProgramCostOut, summary="Total program cost by month")
def overview_program_cost(
    budget_id: int | None = Query(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    bid = require_id(budget_id, "Budget ID is required")
    fetch_or_404(conn, "budgets", bid, "Budget")

    def compute():
        budget = query_budgets(conn, budget_ids=[bid])[0]
        return total_program_cost(
            budget,
            query_allocations(conn, budget_id=bid),
            query_expenses(conn, budget_id=bid),
        )

    return rollup_cache.get_or_compute(("program-cost", bid), compute)


@router.get("/employees", response_model=list[UtilizationOut], summary="Employee utilization")
def overview_employees(
    location_id: int | None = Query(None),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    def compute():
        employees = query_employees(conn, location_id=location_id, include_admin=True)
        return [employee_utilization(e, e["allocations"]) for e in employees]

    return rollup_cache.get_or_compute(("employees", location_id), compute)


@router.get("/tbh", response_model=list[TbhCandidateOut], summary="Budgets with room for a TBH hire")
def overview_tbh(
    fiscal_year: str | None = Query(None, description="Fiscal year start date (YYYY-MM-DD)"),
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    fiscal_year = resolve_fiscal_year(conn, fiscal_year)

    def compute():
        return tbh_candidates(*_records(conn, fiscal_year))

    return rollup_cache.get_or_compute(("tbh", fiscal_year), compute)


@router.get("/summary", response_model=SummaryCardsOut, summary="Headline counts")
def overview_summary(
    fiscal_year: str | None = Query(None, description="Fiscal year start date (YYYY-MM-DD)"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    fiscal_year = resolve_fiscal_year(conn, fiscal_year)

    def compute():
        budgets = query_budgets(conn, fiscal_year=fiscal_year)
        return summary_cards(budgets, query_employees(conn))

    return rollup_cache.get_or_compute(("summary", fiscal_year), compute)
