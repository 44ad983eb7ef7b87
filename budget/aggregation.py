"""
Budget rollups computed from flat record lists.

Every function here is pure: it takes the lists the API returns (budgets,
allocations, expenses, employees as dicts) and sums filtered subsets of
them.  Missing or null amounts count as zero and months absent from a
monthly map contribute nothing, so partially-entered data never raises.

Terms:
    allocated   -- what a budget has committed: employee allocations +
                   fringe benefits + expenses + indirect cost
    remaining   -- total_budget - allocated (negative means overspent)
    YTD         -- spending recorded in monthly maps from the first fiscal
                   month through the current month
    balance     -- total_budget - YTD
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Iterable

from budget.categories import partition_expenses
from budget.fiscal import FiscalMonth, current_fiscal_month, fiscal_months, ytd_months
from utils.config import KnownValues
from utils.database import decode_json_map
from utils.strings import safe_float


# ── Primitive reductions ──────────────────────────────────────────────────────

def _num(value: Any) -> float:
    return safe_float(value, default=0.0)


def floor2(value: float) -> float:
    """Truncate toward negative infinity at two decimals."""
    # round first so binary-inexact cents (1234.57 * 100 == 123456.99...) survive
    return math.floor(round(_num(value) * 100, 6)) / 100


def monthly_map(row: dict, column: str = "monthly_allocations") -> dict[str, float]:
    """The decoded monthly map of a row (accepts dicts or stored JSON)."""
    return decode_json_map(row.get(column))


def month_total(monthly: dict[str, float], months: Iterable[FiscalMonth]) -> float:
    """Sum of ``monthly`` over ``months``; missing keys are zero."""
    return sum(_num(monthly.get(m.key)) for m in months)


def sum_amount(rows: Iterable[dict], key: str) -> float:
    return sum(_num(r.get(key)) for r in rows)


def rows_for_budget(rows: Iterable[dict], budget_id: Any) -> list[dict]:
    return [r for r in rows if r.get("budget_id") == budget_id]


def _months_for(budget: dict) -> list[FiscalMonth]:
    return fiscal_months(budget.get("fiscal_year_start"), budget.get("fiscal_year_end"))


def _spread(budget: dict, amount_key: str, override_column: str,
            key: str, n_months: int) -> float:
    overrides = monthly_map(budget, override_column)
    if key in overrides:
        return overrides[key]
    return _num(budget.get(amount_key)) / max(n_months, 1)


def fringe_for_month(budget: dict, key: str, n_months: int) -> float:
    """Fringe benefits charged to month ``key``.

    Uses the budget's per-month override when one exists, otherwise an
    even share of fringe_benefits_amount.
    """
    return _spread(budget, "fringe_benefits_amount",
                   "monthly_fringe_allocations", key, n_months)


def indirect_for_month(budget: dict, key: str, n_months: int) -> float:
    """Indirect cost charged to month ``key`` (override or even share)."""
    return _spread(budget, "indirect_cost",
                   "monthly_indirect_allocations", key, n_months)


def row_amount(row: dict) -> float:
    """Parent amount of an allocation (allocated_amount) or expense (amount)."""
    if "allocated_amount" in row:
        return _num(row.get("allocated_amount"))
    return _num(row.get("amount"))


def row_balance(row: dict, months: Iterable[FiscalMonth]) -> float:
    """Parent amount minus the sum of the row's monthly values over ``months``.

    Monthly maps are not required to add up to the parent amount; the
    difference is what this reports.
    """
    return row_amount(row) - month_total(monthly_map(row), months)


# ── Per-budget figures ────────────────────────────────────────────────────────

def budget_allocated(budget: dict, allocations: Iterable[dict],
                     expenses: Iterable[dict]) -> float:
    """Allocations + fringe + expenses + indirect committed against a budget."""
    bid = budget.get("id")
    return (
        sum_amount(rows_for_budget(allocations, bid), "allocated_amount")
        + _num(budget.get("fringe_benefits_amount"))
        + sum_amount(rows_for_budget(expenses, bid), "amount")
        + _num(budget.get("indirect_cost"))
    )


def budget_remaining(budget: dict, allocations: Iterable[dict],
                     expenses: Iterable[dict]) -> float:
    """total_budget - allocated, both truncated to cents first."""
    allocated = budget_allocated(budget, allocations, expenses)
    return round(floor2(budget.get("total_budget")) - floor2(allocated), 2)


def budget_ytd(budget: dict, allocations: Iterable[dict],
               expenses: Iterable[dict], today: date | None = None) -> float:
    """Year-to-date spend: employee + fringe + expense + indirect monthly values."""
    months = _months_for(budget)
    if not months:
        return 0.0
    window = ytd_months(months, today)
    n = len(months)
    bid = budget.get("id")

    employee = sum(month_total(monthly_map(a), window)
                   for a in rows_for_budget(allocations, bid))
    expense = sum(month_total(monthly_map(e), window)
                  for e in rows_for_budget(expenses, bid))
    fringe = sum(fringe_for_month(budget, m.key, n) for m in window)
    indirect = sum(indirect_for_month(budget, m.key, n) for m in window)
    return employee + fringe + expense + indirect


def budget_balance(budget: dict, allocations: Iterable[dict],
                   expenses: Iterable[dict], today: date | None = None) -> float:
    """total_budget - YTD spend."""
    return _num(budget.get("total_budget")) - budget_ytd(budget, allocations, expenses, today)


@dataclass
class BudgetSummary:
    """Headline figures for one budget row of the dashboard."""

    budget_id: Any
    budget_number: str | None
    name: str | None
    funder_id: Any
    location_id: Any
    total_budget: float
    personnel: float
    fringe: float
    indirect: float
    other_total: float
    dca_total: float
    allocated: float
    remaining: float
    is_overspent: bool
    ytd: float
    balance: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def budget_summary(budget: dict, allocations: Iterable[dict],
                   expenses: Iterable[dict], today: date | None = None) -> BudgetSummary:
    bid = budget.get("id")
    allocations = rows_for_budget(allocations, bid)
    expenses = rows_for_budget(expenses, bid)
    other, dca = partition_expenses(expenses)

    total = _num(budget.get("total_budget"))
    remaining = budget_remaining(budget, allocations, expenses)
    ytd = budget_ytd(budget, allocations, expenses, today)
    return BudgetSummary(
        budget_id=bid,
        budget_number=budget.get("budget_number"),
        name=budget.get("name"),
        funder_id=budget.get("funder_id"),
        location_id=budget.get("location_id"),
        total_budget=total,
        personnel=sum_amount(allocations, "allocated_amount"),
        fringe=_num(budget.get("fringe_benefits_amount")),
        indirect=_num(budget.get("indirect_cost")),
        other_total=sum_amount(other, "amount"),
        dca_total=sum_amount(dca, "amount"),
        allocated=budget_allocated(budget, allocations, expenses),
        remaining=remaining,
        is_overspent=remaining < 0,
        ytd=ytd,
        balance=total - ytd,
    )


# ── Total program cost ────────────────────────────────────────────────────────

_COST_COLUMNS = ("employee", "fringe", "personnel", "indirect", "other", "dca", "total")


def total_program_cost(budget: dict, allocations: Iterable[dict],
                       expenses: Iterable[dict], today: date | None = None) -> dict[str, Any]:
    """Month-by-month program cost for one budget.

    Returns a dict with:
        months   -- one row per fiscal month: employee, fringe, personnel
                    (employee + fringe), indirect, other, dca, total
        totals   -- the same columns summed over the whole fiscal year
        ytd      -- total over the year-to-date months
        balance  -- total_budget - ytd
        current_month -- key of the month YTD runs through
    """
    months = _months_for(budget)
    n = len(months)
    bid = budget.get("id")
    allocations = rows_for_budget(allocations, bid)
    other, dca = partition_expenses(rows_for_budget(expenses, bid))

    alloc_maps = [monthly_map(a) for a in allocations]
    other_maps = [monthly_map(e) for e in other]
    dca_maps = [monthly_map(e) for e in dca]

    rows: list[dict[str, Any]] = []
    for m in months:
        employee = sum(_num(mm.get(m.key)) for mm in alloc_maps)
        fringe = fringe_for_month(budget, m.key, n)
        indirect = indirect_for_month(budget, m.key, n)
        other_amt = sum(_num(mm.get(m.key)) for mm in other_maps)
        dca_amt = sum(_num(mm.get(m.key)) for mm in dca_maps)
        personnel = employee + fringe
        rows.append({
            "month": m.key,
            "label": m.label,
            "employee": employee,
            "fringe": fringe,
            "personnel": personnel,
            "indirect": indirect,
            "other": other_amt,
            "dca": dca_amt,
            "total": personnel + indirect + other_amt + dca_amt,
        })

    totals = {col: sum(r[col] for r in rows) for col in _COST_COLUMNS}
    window = {m.key for m in ytd_months(months, today)}
    ytd = sum(r["total"] for r in rows if r["month"] in window)
    return {
        "budget_id": bid,
        "months": rows,
        "totals": totals,
        "ytd": ytd,
        "balance": _num(budget.get("total_budget")) - ytd,
        "current_month": current_fiscal_month(months, today),
    }


# ── Cross-budget rollups ──────────────────────────────────────────────────────

def _funder_of(budget: dict, funders_by_id: dict[Any, dict]) -> dict | None:
    nested = budget.get("funder")
    if isinstance(nested, dict) and nested:
        return nested
    return funders_by_id.get(budget.get("funder_id"))


def funder_rollup(
    budgets: Iterable[dict],
    allocations: Iterable[dict],
    expenses: Iterable[dict],
    funders: Iterable[dict] = (),
    excluded_codes: Iterable[str] = KnownValues.EXCLUDED_ROLLUP_FUNDERS,
) -> list[dict[str, Any]]:
    """Budgets grouped by funder with total, allocated and remaining.

    Funders whose code is in ``excluded_codes`` (case-insensitive) are left
    out; budgets with no funder are grouped under "Unassigned".
    """
    allocations = list(allocations)
    expenses = list(expenses)
    excluded = {c.lower() for c in excluded_codes}
    funders_by_id = {f.get("id"): f for f in funders}

    groups: dict[Any, dict[str, Any]] = {}
    for b in budgets:
        funder = _funder_of(b, funders_by_id)
        code = (funder or {}).get("code") or ""
        if code.lower() in excluded:
            continue
        fid = (funder.get("id") or b.get("funder_id")) if funder else None
        entry = groups.get(fid)
        if entry is None:
            entry = groups[fid] = {
                "funder_id": fid,
                "code": code or None,
                "name": (funder or {}).get("name") or "Unassigned",
                "color_code": (funder or {}).get("color_code"),
                "budget_count": 0,
                "total_budget": 0.0,
                "allocated": 0.0,
                "remaining": 0.0,
            }
        allocated = budget_allocated(b, allocations, expenses)
        entry["budget_count"] += 1
        entry["total_budget"] += _num(b.get("total_budget"))
        entry["allocated"] += allocated
        entry["remaining"] += budget_remaining(b, allocations, expenses)
    return sorted(groups.values(), key=lambda e: (e["funder_id"] is None, e["name"]))


def employee_utilization(employee: dict, allocations: Iterable[dict]) -> dict[str, Any]:
    """How much of an employee's salary is covered by budget allocations."""
    eid = employee.get("id")
    own = [a for a in allocations if a.get("employee_id") == eid]
    salary = _num(employee.get("annual_salary"))
    allocated = sum_amount(own, "allocated_amount")
    return {
        "employee_id": eid,
        "name": f"{employee.get('first_name') or ''} {employee.get('last_name') or ''}".strip(),
        "status": employee.get("status"),
        "annual_salary": salary,
        "total_allocated": allocated,
        "allocation_count": len(own),
        "utilization": (allocated / salary * 100) if salary > 0 else 0.0,
        "deficit": max(salary - allocated, 0.0),
        "surplus": max(allocated - salary, 0.0),
    }


def tbh_candidates(
    budgets: Iterable[dict],
    allocations: Iterable[dict],
    expenses: Iterable[dict],
    threshold: float = KnownValues.TBH_REMAINING_THRESHOLD,
) -> list[dict[str, Any]]:
    """Budgets with more than ``threshold`` remaining, largest first."""
    allocations = list(allocations)
    expenses = list(expenses)
    result = []
    for b in budgets:
        remaining = budget_remaining(b, allocations, expenses)
        if remaining > threshold:
            result.append({
                "budget_id": b.get("id"),
                "budget_number": b.get("budget_number"),
                "name": b.get("name"),
                "total_budget": _num(b.get("total_budget")),
                "remaining": remaining,
            })
    result.sort(key=lambda r: r["remaining"], reverse=True)
    return result


def summary_cards(budgets: Iterable[dict], employees: Iterable[dict]) -> dict[str, Any]:
    """Counts and totals shown across the top of the dashboard."""
    budgets = list(budgets)
    employees = list(employees)
    active = sum(1 for e in employees if e.get("status") == "active")
    tbh = sum(1 for e in employees
              if e.get("status") == "tbh" and e.get("tbh_budget_id") is not None)
    return {
        "budget_count": len(budgets),
        "total_budget": sum_amount(budgets, "total_budget"),
        "active_employees": active,
        "tbh_positions": tbh,
        "total_positions": active + tbh,
    }
