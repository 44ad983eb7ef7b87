"""
Data loader: pulls the budget collections from the JSON API into flat lists.

Usage::

    from budget.loader import BudgetApiClient, load_dataset

    with BudgetApiClient("http://127.0.0.1:8000") as client:
        data = load_dataset(client, fiscal_year="2025-10-01")
        for summary in data.summaries():
            print(summary.budget_number, summary.remaining)

Reads are retried on 429/5xx by the session adapter; writes are sent once.
Any non-2xx response raises ApiError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import requests

from budget import aggregation
from utils.config import AppConfig
from utils.database import decode_json_map
from utils.http import SessionManager
from utils.strings import safe_float

logger = logging.getLogger(__name__)

RESOURCES = (
    "budgets", "employees", "allocations", "expenses", "funders",
    "locations", "program-budget-line-items", "time-entries",
    "expense-categories",
)


class ApiError(Exception):
    """An API call failed or returned a non-2xx status."""

    def __init__(self, status_code: int | None, message: str, url: str = ""):
        super().__init__(f"{status_code or 'network error'}: {message} ({url})")
        self.status_code = status_code
        self.message = message
        self.url = url


class BudgetApiClient:
    """Thin wrapper over the /api endpoints.

    ``session`` may be any object with a requests-style ``request()``
    method returning a response with ``status_code``, ``json()``, ``text``
    and ``content`` (a requests.Session, or FastAPI's TestClient).
    """

    def __init__(self, base_url: str | None = None, session: Any = None,
                 timeout: float | None = None) -> None:
        cfg = AppConfig.from_env()
        self.base_url = (base_url or cfg.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else cfg.http_timeout
        self._manager: SessionManager | None = None
        if session is None:
            self._manager = SessionManager()
            session = self._manager.session
        self.session = session

    def close(self) -> None:
        if self._manager is not None:
            self._manager.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ── Transport ─────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, params: dict | None = None,
                 json: Any = None):
        url = f"{self.base_url}/api/{path.lstrip('/')}"
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            resp = self.session.request(
                method, url, params=clean_params or None, json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("request_failed method=%s url=%s error=%s", method, url, exc)
            raise ApiError(None, str(exc), url) from exc

        if not 200 <= resp.status_code < 300:
            message = _error_message(resp)
            logger.warning("api_error method=%s url=%s status=%d message=%s",
                           method, url, resp.status_code, message)
            raise ApiError(resp.status_code, message, url)
        return resp

    def _get(self, path: str, **params) -> Any:
        return self._request("GET", path, params=params).json()

    # ── Collections ───────────────────────────────────────────────────────────

    def get_budgets(self, location_id: int | None = None,
                    fiscal_year: str | None = None) -> list[dict]:
        return self._get("budgets", location_id=location_id, fiscal_year=fiscal_year)

    def get_employees(self, location_id: int | None = None,
                      status: str | None = None) -> list[dict]:
        return self._get("employees", location_id=location_id, status=status)

    def get_allocations(self, employee_id: int | None = None,
                        budget_id: int | None = None) -> list[dict]:
        return self._get("allocations", employee_id=employee_id, budget_id=budget_id)

    def get_expenses(self, budget_id: int | None = None) -> list[dict]:
        return self._get("expenses", budget_id=budget_id)

    def get_funders(self) -> list[dict]:
        return self._get("funders")

    def get_locations(self) -> list[dict]:
        return self._get("locations")

    def get_line_items(self, budget_id: int | None = None,
                       month: str | None = None) -> list[dict]:
        return self._get("program-budget-line-items", budget_id=budget_id, month=month)

    def get_time_entries(self, employee_id: int | None = None,
                         budget_id: int | None = None,
                         month: str | None = None) -> list[dict]:
        return self._get("time-entries", employee_id=employee_id,
                         budget_id=budget_id, month=month)

    def get_fiscal_years(self) -> list[dict]:
        return self._get("fiscal-years")

    # ── Writes ────────────────────────────────────────────────────────────────

    def create(self, resource: str, payload: dict) -> dict:
        return self._request("POST", resource, json=payload).json()

    def update(self, resource: str, record_id: int, changes: dict) -> dict:
        """PUT a partial record; the id travels in the body."""
        return self._request("PUT", resource, json={"id": record_id, **changes}).json()

    def delete(self, resource: str, record_id: int) -> dict:
        return self._request("DELETE", resource, params={"id": record_id}).json()

    def export_excel(self, **options: bool) -> bytes:
        """POST /api/export-excel and return the workbook bytes.

        Keyword flags: includeBudgets, includeEmployees, includeAllocations,
        includeTimeEntries, includeExpenses.
        """
        return self._request("POST", "export-excel", json=options).content


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


# ── Normalization ─────────────────────────────────────────────────────────────

def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_budget(row: dict) -> dict:
    out = dict(row)
    for key in ("id", "location_id", "funder_id"):
        out[key] = _int_or_none(row.get(key))
    out["total_budget"] = safe_float(row.get("total_budget"))
    out["fringe_benefits_amount"] = safe_float(row.get("fringe_benefits_amount"))
    out["indirect_cost"] = (None if row.get("indirect_cost") is None
                            else safe_float(row.get("indirect_cost")))
    for col in ("monthly_fringe_allocations", "monthly_indirect_allocations"):
        out[col] = decode_json_map(row.get(col))
    return out


def normalize_employee(row: dict) -> dict:
    out = {k: v for k, v in row.items() if k != "allocations"}
    for key in ("id", "location_id", "tbh_budget_id"):
        out[key] = _int_or_none(row.get(key))
    out["annual_salary"] = safe_float(row.get("annual_salary"))
    out["hourly_rate"] = safe_float(row.get("hourly_rate"))
    out["status"] = row.get("status") or "active"
    return out


def normalize_allocation(row: dict) -> dict:
    out = {k: v for k, v in row.items() if k != "budget"}
    for key in ("id", "employee_id", "budget_id"):
        out[key] = _int_or_none(row.get(key))
    out["allocated_amount"] = safe_float(row.get("allocated_amount"))
    out["monthly_allocations"] = decode_json_map(row.get("monthly_allocations"))
    return out


def normalize_expense(row: dict) -> dict:
    out = dict(row)
    for key in ("id", "budget_id"):
        out[key] = _int_or_none(row.get(key))
    out["amount"] = safe_float(row.get("amount"))
    out["monthly_allocations"] = decode_json_map(row.get("monthly_allocations"))
    return out


def flatten_employee_allocations(employees: list[dict]) -> list[dict]:
    """Pull the allocations nested under each employee into one flat list."""
    flat = []
    for emp in employees:
        for alloc in emp.get("allocations") or []:
            row = dict(alloc)
            row.setdefault("employee_id", emp.get("id"))
            flat.append(normalize_allocation(row))
    return flat


@dataclass
class Dataset:
    """Flat in-memory copy of the dashboard's collections."""

    budgets: list[dict] = field(default_factory=list)
    employees: list[dict] = field(default_factory=list)
    allocations: list[dict] = field(default_factory=list)
    expenses: list[dict] = field(default_factory=list)
    funders: list[dict] = field(default_factory=list)
    locations: list[dict] = field(default_factory=list)

    def budget(self, budget_id: int) -> dict | None:
        return next((b for b in self.budgets if b["id"] == budget_id), None)

    def for_budget(self, budget_id: int) -> tuple[list[dict], list[dict]]:
        """(allocations, expenses) belonging to one budget."""
        return (aggregation.rows_for_budget(self.allocations, budget_id),
                aggregation.rows_for_budget(self.expenses, budget_id))

    def summaries(self, today: date | None = None) -> list[aggregation.BudgetSummary]:
        return [aggregation.budget_summary(b, self.allocations, self.expenses, today)
                for b in self.budgets]

    def funder_rollup(self) -> list[dict]:
        return aggregation.funder_rollup(self.budgets, self.allocations,
                                         self.expenses, self.funders)

    def summary_cards(self) -> dict:
        return aggregation.summary_cards(self.budgets, self.employees)


def load_dataset(client: BudgetApiClient, fiscal_year: str | None = None,
                 use_allocation_endpoint: bool = True) -> Dataset:
    """Fetch every collection the dashboard needs and normalize it.

    Args:
        client: API client.
        fiscal_year: Optional fiscal_year_start (YYYY-MM-DD); allocations
            and expenses are narrowed to the budgets of that year.
        use_allocation_endpoint: When False, allocations come from the
            lists nested under each employee instead of /api/allocations.
    """
    raw_employees = client.get_employees()
    budgets = [normalize_budget(b) for b in client.get_budgets(fiscal_year=fiscal_year)]
    employees = [normalize_employee(e) for e in raw_employees]
    if use_allocation_endpoint:
        allocations = [normalize_allocation(a) for a in client.get_allocations()]
    else:
        allocations = flatten_employee_allocations(raw_employees)
    expenses = [normalize_expense(e) for e in client.get_expenses()]

    if fiscal_year:
        ids = {b["id"] for b in budgets}
        allocations = [a for a in allocations if a["budget_id"] in ids]
        expenses = [e for e in expenses if e["budget_id"] in ids]

    data = Dataset(
        budgets=budgets,
        employees=employees,
        allocations=allocations,
        expenses=expenses,
        funders=client.get_funders(),
        locations=client.get_locations(),
    )
    logger.info(
        "Loaded %d budgets, %d employees, %d allocations, %d expenses",
        len(data.budgets), len(data.employees), len(data.allocations), len(data.expenses),
    )
    return data
