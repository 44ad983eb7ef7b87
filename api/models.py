"""
Pydantic request/response models for the API.

Request models keep numeric fields loosely typed (number or string) so the
routes can report form-style validation errors ("Total budget must be a
valid number") as HTTP 400 with the same wording the dashboard shows.
Update models carry the record id in the body; only the fields a client
actually sends are applied (model_dump(exclude_unset=True)).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from utils.strings import clean_optional

NumberInput = float | str | None


class FormModel(BaseModel):
    """Request body base: strings are trimmed and blank strings become None."""

    @model_validator(mode="before")
    @classmethod
    def _blank_to_none(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: clean_optional(v) for k, v in data.items()}
        return data


# ── Reference data ────────────────────────────────────────────────────────────

class LocationIn(FormModel):
    code: str = Field(..., description="Short location code", examples=["VA"])
    name: str = Field(..., description="Location name", examples=["Virginia"])


class LocationOut(BaseModel):
    """An office location."""
    id: int
    code: str = Field(..., examples=["VA"])
    name: str = Field(..., examples=["Virginia"])


class FunderIn(FormModel):
    code: str | None = Field(None, description="Unique funder code", examples=["ORR"])
    name: str | None = Field(None, description="Funder name", examples=["Office of Refugee Resettlement"])
    description: str | None = None
    color_code: str | None = Field(None, description="Hex colour used in the dashboard", examples=["#3B82F6"])


class FunderUpdate(FunderIn):
    id: int | None = None


class FunderOut(BaseModel):
    """A funding source."""
    id: int
    code: str
    name: str
    description: str | None = None
    color_code: str | None = Field(None, examples=["#3B82F6"])


class FiscalYearOut(BaseModel):
    """A fiscal year derived from budget date ranges."""
    name: str = Field(..., examples=["FY25-26"])
    start_date: str = Field(..., examples=["2025-10-01"])
    end_date: str = Field(..., examples=["2026-09-30"])
    is_active: bool
    budget_count: int


class ExpenseCategoriesOut(BaseModel):
    categories: list[str] = Field(..., description="Default + custom categories, sorted")
    custom: list[str] = Field(..., description="Categories added by users")
    dca_categories: dict[str, str] = Field(..., description="DCA display name -> stored category")
    line_item_categories: list[str] = Field(..., description="Program budget line item categories")


class CategoryIn(FormModel):
    name: str | None = Field(None, examples=["SNOW REMOVAL"])


# ── Budgets ───────────────────────────────────────────────────────────────────

class BudgetIn(FormModel):
    budget_number: str | None = Field(None, description="Contract number; VA budgets end in -30, others in -33", examples=["ORR-2026-30"])
    name: str | None = Field(None, examples=["Refugee Resettlement"])
    location_id: int | None = None
    funder_id: int | None = None
    fiscal_year_start: str | None = Field(None, examples=["2025-10-01"])
    fiscal_year_end: str | None = Field(None, examples=["2026-09-30"])
    total_budget: NumberInput = Field(None, examples=[250000])
    fringe_rate: NumberInput = Field(None, description="Fringe rate as a percentage", examples=[22.5])
    fringe_benefits_amount: NumberInput = None
    indirect_cost: NumberInput = None
    monthly_fringe_allocations: dict[str, float | None] | None = None
    monthly_indirect_allocations: dict[str, float | None] | None = None
    gl_code: str | None = None
    notes: str | None = None
    color_code: str | None = None


class BudgetUpdate(BudgetIn):
    id: int | None = None


class LocationRef(BaseModel):
    id: int
    code: str
    name: str


class FunderRef(BaseModel):
    id: int
    code: str
    name: str
    color_code: str | None = None


class BudgetOut(BaseModel):
    """A program budget with its location and funder."""
    id: int
    budget_number: str
    name: str
    location_id: int | None = None
    funder_id: int | None = None
    fiscal_year_start: str
    fiscal_year_end: str
    total_budget: float = Field(..., examples=[250000.0])
    fringe_rate: float | None = None
    fringe_benefits_amount: float | None = 0.0
    indirect_cost: float | None = None
    monthly_fringe_allocations: dict[str, float] = Field(default_factory=dict)
    monthly_indirect_allocations: dict[str, float] = Field(default_factory=dict)
    gl_code: str | None = None
    notes: str | None = None
    color_code: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    location: LocationRef | None = None
    funder: FunderRef | None = None


class DeleteResult(BaseModel):
    success: bool = True
    message: str = Field(..., examples=['Budget "ORR-2026-30" deleted successfully'])


# ── Employees & allocations ───────────────────────────────────────────────────

class EmployeeIn(FormModel):
    first_name: str | None = None
    last_name: str | None = None
    title: str | None = None
    location_id: int | None = Field(None, description="NULL means Admin (both locations)")
    annual_salary: NumberInput = Field(None, examples=[52000])
    hourly_rate: NumberInput = Field(None, examples=[25.0])
    status: str | None = Field(None, description="active | tbh", examples=["active"])
    tbh_budget_id: int | None = None
    tbh_notes: str | None = None
    date_of_hire: str | None = Field(None, examples=["2024-03-18"])


class EmployeeUpdate(EmployeeIn):
    id: int | None = None


class BudgetRef(BaseModel):
    id: int
    budget_number: str
    name: str


class AllocationIn(FormModel):
    employee_id: int | None = None
    budget_id: int | None = None
    allocated_amount: NumberInput = Field(None, examples=[18000])
    fiscal_year_start: str | None = None
    fiscal_year_end: str | None = None
    notes: str | None = None
    monthly_allocations: dict[str, float | None] | None = Field(
        None, description='Per-month amounts keyed "YYYY-MM"',
        examples=[{"2025-10": 1500.0, "2025-11": 1500.0}],
    )


class AllocationUpdate(AllocationIn):
    id: int | None = None


class AllocationOut(BaseModel):
    """An employee's salary allocation against one budget."""
    id: int
    employee_id: int
    budget_id: int
    allocated_amount: float
    fiscal_year_start: str | None = None
    fiscal_year_end: str | None = None
    notes: str | None = None
    monthly_allocations: dict[str, float] = Field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None
    budget: BudgetRef | None = None


class EmployeeOut(BaseModel):
    """An employee or to-be-hired position with its allocations."""
    id: int
    first_name: str
    last_name: str
    title: str | None = None
    location_id: int | None = None
    annual_salary: float | None = None
    hourly_rate: float | None = None
    status: str = "active"
    tbh_budget_id: int | None = None
    tbh_notes: str | None = None
    date_of_hire: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    allocations: list[AllocationOut] = Field(default_factory=list)


# ── Expenses ──────────────────────────────────────────────────────────────────

class ExpenseIn(FormModel):
    budget_id: int | None = None
    category: str | None = Field(None, examples=["CLIENT TRANSPORTATION"])
    amount: NumberInput = Field(None, examples=[1200])
    description: str | None = None
    notes: str | None = None
    expense_month: str | None = None
    monthly_allocations: dict[str, float | None] | None = None


class ExpenseUpdate(ExpenseIn):
    id: int | None = None


class ExpenseOut(BaseModel):
    """A budgeted expense; `is_dca` marks direct client assistance."""
    id: int
    budget_id: int
    category: str
    amount: float
    description: str | None = None
    notes: str | None = None
    expense_month: str | None = None
    monthly_allocations: dict[str, float] = Field(default_factory=dict)
    is_dca: bool = False
    created_at: str | None = None
    updated_at: str | None = None


# ── Program budget line items ─────────────────────────────────────────────────

class LineItemIn(FormModel):
    budget_id: int | None = None
    category: str | None = Field(None, examples=["Travel"])
    budget_month: str | None = Field(None, description="Any date in the month, or YYYY-MM", examples=["2025-10"])
    budgeted_amount: NumberInput = None
    spent_amount: NumberInput = None
    notes: str | None = None


class LineItemUpdate(LineItemIn):
    id: int | None = None


class LineItemOut(BaseModel):
    id: int
    budget_id: int
    category: str
    budget_month: str = Field(..., examples=["2025-10-01"])
    budgeted_amount: float
    spent_amount: float
    balance: float
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class LineItemCategorySummary(BaseModel):
    category: str
    total_budgeted: float
    total_spent: float
    total_balance: float
    running_percentage: float = Field(..., description="spent / budgeted x 100")


# ── Time entries ──────────────────────────────────────────────────────────────

class TimeEntryIn(FormModel):
    employee_id: int | None = None
    budget_id: int | None = None
    pay_period_start: str | None = Field(None, examples=["2025-10-01"])
    pay_period_end: str | None = Field(None, examples=["2025-10-14"])
    hours_worked: NumberInput = Field(None, examples=[80])
    manual_adjustment: NumberInput = None
    bonus: NumberInput = None
    notes: str | None = None
    is_biweekly: bool | None = None


class TimeEntryUpdate(TimeEntryIn):
    id: int | None = None


class TimeEntryOut(BaseModel):
    id: int
    employee_id: int
    budget_id: int | None = None
    pay_period_start: str
    pay_period_end: str
    hours_worked: float
    wage_amount: float = Field(..., description="hours_worked x employee hourly_rate")
    manual_adjustment: float = 0.0
    bonus: float = 0.0
    notes: str | None = None
    is_biweekly: bool = True
    created_at: str | None = None
    updated_at: str | None = None


# ── Export ────────────────────────────────────────────────────────────────────

class ExportOptions(BaseModel):
    includeBudgets: bool = False
    includeEmployees: bool = False
    includeAllocations: bool = False
    includeTimeEntries: bool = False
    includeExpenses: bool = False


# ── Overview / rollups ────────────────────────────────────────────────────────

class BudgetSummaryOut(BaseModel):
    budget_id: int
    budget_number: str | None = None
    name: str | None = None
    funder_id: int | None = None
    location_id: int | None = None
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


class FunderRollupOut(BaseModel):
    funder_id: int | None = None
    code: str | None = None
    name: str
    color_code: str | None = None
    budget_count: int
    total_budget: float
    allocated: float
    remaining: float


class ProgramCostMonth(BaseModel):
    month: str
    label: str
    employee: float
    fringe: float
    personnel: float
    indirect: float
    other: float
    dca: float
    total: float


class ProgramCostOut(BaseModel):
    budget_id: int
    months: list[ProgramCostMonth]
    totals: dict[str, float]
    ytd: float
    balance: float
    current_month: str | None = None


class UtilizationOut(BaseModel):
    employee_id: int
    name: str
    status: str | None = None
    annual_salary: float
    total_allocated: float
    allocation_count: int
    utilization: float = Field(..., description="Percent of salary allocated")
    deficit: float
    surplus: float


class TbhCandidateOut(BaseModel):
    budget_id: int
    budget_number: str | None = None
    name: str | None = None
    total_budget: float
    remaining: float


class SummaryCardsOut(BaseModel):
    budget_count: int
    total_budget: float
    active_employees: int
    tbh_positions: int
    total_positions: int


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error message", examples=['Budget number "ORR-2026-30" already exists'])
    detail: Any = Field(None, description="Additional detail")
    status_code: int | None = None
