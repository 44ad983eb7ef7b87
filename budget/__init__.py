"""
Budget package -- fiscal calendar, expense classification, rollups and the
API data loader behind the ECDC budget dashboard.

Re-exports key entry points so callers can do::

    from budget import budget_summary, fiscal_months, load_dataset
"""

from budget.aggregation import (
    BudgetSummary,
    budget_summary,
    funder_rollup,
    total_program_cost,
)
from budget.categories import is_dca, partition_expenses
from budget.fiscal import fiscal_months, ytd_months
from budget.loader import ApiError, BudgetApiClient, Dataset, load_dataset

__all__ = [
    "ApiError",
    "BudgetApiClient",
    "BudgetSummary",
    "Dataset",
    "budget_summary",
    "fiscal_months",
    "funder_rollup",
    "is_dca",
    "load_dataset",
    "partition_expenses",
    "total_program_cost",
    "ytd_months",
]
