"""
Expense category tables and the Other / DCA classifier.

Expenses carry a free-text category.  A fixed set of categories counts as
Direct Client Assistance (DCA); everything else is reported as "Other".
"""

from __future__ import annotations

from typing import Iterable

from utils.strings import normalize_category

# Display name -> category string stored on expense rows.
DCA_CATEGORY_MAP: dict[str, str] = {
    "Recognition Ceremony": "RECOGNITION CEREMONY",
    "Student Integration Activities": "STUDENT INTEGRATION",
    "Client Transportation": "CLIENT TRANSPORTATION",
    "Client Laptop": "CLIENT LAPTOP",
    "Direct Cash": "DIRECT CASH",
    "Housing": "HOUSING",
    "Utilities": "UTILITIES",
    "Food": "FOOD",
    "Health/Medical": "HEALTH/MEDICAL",
    "Training": "TRAINING",
    "Legal Assistance": "LEGAL ASSISTANCE",
    "Other Client Services": "OTHER CLIENT SERVICES",
}

DCA_CATEGORIES: frozenset[str] = frozenset(DCA_CATEGORY_MAP.values())

_DISPLAY_BY_CATEGORY = {v: k for k, v in DCA_CATEGORY_MAP.items()}

DEFAULT_EXPENSE_CATEGORIES: tuple[str, ...] = (
    "TELEPHONE",
    "LOCAL TRAVEL",
    "INTERPRETATION",
    "RENT",
    "COMPUTER",
    "AUTO MAINTENANCE",
    "HOUSING",
    "FOOD",
    "MISC",
    "CLOTHING",
    "STAFF DEVELOPMENT",
    "FIRST AID KIT & THERMOMETERS",
    "MENTAL HEALTH",
    "BLOOD PRESSURE TRAINING",
    "FAMANINE HYGIENE",
    "MEDICAL",
    "TRAINING: ESL",
    "TRAINING: VOCATIONAL",
    "TRAINING: TECHNOLOGY",
    "LEGAL ASSISTANCE",
    "FIELD TRIPS",
    "GRADUATION CEREMONY",
)

PROGRAM_LINE_ITEM_CATEGORIES: tuple[str, ...] = (
    "Travel",
    "Supplies",
    "Staff Development",
    "Interpretation",
    "Client Activity",
    "Rent",
    "Capacity Building Event",
    "Youth Incentives",
    "Local Travel",
    "Client Training",
    "Contractual",
)


def is_dca(category: str | None) -> bool:
    """True if ``category`` is a DCA category (case and spacing ignored)."""
    return normalize_category(category) in DCA_CATEGORIES


def display_name(category: str | None) -> str:
    """Human label for a stored category; non-DCA categories pass through."""
    norm = normalize_category(category)
    return _DISPLAY_BY_CATEGORY.get(norm, category or "")


def partition_expenses(expenses: Iterable[dict]) -> tuple[list[dict], list[dict]]:
    """Split expense rows into ``(other, dca)`` lists, preserving order."""
    other: list[dict] = []
    dca: list[dict] = []
    for exp in expenses:
        (dca if is_dca(exp.get("category")) else other).append(exp)
    return other, dca


def dca_by_display_name(expenses: Iterable[dict]) -> dict[str, list[dict]]:
    """Group DCA expenses under every DCA display name (empty lists kept)."""
    grouped: dict[str, list[dict]] = {name: [] for name in DCA_CATEGORY_MAP}
    for exp in expenses:
        if is_dca(exp.get("category")):
            grouped[display_name(exp.get("category"))].append(exp)
    return grouped


def all_expense_categories(custom: Iterable[str] = ()) -> list[str]:
    """Default categories merged with custom ones, normalized, deduped, sorted."""
    names = {normalize_category(c) for c in DEFAULT_EXPENSE_CATEGORIES}
    names.update(normalize_category(c) for c in custom)
    names.discard("")
    return sorted(names)
