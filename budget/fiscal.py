"""
Fiscal calendar helpers.

ECDC fiscal years run October 1 through September 30.  Monthly allocation
maps are keyed by "YYYY-MM"; these helpers produce the ordered month list
for a budget's fiscal-year bounds and decide which of those months count
toward year-to-date totals.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable

from utils.patterns import ISO_DATE, MONTH_KEY

FISCAL_YEAR_START_MONTH = 10


@dataclass(frozen=True)
class FiscalMonth:
    """One column of a fiscal-year table."""

    key: str        # "2025-10"
    label: str      # "Oct"
    year: int
    month: int

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.key, "label": self.label}


def parse_date(value: Any) -> date | None:
    """Coerce an ISO date string, date, or datetime into a date.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    m = ISO_DATE.match(str(value).strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def first_of_month(value: Any) -> date | None:
    """Normalize a date or "YYYY-MM" / "YYYY-MM-DD" string to the 1st of its month."""
    if isinstance(value, str):
        m = MONTH_KEY.match(value.strip())
        if m:
            year, month = int(m.group(1)), int(m.group(2))
            if 1 <= month <= 12:
                return date(year, month, 1)
            return None
    d = parse_date(value)
    return d.replace(day=1) if d else None


def last_of_month(d: date) -> date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def _add_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def fiscal_months(start: Any, end: Any) -> list[FiscalMonth]:
    """List the months from the start month through the end date.

    Iteration starts at the first of the start month and advances one
    month at a time while the cursor is on or before ``end``.  Missing or
    invalid bounds yield an empty list.

    >>> [m.key for m in fiscal_months("2025-10-01", "2026-01-15")]
    ['2025-10', '2025-11', '2025-12', '2026-01']
    """
    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d is None or end_d is None:
        return []
    months: list[FiscalMonth] = []
    cursor = start_d.replace(day=1)
    while cursor <= end_d:
        months.append(FiscalMonth(
            key=month_key(cursor),
            label=calendar.month_abbr[cursor.month],
            year=cursor.year,
            month=cursor.month,
        ))
        cursor = _add_month(cursor)
    return months


def current_month_index(months: list[FiscalMonth], today: date | None = None) -> int:
    """Index of today's month within ``months``, or -1 if outside."""
    key = month_key(today or date.today())
    for i, m in enumerate(months):
        if m.key == key:
            return i
    return -1


def ytd_months(months: list[FiscalMonth], today: date | None = None) -> list[FiscalMonth]:
    """Months that count toward year-to-date totals.

    From the first fiscal month through today's month; when today is not
    inside the fiscal year every month counts.
    """
    idx = current_month_index(months, today)
    return months[: idx + 1] if idx >= 0 else list(months)


def current_fiscal_month(months: list[FiscalMonth], today: date | None = None) -> str | None:
    """Today's month key if it is in ``months``, else the last month's key."""
    if not months:
        return None
    idx = current_month_index(months, today)
    return months[idx].key if idx >= 0 else months[-1].key


def current_fiscal_year_start(today: date | None = None) -> date:
    """October 1 of the fiscal year containing ``today``."""
    today = today or date.today()
    if today.month >= FISCAL_YEAR_START_MONTH:
        return date(today.year, FISCAL_YEAR_START_MONTH, 1)
    return date(today.year - 1, FISCAL_YEAR_START_MONTH, 1)


def fiscal_year_name(start: Any, end: Any) -> str:
    """Short display name, e.g. "FY25-26" for Oct 2025 - Sep 2026."""
    start_d = parse_date(start)
    end_d = parse_date(end)
    if start_d is None or end_d is None:
        return "FY?"
    return f"FY{start_d.year % 100:02d}-{end_d.year % 100:02d}"


def derive_fiscal_years(budgets: Iterable[dict], today: date | None = None) -> list[dict]:
    """Distinct fiscal years present on budgets, newest first.

    Each entry has ``name``, ``start_date``, ``end_date``, ``is_active``
    (today within the bounds) and ``budget_count``.
    """
    today = today or date.today()
    seen: dict[tuple[str, str], dict] = {}
    for b in budgets:
        start_d = parse_date(b.get("fiscal_year_start"))
        end_d = parse_date(b.get("fiscal_year_end"))
        if start_d is None or end_d is None:
            continue
        key = (start_d.isoformat(), end_d.isoformat())
        entry = seen.get(key)
        if entry is None:
            entry = seen[key] = {
                "name": fiscal_year_name(start_d, end_d),
                "start_date": key[0],
                "end_date": key[1],
                "is_active": start_d <= today <= end_d,
                "budget_count": 0,
            }
        entry["budget_count"] += 1
    return sorted(seen.values(), key=lambda e: e["start_date"], reverse=True)
