"""Shared SQL query builder utilities for the ECDC budget API routes.

Every CRUD route filters its list endpoint by a handful of optional
equality parameters and applies partial updates on PUT; these helpers keep
that SQL construction in one place.  Column names always come from route
code, never from request data.
"""

from typing import Any, Iterable


def build_where_clause(
    filters: dict[str, Any] | None = None,
    in_filters: dict[str, list[Any] | None] | None = None,
    extra_conditions: Iterable[tuple[str, list[Any]]] = (),
) -> tuple[str, list[Any]]:
    """Build a SQL WHERE clause from filter parameters.

    Args:
        filters: ``{column: value}`` equality filters; ``None`` values are
            skipped so optional query parameters can be passed straight
            through.
        in_filters: ``{column: [values]}`` membership filters; empty or
            ``None`` lists are skipped.
        extra_conditions: Pre-built ``(sql_fragment, params)`` pairs, e.g.
            ``("pay_period_start >= ?", ["2025-10-01"])``.

    Returns:
        Tuple of (where_clause_string, params_list). The where_clause_string
        starts with "WHERE " if any conditions exist, or is "" if none.
    """
    conditions: list[str] = []
    params: list[Any] = []

    for column, value in (filters or {}).items():
        if value is None:
            continue
        conditions.append(f"{column} = ?")
        params.append(value)

    for column, values in (in_filters or {}).items():
        if not values:
            continue
        placeholders = ",".join("?" * len(values))
        conditions.append(f"{column} IN ({placeholders})")
        params.extend(values)

    for fragment, fragment_params in extra_conditions:
        conditions.append(fragment)
        params.extend(fragment_params)

    where = "WHERE " + " AND ".join(conditions) if conditions else ""
    return where, params


def build_update_clause(
    values: dict[str, Any],
    allowed_columns: Iterable[str],
    touch_updated_at: bool = True,
) -> tuple[str, list[Any]]:
    """Build the SET part of an UPDATE from a partial record.

    Keys not in ``allowed_columns`` are ignored.

    Returns:
        Tuple of (set_clause, params), e.g. ("SET name = ?, updated_at = ...",
        ["New name"]).  set_clause is "" when nothing is updatable.
    """
    allowed = set(allowed_columns)
    assignments: list[str] = []
    params: list[Any] = []
    for column, value in values.items():
        if column not in allowed:
            continue
        assignments.append(f"{column} = ?")
        params.append(value)
    if not assignments:
        return "", []
    if touch_updated_at:
        assignments.append("updated_at = CURRENT_TIMESTAMP")
    return "SET " + ", ".join(assignments), params


def build_order_clause(
    sort_by: str,
    sort_dir: str,
    allowed_sorts: set[str],
    default_sort: str = "id",
) -> str:
    """Build a safe SQL ORDER BY clause.

    Args:
        sort_by: Column name to sort by.
        sort_dir: Direction: 'asc' or 'desc' (case-insensitive).
        allowed_sorts: Set of valid sort column names.
        default_sort: Column to use if sort_by is not in allowed_sorts.

    Returns:
        ORDER BY clause string, e.g. "ORDER BY budget_number ASC".
    """
    col = sort_by if sort_by in allowed_sorts else default_sort
    direction = "DESC" if sort_dir.lower() == "desc" else "ASC"
    return f"ORDER BY {col} {direction}"
