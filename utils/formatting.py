"""Output formatting utilities for the ECDC budget tools.

Provides reusable functions for:
- Formatting currency amounts the way the dashboard shows them
- Percentages and counts
- Tabular report output for command-line tools
"""

from typing import Optional, List, Any


def format_currency(value: Optional[float]) -> str:
    """Format a dollar amount with two decimals and thousands separators.

    The leading "$" is left to the caller (templates render it next to
    the number). None renders as "0.00".

    Examples:
        format_currency(1234567.891) -> "1,234,567.89"
        format_currency(-50) -> "-50.00"
        format_currency(None) -> "0.00"
    """
    try:
        v = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        v = 0.0
    return f"{v:,.2f}"


def format_percent(value: Optional[float], precision: int = 1) -> str:
    """Format a percentage for display.

    Examples:
        format_percent(42.5) -> "42.5%"
        format_percent(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:.{precision}f}%"


def format_count(value: Optional[int]) -> str:
    """Format a count with thousands separator ("-" for None)."""
    if value is None:
        return "-"
    return f"{value:,}"


class TableFormatter:
    """Formats rows as aligned plain-text columns."""

    def __init__(self, columns: List[str], column_widths: Optional[List[int]] = None):
        self.columns = columns
        self.column_widths = column_widths or [len(col) for col in columns]
        self.rows: List[List[str]] = []

    def add_row(self, values: List[Any]) -> None:
        """Add a row to the table.

        Raises:
            ValueError: If value count doesn't match column count
        """
        if len(values) != len(self.columns):
            raise ValueError(f"Expected {len(self.columns)} values, got {len(values)}")

        str_values = []
        for i, val in enumerate(values):
            str_val = str(val) if val is not None else "-"
            str_values.append(str_val)
            if len(str_val) > self.column_widths[i]:
                self.column_widths[i] = len(str_val)
        self.rows.append(str_values)

    def _format_row(self, values: List[str], is_header: bool = False) -> str:
        cells = []
        for i, val in enumerate(values):
            width = self.column_widths[i]
            if is_header:
                cells.append(val.ljust(width))
                continue
            # Numbers right-aligned, text left-aligned
            try:
                float(val.replace(",", ""))
                cells.append(val.rjust(width))
            except ValueError:
                cells.append(val.ljust(width))
        return "  ".join(cells)

    def to_string(self, show_header: bool = True) -> str:
        """Format table as multi-line string."""
        lines = []
        if show_header:
            lines.append(self._format_row(self.columns, is_header=True))
            lines.append("  ".join("-" * w for w in self.column_widths))
        for row in self.rows:
            lines.append(self._format_row(row))
        return "\n".join(lines)
