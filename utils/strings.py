"""String processing utilities for the ECDC budget tools.

Form fields arrive as free text ("$1,250.00", "  ", "12.5"), so the API
and the workbook importer both normalize them through these helpers.
"""

import math

from utils.patterns import WHITESPACE, CURRENCY_SYMBOLS


def safe_float(val, default: float = 0.0) -> float:
    """Safely convert value to float with fallback default.

    Handles:
    - None, empty strings -> default
    - Numeric types -> float
    - Strings with currency symbols, whitespace, commas
    - Invalid input, inf and nan -> default

    Args:
        val: Value to convert (any type)
        default: Value to return on failure (default: 0.0)

    Returns:
        float: Parsed value or default
    """
    if val is None or val == '':
        return default
    if isinstance(val, bool):
        return float(val)
    try:
        if isinstance(val, (int, float)):
            result = float(val)
        else:
            s = str(val).strip()
            s = CURRENCY_SYMBOLS.sub('', s)
            s = s.replace(',', '').strip()
            if not s:
                return default
            result = float(s)
    except (ValueError, TypeError, OverflowError):
        return default
    return result if math.isfinite(result) else default


def optional_float(val) -> float | None:
    """Like safe_float() but keeps "no value" distinct from zero."""
    if isinstance(val, str) and not val.strip():
        return None
    return safe_float(val, default=None)


def parse_number_input(val) -> float:
    """Parse a currency text box: commas stripped, invalid input is 0."""
    return safe_float(val, default=0.0)


def clean_optional(val):
    """Trim text values and turn blank strings into None.

    Non-string values are returned unchanged.
    """
    if isinstance(val, str):
        stripped = val.strip()
        return stripped or None
    return val


def normalize_whitespace(s: str) -> str:
    """Normalize multiple whitespace characters to single spaces.

    Example:
        "Client   Transportation\\n" -> "Client Transportation"
    """
    return WHITESPACE.sub(' ', s).strip()


def normalize_category(name: str | None) -> str:
    """Canonical form of an expense category: trimmed, single-spaced, upper."""
    if not name:
        return ""
    return normalize_whitespace(str(name)).upper()
