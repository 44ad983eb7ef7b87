"""Pre-compiled regex patterns for the ECDC budget tools.

All patterns are compiled once at module import.

Usage:
    from utils.patterns import MONTH_KEY, ISO_DATE

    if MONTH_KEY.match("2025-10"):
        ...
"""

import re

# Fiscal month keys used by monthly allocation maps: "2025-10"
MONTH_KEY = re.compile(r'^(\d{4})-(\d{2})$')

# ISO calendar dates, optionally followed by a time part: "2025-10-01"
ISO_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})')

# Whitespace normalization: multiple spaces/tabs/newlines
WHITESPACE = re.compile(r'\s+')

# Currency symbols for stripping during numeric conversion
CURRENCY_SYMBOLS = re.compile(r'[\$€£¥₹₽]')
