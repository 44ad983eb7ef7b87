"""Shared utilities for the ECDC budget tools."""

# Pattern definitions
from utils.patterns import (
    MONTH_KEY,
    ISO_DATE,
    WHITESPACE,
    CURRENCY_SYMBOLS,
)

# String utilities
from utils.strings import (
    safe_float,
    optional_float,
    parse_number_input,
    clean_optional,
    normalize_whitespace,
    normalize_category,
)

# Database utilities
from utils.database import (
    CORE_TABLES,
    init_pragmas,
    create_schema,
    seed_reference_data,
    get_table_count,
    table_exists,
    decode_json_map,
    encode_json_map,
    rows_to_dicts,
    query_to_dicts,
)

# SQL clause builders
from utils.query import (
    build_where_clause,
    build_update_clause,
    build_order_clause,
)

# Caching
from utils.cache import TTLCache

# HTTP utilities
from utils.http import (
    RetryStrategy,
    SessionManager,
)

# Output formatting
from utils.formatting import (
    format_currency,
    format_percent,
    format_count,
    TableFormatter,
)

# Configuration
from utils.config import (
    Config,
    KnownValues,
    AppConfig,
)

__all__ = [
    # Patterns
    "MONTH_KEY",
    "ISO_DATE",
    "WHITESPACE",
    "CURRENCY_SYMBOLS",
    # Strings
    "safe_float",
    "optional_float",
    "parse_number_input",
    "clean_optional",
    "normalize_whitespace",
    "normalize_category",
    # Database
    "CORE_TABLES",
    "init_pragmas",
    "create_schema",
    "seed_reference_data",
    "get_table_count",
    "table_exists",
    "decode_json_map",
    "encode_json_map",
    "rows_to_dicts",
    "query_to_dicts",
    # Query builders
    "build_where_clause",
    "build_update_clause",
    "build_order_clause",
    # Cache
    "TTLCache",
    # HTTP
    "RetryStrategy",
    "SessionManager",
    # Formatting
    "format_currency",
    "format_percent",
    "format_count",
    "TableFormatter",
    # Config
    "Config",
    "KnownValues",
    "AppConfig",
]
