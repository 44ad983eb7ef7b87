"""Configuration management utilities for the ECDC budget tools.

Provides:
- A small Config base class that round-trips to JSON
- AppConfig, populated from environment variables
- KnownValues, the organization's fixed reference data (locations,
  contract-code suffixes, default funder colour)
"""

import json
import os as _os
from pathlib import Path
from typing import Dict, Optional, Any


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (private attributes excluded)."""
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            Config instance with values from dictionary
        """
        config = cls()
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


class KnownValues:
    """Reference data the organization treats as fixed."""

    # Seeded into an empty locations table.
    LOCATIONS = [
        {"code": "VA", "name": "Virginia"},
        {"code": "NC", "name": "North Carolina"},
    ]

    # Budget numbers end with a contract code that depends on the location.
    CONTRACT_SUFFIXES = {"VA": "-30"}
    DEFAULT_CONTRACT_SUFFIX = "-33"

    DEFAULT_FUNDER_COLOR = "#3B82F6"

    EMPLOYEE_STATUSES = ("active", "tbh")

    # Budgets with more than this left over can absorb a new hire.
    TBH_REMAINING_THRESHOLD = 50000.0

    # Funders left out of the funder rollup.
    EXCLUDED_ROLLUP_FUNDERS = frozenset({"dv2", "dv-2"})

    @classmethod
    def contract_suffix(cls, location_code: Optional[str]) -> str:
        """Return the budget-number suffix required for a location code."""
        code = (location_code or "").strip().upper()
        return cls.CONTRACT_SUFFIXES.get(code, cls.DEFAULT_CONTRACT_SUFFIX)

    @classmethod
    def is_valid_status(cls, status: str) -> bool:
        return status in cls.EMPLOYEE_STATUSES


class AppConfig(Config):
    """Application-level configuration loaded from environment variables.

    All env vars have defaults so the application works out of the box.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: ecdc_budget.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        APP_CACHE_TTL: Seconds to keep computed rollups (default: 60)
        APP_API_URL: Base URL the data loader talks to (default: http://127.0.0.1:8000)
        APP_HTTP_TIMEOUT: Loader request timeout in seconds (default: 30)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "ecdc_budget.sqlite"))
        self.api_port = int(_os.getenv("APP_PORT", "8000"))
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.cache_ttl = float(_os.getenv("APP_CACHE_TTL", "60"))
        self.api_url = _os.getenv("APP_API_URL", "http://127.0.0.1:8000").rstrip("/")
        self.http_timeout = float(_os.getenv("APP_HTTP_TIMEOUT", "30"))

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
