"""
Core Utilities Package

Shared primitives used across the ledger.

This package provides:
- Money, an immutable integer-cents value type
- Currency parsing and formatting with strict two-place precision
- Configuration management for environment-specific settings
- JSON helpers for audit payloads and CLI output
"""

from .config import (
    Config,
    DatabaseConfig,
    Environment,
    LedgerSettings,
    get_config,
    is_development,
    is_production,
    is_test,
    reload_config,
)
from .currency import (
    CurrencyPrecisionError,
    cents_to_decimal,
    cents_to_dollars_str,
    decimal_to_cents,
    format_cents,
    parse_dollars_to_cents,
)
from .json_utils import format_json, to_jsonable
from .money import Money

__all__ = [
    # Configuration
    "Config",
    "DatabaseConfig",
    "Environment",
    "LedgerSettings",
    "get_config",
    "is_development",
    "is_production",
    "is_test",
    "reload_config",
    # Currency utilities
    "CurrencyPrecisionError",
    "cents_to_decimal",
    "cents_to_dollars_str",
    "decimal_to_cents",
    "format_cents",
    "parse_dollars_to_cents",
    # JSON helpers
    "format_json",
    "to_jsonable",
    # Money
    "Money",
]
