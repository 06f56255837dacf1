#!/usr/bin/env python3
"""
JSON Utilities Module

Centralized JSON formatting with consistent pretty-printing, plus a default
serializer that understands the ledger's value types (Money, Decimal, dates,
enums) so audit payloads and CLI output never fall back to floats.
"""

import json
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from .money import Money


def json_default(value: Any) -> Any:
    """
    Serialize ledger value types that the json module does not know.

    Money and Decimal become strings ("12.34") so precision survives.
    """
    if isinstance(value, Money):
        return str(value.to_decimal())
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in fields(value)}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_jsonable(data: Any) -> Any:
    """Round-trip data through the encoder so it contains only JSON types."""
    return json.loads(json.dumps(data, default=json_default))


def format_json(data: Any, ensure_ascii: bool = False, sort_keys: bool = False) -> str:
    """
    Format data as a pretty-printed JSON string.

    Args:
        data: Data to format
        ensure_ascii: If True, escape non-ASCII characters (default: False)
        sort_keys: If True, sort dictionary keys (default: False)

    Returns:
        Pretty-printed JSON string
    """
    return json.dumps(data, indent=2, ensure_ascii=ensure_ascii, sort_keys=sort_keys, default=json_default)
