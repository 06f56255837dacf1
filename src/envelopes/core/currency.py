#!/usr/bin/env python3
"""
Currency Conversion and Handling Utilities

All ledger arithmetic uses integer cents to avoid floating-point drift.
Database columns hold fixed-point NUMERIC(12, 2) values, which convert to and
from cents through Decimal without any rounding.

Currency Representations:
- Internal calculations use cents: 100 cents = $1.00
- Storage uses Decimal with two places: Decimal("1.00")
- Display uses dollar strings: "$12.34"

Key Principles:
- Never use floating-point arithmetic for currency calculations
- Reject, rather than round, amounts with fractional cents
"""

from decimal import Decimal, InvalidOperation

CENT = Decimal("0.01")


class CurrencyPrecisionError(ValueError):
    """Raised when an amount carries more than two decimal places."""


def cents_to_dollars_str(cents: int) -> str:
    """
    Convert cents to dollar string using pure integer arithmetic.

    Args:
        cents: Amount in cents

    Returns:
        Formatted dollar string

    Example:
        cents_to_dollars_str(4599) -> "45.99"
    """
    is_negative = cents < 0
    abs_cents = abs(int(cents))

    dollars = abs_cents // 100
    remainder = abs_cents % 100

    if is_negative:
        return f"-{dollars}.{remainder:02d}"
    return f"{dollars}.{remainder:02d}"


def parse_dollars_to_cents(dollars_str: str) -> int:
    """
    Parse dollar string to cents using exact decimal arithmetic.

    Unlike display parsing elsewhere, fractional cents are an error here:
    a ledger amount of "12.345" is rejected rather than truncated.

    Args:
        dollars_str: String representation of dollar amount

    Returns:
        Amount in cents

    Raises:
        CurrencyPrecisionError: If more than two decimal places are given
        ValueError: If the string is not a number

    Examples:
        parse_dollars_to_cents("12.34") -> 1234
        parse_dollars_to_cents("$1,234.56") -> 123456
        parse_dollars_to_cents("12.5") -> 1250
        parse_dollars_to_cents("-12.34") -> -1234
    """
    clean = dollars_str.replace("$", "").replace(",", "").strip()
    if not clean:
        raise ValueError("Empty amount")

    return decimal_to_cents(clean)


def decimal_to_cents(value: Decimal | int | str) -> int:
    """
    Convert a fixed-point Decimal to integer cents.

    Args:
        value: Decimal (or int/str coercible to Decimal) with at most two places

    Returns:
        Amount in cents

    Raises:
        CurrencyPrecisionError: If the value has fractional cents
        ValueError: If the value is not a finite number

    Example:
        decimal_to_cents(Decimal("45.99")) -> 4599
    """
    if isinstance(value, float):
        raise TypeError("Floating-point amounts are not accepted; use Decimal or str")

    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e

    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise CurrencyPrecisionError(f"Amount has more than two decimal places: {value}")
    return int(cents)


def cents_to_decimal(cents: int) -> Decimal:
    """
    Convert integer cents to a two-place Decimal for storage.

    Example:
        cents_to_decimal(4599) -> Decimal("45.99")
    """
    return (Decimal(cents) / 100).quantize(CENT)


def format_cents(cents: int) -> str:
    """Format cents as dollar string with $ prefix, sign first."""
    if cents < 0:
        return f"-${cents_to_dollars_str(-cents)}"
    return f"${cents_to_dollars_str(cents)}"
