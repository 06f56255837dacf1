#!/usr/bin/env python3
"""
Money Primitive Type

Immutable currency value wrapper that uses integer cents internally.
Prevents floating-point errors and provides type-safe ledger arithmetic.
"""

from dataclasses import dataclass
from decimal import Decimal

from .currency import (
    cents_to_decimal,
    decimal_to_cents,
    format_cents,
    parse_dollars_to_cents,
)


@dataclass(frozen=True, order=True)
class Money:
    """
    Immutable money value in cents.

    Signed: envelope balances may be negative (overspending), and balance
    deltas carry the direction of a movement.

    Examples:
        >>> income = Money.from_dollars("1000")
        >>> spent = Money.from_decimal(Decimal("450.00"))
        >>> str(income - spent)
        '$550.00'
        >>> str(Money.from_cents(-5000))
        '-$50.00'
        >>> -Money.from_cents(100)
        Money(cents=-100)
    """

    cents: int

    @classmethod
    def zero(cls) -> "Money":
        """Zero amount."""
        return cls(cents=0)

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        """Create Money from cents."""
        return cls(cents=cents)

    @classmethod
    def from_decimal(cls, value: Decimal | int | str) -> "Money":
        """
        Create Money from a fixed-point decimal amount.

        Args:
            value: Decimal like Decimal("12.34"); fractional cents are rejected

        Returns:
            Money object
        """
        return cls(cents=decimal_to_cents(value))

    @classmethod
    def from_dollars(cls, dollars: str | int) -> "Money":
        """
        Parse from dollar string like '$123.45' or integer dollars.

        Args:
            dollars: String like "$12.34" or integer like 12

        Returns:
            Money object
        """
        if isinstance(dollars, int):
            return cls(cents=dollars * 100)
        return cls(cents=parse_dollars_to_cents(dollars))

    def to_cents(self) -> int:
        """Get value in cents."""
        return self.cents

    def to_decimal(self) -> Decimal:
        """Get value as a two-place Decimal."""
        return cents_to_decimal(self.cents)

    def is_negative(self) -> bool:
        return self.cents < 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def is_zero(self) -> bool:
        return self.cents == 0

    def abs(self) -> "Money":
        """Return absolute value of Money."""
        return Money(cents=abs(self.cents))

    def __add__(self, other: "Money") -> "Money":
        """Add two Money objects."""
        return Money(cents=self.cents + other.cents)

    def __sub__(self, other: "Money") -> "Money":
        """Subtract two Money objects."""
        return Money(cents=self.cents - other.cents)

    def __neg__(self) -> "Money":
        return Money(cents=-self.cents)

    def __mul__(self, scalar: int) -> "Money":
        """Multiply Money by integer scalar."""
        return Money(cents=self.cents * scalar)

    def __str__(self) -> str:
        """Format as dollar string."""
        return format_cents(self.cents)

    def __repr__(self) -> str:
        return f"Money(cents={self.cents})"
