#!/usr/bin/env python3
"""Tests for core currency utilities."""

from decimal import Decimal

import pytest

from envelopes.core.currency import (
    CurrencyPrecisionError,
    cents_to_decimal,
    cents_to_dollars_str,
    decimal_to_cents,
    format_cents,
    parse_dollars_to_cents,
)


class TestCurrencyConversions:
    """Test core currency conversion functions."""

    @pytest.mark.currency
    def test_cents_to_dollars_str(self):
        """Test formatting cents as dollar strings."""
        assert cents_to_dollars_str(4599) == "45.99"
        assert cents_to_dollars_str(100) == "1.00"
        assert cents_to_dollars_str(0) == "0.00"
        assert cents_to_dollars_str(5) == "0.05"
        assert cents_to_dollars_str(-4599) == "-45.99"

    @pytest.mark.currency
    def test_parse_dollars_to_cents(self):
        """Test detailed dollar string parsing."""
        assert parse_dollars_to_cents("12.34") == 1234
        assert parse_dollars_to_cents("$12.34") == 1234
        assert parse_dollars_to_cents("1,234.56") == 123456
        assert parse_dollars_to_cents("12") == 1200
        assert parse_dollars_to_cents("12.5") == 1250
        assert parse_dollars_to_cents("-12.34") == -1234
        assert parse_dollars_to_cents("  $7.00 ") == 700

    @pytest.mark.currency
    def test_parse_dollars_rejects_garbage(self):
        """Test that non-numeric and empty strings raise ValueError."""
        with pytest.raises(ValueError):
            parse_dollars_to_cents("")
        with pytest.raises(ValueError):
            parse_dollars_to_cents("$")
        with pytest.raises(ValueError):
            parse_dollars_to_cents("twelve")

    @pytest.mark.currency
    def test_format_cents(self):
        """Test formatting with dollar sign, sign first for negatives."""
        assert format_cents(4599) == "$45.99"
        assert format_cents(-4599) == "-$45.99"
        assert format_cents(0) == "$0.00"


class TestDecimalConversions:
    """Test Decimal <-> cents conversion used for NUMERIC(12, 2) storage."""

    @pytest.mark.currency
    def test_decimal_to_cents(self):
        """Test exact conversion of two-place decimals."""
        assert decimal_to_cents(Decimal("45.99")) == 4599
        assert decimal_to_cents(Decimal("45.90")) == 4590
        assert decimal_to_cents(Decimal("-0.01")) == -1
        assert decimal_to_cents("100") == 10000

    @pytest.mark.currency
    def test_trailing_zeros_beyond_cents_are_exact(self):
        """Test that 12.3400 is still exactly 1234 cents."""
        assert decimal_to_cents(Decimal("12.3400")) == 1234

    @pytest.mark.currency
    def test_fractional_cents_raise(self):
        """Test that sub-cent precision is an error, never rounded."""
        with pytest.raises(CurrencyPrecisionError):
            decimal_to_cents(Decimal("0.005"))

    @pytest.mark.currency
    @pytest.mark.parametrize("value", ["NaN", "Infinity", "abc"])
    def test_non_finite_or_invalid_raise(self, value):
        """Test that non-numbers are rejected."""
        with pytest.raises(ValueError):
            decimal_to_cents(value)

    @pytest.mark.currency
    def test_cents_to_decimal(self):
        """Test conversion to two-place Decimal."""
        assert cents_to_decimal(4599) == Decimal("45.99")
        assert cents_to_decimal(-1) == Decimal("-0.01")
        assert str(cents_to_decimal(0)) == "0.00"
