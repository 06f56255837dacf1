#!/usr/bin/env python3
"""
Ledger request types.

Plain dataclasses describing what a caller asks the ledger to do. Values are
accepted loosely (strings for enums, Decimal/str/int for amounts) and
normalized by the validator, which reports problems as ValidationError.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from ..core.money import Money
from .errors import ValidationError
from .models import TransactionType

AmountLike = Money | Decimal | str | int

REFERENCE_FIELDS = (
    "from_envelope_id",
    "to_envelope_id",
    "payee_id",
    "income_source_id",
    "category_id",
)


@dataclass
class TransactionInput:
    """
    A proposed transaction.

    `id` doubles as the idempotency key: retrying a request with the same id
    returns the stored transaction instead of applying it twice.
    """

    transaction_type: TransactionType | str
    amount: AmountLike
    transaction_date: date | None = None
    id: str | None = None
    description: str | None = None
    from_envelope_id: str | None = None
    to_envelope_id: str | None = None
    payee_id: str | None = None
    income_source_id: str | None = None
    category_id: str | None = None
    is_cleared: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionInput":
        """
        Create from a request payload; unknown keys are ignored.

        Raises:
            ValidationError: If the type or amount is missing, or the date is not YYYY-MM-DD
        """
        for name in ("transaction_type", "amount"):
            if data.get(name) in (None, ""):
                raise ValidationError(f"Transaction payload is missing {name}", field=name)

        transaction_date = data.get("transaction_date")
        if isinstance(transaction_date, str):
            try:
                transaction_date = date.fromisoformat(transaction_date)
            except ValueError:
                raise ValidationError(
                    f"Invalid transaction date: {transaction_date!r} (expected YYYY-MM-DD)",
                    field="transaction_date",
                ) from None

        return cls(
            transaction_type=data["transaction_type"],
            amount=data["amount"],
            transaction_date=transaction_date,
            id=data.get("id"),
            description=data.get("description"),
            from_envelope_id=data.get("from_envelope_id"),
            to_envelope_id=data.get("to_envelope_id"),
            payee_id=data.get("payee_id"),
            income_source_id=data.get("income_source_id"),
            category_id=data.get("category_id"),
            is_cleared=bool(data.get("is_cleared", False)),
        )

    def references(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in REFERENCE_FIELDS}


@dataclass
class TransactionUpdate:
    """
    Edits to an existing, uncleared transaction.

    Fields left as None are unchanged; names listed in `clear` are set to None
    (only optional references and description can be cleared).
    """

    amount: AmountLike | None = None
    transaction_date: date | None = None
    description: str | None = None
    from_envelope_id: str | None = None
    to_envelope_id: str | None = None
    payee_id: str | None = None
    income_source_id: str | None = None
    category_id: str | None = None
    clear: frozenset[str] = field(default_factory=frozenset)

    def is_empty(self) -> bool:
        if self.clear:
            return False
        return all(
            getattr(self, name) is None
            for name in ("amount", "transaction_date", "description", *REFERENCE_FIELDS)
        )


@dataclass
class TransactionFilters:
    """Filters for listing transactions; all optional and combined with AND."""

    start_date: date | None = None
    end_date: date | None = None
    transaction_type: TransactionType | None = None
    envelope_id: str | None = None
    payee_id: str | None = None
    income_source_id: str | None = None
    category_id: str | None = None
    is_cleared: bool | None = None
    is_reconciled: bool | None = None
    min_amount: Money | None = None
    max_amount: Money | None = None
    include_deleted: bool = False
