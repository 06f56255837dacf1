#!/usr/bin/env python3
"""
Transaction Validator

Decides whether a proposed transaction is valid before any balance is
touched. Validation runs in two stages:

1. validate_structure(): pure checks on the input alone (type, amount,
   date, required/forbidden references per transaction type)
2. TransactionValidator.check_references(): every referenced envelope,
   payee, income source and category must exist, belong to the same budget
   and (for envelopes and payees) be active

Stage 2 runs inside the caller's unit of work, after the budget row lock is
held, so the entities it inspects cannot change underneath the mutation.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from ..core.config import LedgerSettings
from ..core.currency import CurrencyPrecisionError
from ..core.money import Money
from .errors import CrossBudgetReferenceError, NotFound, ValidationError
from .models import Category, IncomeSource, Payee, Transaction, TransactionType
from .requests import REFERENCE_FIELDS, AmountLike, TransactionInput
from .rules import rule_for
from .store import LedgerUnit

logger = logging.getLogger(__name__)

# Width of the transactions.id column
MAX_ID_LENGTH = 36


@dataclass
class NormalizedTransaction:
    """A structurally valid transaction with typed values."""

    transaction_type: TransactionType
    amount: Money
    transaction_date: date
    id: str | None = None
    description: str | None = None
    from_envelope_id: str | None = None
    to_envelope_id: str | None = None
    payee_id: str | None = None
    income_source_id: str | None = None
    category_id: str | None = None
    is_cleared: bool = False
    # True when the caller gave no date and today was filled in
    date_defaulted: bool = False

    def references(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in REFERENCE_FIELDS}


def coerce_transaction_type(value: TransactionType | str) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in TransactionType)
        raise ValidationError(
            f"Invalid transaction type: {value!r} (expected one of {valid})", field="transaction_type"
        ) from None


def coerce_amount(value: AmountLike | None) -> Money:
    """Convert an amount to Money and require it to be positive."""
    if value is None:
        raise ValidationError("Transaction amount is required", field="amount")

    if isinstance(value, Money):
        amount = value
    else:
        try:
            amount = Money.from_decimal(value)
        except CurrencyPrecisionError:
            raise ValidationError(
                "Transaction amount can have at most 2 decimal places", field="amount"
            ) from None
        except (ValueError, TypeError):
            raise ValidationError(f"Invalid transaction amount: {value!r}", field="amount") from None

    if not amount.is_positive():
        raise ValidationError("Transaction amount must be positive", field="amount")
    return amount


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def check_id(transaction_id: str | None) -> None:
    if transaction_id is not None and len(transaction_id) > MAX_ID_LENGTH:
        raise ValidationError(
            f"Transaction id must be {MAX_ID_LENGTH} characters or less", field="id"
        )


def check_shape(
    transaction_type: TransactionType,
    references: dict[str, str | None],
) -> None:
    """Enforce required/forbidden references for the transaction type."""
    rule = rule_for(transaction_type)

    for name in rule.required:
        if not references.get(name):
            raise ValidationError(
                f"{transaction_type.value} transactions require {name}", field=name
            )

    for name in rule.forbidden:
        if references.get(name):
            raise ValidationError(
                f"{transaction_type.value} transactions must not set {name}", field=name
            )

    if transaction_type == TransactionType.TRANSFER and (
        references["from_envelope_id"] == references["to_envelope_id"]
    ):
        raise ValidationError("Cannot transfer to the same envelope", field="to_envelope_id")


def check_date(transaction_date: date, settings: LedgerSettings, today: date | None = None) -> None:
    latest = (today or date.today()) + timedelta(days=settings.future_date_grace_days)
    if transaction_date > latest:
        raise ValidationError("Transaction date cannot be in the future", field="transaction_date")


def check_description(description: str | None, settings: LedgerSettings) -> None:
    if description and len(description) > settings.max_description_length:
        raise ValidationError(
            f"Transaction description must be {settings.max_description_length} characters or less",
            field="description",
        )


def validate_structure(
    request: TransactionInput,
    settings: LedgerSettings,
    today: date | None = None,
) -> NormalizedTransaction:
    """
    Check a transaction request without consulting storage.

    Args:
        request: Proposed transaction
        settings: Ledger settings (date grace, description limit)
        today: Override for the current date (tests)

    Returns:
        NormalizedTransaction with typed values

    Raises:
        ValidationError: Naming the offending field
    """
    transaction_type = coerce_transaction_type(request.transaction_type)
    amount = coerce_amount(request.amount)

    transaction_date = request.transaction_date or (today or date.today())
    check_date(transaction_date, settings, today)
    check_description(request.description, settings)

    transaction_id = _blank_to_none(request.id)
    check_id(transaction_id)

    references = {name: _blank_to_none(value) for name, value in request.references().items()}
    check_shape(transaction_type, references)

    return NormalizedTransaction(
        transaction_type=transaction_type,
        amount=amount,
        transaction_date=transaction_date,
        id=transaction_id,
        description=request.description,
        is_cleared=request.is_cleared,
        date_defaulted=request.transaction_date is None,
        **references,
    )


class TransactionValidator:
    """Reference checks against the store for a transaction in a given budget."""

    def __init__(self, settings: LedgerSettings):
        self.settings = settings

    def validate(
        self,
        unit: LedgerUnit,
        budget_id: str,
        request: TransactionInput,
        today: date | None = None,
    ) -> NormalizedTransaction:
        """Structural validation followed by reference checks."""
        normalized = validate_structure(request, self.settings, today)
        self.check_references(unit, budget_id, normalized)
        return normalized

    def check_references(
        self, unit: LedgerUnit, budget_id: str, entry: NormalizedTransaction | Transaction
    ) -> None:
        """
        Verify every reference on the entry belongs to the budget and is usable.

        Raises:
            NotFound: Referenced row does not exist
            CrossBudgetReferenceError: Referenced row belongs to another budget
            ValidationError: Inactive envelope/payee, or debt payment from a non-debt envelope
        """
        if entry.from_envelope_id:
            source = self._owned(
                unit.get_envelope(entry.from_envelope_id), "Envelope", entry.from_envelope_id, budget_id
            )
            if not source.is_active:
                raise ValidationError(
                    f"Cannot use inactive envelope {source.name!r} as source", field="from_envelope_id"
                )
            if entry.transaction_type == TransactionType.DEBT_PAYMENT and not source.is_debt:
                raise ValidationError(
                    "Debt payments must be made from debt envelopes", field="from_envelope_id"
                )

        if entry.to_envelope_id:
            target = self._owned(
                unit.get_envelope(entry.to_envelope_id), "Envelope", entry.to_envelope_id, budget_id
            )
            if not target.is_active:
                raise ValidationError(
                    f"Cannot use inactive envelope {target.name!r} as destination", field="to_envelope_id"
                )

        if entry.payee_id:
            payee = self._owned(unit.get(Payee, entry.payee_id), "Payee", entry.payee_id, budget_id)
            if not payee.is_active:
                raise ValidationError("Cannot make payment to inactive payee", field="payee_id")

        if entry.income_source_id:
            self._owned(
                unit.get(IncomeSource, entry.income_source_id),
                "Income source",
                entry.income_source_id,
                budget_id,
            )

        if entry.category_id:
            self._owned(unit.get(Category, entry.category_id), "Category", entry.category_id, budget_id)

    @staticmethod
    def _owned(row, entity: str, entity_id: str, budget_id: str):  # type: ignore[no-untyped-def]
        if row is None:
            raise NotFound(entity, entity_id)
        if row.budget_id != budget_id:
            logger.warning(f"Rejected cross-budget reference to {entity} {entity_id} from budget {budget_id}")
            raise CrossBudgetReferenceError(entity, entity_id, budget_id)
        return row
