#!/usr/bin/env python3
"""
Ledger Service

Public entry point of the envelope ledger. Each mutating call is one unit of
work: the budget row is locked first, references are checked under the lock,
balances are changed through the BalanceMutator, and the whole operation
commits or rolls back together.

Example:
    ledger = Ledger.from_config(get_config())
    budget = ledger.create_budget(user_id, "Household")
    groceries = ledger.create_envelope(budget.id, "Groceries")
    ledger.apply_transaction(budget.id, TransactionInput("income", "1000.00"))
    ledger.apply_transaction(
        budget.id, TransactionInput("allocation", "400.00", to_envelope_id=groceries.id)
    )
"""

import logging
from datetime import date, datetime
from typing import Any, TypeVar

from ..core.config import Config, LedgerSettings
from ..core.money import Money
from .db import create_ledger_engine, create_session_factory, init_schema
from .errors import CrossBudgetReferenceError, IdempotencyConflictError, NotFound, ValidationError
from .lifecycle import TransactionLifecycle
from .models import (
    Budget,
    Category,
    Envelope,
    EnvelopeType,
    EventType,
    IncomeSource,
    Payee,
    Transaction,
    TransactionEvent,
    new_id,
)
from .mutator import BalanceMutator
from .reconciler import InvariantReconciler, ReconciliationReport
from .requests import REFERENCE_FIELDS, AmountLike, TransactionFilters, TransactionInput, TransactionUpdate
from .rules import compute_delta
from .store import LedgerStore, LedgerUnit
from .validator import NormalizedTransaction, TransactionValidator, coerce_amount, validate_structure

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_name(name: str | None, entity: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{entity} name is required", field="name")
    if len(cleaned) > 100:
        raise ValidationError(f"{entity} name must be 100 characters or less", field="name")
    return cleaned


def _optional_money(value: AmountLike | None, field_name: str) -> Money | None:
    """Parse an optional non-negative amount."""
    if value is None:
        return None
    if isinstance(value, Money):
        amount = value
    else:
        try:
            amount = Money.from_decimal(value)
        except (ValueError, TypeError):
            raise ValidationError(f"Invalid amount for {field_name}: {value!r}", field=field_name) from None
    if amount.is_negative():
        raise ValidationError(f"{field_name} must not be negative", field=field_name)
    return amount


def _matches(stored: Transaction, budget_id: str, request: NormalizedTransaction) -> bool:
    """
    Whether a retried request carries the same payload as the stored transaction.

    A date the request left out is not compared, so a retry on a later day
    still matches.
    """
    return (
        stored.budget_id == budget_id
        and stored.transaction_type == request.transaction_type
        and stored.amount == request.amount
        and (request.date_defaulted or stored.transaction_date == request.transaction_date)
        and stored.description == request.description
        and all(getattr(stored, name) == getattr(request, name) for name in REFERENCE_FIELDS)
    )


class Ledger:
    """
    Envelope ledger operations over a LedgerStore.

    Holds no global state: the store and settings are passed in, so several
    ledgers (e.g. per test) can coexist.
    """

    def __init__(self, store: LedgerStore, settings: LedgerSettings | None = None):
        self.store = store
        self.settings = settings or LedgerSettings()
        self.validator = TransactionValidator(self.settings)
        self.mutator = BalanceMutator()
        self.lifecycle = TransactionLifecycle(self.validator, self.mutator)
        self.reconciler = InvariantReconciler()

    @classmethod
    def from_config(cls, config: Config, create_schema: bool = False) -> "Ledger":
        """Build a ledger on the configured database."""
        engine = create_ledger_engine(config.database)
        if create_schema:
            init_schema(engine)
        return cls(LedgerStore(create_session_factory(engine)), config.ledger)

    # Transactions

    def apply_transaction(
        self,
        budget_id: str,
        request: TransactionInput,
        actor_id: str | None = None,
        today: date | None = None,
    ) -> Transaction:
        """
        Validate a transaction and apply its balance effect atomically.

        A request whose id is already stored is a retry: the stored transaction
        is returned unchanged when the payload matches.

        Args:
            budget_id: Target budget
            request: Proposed transaction
            actor_id: User performing the change (audit trail)
            today: Override for the current date (tests)

        Returns:
            The stored Transaction

        Raises:
            ValidationError: Malformed input, inactive reference, reused id with another payload
            InsufficientFunds: available_amount cannot cover the movement
            CrossBudgetReferenceError: A reference belongs to another budget
            NotFound: Budget or a reference does not exist
        """
        normalized = validate_structure(request, self.settings, today)

        with self.store.unit_of_work() as unit:
            budget = unit.lock_budget(budget_id)
            if not budget.is_active:
                raise ValidationError(f"Budget {budget_id} is inactive", field="budget_id")

            if normalized.id is not None:
                existing = unit.find_transaction(normalized.id)
                if existing is not None:
                    if not _matches(existing, budget_id, normalized):
                        raise IdempotencyConflictError(normalized.id)
                    logger.info(f"Transaction {existing.id} already applied; returning stored result")
                    return existing

            self.validator.check_references(unit, budget_id, normalized)

            transaction = Transaction(
                id=normalized.id or new_id(),
                budget_id=budget_id,
                transaction_type=normalized.transaction_type,
                amount=normalized.amount,
                description=normalized.description,
                transaction_date=normalized.transaction_date,
                is_cleared=normalized.is_cleared,
                is_reconciled=False,
                is_deleted=False,
                **normalized.references(),
            )
            unit.add(transaction)

            outcome = self.mutator.apply(
                unit, budget, compute_delta(normalized), transaction_id=transaction.id, performed_by=actor_id
            )
            unit.record_event(
                budget_id,
                EventType.CREATED,
                f"Created {transaction.transaction_type.value} of {transaction.amount}",
                transaction_id=transaction.id,
                changes=transaction.to_dict(),
                performed_by=actor_id,
            )

        logger.info(
            f"Applied {transaction.transaction_type.value} {transaction.amount} to budget {budget_id} "
            f"(available {outcome.available_after})"
        )
        return transaction

    def soft_delete_transaction(self, transaction_id: str, actor_id: str | None = None) -> Transaction:
        """
        Reverse a transaction and mark it deleted.

        Raises:
            AlreadyDeletedError, InsufficientFunds, NotFound
        """
        with self.store.unit_of_work() as unit:
            return self.lifecycle.soft_delete(unit, transaction_id, actor_id)

    def restore_transaction(self, transaction_id: str, actor_id: str | None = None) -> Transaction:
        """
        Re-apply a soft-deleted transaction.

        Raises:
            NotDeletedError, RestoreConflictError, NotFound
        """
        with self.store.unit_of_work() as unit:
            return self.lifecycle.restore(unit, transaction_id, actor_id)

    def update_transaction(
        self,
        transaction_id: str,
        changes: TransactionUpdate,
        actor_id: str | None = None,
        today: date | None = None,
    ) -> Transaction:
        """
        Edit an active, pending transaction (reverse old effect, apply new).

        Raises:
            ImmutableTransactionError, ValidationError, InsufficientFunds,
            CrossBudgetReferenceError, NotFound
        """
        with self.store.unit_of_work() as unit:
            return self.lifecycle.update(unit, transaction_id, changes, actor_id, today)

    def mark_cleared(self, transaction_id: str, actor_id: str | None = None) -> Transaction:
        with self.store.unit_of_work() as unit:
            return self.lifecycle.mark_cleared(unit, transaction_id, actor_id)

    def mark_reconciled(self, transaction_id: str, actor_id: str | None = None) -> Transaction:
        with self.store.unit_of_work() as unit:
            return self.lifecycle.mark_reconciled(unit, transaction_id, actor_id)

    def purge_deleted_transactions(
        self,
        budget_id: str,
        retention_days: int | None = None,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> list[str]:
        """Hard-delete soft-deleted pending transactions older than the retention window."""
        days = self.settings.purge_retention_days if retention_days is None else retention_days
        if days < 0:
            raise ValidationError("Retention days must be non-negative", field="retention_days")

        with self.store.unit_of_work() as unit:
            budget = unit.lock_budget(budget_id)
            return self.lifecycle.purge(unit, budget, days, now=now, actor_id=actor_id)

    def get_transaction(self, transaction_id: str) -> Transaction:
        with self.store.read_only() as unit:
            return unit.get_transaction(transaction_id)

    def list_transactions(
        self,
        budget_id: str,
        filters: TransactionFilters | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Transaction]:
        """Transactions of a budget, newest first. Deleted ones only when filters ask for them."""
        with self.store.read_only() as unit:
            unit.get_budget(budget_id)
            return unit.query_transactions(budget_id, filters, limit=limit, offset=offset)

    def list_events(self, budget_id: str, transaction_id: str | None = None) -> list[TransactionEvent]:
        """Audit trail of a budget (or one transaction), oldest first."""
        with self.store.read_only() as unit:
            unit.get_budget(budget_id)
            return unit.events(budget_id, transaction_id)

    # Reconciliation

    def reconcile_budget(
        self, budget_id: str, repair: bool = False, actor_id: str | None = None
    ) -> ReconciliationReport:
        """
        Replay the budget's transactions and compare with stored balances.

        Drift is reported, never raised. With repair=True the stored values are
        overwritten with the replayed ones.
        """
        with self.store.unit_of_work() as unit:
            budget = unit.lock_budget(budget_id)
            return self.reconciler.reconcile(unit, budget, repair=repair, actor_id=actor_id)

    # Budgets

    def create_budget(self, user_id: str, name: str, description: str | None = None) -> Budget:
        if not user_id:
            raise ValidationError("Budget owner is required", field="user_id")

        budget = Budget(
            user_id=user_id,
            name=_require_name(name, "Budget"),
            description=description,
            available_amount=Money.zero(),
            is_active=True,
        )
        with self.store.unit_of_work() as unit:
            unit.add(budget)
            unit.flush()

        logger.info(f"Created budget {budget.name!r} ({budget.id})")
        return budget

    def get_budget(self, budget_id: str) -> Budget:
        with self.store.read_only() as unit:
            return unit.get_budget(budget_id)

    # Envelopes

    def create_envelope(
        self,
        budget_id: str,
        name: str,
        envelope_type: EnvelopeType | str = EnvelopeType.REGULAR,
        category_id: str | None = None,
        description: str | None = None,
        target_amount: AmountLike | None = None,
        debt_balance: AmountLike | None = None,
        minimum_payment: AmountLike | None = None,
        due_date: date | None = None,
        notify_on_low_balance: bool = False,
        low_balance_threshold: AmountLike | None = None,
    ) -> Envelope:
        """
        Create an envelope with a zero balance.

        Debt fields only apply to debt envelopes and are cleared otherwise;
        a debt envelope's starting debt_balance is kept as opening_debt_balance.
        """
        try:
            kind = envelope_type if isinstance(envelope_type, EnvelopeType) else EnvelopeType(envelope_type)
        except ValueError:
            raise ValidationError(
                f"Invalid envelope type: {envelope_type!r}", field="envelope_type"
            ) from None

        name = _require_name(name, "Envelope")
        target = _optional_money(target_amount, "target_amount")
        threshold = _optional_money(low_balance_threshold, "low_balance_threshold")

        if kind == EnvelopeType.DEBT:
            opening_debt = _optional_money(debt_balance, "debt_balance") or Money.zero()
            minimum = _optional_money(minimum_payment, "minimum_payment")
        else:
            opening_debt, minimum, due_date = Money.zero(), None, None

        with self.store.unit_of_work() as unit:
            unit.lock_budget(budget_id)
            self._check_unique_name(unit, Envelope, budget_id, name)
            if category_id:
                self._check_owned(unit, Category, "Category", category_id, budget_id)

            envelope = Envelope(
                budget_id=budget_id,
                category_id=category_id,
                name=name,
                description=description,
                envelope_type=kind,
                current_balance=Money.zero(),
                target_amount=target,
                opening_debt_balance=opening_debt,
                debt_balance=opening_debt,
                minimum_payment=minimum,
                due_date=due_date,
                notify_on_low_balance=notify_on_low_balance,
                low_balance_threshold=threshold,
                is_active=True,
            )
            unit.add(envelope)
            unit.flush()

        logger.info(f"Created {kind.value} envelope {name!r} ({envelope.id}) in budget {budget_id}")
        return envelope

    def get_envelope(self, envelope_id: str) -> Envelope:
        with self.store.read_only() as unit:
            return self._envelope(unit, envelope_id)

    def list_envelopes(self, budget_id: str, include_inactive: bool = False) -> list[Envelope]:
        with self.store.read_only() as unit:
            unit.get_budget(budget_id)
            envelopes = unit.envelopes_for_budget(budget_id)
        if include_inactive:
            return envelopes
        return [e for e in envelopes if e.is_active]

    def deactivate_envelope(self, envelope_id: str) -> Envelope:
        """Mark an envelope inactive; it keeps its balance but accepts no new transactions."""
        with self.store.unit_of_work() as unit:
            found = self._envelope(unit, envelope_id)
            unit.lock_budget(found.budget_id)
            envelope = unit.lock_envelopes([envelope_id])[envelope_id]
            envelope.is_active = False

        logger.info(f"Deactivated envelope {envelope.name!r} ({envelope_id})")
        return envelope

    def delete_envelope(self, envelope_id: str) -> None:
        """
        Remove an envelope that holds no money and has no transaction history.

        Raises:
            ValidationError: If the balance is non-zero or transactions reference it
        """
        with self.store.unit_of_work() as unit:
            found = self._envelope(unit, envelope_id)
            unit.lock_budget(found.budget_id)
            envelope = unit.lock_envelopes([envelope_id])[envelope_id]

            if not envelope.current_balance.is_zero():
                raise ValidationError(
                    f"Cannot delete envelope with non-zero balance ({envelope.current_balance})",
                    field="envelope_id",
                )
            if unit.count_envelope_transactions(envelope_id):
                raise ValidationError(
                    "Cannot delete envelope with transaction history; deactivate it instead",
                    field="envelope_id",
                )
            unit.delete(envelope)

        logger.info(f"Deleted envelope {envelope.name!r} ({envelope_id})")

    def negative_balance_envelopes(self, budget_id: str) -> list[Envelope]:
        """Active envelopes that are overdrawn."""
        return [e for e in self.list_envelopes(budget_id) if e.is_overdrawn]

    def low_balance_envelopes(self, budget_id: str) -> list[Envelope]:
        """Active envelopes with alerts enabled whose balance is at or below their threshold."""
        return [
            e
            for e in self.list_envelopes(budget_id)
            if e.notify_on_low_balance
            and e.low_balance_threshold is not None
            and e.current_balance <= e.low_balance_threshold
        ]

    # Descriptive entities

    def create_category(self, budget_id: str, name: str, description: str | None = None) -> Category:
        return self._create_named(Category, budget_id, name, description=description)

    def create_payee(self, budget_id: str, name: str, description: str | None = None) -> Payee:
        return self._create_named(Payee, budget_id, name, description=description)

    def create_income_source(
        self,
        budget_id: str,
        name: str,
        description: str | None = None,
        expected_amount: AmountLike | None = None,
        frequency_days: int | None = None,
        next_expected_date: date | None = None,
    ) -> IncomeSource:
        if frequency_days is not None and frequency_days <= 0:
            raise ValidationError(
                "Income frequency must be a positive number of days", field="frequency_days"
            )
        expected = coerce_amount(expected_amount) if expected_amount is not None else None
        return self._create_named(
            IncomeSource,
            budget_id,
            name,
            description=description,
            expected_amount=expected,
            frequency_days=frequency_days,
            next_expected_date=next_expected_date,
        )

    def deactivate_payee(self, payee_id: str) -> Payee:
        with self.store.unit_of_work() as unit:
            payee = unit.get(Payee, payee_id)
            if payee is None:
                raise NotFound("Payee", payee_id)
            unit.lock_budget(payee.budget_id)
            payee.is_active = False
        return payee

    # Helpers

    def _create_named(self, model: type[T], budget_id: str, name: str, **fields: Any) -> T:
        entity = model.__name__
        cleaned = _require_name(name, entity)

        with self.store.unit_of_work() as unit:
            unit.lock_budget(budget_id)
            self._check_unique_name(unit, model, budget_id, cleaned)
            row = model(budget_id=budget_id, name=cleaned, is_active=True, **fields)
            unit.add(row)
            unit.flush()

        logger.info(f"Created {entity.lower()} {cleaned!r} in budget {budget_id}")
        return row

    @staticmethod
    def _check_unique_name(unit: LedgerUnit, model: type, budget_id: str, name: str) -> None:
        if unit.find_by_name(model, budget_id, name) is not None:
            raise ValidationError(
                f"{model.__name__} named {name!r} already exists in this budget", field="name"
            )

    @staticmethod
    def _check_owned(unit: LedgerUnit, model: type, entity: str, entity_id: str, budget_id: str) -> None:
        row = unit.get(model, entity_id)
        if row is None:
            raise NotFound(entity, entity_id)
        if row.budget_id != budget_id:
            raise CrossBudgetReferenceError(entity, entity_id, budget_id)

    @staticmethod
    def _envelope(unit: LedgerUnit, envelope_id: str) -> Envelope:
        envelope = unit.get_envelope(envelope_id)
        if envelope is None:
            raise NotFound("Envelope", envelope_id)
        return envelope
