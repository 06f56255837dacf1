#!/usr/bin/env python3
"""
Transaction Lifecycle

State changes of existing transactions, each run inside the caller's unit
of work:

- soft delete / restore (Active -> Deleted -> Active), reversing or
  re-applying the transaction's balance delta
- clearing (Pending -> Cleared -> Reconciled), monotonic and one step at a
  time; no balance effect
- edit of an active, pending transaction as reverse-old plus apply-new
- purge of soft-deleted pending transactions past the retention window

Every balance change goes through the BalanceMutator.
"""

import logging
from datetime import date, datetime, timedelta

from .errors import (
    AlreadyDeletedError,
    CrossBudgetReferenceError,
    ImmutableTransactionError,
    InsufficientFunds,
    InvalidStateTransition,
    NotDeletedError,
    NotFound,
    RestoreConflictError,
    ValidationError,
)
from .models import Budget, EventType, Transaction, utcnow
from .mutator import BalanceMutator
from .requests import REFERENCE_FIELDS, TransactionInput, TransactionUpdate
from .rules import compute_delta
from .store import LedgerUnit
from .validator import TransactionValidator

logger = logging.getLogger(__name__)

CLEARABLE_FIELDS = frozenset(
    {"description", "to_envelope_id", "payee_id", "income_source_id", "category_id"}
)


def load_for_change(unit: LedgerUnit, transaction_id: str) -> tuple[Budget, Transaction]:
    """
    Lock a transaction's budget, then the transaction itself.

    Raises:
        NotFound: If the transaction does not exist
    """
    found = unit.get_transaction(transaction_id)
    budget = unit.lock_budget(found.budget_id)
    return budget, unit.get_transaction(transaction_id, lock=True)


class TransactionLifecycle:
    """Soft delete, restore, clearing, edit and purge of stored transactions."""

    def __init__(self, validator: TransactionValidator, mutator: BalanceMutator):
        self.validator = validator
        self.mutator = mutator

    def soft_delete(self, unit: LedgerUnit, transaction_id: str, actor_id: str | None) -> Transaction:
        """
        Reverse a transaction's balance effect and mark it deleted.

        Raises:
            AlreadyDeletedError: If the transaction is already deleted
            InsufficientFunds: If reversing would make available_amount negative
                (typically income whose funds were already allocated)
        """
        budget, transaction = load_for_change(unit, transaction_id)
        if transaction.is_deleted:
            raise AlreadyDeletedError(transaction.id)

        delta = compute_delta(transaction).inverted()
        self.mutator.apply(unit, budget, delta, transaction_id=transaction.id, performed_by=actor_id)

        transaction.is_deleted = True
        transaction.deleted_at = utcnow()
        transaction.deleted_by = actor_id

        unit.record_event(
            budget.id,
            EventType.DELETED,
            f"Deleted {transaction.transaction_type.value} of {transaction.amount}",
            transaction_id=transaction.id,
            changes={"is_deleted": {"old": False, "new": True}},
            performed_by=actor_id,
        )
        logger.info(f"Soft-deleted transaction {transaction.id} in budget {budget.id}")
        return transaction

    def restore(self, unit: LedgerUnit, transaction_id: str, actor_id: str | None = None) -> Transaction:
        """
        Re-apply a deleted transaction with full constraint checks.

        Raises:
            NotDeletedError: If the transaction is active
            RestoreConflictError: If a reference is no longer usable or
                re-applying would break a balance constraint
        """
        budget, transaction = load_for_change(unit, transaction_id)
        if not transaction.is_deleted:
            raise NotDeletedError(transaction.id)

        try:
            self.validator.check_references(unit, budget.id, transaction)
        except (ValidationError, NotFound, CrossBudgetReferenceError) as e:
            raise RestoreConflictError(transaction.id, str(e)) from e

        try:
            self.mutator.apply(
                unit, budget, compute_delta(transaction), transaction_id=transaction.id, performed_by=actor_id
            )
        except InsufficientFunds as e:
            raise RestoreConflictError(transaction.id, str(e)) from e

        transaction.is_deleted = False
        transaction.deleted_at = None
        transaction.deleted_by = None

        unit.record_event(
            budget.id,
            EventType.RESTORED,
            f"Restored {transaction.transaction_type.value} of {transaction.amount}",
            transaction_id=transaction.id,
            changes={"is_deleted": {"old": True, "new": False}},
            performed_by=actor_id,
        )
        logger.info(f"Restored transaction {transaction.id} in budget {budget.id}")
        return transaction

    def mark_cleared(self, unit: LedgerUnit, transaction_id: str, actor_id: str | None = None) -> Transaction:
        """Pending -> Cleared."""
        budget, transaction = load_for_change(unit, transaction_id)
        self._check_step(transaction, required="pending", requested="cleared")

        transaction.is_cleared = True
        unit.record_event(
            budget.id,
            EventType.CLEARED,
            "Transaction cleared",
            transaction_id=transaction.id,
            changes={"is_cleared": {"old": False, "new": True}},
            performed_by=actor_id,
        )
        return transaction

    def mark_reconciled(
        self, unit: LedgerUnit, transaction_id: str, actor_id: str | None = None
    ) -> Transaction:
        """Cleared -> Reconciled."""
        budget, transaction = load_for_change(unit, transaction_id)
        self._check_step(transaction, required="cleared", requested="reconciled")

        transaction.is_reconciled = True
        unit.record_event(
            budget.id,
            EventType.RECONCILED,
            "Transaction reconciled",
            transaction_id=transaction.id,
            changes={"is_reconciled": {"old": False, "new": True}},
            performed_by=actor_id,
        )
        return transaction

    @staticmethod
    def _check_step(transaction: Transaction, required: str, requested: str) -> None:
        current = "deleted" if transaction.is_deleted else transaction.clearing_state
        if current != required:
            raise InvalidStateTransition(transaction.id, current, requested)

    def update(
        self,
        unit: LedgerUnit,
        transaction_id: str,
        changes: TransactionUpdate,
        actor_id: str | None = None,
        today: date | None = None,
    ) -> Transaction:
        """
        Edit an active, pending transaction.

        The old effect is reversed and the new one applied as a single delta,
        so only the net change is checked against available_amount.

        Raises:
            ImmutableTransactionError: If the transaction is deleted, cleared or reconciled
            ValidationError: If the edited transaction is invalid
            InsufficientFunds: If the net change over-draws available_amount
        """
        budget, transaction = load_for_change(unit, transaction_id)
        if transaction.is_deleted:
            raise ImmutableTransactionError(transaction.id, "deleted")
        if transaction.is_cleared or transaction.is_reconciled:
            raise ImmutableTransactionError(transaction.id, transaction.clearing_state)

        if changes.is_empty():
            return transaction

        unknown = changes.clear - CLEARABLE_FIELDS
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Field cannot be cleared: {name}", field=name)

        edited = self._merge(transaction, changes)
        normalized = self.validator.validate(unit, budget.id, edited, today)

        delta = compute_delta(transaction).inverted() + compute_delta(normalized)
        self.mutator.apply(unit, budget, delta, transaction_id=transaction.id, performed_by=actor_id)

        before = transaction.to_dict()
        transaction.amount = normalized.amount
        transaction.transaction_date = normalized.transaction_date
        transaction.description = normalized.description
        for name in REFERENCE_FIELDS:
            setattr(transaction, name, getattr(normalized, name))
        after = transaction.to_dict()

        diff = {key: {"old": before[key], "new": after[key]} for key in after if before[key] != after[key]}
        unit.record_event(
            budget.id,
            EventType.UPDATED,
            f"Updated {', '.join(sorted(diff)) or 'nothing'}",
            transaction_id=transaction.id,
            changes=diff,
            performed_by=actor_id,
        )
        logger.info(f"Updated transaction {transaction.id}: {sorted(diff)}")
        return transaction

    @staticmethod
    def _merge(transaction: Transaction, changes: TransactionUpdate) -> TransactionInput:
        def pick(name: str):  # type: ignore[no-untyped-def]
            if name in changes.clear:
                return None
            value = getattr(changes, name)
            return getattr(transaction, name) if value is None else value

        return TransactionInput(
            transaction_type=transaction.transaction_type,
            amount=pick("amount"),
            transaction_date=pick("transaction_date"),
            id=transaction.id,
            description=pick("description"),
            is_cleared=transaction.is_cleared,
            **{name: pick(name) for name in REFERENCE_FIELDS},
        )

    def purge(
        self,
        unit: LedgerUnit,
        budget: Budget,
        retention_days: int,
        now: datetime | None = None,
        actor_id: str | None = None,
    ) -> list[str]:
        """
        Hard-delete soft-deleted, pending transactions deleted before the retention window.

        Their balance effect was already reversed at soft delete, so no balance
        changes. A `purged` event keeps the removed row in the audit trail.

        Returns:
            Ids of purged transactions
        """
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        purged = []

        for transaction in unit.purgeable_transactions(budget.id, cutoff):
            unit.record_event(
                budget.id,
                EventType.PURGED,
                f"Purged {transaction.transaction_type.value} of {transaction.amount}",
                transaction_id=transaction.id,
                changes=transaction.to_dict(),
                performed_by=actor_id,
            )
            unit.delete(transaction)
            purged.append(transaction.id)

        if purged:
            logger.info(f"Purged {len(purged)} deleted transactions from budget {budget.id}")
        return purged
