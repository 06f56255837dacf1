"""
Ledger error taxonomy.

Every failure surfaced by a ledger operation derives from LedgerError, so
callers can catch the family while still branching on the specific cause:

- ValidationError: malformed or missing input; fix and retry
- InsufficientFunds: business-rule rejection, an expected outcome
- CrossBudgetReferenceError: integrity violation; never retried
- NotFound: the referenced row does not exist
- AlreadyDeletedError / NotDeletedError / RestoreConflictError /
  InvalidStateTransition / ImmutableTransactionError: state-machine
  violations; refresh state before retrying

Drift found by the reconciler is reported as data (see reconciler.DriftDetected),
not raised.
"""

from ..core.money import Money


class LedgerError(Exception):
    """Base class for all ledger failures."""


class ValidationError(LedgerError, ValueError):
    """Input is structurally or semantically invalid."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class IdempotencyConflictError(ValidationError):
    """A transaction id was reused with a different payload."""

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction {transaction_id} already exists with a different payload",
            field="id",
        )
        self.transaction_id = transaction_id


class InsufficientFunds(LedgerError):
    """The budget's available amount cannot cover the requested movement."""

    def __init__(self, budget_id: str, available: Money, requested: Money):
        super().__init__(
            f"Insufficient funds in budget {budget_id}: {available} available, {requested} requested"
        )
        self.budget_id = budget_id
        self.available = available
        self.requested = requested


class CrossBudgetReferenceError(LedgerError):
    """A referenced entity belongs to a different budget."""

    def __init__(self, entity: str, entity_id: str, budget_id: str):
        super().__init__(f"{entity} {entity_id} does not belong to budget {budget_id}")
        self.entity = entity
        self.entity_id = entity_id
        self.budget_id = budget_id


class NotFound(LedgerError, LookupError):
    """A referenced budget, envelope, payee, or transaction does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class AlreadyDeletedError(LedgerError):
    """Soft delete requested for a transaction that is already deleted."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} is already deleted")
        self.transaction_id = transaction_id


class NotDeletedError(LedgerError):
    """Restore requested for a transaction that is active."""

    def __init__(self, transaction_id: str):
        super().__init__(f"Transaction {transaction_id} is not deleted")
        self.transaction_id = transaction_id


class RestoreConflictError(LedgerError):
    """Re-applying a deleted transaction would break a balance constraint."""

    def __init__(self, transaction_id: str, reason: str):
        super().__init__(f"Cannot restore transaction {transaction_id}: {reason}")
        self.transaction_id = transaction_id
        self.reason = reason


class InvalidStateTransition(LedgerError):
    """Clearing/reconciliation state may only move forward one step at a time."""

    def __init__(self, transaction_id: str, current: str, requested: str):
        super().__init__(f"Transaction {transaction_id} cannot move from {current} to {requested}")
        self.transaction_id = transaction_id
        self.current = current
        self.requested = requested


class ImmutableTransactionError(LedgerError):
    """Cleared or reconciled transactions cannot be edited."""

    def __init__(self, transaction_id: str, state: str):
        super().__init__(f"Transaction {transaction_id} is {state} and cannot be modified")
        self.transaction_id = transaction_id
        self.state = state
