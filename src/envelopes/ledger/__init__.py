"""
Envelope Ledger Package

Rules and storage for moving money between a budget's available pool and its
envelopes.

Key Components:
- models: SQLAlchemy tables (budgets, envelopes, transactions, audit events)
- rules: Per-type required/forbidden fields and balance deltas
- validator: Structural and reference checks before any mutation
- mutator: Applies balance deltas under row locks
- lifecycle: Soft delete, restore, clearing, edit and purge
- reconciler: Replay-based drift detection and repair
- service: Ledger facade, one unit of work per operation

Consistency Guarantees:
- available_amount never goes negative
- available_amount + envelope balances always equals net money in minus out
- Every operation commits fully or not at all
"""

from .errors import (
    AlreadyDeletedError,
    CrossBudgetReferenceError,
    IdempotencyConflictError,
    ImmutableTransactionError,
    InsufficientFunds,
    InvalidStateTransition,
    LedgerError,
    NotDeletedError,
    NotFound,
    RestoreConflictError,
    ValidationError,
)
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
    TransactionType,
)
from .reconciler import DriftDetected, ReconciliationReport
from .requests import TransactionFilters, TransactionInput, TransactionUpdate
from .rules import BalanceDelta, compute_delta, system_flow
from .service import Ledger
from .store import LedgerStore

__all__ = [
    "AlreadyDeletedError",
    "BalanceDelta",
    "Budget",
    "Category",
    "CrossBudgetReferenceError",
    "DriftDetected",
    "Envelope",
    "EnvelopeType",
    "EventType",
    "IdempotencyConflictError",
    "ImmutableTransactionError",
    "IncomeSource",
    "InsufficientFunds",
    "InvalidStateTransition",
    "Ledger",
    "LedgerError",
    "LedgerStore",
    "NotDeletedError",
    "NotFound",
    "Payee",
    "ReconciliationReport",
    "RestoreConflictError",
    "Transaction",
    "TransactionEvent",
    "TransactionFilters",
    "TransactionInput",
    "TransactionType",
    "TransactionUpdate",
    "ValidationError",
    "compute_delta",
    "system_flow",
]
