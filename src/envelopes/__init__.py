"""
Envelope Ledger - Virtual Envelope Budgeting Engine

Moves money between a budget's unallocated "available" pool and its
envelopes, applying income, allocation, expense, transfer and debt payment
transactions atomically while keeping every balance consistent with the
transaction log.

Key Features:
- Table-driven transaction rules with invertible balance deltas
- Soft delete and restore that reverse and re-apply balance effects
- Replay-based reconciliation with drift reporting and repair
- Row-locked units of work over any SQLAlchemy database
- Audit trail of every transaction state change

Domain Packages:
- core: Money, currency helpers, configuration
- ledger: Data model, validator, mutator, lifecycle, reconciler, service
- cli: Command-line interface (envelopes)

Example Usage:
    from envelopes import Ledger, TransactionInput, get_config

    ledger = Ledger.from_config(get_config(), create_schema=True)
    budget = ledger.create_budget("user-1", "Household")
    ledger.apply_transaction(budget.id, TransactionInput("income", "1000.00"))
"""

__version__ = "0.1.0"
__author__ = "Envelope Ledger Developers"

from .core.config import Environment, get_config
from .core.money import Money
from .ledger.errors import InsufficientFunds, LedgerError, ValidationError
from .ledger.requests import TransactionInput
from .ledger.service import Ledger

__all__ = [
    # Configuration
    "Environment",
    "get_config",
    # Ledger
    "InsufficientFunds",
    "Ledger",
    "LedgerError",
    "Money",
    "TransactionInput",
    "ValidationError",
]
