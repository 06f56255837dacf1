#!/usr/bin/env python3
"""
Synthetic Ledger Test Data

Generates reproducible random transaction sequences for invariant tests.
All names and amounts are synthetic.

Note: Uses standard random module for test data generation (not cryptographic use).
"""

import random
from datetime import date, timedelta
from typing import Any

from envelopes.ledger.requests import TransactionInput

# Fixed "today" for date validation so tests do not depend on the clock
TODAY = date(2025, 3, 15)

SYNTHETIC_ENVELOPES = [
    "Groceries",
    "Rent",
    "Transportation",
    "Dining Out",
    "Emergency Fund",
]

TRANSACTION_WEIGHTS = {
    "income": 3,
    "allocation": 4,
    "expense": 4,
    "transfer": 2,
    "debt_payment": 1,
}


def random_amount(rng: random.Random, low_cents: int = 100, high_cents: int = 50000) -> str:
    """Random positive dollar amount string with two decimal places."""
    cents = rng.randint(low_cents, high_cents)
    return f"{cents // 100}.{cents % 100:02d}"


def random_transaction(
    rng: random.Random,
    envelope_ids: list[str],
    days_back: int = 60,
    debt_envelope_ids: list[str] | None = None,
) -> TransactionInput:
    """
    One random, structurally valid transaction over the given envelopes.

    Debt payments are only generated when debt envelopes are given. The
    transaction may still be rejected by the ledger (e.g. InsufficientFunds).
    """
    kinds = [k for k in TRANSACTION_WEIGHTS if k != "debt_payment" or debt_envelope_ids]
    kind = rng.choices(kinds, weights=[TRANSACTION_WEIGHTS[k] for k in kinds])[0]
    fields: dict[str, Any] = {
        "transaction_type": kind,
        "amount": random_amount(rng),
        "transaction_date": TODAY - timedelta(days=rng.randint(0, days_back)),
    }

    if kind == "income" and rng.random() < 0.25:
        fields["to_envelope_id"] = rng.choice(envelope_ids)
    elif kind == "allocation":
        fields["to_envelope_id"] = rng.choice(envelope_ids)
    elif kind == "expense":
        fields["from_envelope_id"] = rng.choice(envelope_ids)
    elif kind == "transfer":
        source, target = rng.sample(envelope_ids, 2)
        fields["from_envelope_id"] = source
        fields["to_envelope_id"] = target
    elif kind == "debt_payment":
        fields["from_envelope_id"] = rng.choice(debt_envelope_ids)

    return TransactionInput(**fields)
