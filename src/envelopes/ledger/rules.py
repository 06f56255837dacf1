#!/usr/bin/env python3
"""
Transaction Rules - one table entry per transaction type.

Each rule states which references a transaction of that type must and must
not carry, how it moves money between the budget's available pool and its
envelopes, and whether it brings money into or out of the budget.

Balance effects are expressed as a BalanceDelta: a pure value that can be
inverted (soft delete), combined (edit = inverse of old + new), and replayed
(reconciliation). Nothing here touches storage.

| type         | available | from envelope      | to envelope | system flow |
|--------------|-----------|--------------------|-------------|-------------|
| income       | +amount*  |                    | +amount*    | +amount     |
| allocation   | -amount   |                    | +amount     | 0           |
| expense      |           | -amount            |             | -amount     |
| transfer     |           | -amount            | +amount     | 0           |
| debt_payment |           | -amount, -debt     |             | -amount     |

* income lands in the envelope when to_envelope_id is given, otherwise in
  available; never both.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from ..core.money import Money
from .errors import ValidationError
from .models import TransactionType


class LedgerEntry(Protocol):
    """Anything shaped like a transaction (ORM row or normalized input)."""

    transaction_type: TransactionType
    amount: Money
    from_envelope_id: str | None
    to_envelope_id: str | None


def _merge(a: Mapping[str, Money], b: Mapping[str, Money]) -> dict[str, Money]:
    merged = dict(a)
    for key, value in b.items():
        merged[key] = merged.get(key, Money.zero()) + value
    return {key: value for key, value in merged.items() if not value.is_zero()}


@dataclass(frozen=True)
class BalanceDelta:
    """Signed changes to derived balance fields produced by one transaction."""

    available: Money = field(default_factory=Money.zero)
    envelopes: Mapping[str, Money] = field(default_factory=dict)
    debt: Mapping[str, Money] = field(default_factory=dict)

    def inverted(self) -> "BalanceDelta":
        """Delta that exactly undoes this one."""
        return BalanceDelta(
            available=-self.available,
            envelopes={k: -v for k, v in self.envelopes.items()},
            debt={k: -v for k, v in self.debt.items()},
        )

    def __add__(self, other: "BalanceDelta") -> "BalanceDelta":
        return BalanceDelta(
            available=self.available + other.available,
            envelopes=_merge(self.envelopes, other.envelopes),
            debt=_merge(self.debt, other.debt),
        )

    def envelope_ids(self) -> list[str]:
        """Every envelope whose row must be locked to apply this delta, in lock order."""
        return sorted(set(self.envelopes) | set(self.debt))

    def is_zero(self) -> bool:
        return (
            self.available.is_zero()
            and all(v.is_zero() for v in self.envelopes.values())
            and all(v.is_zero() for v in self.debt.values())
        )


@dataclass(frozen=True)
class TransactionRule:
    """Validation shape and balance effect of one transaction type."""

    transaction_type: TransactionType
    required: tuple[str, ...]
    forbidden: tuple[str, ...]
    effect: Callable[[LedgerEntry], BalanceDelta]
    # +1 money enters the budget, -1 it leaves, 0 it moves internally
    flow_sign: int

    def delta(self, entry: LedgerEntry) -> BalanceDelta:
        return self.effect(entry)

    def system_flow(self, entry: LedgerEntry) -> Money:
        return entry.amount * self.flow_sign


def _envelope_ref(entry: LedgerEntry, name: str) -> str:
    envelope_id = getattr(entry, name)
    if not envelope_id:
        raise ValidationError(f"{entry.transaction_type.value} transactions require {name}", field=name)
    return envelope_id


def _income(entry: LedgerEntry) -> BalanceDelta:
    if entry.to_envelope_id:
        return BalanceDelta(envelopes={entry.to_envelope_id: entry.amount})
    return BalanceDelta(available=entry.amount)


def _allocation(entry: LedgerEntry) -> BalanceDelta:
    target = _envelope_ref(entry, "to_envelope_id")
    return BalanceDelta(available=-entry.amount, envelopes={target: entry.amount})


def _expense(entry: LedgerEntry) -> BalanceDelta:
    source = _envelope_ref(entry, "from_envelope_id")
    return BalanceDelta(envelopes={source: -entry.amount})


def _transfer(entry: LedgerEntry) -> BalanceDelta:
    source = _envelope_ref(entry, "from_envelope_id")
    target = _envelope_ref(entry, "to_envelope_id")
    return BalanceDelta(envelopes={source: -entry.amount, target: entry.amount})


def _debt_payment(entry: LedgerEntry) -> BalanceDelta:
    source = _envelope_ref(entry, "from_envelope_id")
    return BalanceDelta(envelopes={source: -entry.amount}, debt={source: -entry.amount})


RULES: dict[TransactionType, TransactionRule] = {
    TransactionType.INCOME: TransactionRule(
        transaction_type=TransactionType.INCOME,
        required=(),
        forbidden=("from_envelope_id", "payee_id"),
        effect=_income,
        flow_sign=1,
    ),
    TransactionType.ALLOCATION: TransactionRule(
        transaction_type=TransactionType.ALLOCATION,
        required=("to_envelope_id",),
        forbidden=("from_envelope_id", "payee_id", "income_source_id"),
        effect=_allocation,
        flow_sign=0,
    ),
    TransactionType.EXPENSE: TransactionRule(
        transaction_type=TransactionType.EXPENSE,
        required=("from_envelope_id",),
        forbidden=("to_envelope_id", "income_source_id"),
        effect=_expense,
        flow_sign=-1,
    ),
    TransactionType.TRANSFER: TransactionRule(
        transaction_type=TransactionType.TRANSFER,
        required=("from_envelope_id", "to_envelope_id"),
        forbidden=("payee_id", "income_source_id"),
        effect=_transfer,
        flow_sign=0,
    ),
    TransactionType.DEBT_PAYMENT: TransactionRule(
        transaction_type=TransactionType.DEBT_PAYMENT,
        required=("from_envelope_id",),
        forbidden=("to_envelope_id", "income_source_id"),
        effect=_debt_payment,
        flow_sign=-1,
    ),
}


def rule_for(transaction_type: TransactionType) -> TransactionRule:
    """Look up the rule for a transaction type."""
    return RULES[transaction_type]


def compute_delta(entry: LedgerEntry) -> BalanceDelta:
    """Balance effect of applying the entry."""
    return rule_for(entry.transaction_type).delta(entry)


def system_flow(entry: LedgerEntry) -> Money:
    """Net money the entry brings into (+) or takes out of (-) the budget."""
    return rule_for(entry.transaction_type).system_flow(entry)
