#!/usr/bin/env python3
"""
Balance Mutator

The single writer of derived balance columns during normal operation.
Applies a BalanceDelta to a budget and its envelopes inside the caller's
unit of work:

1. Lock affected envelope rows in id order (the budget row is already locked)
2. Check hard constraints: available_amount must stay >= 0
3. Write every delta

Envelope balances have no floor. Overspending is allowed, reported in the
outcome and recorded as an `overdrawn` audit event.
"""

import logging
from dataclasses import dataclass, field

from ..core.money import Money
from .errors import InsufficientFunds
from .models import Budget, EventType
from .rules import BalanceDelta
from .store import LedgerUnit

logger = logging.getLogger(__name__)


@dataclass
class MutationOutcome:
    """What a mutation changed."""

    available_before: Money
    available_after: Money
    envelope_balances: dict[str, Money] = field(default_factory=dict)
    overdrawn: list[str] = field(default_factory=list)


class BalanceMutator:
    """Applies balance deltas under the budget's row lock."""

    def apply(
        self,
        unit: LedgerUnit,
        budget: Budget,
        delta: BalanceDelta,
        transaction_id: str | None = None,
        performed_by: str | None = None,
    ) -> MutationOutcome:
        """
        Apply a delta to the budget and its envelopes.

        Args:
            unit: Open unit of work holding the budget row lock
            budget: Locked budget row
            delta: Balance changes to apply
            transaction_id: Transaction responsible, for audit events
            performed_by: Actor id, for audit events

        Returns:
            MutationOutcome with the new balances and any overdrawn envelopes

        Raises:
            InsufficientFunds: If available_amount would become negative
            NotFound: If an envelope in the delta does not exist
        """
        envelopes = unit.lock_envelopes(delta.envelope_ids())

        available_before = budget.available_amount
        available_after = available_before + delta.available
        if available_after.is_negative():
            raise InsufficientFunds(budget.id, available_before, -delta.available)

        budget.available_amount = available_after
        outcome = MutationOutcome(available_before=available_before, available_after=available_after)

        for envelope_id, change in delta.envelopes.items():
            envelope = envelopes[envelope_id]
            was_overdrawn = envelope.is_overdrawn
            envelope.current_balance = envelope.current_balance + change
            outcome.envelope_balances[envelope_id] = envelope.current_balance

            if envelope.is_overdrawn and not was_overdrawn:
                outcome.overdrawn.append(envelope_id)
                logger.warning(
                    f"Envelope {envelope.name!r} ({envelope_id}) overdrawn: {envelope.current_balance}"
                )
                unit.record_event(
                    budget.id,
                    EventType.OVERDRAWN,
                    f"Envelope {envelope.name} overdrawn to {envelope.current_balance}",
                    transaction_id=transaction_id,
                    changes={"envelope_id": envelope_id, "current_balance": envelope.current_balance},
                    performed_by=performed_by,
                )

        for envelope_id, change in delta.debt.items():
            envelope = envelopes[envelope_id]
            envelope.debt_balance = envelope.debt_balance + change

        logger.debug(
            f"Applied delta to budget {budget.id}: available {available_before} -> {available_after}, "
            f"envelopes {outcome.envelope_balances}"
        )
        return outcome
