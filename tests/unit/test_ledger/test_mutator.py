#!/usr/bin/env python3
"""Tests for the balance mutator."""

import pytest

from envelopes.core.money import Money
from envelopes.ledger.errors import InsufficientFunds, NotFound
from envelopes.ledger.models import EventType
from envelopes.ledger.mutator import BalanceMutator
from envelopes.ledger.rules import BalanceDelta


def _cents(value: int) -> Money:
    return Money.from_cents(value)


class TestBalanceMutator:
    """Test applying deltas under the budget lock."""

    @pytest.mark.ledger
    def test_applies_available_and_envelope_deltas(self, ledger, store, budget, groceries, apply):
        """Test that every part of the delta is written."""
        apply("income", "100.00")
        delta = BalanceDelta(available=_cents(-3000), envelopes={groceries.id: _cents(3000)})

        with store.unit_of_work() as unit:
            locked = unit.lock_budget(budget.id)
            outcome = BalanceMutator().apply(unit, locked, delta)

        assert outcome.available_before == _cents(10000)
        assert outcome.available_after == _cents(7000)
        assert outcome.envelope_balances == {groceries.id: _cents(3000)}
        assert ledger.get_budget(budget.id).available_amount == _cents(7000)
        assert ledger.get_envelope(groceries.id).current_balance == _cents(3000)

    @pytest.mark.ledger
    def test_negative_available_rejected_without_writes(self, ledger, store, budget, groceries, apply):
        """Test that nothing changes when available would go negative."""
        apply("income", "10.00")
        delta = BalanceDelta(available=_cents(-1001), envelopes={groceries.id: _cents(1001)})

        with pytest.raises(InsufficientFunds) as exc_info:
            with store.unit_of_work() as unit:
                BalanceMutator().apply(unit, unit.lock_budget(budget.id), delta)

        assert exc_info.value.available == _cents(1000)
        assert exc_info.value.requested == _cents(1001)
        assert ledger.get_budget(budget.id).available_amount == _cents(1000)
        assert ledger.get_envelope(groceries.id).current_balance.is_zero()

    @pytest.mark.ledger
    def test_envelope_may_go_negative_and_is_reported(self, ledger, store, budget, groceries):
        """Test that overspending is allowed, reported and audited."""
        delta = BalanceDelta(envelopes={groceries.id: _cents(-500)})

        with store.unit_of_work() as unit:
            outcome = BalanceMutator().apply(unit, unit.lock_budget(budget.id), delta, transaction_id="t-1")

        assert outcome.overdrawn == [groceries.id]
        assert ledger.get_envelope(groceries.id).current_balance == _cents(-500)
        events = ledger.list_events(budget.id)
        assert [e.event_type for e in events] == [EventType.OVERDRAWN]
        assert events[0].transaction_id == "t-1"

    @pytest.mark.ledger
    def test_already_overdrawn_not_reported_again(self, store, budget, groceries):
        """Test that only the crossing below zero is reported."""
        mutator = BalanceMutator()
        delta = BalanceDelta(envelopes={groceries.id: _cents(-500)})

        with store.unit_of_work() as unit:
            mutator.apply(unit, unit.lock_budget(budget.id), delta)
        with store.unit_of_work() as unit:
            outcome = mutator.apply(unit, unit.lock_budget(budget.id), delta)

        assert outcome.overdrawn == []

    @pytest.mark.ledger
    def test_debt_delta_updates_debt_balance(self, ledger, store, budget, credit_card):
        """Test that debt deltas only touch debt_balance."""
        delta = BalanceDelta(debt={credit_card.id: _cents(-20000)})

        with store.unit_of_work() as unit:
            BalanceMutator().apply(unit, unit.lock_budget(budget.id), delta)

        card = ledger.get_envelope(credit_card.id)
        assert card.debt_balance == _cents(100000)
        assert card.current_balance.is_zero()

    @pytest.mark.ledger
    def test_unknown_envelope_not_found(self, store, budget):
        """Test that a delta naming a missing envelope fails."""
        delta = BalanceDelta(envelopes={"missing": _cents(1)})

        with pytest.raises(NotFound):
            with store.unit_of_work() as unit:
                BalanceMutator().apply(unit, unit.lock_budget(budget.id), delta)
