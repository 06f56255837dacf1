#!/usr/bin/env python3
"""Tests for the invariant reconciler."""

import random

import pytest

from envelopes.core.money import Money
from envelopes.ledger.errors import InsufficientFunds, RestoreConflictError
from envelopes.ledger.models import Budget, Envelope, EnvelopeType, EventType, TransactionType
from envelopes.ledger.reconciler import DriftDetected, ReconciliationReport
from envelopes.ledger.requests import TransactionUpdate
from tests.fixtures.ledger_data import SYNTHETIC_ENVELOPES, TODAY, random_amount, random_transaction


def _dollars(value: str) -> Money:
    return Money.from_dollars(value)


def _corrupt(store, model, entity_id, **values):
    """Write derived columns directly, bypassing the ledger."""
    with store.unit_of_work() as unit:
        row = unit.get(model, entity_id)
        for name, value in values.items():
            setattr(row, name, value)


@pytest.fixture
def month(ledger, budget, groceries, rent, credit_card, apply):
    """A budget with some history across regular and debt envelopes."""
    apply("income", "2000.00")
    apply("allocation", "500.00", to_envelope_id=groceries.id)
    apply("allocation", "900.00", to_envelope_id=rent.id)
    apply("allocation", "300.00", to_envelope_id=credit_card.id)
    apply("expense", "120.00", from_envelope_id=groceries.id)
    apply("debt_payment", "250.00", from_envelope_id=credit_card.id)
    dropped = apply("expense", "75.00", from_envelope_id=rent.id)
    ledger.soft_delete_transaction(dropped.id)
    return budget


class TestReconcile:
    """Test drift detection and repair."""

    @pytest.mark.ledger
    def test_clean_budget_has_no_drift(self, ledger, month):
        """Test that normal operations never drift."""
        report = ledger.reconcile_budget(month.id)

        assert isinstance(report, ReconciliationReport)
        assert report.drift is False
        assert report.invariant_holds
        assert report.transactions_replayed == 6
        assert report.net_system_flow == _dollars("1630")
        assert "no drift" in report.summary()

    @pytest.mark.ledger
    def test_empty_budget(self, ledger, budget):
        """Test reconciling a budget without transactions."""
        report = ledger.reconcile_budget(budget.id)

        assert not report.drift
        assert report.transactions_replayed == 0

    @pytest.mark.ledger
    def test_envelope_drift_reported_not_repaired(self, ledger, store, groceries, month):
        """Test that a corrupted balance is detected and left as is."""
        _corrupt(store, Envelope, groceries.id, current_balance=_dollars("999"))

        report = ledger.reconcile_budget(month.id)

        assert report.drift
        assert not report.repaired
        assert not report.invariant_holds
        assert report.details == [
            DriftDetected("envelope", groceries.id, "current_balance", _dollars("999"), _dollars("380"))
        ]
        assert report.details[0].delta == _dollars("619")
        assert ledger.get_envelope(groceries.id).current_balance == _dollars("999")

    @pytest.mark.ledger
    def test_repair_overwrites_drifted_values(self, ledger, store, groceries, month):
        """Test that repair restores replayed balances and records an event."""
        _corrupt(store, Budget, month.id, available_amount=_dollars("1"))
        _corrupt(store, Envelope, groceries.id, current_balance=_dollars("0"))

        report = ledger.reconcile_budget(month.id, repair=True, actor_id="admin")

        assert report.repaired
        assert len(report.details) == 2
        assert ledger.get_budget(month.id).available_amount == _dollars("300")
        assert ledger.get_envelope(groceries.id).current_balance == _dollars("380")

        events = [e for e in ledger.list_events(month.id) if e.event_type == EventType.REPAIRED]
        assert len(events) == 1
        assert events[0].performed_by == "admin"
        assert events[0].changes["details"][0]["field"] == "available_amount"

        assert not ledger.reconcile_budget(month.id).drift

    @pytest.mark.ledger
    def test_debt_drift_detected(self, ledger, store, credit_card, month):
        """Test that debt balance is replayed from the opening debt."""
        _corrupt(store, Envelope, credit_card.id, debt_balance=_dollars("1200"))

        report = ledger.reconcile_budget(month.id)

        assert [(d.field, d.replayed) for d in report.details] == [("debt_balance", _dollars("950"))]
        # Debt is outside the ledger equation
        assert report.invariant_holds

    @pytest.mark.ledger
    def test_report_serializes(self, ledger, store, groceries, month):
        """Test the report's dictionary form."""
        _corrupt(store, Envelope, groceries.id, current_balance=_dollars("0"))

        data = ledger.reconcile_budget(month.id).to_dict()

        assert data["drift"] is True
        assert data["details"][0]["entity_id"] == groceries.id
        assert data["details"][0]["delta"] == _dollars("-380")


class TestRandomSequences:
    """Balances stay consistent across random operation sequences."""

    @pytest.mark.ledger
    @pytest.mark.slow
    @pytest.mark.parametrize("seed", [7, 42, 2025])
    def test_replay_matches_stored_balances(self, ledger, budget, seed):
        """Test that any mix of applies, deletes, restores and edits leaves no drift."""
        rng = random.Random(seed)
        envelope_ids = [ledger.create_envelope(budget.id, name).id for name in SYNTHETIC_ENVELOPES]
        card = ledger.create_envelope(
            budget.id, "Credit Card", envelope_type=EnvelopeType.DEBT, debt_balance="5000.00"
        )
        applied = []
        deleted = []

        for _ in range(120):
            request = random_transaction(rng, envelope_ids, debt_envelope_ids=[card.id])
            try:
                applied.append(ledger.apply_transaction(budget.id, request, today=TODAY))
            except InsufficientFunds:
                continue

            roll = rng.random()
            if roll < 0.15:
                victim = applied.pop(rng.randrange(len(applied)))
                try:
                    deleted.append(ledger.soft_delete_transaction(victim.id))
                except InsufficientFunds:
                    applied.append(victim)
            elif roll < 0.25 and deleted:
                candidate = deleted.pop(rng.randrange(len(deleted)))
                try:
                    applied.append(ledger.restore_transaction(candidate.id))
                except RestoreConflictError:
                    deleted.append(candidate)
            elif roll < 0.35:
                index = rng.randrange(len(applied))
                changes = TransactionUpdate(amount=random_amount(rng))
                try:
                    applied[index] = ledger.update_transaction(applied[index].id, changes, today=TODAY)
                except InsufficientFunds:
                    pass

            assert not ledger.get_budget(budget.id).available_amount.is_negative()

        report = ledger.reconcile_budget(budget.id)
        assert not report.drift, [d.describe() for d in report.details]
        assert report.invariant_holds

        def total(*types):
            return sum((t.amount for t in applied if t.transaction_type in types), Money.zero())

        stored = ledger.get_budget(budget.id).available_amount
        for envelope in ledger.list_envelopes(budget.id, include_inactive=True):
            stored = stored + envelope.current_balance
        income = total(TransactionType.INCOME)
        spent = total(TransactionType.EXPENSE, TransactionType.DEBT_PAYMENT)
        assert stored == income - spent
        paid = total(TransactionType.DEBT_PAYMENT)
        assert ledger.get_envelope(card.id).debt_balance == _dollars("5000") - paid
