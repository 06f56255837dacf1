#!/usr/bin/env python3
"""
Invariant Reconciler

Recomputes a budget's derived balances by replaying its non-deleted
transactions from zero (debt from each envelope's opening balance), then
compares them with what is stored. Differences are reported as data; the
stored values are only overwritten when repair is requested.

Also checks the ledger equation:

    available_amount + sum(current_balance) == sum(income) - sum(expense + debt_payment)
"""

import logging
from dataclasses import dataclass, field

from ..core.money import Money
from .models import Budget, Envelope, EventType
from .rules import BalanceDelta, compute_delta, system_flow
from .store import LedgerUnit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftDetected:
    """One stored derived value that disagrees with its replayed value."""

    entity: str  # "budget" or "envelope"
    entity_id: str
    field: str
    stored: Money
    replayed: Money

    @property
    def delta(self) -> Money:
        return self.stored - self.replayed

    def describe(self) -> str:
        return (
            f"{self.entity} {self.entity_id} {self.field}: stored {self.stored}, "
            f"replayed {self.replayed} (off by {self.delta})"
        )


@dataclass
class ReconciliationReport:
    """Result of reconciling one budget."""

    budget_id: str
    details: list[DriftDetected] = field(default_factory=list)
    transactions_replayed: int = 0
    net_system_flow: Money = field(default_factory=Money.zero)
    invariant_holds: bool = True
    repaired: bool = False

    @property
    def drift(self) -> bool:
        return bool(self.details)

    def summary(self) -> str:
        if not self.drift:
            return f"Budget {self.budget_id}: no drift across {self.transactions_replayed} transactions"
        status = "repaired" if self.repaired else "not repaired"
        return f"Budget {self.budget_id}: {len(self.details)} drifted values ({status})"

    def to_dict(self) -> dict:
        return {
            "budget_id": self.budget_id,
            "drift": self.drift,
            "repaired": self.repaired,
            "invariant_holds": self.invariant_holds,
            "transactions_replayed": self.transactions_replayed,
            "net_system_flow": self.net_system_flow,
            "details": [
                {
                    "entity": d.entity,
                    "entity_id": d.entity_id,
                    "field": d.field,
                    "stored": d.stored,
                    "replayed": d.replayed,
                    "delta": d.delta,
                }
                for d in self.details
            ],
        }


@dataclass
class ReplayedBalances:
    available: Money
    balances: dict[str, Money]
    debts: dict[str, Money]
    net_system_flow: Money
    transaction_count: int


def replay(unit: LedgerUnit, budget: Budget, envelopes: list[Envelope]) -> ReplayedBalances:
    """Rebuild derived balances from the budget's non-deleted transactions."""
    total = BalanceDelta()
    net_flow = Money.zero()
    transactions = unit.active_transactions(budget.id)

    for transaction in transactions:
        total = total + compute_delta(transaction)
        net_flow = net_flow + system_flow(transaction)

    return ReplayedBalances(
        available=total.available,
        balances={e.id: total.envelopes.get(e.id, Money.zero()) for e in envelopes},
        debts={e.id: e.opening_debt_balance + total.debt.get(e.id, Money.zero()) for e in envelopes},
        net_system_flow=net_flow,
        transaction_count=len(transactions),
    )


class InvariantReconciler:
    """Detects, and on request repairs, drift in a budget's derived balances."""

    def reconcile(
        self, unit: LedgerUnit, budget: Budget, repair: bool = False, actor_id: str | None = None
    ) -> ReconciliationReport:
        """
        Compare stored balances against a full replay.

        Args:
            unit: Open unit of work holding the budget row lock
            budget: Locked budget row
            repair: Overwrite drifted values with replayed ones
            actor_id: Recorded on the `repaired` event

        Returns:
            ReconciliationReport; drift is reported, never raised
        """
        envelopes = unit.envelopes_for_budget(budget.id, lock=repair)
        replayed = replay(unit, budget, envelopes)

        report = ReconciliationReport(
            budget_id=budget.id,
            transactions_replayed=replayed.transaction_count,
            net_system_flow=replayed.net_system_flow,
        )

        if budget.available_amount != replayed.available:
            report.details.append(
                DriftDetected(
                    "budget", budget.id, "available_amount", budget.available_amount, replayed.available
                )
            )

        for envelope in envelopes:
            balance = replayed.balances[envelope.id]
            if envelope.current_balance != balance:
                report.details.append(
                    DriftDetected(
                        "envelope", envelope.id, "current_balance", envelope.current_balance, balance
                    )
                )
            debt = replayed.debts[envelope.id]
            if envelope.debt_balance != debt:
                report.details.append(
                    DriftDetected("envelope", envelope.id, "debt_balance", envelope.debt_balance, debt)
                )

        stored_total = budget.available_amount
        for envelope in envelopes:
            stored_total = stored_total + envelope.current_balance
        report.invariant_holds = stored_total == replayed.net_system_flow

        if not report.drift:
            logger.info(report.summary())
            return report

        for drift in report.details:
            logger.warning(f"Drift detected: {drift.describe()}")

        if repair:
            self._repair(unit, budget, envelopes, report, actor_id)

        return report

    def _repair(
        self,
        unit: LedgerUnit,
        budget: Budget,
        envelopes: list[Envelope],
        report: ReconciliationReport,
        actor_id: str | None,
    ) -> None:
        by_id = {envelope.id: envelope for envelope in envelopes}
        for drift in report.details:
            target = budget if drift.entity == "budget" else by_id[drift.entity_id]
            setattr(target, drift.field, drift.replayed)

        report.repaired = True
        report.invariant_holds = True
        unit.record_event(
            budget.id,
            EventType.REPAIRED,
            f"Repaired {len(report.details)} drifted balance values",
            changes=report.to_dict(),
            performed_by=actor_id,
        )
        logger.info(f"Repaired budget {budget.id}: {len(report.details)} values overwritten")
