#!/usr/bin/env python3
"""
Ledger Store - persistence boundary for the ledger.

Separates data access from ledger rules. A LedgerStore hands out units of
work; each unit is one database transaction that commits on success and
rolls back on any exception, so a caller observes either the full effect of
an operation or none of it.

Locking order inside a unit: budget row first, then envelope rows sorted by
id. Every balance-mutating operation follows it, which serializes work on a
budget and avoids deadlocks between overlapping envelope sets.
"""

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from ..core.json_utils import to_jsonable
from .errors import NotFound
from .models import Budget, Envelope, EventType, Transaction, TransactionEvent
from .requests import TransactionFilters

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerUnit:
    """
    Data access within one unit of work.

    Wraps a Session whose transaction is already open. Lookups that precede a
    balance change use the *_for_update variants so the rows are locked until
    the unit ends.
    """

    def __init__(self, session: Session):
        self.session = session

    # Generic access

    def get(self, model: type[T], entity_id: str) -> T | None:
        return self.session.get(model, entity_id)

    def add(self, row: Any) -> None:
        self.session.add(row)

    def delete(self, row: Any) -> None:
        self.session.delete(row)

    def flush(self) -> None:
        self.session.flush()

    def find_by_name(self, model: type[T], budget_id: str, name: str) -> T | None:
        """Look up a budget-owned row (envelope, category, payee, income source) by name."""
        query = select(model).where(
            model.budget_id == budget_id, model.name == name  # type: ignore[attr-defined]
        )
        return self.session.execute(query).scalar_one_or_none()

    # Budgets

    def get_budget(self, budget_id: str) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if budget is None:
            raise NotFound("Budget", budget_id)
        return budget

    def lock_budget(self, budget_id: str) -> Budget:
        """Load the budget row with a row lock held until the unit ends."""
        budget = self.session.execute(
            select(Budget)
            .where(Budget.id == budget_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if budget is None:
            raise NotFound("Budget", budget_id)
        return budget

    # Envelopes

    def get_envelope(self, envelope_id: str) -> Envelope | None:
        return self.session.get(Envelope, envelope_id)

    def lock_envelopes(self, envelope_ids: Sequence[str]) -> dict[str, Envelope]:
        """
        Lock envelope rows in id order.

        Raises:
            NotFound: If any id does not exist
        """
        ids = sorted(set(envelope_ids))
        if not ids:
            return {}

        rows = self.session.execute(
            select(Envelope)
            .where(Envelope.id.in_(ids))
            .order_by(Envelope.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        envelopes = {envelope.id: envelope for envelope in rows}

        for envelope_id in ids:
            if envelope_id not in envelopes:
                raise NotFound("Envelope", envelope_id)
        return envelopes

    def envelopes_for_budget(self, budget_id: str, lock: bool = False) -> list[Envelope]:
        query = select(Envelope).where(Envelope.budget_id == budget_id).order_by(Envelope.id)
        if lock:
            query = query.with_for_update()
        return list(self.session.execute(query).scalars())

    # Transactions

    def get_transaction(self, transaction_id: str, lock: bool = False) -> Transaction:
        query = select(Transaction).where(Transaction.id == transaction_id)
        if lock:
            # Re-read state that may have changed before the lock was granted
            query = query.with_for_update().execution_options(populate_existing=True)
        transaction = self.session.execute(query).scalar_one_or_none()
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    def find_transaction(self, transaction_id: str) -> Transaction | None:
        return self.session.get(Transaction, transaction_id)

    def active_transactions(self, budget_id: str) -> list[Transaction]:
        """Non-deleted transactions in replay order (date, then creation)."""
        query = (
            select(Transaction)
            .where(Transaction.budget_id == budget_id, Transaction.is_deleted.is_(False))
            .order_by(Transaction.transaction_date, Transaction.created_at, Transaction.id)
        )
        return list(self.session.execute(query).scalars())

    def query_transactions(
        self,
        budget_id: str,
        filters: TransactionFilters | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Transaction]:
        """Transactions newest first, narrowed by the given filters."""
        query = select(Transaction).where(Transaction.budget_id == budget_id)
        query = _apply_filters(query, filters or TransactionFilters())
        query = query.order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())

        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return list(self.session.execute(query).scalars())

    def count_envelope_transactions(self, envelope_id: str) -> int:
        query = select(func.count(Transaction.id)).where(
            or_(Transaction.from_envelope_id == envelope_id, Transaction.to_envelope_id == envelope_id)
        )
        return int(self.session.execute(query).scalar_one())

    def purgeable_transactions(self, budget_id: str, deleted_before: datetime) -> list[Transaction]:
        query = select(Transaction).where(
            Transaction.budget_id == budget_id,
            Transaction.is_deleted.is_(True),
            Transaction.deleted_at < deleted_before,
            Transaction.is_cleared.is_(False),
            Transaction.is_reconciled.is_(False),
        )
        return list(self.session.execute(query).scalars())

    # Audit trail

    def record_event(
        self,
        budget_id: str,
        event_type: EventType,
        description: str,
        transaction_id: str | None = None,
        changes: dict[str, Any] | None = None,
        performed_by: str | None = None,
    ) -> TransactionEvent:
        event = TransactionEvent(
            budget_id=budget_id,
            transaction_id=transaction_id,
            event_type=event_type,
            description=description,
            changes=to_jsonable(changes) if changes is not None else None,
            performed_by=performed_by,
        )
        self.session.add(event)
        return event

    def events(self, budget_id: str, transaction_id: str | None = None) -> list[TransactionEvent]:
        query = select(TransactionEvent).where(TransactionEvent.budget_id == budget_id)
        if transaction_id is not None:
            query = query.where(TransactionEvent.transaction_id == transaction_id)
        query = query.order_by(TransactionEvent.performed_at, TransactionEvent.id)
        return list(self.session.execute(query).scalars())


def _apply_filters(query: Select, filters: TransactionFilters) -> Select:
    if not filters.include_deleted:
        query = query.where(Transaction.is_deleted.is_(False))
    if filters.start_date:
        query = query.where(Transaction.transaction_date >= filters.start_date)
    if filters.end_date:
        query = query.where(Transaction.transaction_date <= filters.end_date)
    if filters.transaction_type:
        query = query.where(Transaction.transaction_type == filters.transaction_type)
    if filters.envelope_id:
        query = query.where(
            or_(
                Transaction.from_envelope_id == filters.envelope_id,
                Transaction.to_envelope_id == filters.envelope_id,
            )
        )
    if filters.payee_id:
        query = query.where(Transaction.payee_id == filters.payee_id)
    if filters.income_source_id:
        query = query.where(Transaction.income_source_id == filters.income_source_id)
    if filters.category_id:
        query = query.where(Transaction.category_id == filters.category_id)
    if filters.is_cleared is not None:
        query = query.where(Transaction.is_cleared.is_(filters.is_cleared))
    if filters.is_reconciled is not None:
        query = query.where(Transaction.is_reconciled.is_(filters.is_reconciled))
    if filters.min_amount is not None:
        query = query.where(Transaction.amount >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.where(Transaction.amount <= filters.max_amount)
    return query


class LedgerStore:
    """
    Hands out units of work over a session factory.

    Example:
        store = LedgerStore(create_session_factory(engine))
        with store.unit_of_work() as unit:
            budget = unit.lock_budget(budget_id)
            ...
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    @contextmanager
    def unit_of_work(self) -> Iterator[LedgerUnit]:
        """Open a transaction; commit on normal exit, roll back on any exception."""
        with self.session_factory() as session:
            with session.begin():
                yield LedgerUnit(session)

    @contextmanager
    def read_only(self) -> Iterator[LedgerUnit]:
        """
        Open a transaction that is always rolled back.

        Loaded rows are detached before the rollback so callers can still read
        their column values after the unit ends.
        """
        with self.session_factory() as session:
            try:
                yield LedgerUnit(session)
            finally:
                session.expunge_all()
                session.rollback()
