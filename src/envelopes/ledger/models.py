#!/usr/bin/env python3
"""
Ledger Data Models

Relational tables for budgets, envelopes, descriptive entities, the
transaction log and its audit trail. Monetary columns are NUMERIC(12, 2)
surfaced in Python as Money (integer cents).

Balance columns (budgets.available_amount, envelopes.current_balance,
envelopes.debt_balance) are derived state: they can be recomputed by
replaying non-deleted transactions and are written only by the balance
mutator or the reconciler's repair path.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from ..core.currency import CENT
from ..core.money import Money


def new_id() -> str:
    """Generate a new primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp (portable across SQLite and Postgres)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionType(Enum):
    """Types of ledger transactions."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ALLOCATION = "allocation"
    DEBT_PAYMENT = "debt_payment"


class EnvelopeType(Enum):
    """Kinds of envelopes."""

    REGULAR = "regular"
    SAVINGS = "savings"
    DEBT = "debt"


class EventType(Enum):
    """Audit trail event kinds."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"
    CLEARED = "cleared"
    RECONCILED = "reconciled"
    PURGED = "purged"
    OVERDRAWN = "overdrawn"
    REPAIRED = "repaired"


class MoneyType(TypeDecorator):
    """NUMERIC(12, 2) column exposed as Money."""

    impl = Numeric(12, 2)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Decimal | None:
        if value is None:
            return None
        if isinstance(value, Money):
            return value.to_decimal()
        return Money.from_decimal(value).to_decimal()

    def process_result_value(self, value: Any, dialect: Any) -> Money | None:
        if value is None:
            return None
        return Money.from_decimal(Decimal(str(value)).quantize(CENT))


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    """Store enum values (not member names) as portable VARCHAR."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    pass


class Budget(Base):
    __tablename__ = "budgets"

    __table_args__ = (
        CheckConstraint("available_amount >= 0", name="budgets_available_amount_non_negative"),
        Index("idx_budgets_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    available_amount: Mapped[Money] = mapped_column(MoneyType, nullable=False, default=Money.zero)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    envelopes = relationship("Envelope", back_populates="budget", order_by="Envelope.name")
    categories = relationship("Category", back_populates="budget")
    payees = relationship("Payee", back_populates="budget")
    income_sources = relationship("IncomeSource", back_populates="budget")

    def __repr__(self) -> str:
        return f"Budget(id={self.id!r}, name={self.name!r}, available={self.available_amount})"


class Category(Base):
    __tablename__ = "categories"

    __table_args__ = (UniqueConstraint("budget_id", "name", name="uq_categories_budget_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    budget = relationship("Budget", back_populates="categories")


class Payee(Base):
    __tablename__ = "payees"

    __table_args__ = (UniqueConstraint("budget_id", "name", name="uq_payees_budget_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    budget = relationship("Budget", back_populates="payees")


class IncomeSource(Base):
    __tablename__ = "income_sources"

    __table_args__ = (UniqueConstraint("budget_id", "name", name="uq_income_sources_budget_name"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    expected_amount: Mapped[Optional[Money]] = mapped_column(MoneyType)
    frequency_days: Mapped[Optional[int]] = mapped_column(Integer)
    next_expected_date: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    budget = relationship("Budget", back_populates="income_sources")


class Envelope(Base):
    __tablename__ = "envelopes"

    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="envelopes_unique_name_per_budget"),
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="envelopes_name_not_empty"),
        CheckConstraint(
            "target_amount IS NULL OR target_amount >= 0", name="envelopes_target_amount_positive"
        ),
        Index("idx_envelopes_budget_id", "budget_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    envelope_type: Mapped[EnvelopeType] = mapped_column(
        _enum_column(EnvelopeType, "envelope_type"), nullable=False, default=EnvelopeType.REGULAR
    )
    current_balance: Mapped[Money] = mapped_column(MoneyType, nullable=False, default=Money.zero)
    target_amount: Mapped[Optional[Money]] = mapped_column(MoneyType)

    # Debt tracking; zero for non-debt envelopes
    opening_debt_balance: Mapped[Money] = mapped_column(MoneyType, nullable=False, default=Money.zero)
    debt_balance: Mapped[Money] = mapped_column(MoneyType, nullable=False, default=Money.zero)
    minimum_payment: Mapped[Optional[Money]] = mapped_column(MoneyType)
    due_date: Mapped[Optional[date]] = mapped_column(Date)

    notify_on_low_balance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    low_balance_threshold: Mapped[Optional[Money]] = mapped_column(MoneyType)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    budget = relationship("Budget", back_populates="envelopes")
    category = relationship("Category")

    @property
    def is_debt(self) -> bool:
        return self.envelope_type == EnvelopeType.DEBT

    @property
    def is_overdrawn(self) -> bool:
        return self.current_balance.is_negative()

    def __repr__(self) -> str:
        return f"Envelope(id={self.id!r}, name={self.name!r}, balance={self.current_balance})"


class Transaction(Base):
    """
    Append-only ledger entry.

    Soft delete flips is_deleted and records who/when; the row is kept so
    the audit history and replay both stay intact.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="transactions_amount_positive"),
        Index("idx_transactions_budget_date", "budget_id", "transaction_date"),
        Index("idx_transactions_from_envelope", "from_envelope_id"),
        Index("idx_transactions_to_envelope", "to_envelope_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum_column(TransactionType, "transaction_type"), nullable=False
    )
    amount: Mapped[Money] = mapped_column(MoneyType, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    from_envelope_id: Mapped[Optional[str]] = mapped_column(ForeignKey("envelopes.id"))
    to_envelope_id: Mapped[Optional[str]] = mapped_column(ForeignKey("envelopes.id"))
    payee_id: Mapped[Optional[str]] = mapped_column(ForeignKey("payees.id"))
    income_source_id: Mapped[Optional[str]] = mapped_column(ForeignKey("income_sources.id"))
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id"))

    is_cleared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def clearing_state(self) -> str:
        """Position on the Pending -> Cleared -> Reconciled axis."""
        if self.is_reconciled:
            return "reconciled"
        if self.is_cleared:
            return "cleared"
        return "pending"

    @property
    def envelope_ids(self) -> list[str]:
        """Envelopes touched by this transaction."""
        return [e for e in (self.from_envelope_id, self.to_envelope_id) if e is not None]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for audit payloads and CLI output."""
        return {
            "id": self.id,
            "budget_id": self.budget_id,
            "transaction_type": self.transaction_type.value,
            "amount": self.amount,
            "description": self.description,
            "transaction_date": self.transaction_date,
            "from_envelope_id": self.from_envelope_id,
            "to_envelope_id": self.to_envelope_id,
            "payee_id": self.payee_id,
            "income_source_id": self.income_source_id,
            "category_id": self.category_id,
            "is_cleared": self.is_cleared,
            "is_reconciled": self.is_reconciled,
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at,
            "deleted_by": self.deleted_by,
        }

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.id!r}, type={self.transaction_type.value}, "
            f"amount={self.amount}, deleted={self.is_deleted})"
        )


class TransactionEvent(Base):
    """Audit trail entry. transaction_id is not a foreign key so purge keeps history."""

    __tablename__ = "transaction_events"

    __table_args__ = (Index("idx_transaction_events_budget", "budget_id", "performed_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    budget_id: Mapped[str] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(36))
    event_type: Mapped[EventType] = mapped_column(_enum_column(EventType, "event_type"), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    changes: Mapped[Optional[dict]] = mapped_column(JSON)
    performed_by: Mapped[Optional[str]] = mapped_column(String(36))
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
