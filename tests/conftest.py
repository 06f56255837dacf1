"""
Pytest Configuration and Shared Fixtures

Provides common test fixtures and configuration for the entire test suite.
"""

import pytest

from envelopes.core.config import DatabaseConfig, LedgerSettings
from envelopes.ledger.db import create_ledger_engine, create_session_factory, drop_schema, init_schema
from envelopes.ledger.models import Budget, Envelope, EnvelopeType
from envelopes.ledger.requests import TransactionInput
from envelopes.ledger.service import Ledger
from envelopes.ledger.store import LedgerStore
from tests.fixtures.ledger_data import TODAY


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    # Ensure tests never touch a real database
    monkeypatch.setenv("ENVELOPES_ENV", "test")
    monkeypatch.setenv("ENVELOPES_DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.delenv("ENVELOPES_USER_ID", raising=False)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    """Default ledger settings."""
    return LedgerSettings()


@pytest.fixture
def engine():
    """In-memory SQLite engine with the ledger schema."""
    engine = create_ledger_engine(DatabaseConfig(url="sqlite:///:memory:"))
    init_schema(engine)
    yield engine
    drop_schema(engine)
    engine.dispose()


@pytest.fixture
def store(engine) -> LedgerStore:
    """Ledger store over the in-memory engine."""
    return LedgerStore(create_session_factory(engine))


@pytest.fixture
def ledger(store, ledger_settings) -> Ledger:
    """Ledger service over the in-memory store."""
    return Ledger(store, ledger_settings)


@pytest.fixture
def budget(ledger) -> Budget:
    """Empty budget owned by a test user."""
    return ledger.create_budget("user-1", "Household")


@pytest.fixture
def groceries(ledger, budget) -> Envelope:
    """Regular envelope 'Groceries'."""
    return ledger.create_envelope(budget.id, "Groceries")


@pytest.fixture
def rent(ledger, budget) -> Envelope:
    """Regular envelope 'Rent'."""
    return ledger.create_envelope(budget.id, "Rent")


@pytest.fixture
def credit_card(ledger, budget) -> Envelope:
    """Debt envelope with $1,200.00 owed."""
    return ledger.create_envelope(
        budget.id, "Credit Card", envelope_type=EnvelopeType.DEBT, debt_balance="1200.00"
    )


@pytest.fixture
def apply(ledger, budget):
    """
    Apply a transaction to the test budget.

    Usage: apply("income", "1000.00"), apply("allocation", "400", to_envelope_id=env.id)
    """

    def _apply(transaction_type, amount, **fields):
        fields.setdefault("transaction_date", TODAY)
        request = TransactionInput(transaction_type=transaction_type, amount=amount, **fields)
        return ledger.apply_transaction(budget.id, request, today=TODAY)

    return _apply


# Test markers for categorizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for complete workflows"
    )
    config.addinivalue_line(
        "markers", "currency: Tests for currency handling and precision"
    )
    config.addinivalue_line(
        "markers", "ledger: Tests for ledger balance rules and lifecycle"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time to run"
    )
