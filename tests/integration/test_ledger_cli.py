#!/usr/bin/env python3
"""
Integration tests for the ledger CLI commands.

Runs real command sequences against a SQLite file so every invocation
opens its own engine, the way separate shell commands would.
"""

import json

import pytest
from click.testing import CliRunner

from envelopes.cli.main import main


@pytest.fixture
def cli(monkeypatch, tmp_path):
    """Invoke the CLI against a fresh database file; returns a runner function."""
    monkeypatch.setenv("ENVELOPES_DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    monkeypatch.setenv("ENVELOPES_USER_ID", "user-1")
    monkeypatch.setattr("envelopes.core.config._config", None)
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(main, list(args))

    return _invoke


def _created_id(result) -> str:
    """Id printed by a create/apply command ("Created ...: <id>")."""
    line = next(line for line in result.output.splitlines() if line.startswith(("Created", "Applied")))
    return line.rsplit(": ", 1)[1]


@pytest.fixture
def household(cli):
    """Budget with $1,000 income and two envelopes; returns ids."""
    budget_id = _created_id(cli("budget", "create", "Household"))
    groceries = _created_id(cli("envelope", "create", budget_id, "Groceries"))
    rent = _created_id(cli("envelope", "create", budget_id, "Rent"))
    result = cli("tx", "apply", budget_id, "income", "1000")
    assert result.exit_code == 0, result.output
    return {"budget": budget_id, "groceries": groceries, "rent": rent}


@pytest.mark.integration
class TestLedgerCLI:
    """Test ledger commands end to end."""

    def test_init_db(self, cli):
        """Test that the schema can be created on demand."""
        result = cli("init-db")

        assert result.exit_code == 0
        assert "Database initialized" in result.output

    def test_budget_create_requires_user(self, cli, monkeypatch):
        """Test that a budget owner is mandatory."""
        monkeypatch.delenv("ENVELOPES_USER_ID")

        result = cli("budget", "create", "Household")

        assert result.exit_code != 0
        assert "--user-id" in result.output

    def test_allocate_and_show(self, cli, household):
        """Test allocation output and the budget summary."""
        budget_id = household["budget"]
        result = cli("tx", "apply", budget_id, "allocation", "$400.00", "--to", household["groceries"])

        assert result.exit_code == 0, result.output
        assert "Applied allocation of $400.00" in result.output
        assert "Available: $600.00" in result.output

        show = cli("budget", "show", budget_id, "--json")
        data = json.loads(show.output)
        assert data["available_amount"] == "600.00"
        assert data["allocated_amount"] == "400.00"
        balances = {e["name"]: e["current_balance"] for e in data["envelopes"]}
        assert balances == {"Groceries": "400.00", "Rent": "0.00"}

    def test_insufficient_funds_reported(self, cli, household):
        """Test that a rejected allocation exits with the ledger's message."""
        result = cli("tx", "apply", household["budget"], "allocation", "1000.01", "--to", household["rent"])

        assert result.exit_code == 1
        assert "Insufficient funds" in result.output

        show = json.loads(cli("budget", "show", household["budget"], "--json").output)
        assert show["available_amount"] == "1000.00"

    def test_invalid_amount_rejected_by_click(self, cli, household):
        """Test amount parsing errors are usage errors."""
        result = cli("tx", "apply", household["budget"], "income", "12.345")

        assert result.exit_code == 2
        assert "Invalid value" in result.output

    def test_overdrawn_envelope_listed(self, cli, household):
        """Test that overspending shows up in the negative listing."""
        budget_id, groceries = household["budget"], household["groceries"]
        cli("tx", "apply", budget_id, "allocation", "50", "--to", groceries)
        cli("tx", "apply", budget_id, "expense", "80", "--from", groceries, "--description", "Big shop")

        result = cli("envelope", "list", budget_id, "--negative")

        assert result.exit_code == 0
        assert "Groceries" in result.output
        assert "OVERDRAWN" in result.output
        assert "Rent" not in result.output

    def test_delete_restore_and_events(self, cli, household):
        """Test the soft delete round trip and the audit trail."""
        budget_id = household["budget"]
        applied = cli("tx", "apply", budget_id, "allocation", "250", "--to", household["rent"])
        transaction_id = _created_id(applied)

        assert cli("tx", "delete", transaction_id).exit_code == 0
        assert "deleted" in cli("tx", "list", budget_id, "--include-deleted").output
        assert cli("tx", "delete", transaction_id).exit_code == 1
        assert cli("tx", "restore", transaction_id).exit_code == 0

        events = cli("tx", "events", budget_id, "--transaction", transaction_id)
        assert events.exit_code == 0
        for event_type in ("created", "deleted", "restored"):
            assert event_type in events.output
        assert "by user-1" in events.output

    def test_clear_then_update_rejected(self, cli, household):
        """Test that cleared transactions are immutable from the CLI."""
        budget_id = household["budget"]
        listed = json.loads(cli("tx", "list", budget_id, "--json").output)
        income_id = listed[0]["id"]

        assert cli("tx", "clear", income_id).exit_code == 0
        result = cli("tx", "update", income_id, "--amount", "900")

        assert result.exit_code == 1
        assert "cleared and cannot be modified" in result.output
        assert cli("tx", "mark-reconciled", income_id).exit_code == 0

    def test_update_changes_balance(self, cli, household):
        """Test editing an allocation amount."""
        budget_id = household["budget"]
        applied = cli("tx", "apply", budget_id, "allocation", "300", "--to", household["rent"])
        transaction_id = _created_id(applied)

        result = cli("tx", "update", transaction_id, "--amount", "100", "--description", "Half month")

        assert result.exit_code == 0, result.output
        show = json.loads(cli("budget", "show", budget_id, "--json").output)
        assert show["available_amount"] == "900.00"

    def test_update_without_changes_is_usage_error(self, cli, household):
        """Test that an empty update is refused before touching the ledger."""
        listed = json.loads(cli("tx", "list", household["budget"], "--json").output)

        result = cli("tx", "update", listed[0]["id"])

        assert result.exit_code == 2
        assert "Nothing to update" in result.output

    def test_reconcile_clean_budget(self, cli, household):
        """Test reconcile exits zero without drift."""
        result = cli("reconcile", household["budget"], "--json")

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert report["drift"] is False
        assert report["invariant_holds"] is True

    def test_purge_with_zero_retention(self, cli, household):
        """Test purging a freshly deleted transaction with no retention window."""
        budget_id = household["budget"]
        applied = cli("tx", "apply", budget_id, "allocation", "10", "--to", household["rent"])
        transaction_id = _created_id(applied)
        cli("tx", "delete", transaction_id)

        result = cli("purge", budget_id, "--retention-days", "0")

        assert result.exit_code == 0
        assert "Purged" in result.output

    def test_debt_envelope_and_payment(self, cli, household):
        """Test creating a debt envelope and paying it down."""
        budget_id = household["budget"]
        card = _created_id(
            cli("envelope", "create", budget_id, "Visa", "--type", "debt", "--debt-balance", "1,500.00")
        )
        cli("tx", "apply", budget_id, "allocation", "200", "--to", card)

        result = cli("tx", "apply", budget_id, "debt_payment", "150", "--from", card)

        assert result.exit_code == 0, result.output
        listing = cli("envelope", "list", budget_id).output
        assert "debt $1350.00" in listing

    def test_unknown_budget(self, cli):
        """Test that missing budgets are reported, not crashed on."""
        result = cli("budget", "show", "no-such-budget")

        assert result.exit_code == 1
        assert "Budget not found" in result.output

    def test_import_json_file(self, cli, household, tmp_path):
        """Test importing a list of transactions and re-running the same file."""
        budget_id = household["budget"]
        payload = tmp_path / "transactions.json"
        payload.write_text(
            json.dumps(
                [
                    {"id": "import-0001", "transaction_type": "income", "amount": "50.00"},
                    {
                        "id": "import-0002",
                        "transaction_type": "allocation",
                        "amount": "25.00",
                        "transaction_date": "2025-03-14",
                        "to_envelope_id": household["groceries"],
                    },
                ]
            )
        )

        result = cli("tx", "import", budget_id, str(payload))
        rerun = cli("tx", "import", budget_id, str(payload))

        assert result.exit_code == 0, result.output
        assert "Imported 2 transactions" in result.output
        assert "import-0002" in result.output
        assert rerun.exit_code == 0, rerun.output
        data = json.loads(cli("budget", "show", budget_id, "--json").output)
        assert data["available_amount"] == "1025.00"
        assert data["allocated_amount"] == "25.00"

    def test_import_invalid_json(self, cli, household, tmp_path):
        """Test that an unreadable file is reported without applying anything."""
        payload = tmp_path / "broken.json"
        payload.write_text("[{not json")

        result = cli("tx", "import", household["budget"], str(payload))

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_import_stops_at_bad_entry(self, cli, household, tmp_path):
        """Test that a malformed entry is named and earlier entries stay applied."""
        budget_id = household["budget"]
        payload = tmp_path / "partial.json"
        payload.write_text(
            json.dumps(
                [
                    {"transaction_type": "income", "amount": "10.00"},
                    {"transaction_type": "income"},
                ]
            )
        )

        result = cli("tx", "import", budget_id, str(payload))

        assert result.exit_code == 1
        assert "Entry 2: Transaction payload is missing amount (1 applied)" in result.output
        data = json.loads(cli("budget", "show", budget_id, "--json").output)
        assert data["available_amount"] == "1010.00"
