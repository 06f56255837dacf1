#!/usr/bin/env python3
"""
Integration tests for CLI Main Entry Point

Tests end-to-end CLI command execution with real command invocation.
Focuses on meaningful workflows, not trivial code coverage.
"""

import json

import pytest
from click.testing import CliRunner

from envelopes.cli.main import main


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Make each invocation load configuration from the test environment."""
    monkeypatch.setattr("envelopes.core.config._config", None)


@pytest.mark.integration
class TestCLIMainIntegration:
    """Test main CLI entry point with real command execution."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    def test_help_command_lists_all_subcommands(self):
        """Test envelopes --help shows all registered subcommands."""
        result = self.runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "Envelope Ledger" in result.output

        expected_commands = [
            "budget",
            "envelope",
            "payee",
            "income-source",
            "category",
            "tx",
            "reconcile",
            "purge",
            "init-db",
        ]
        for command in expected_commands:
            assert command in result.output

    def test_version_command_shows_version_info(self):
        """Test envelopes version displays version and author."""
        result = self.runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert "Envelope Ledger v0.1.0" in result.output
        assert "Author:" in result.output

    def test_config_command_shows_configuration(self):
        """Test envelopes config displays current configuration."""
        result = self.runner.invoke(main, ["config"])

        assert result.exit_code == 0
        assert "Current Configuration:" in result.output
        assert "Environment: test" in result.output
        assert "Database URL: sqlite:///:memory:" in result.output
        assert "Purge Retention (days): 30" in result.output
        assert "Log Level:" in result.output

    def test_config_json_redacts_password(self, monkeypatch):
        """Test that the JSON view never prints database credentials."""
        monkeypatch.setenv("ENVELOPES_DATABASE_URL", "postgresql://ledger:hunter2@db/envelopes")

        result = self.runner.invoke(main, ["config", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["database"]["url"] == "postgresql://ledger:***@db/envelopes"
        assert "hunter2" not in result.output

    def test_invalid_command_shows_error(self):
        """Test that invalid command shows helpful error."""
        result = self.runner.invoke(main, ["invalid-command"])

        assert result.exit_code != 0
        assert "No such command" in result.output

    def test_verbose_flag_shows_environment(self):
        """Test --verbose prints the environment before running the command."""
        result = self.runner.invoke(main, ["--verbose", "version"])

        assert result.exit_code == 0
        assert "Environment: test" in result.output
        assert "Database:" in result.output

    def test_config_env_override_changes_environment(self):
        """Test --config-env flag overrides environment."""
        result = self.runner.invoke(main, ["--config-env", "test", "config"])

        assert result.exit_code == 0
        assert "Environment: test" in result.output

    def test_subcommand_help_accessible(self):
        """Test that subcommand help is accessible."""
        for subcommand in ["budget", "envelope", "tx", "reconcile", "purge"]:
            result = self.runner.invoke(main, [subcommand, "--help"])
            assert result.exit_code == 0
            assert "Usage:" in result.output
