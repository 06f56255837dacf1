#!/usr/bin/env python3
"""
Main CLI Entry Point for the Envelope Ledger

Provides a unified command-line interface for budgets, envelopes and
transactions.
"""

import logging
import os

import click

from ..core.config import get_config, reload_config
from ..core.json_utils import format_json


@click.group()
@click.option(
    "--config-env",
    type=click.Choice(["development", "test", "production"]),
    help="Override environment configuration",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_env: str | None, verbose: bool, debug: bool) -> None:
    """
    Envelope Ledger - Virtual Envelope Budgeting

    Moves money between a budget's available pool and its envelopes with
    atomic, auditable transactions.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)

    if config_env:
        os.environ["ENVELOPES_ENV"] = config_env

    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("envelopes").setLevel(logging.DEBUG)

    # Store global options
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["config"] = reload_config() if config_env else get_config()

    if verbose:
        config_obj = ctx.obj["config"]
        click.echo(f"Environment: {config_obj.environment.value}")
        click.echo(f"Database: {config_obj.to_dict()['database']['url']}")

    if debug:
        click.echo("Debug logging enabled")


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from envelopes import __author__, __version__

    click.echo(f"Envelope Ledger v{__version__}")
    click.echo(f"Author: {__author__}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def config(ctx: click.Context, as_json: bool) -> None:
    """Show current configuration (database password redacted)."""
    config_obj = ctx.obj["config"]

    if as_json:
        click.echo(format_json(config_obj.to_dict()))
        return

    settings = config_obj.to_dict()
    click.echo("Current Configuration:")
    click.echo(f"  Environment: {config_obj.environment.value}")
    click.echo(f"  Database URL: {settings['database']['url']}")
    click.echo(f"  SQL Echo: {config_obj.database.echo}")
    click.echo(f"  Future Date Grace (days): {config_obj.ledger.future_date_grace_days}")
    click.echo(f"  Max Description Length: {config_obj.ledger.max_description_length}")
    click.echo(f"  Purge Retention (days): {config_obj.ledger.purge_retention_days}")
    click.echo(f"  Debug Mode: {config_obj.debug}")
    click.echo(f"  Log Level: {config_obj.log_level}")


# Import ledger commands
from .ledger import (  # noqa: E402
    budget,
    category,
    envelope,
    income_source,
    init_db,
    payee,
    purge,
    reconcile,
    tx,
)

# Register ledger commands
main.add_command(init_db)
main.add_command(budget)
main.add_command(envelope)
main.add_command(payee)
main.add_command(income_source)
main.add_command(category)
main.add_command(tx)
main.add_command(reconcile)
main.add_command(purge)


if __name__ == "__main__":
    main()
