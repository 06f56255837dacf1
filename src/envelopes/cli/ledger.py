#!/usr/bin/env python3
"""
Ledger CLI - Budgets, Envelopes and Transactions

Command-line access to every ledger operation. Ledger errors are reported
as click errors (exit code 1) with the ledger's own message.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, TextIO

import click

from ..core.json_utils import format_json
from ..core.money import Money
from ..ledger.errors import LedgerError
from ..ledger.models import Envelope, EnvelopeType, Transaction, TransactionType
from ..ledger.requests import TransactionFilters, TransactionInput, TransactionUpdate
from ..ledger.service import Ledger

DATE = click.DateTime(formats=["%Y-%m-%d"])


def get_ledger(ctx: click.Context) -> Ledger:
    """Ledger for the configured database, created once per invocation."""
    ctx.ensure_object(dict)
    if "ledger" not in ctx.obj:
        ctx.obj["ledger"] = Ledger.from_config(ctx.obj["config"], create_schema=True)
    return ctx.obj["ledger"]


@contextmanager
def ledger_errors() -> Iterator[None]:
    """Report ledger failures as click errors."""
    try:
        yield
    except LedgerError as e:
        raise click.ClickException(str(e)) from e


def parse_amount(ctx: click.Context, param: click.Parameter, value: str | None) -> Money | None:
    """Click callback accepting amounts like 12.34, $1,234.56."""
    if value is None:
        return None
    try:
        return Money.from_dollars(value)
    except (ValueError, TypeError) as e:
        raise click.BadParameter(str(e)) from e


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value else None


def _envelope_line(envelope: Envelope) -> str:
    line = f"  {envelope.name:<24} {str(envelope.current_balance):>12}  [{envelope.envelope_type.value}]"
    if envelope.is_debt:
        line += f"  debt {envelope.debt_balance}"
    if envelope.is_overdrawn:
        line += "  OVERDRAWN"
    if not envelope.is_active:
        line += "  (inactive)"
    return f"{line}  {envelope.id}"


def _transaction_line(transaction: Transaction) -> str:
    flags = transaction.clearing_state
    if transaction.is_deleted:
        flags += ", deleted"
    description = f"  {transaction.description}" if transaction.description else ""
    return (
        f"  {transaction.transaction_date}  {transaction.transaction_type.value:<12} "
        f"{str(transaction.amount):>12}  ({flags})  {transaction.id}{description}"
    )


@click.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the ledger tables in the configured database."""
    get_ledger(ctx)
    click.echo("Database initialized")


# Budgets


@click.group()
def budget() -> None:
    """Budget commands."""
    pass


@budget.command("create")
@click.argument("name")
@click.option("--user-id", envvar="ENVELOPES_USER_ID", required=True, help="Owner of the budget")
@click.option("--description", help="Budget description")
@click.pass_context
def budget_create(ctx: click.Context, name: str, user_id: str, description: str | None) -> None:
    """
    Create a budget with nothing available.

    Example:
      envelopes budget create "Household" --user-id me
    """
    with ledger_errors():
        created = get_ledger(ctx).create_budget(user_id, name, description)
    click.echo(f"Created budget {created.name}: {created.id}")


@budget.command("show")
@click.argument("budget_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def budget_show(ctx: click.Context, budget_id: str, as_json: bool) -> None:
    """Show available amount and envelope balances."""
    ledger = get_ledger(ctx)
    with ledger_errors():
        found = ledger.get_budget(budget_id)
        envelopes = ledger.list_envelopes(budget_id, include_inactive=True)
        low = ledger.low_balance_envelopes(budget_id)

    allocated = Money.zero()
    for envelope in envelopes:
        allocated = allocated + envelope.current_balance

    if as_json:
        data: dict[str, Any] = {
            "id": found.id,
            "name": found.name,
            "available_amount": found.available_amount,
            "allocated_amount": allocated,
            "envelopes": [
                {
                    "id": e.id,
                    "name": e.name,
                    "envelope_type": e.envelope_type,
                    "current_balance": e.current_balance,
                    "debt_balance": e.debt_balance,
                    "is_active": e.is_active,
                }
                for e in envelopes
            ],
            "low_balance_envelope_ids": [e.id for e in low],
        }
        click.echo(format_json(data))
        return

    click.echo(f"Budget: {found.name} ({found.id})")
    click.echo(f"  Available: {found.available_amount}")
    click.echo(f"  In envelopes: {allocated}")
    click.echo("=" * 60)
    for envelope in envelopes:
        click.echo(_envelope_line(envelope))
    if low:
        click.echo(f"\nLow balance: {', '.join(e.name for e in low)}")


# Envelopes


@click.group()
def envelope() -> None:
    """Envelope commands."""
    pass


@envelope.command("create")
@click.argument("budget_id")
@click.argument("name")
@click.option(
    "--type",
    "envelope_type",
    type=click.Choice([t.value for t in EnvelopeType]),
    default=EnvelopeType.REGULAR.value,
    help="Envelope type",
)
@click.option("--category-id", help="Category for reporting")
@click.option("--description", help="Envelope description")
@click.option("--target", callback=parse_amount, help="Savings target amount")
@click.option("--debt-balance", callback=parse_amount, help="Opening debt owed (debt envelopes)")
@click.option("--minimum-payment", callback=parse_amount, help="Minimum payment (debt envelopes)")
@click.option("--due-date", type=DATE, help="Payment due date (debt envelopes)")
@click.option("--low-balance-threshold", callback=parse_amount, help="Alert at or below this balance")
@click.pass_context
def envelope_create(
    ctx: click.Context,
    budget_id: str,
    name: str,
    envelope_type: str,
    category_id: str | None,
    description: str | None,
    target: Money | None,
    debt_balance: Money | None,
    minimum_payment: Money | None,
    due_date: datetime | None,
    low_balance_threshold: Money | None,
) -> None:
    """
    Create an envelope with a zero balance.

    Examples:
      envelopes envelope create BUDGET_ID Groceries
      envelopes envelope create BUDGET_ID "Credit Card" --type debt --debt-balance 1200
    """
    with ledger_errors():
        created = get_ledger(ctx).create_envelope(
            budget_id,
            name,
            envelope_type=envelope_type,
            category_id=category_id,
            description=description,
            target_amount=target,
            debt_balance=debt_balance,
            minimum_payment=minimum_payment,
            due_date=_as_date(due_date),
            notify_on_low_balance=low_balance_threshold is not None,
            low_balance_threshold=low_balance_threshold,
        )
    click.echo(f"Created envelope {created.name}: {created.id}")


@envelope.command("list")
@click.argument("budget_id")
@click.option("--all", "include_inactive", is_flag=True, help="Include inactive envelopes")
@click.option("--negative", is_flag=True, help="Only overdrawn envelopes")
@click.pass_context
def envelope_list(ctx: click.Context, budget_id: str, include_inactive: bool, negative: bool) -> None:
    """List envelopes with their balances."""
    ledger = get_ledger(ctx)
    with ledger_errors():
        if negative:
            envelopes = ledger.negative_balance_envelopes(budget_id)
        else:
            envelopes = ledger.list_envelopes(budget_id, include_inactive=include_inactive)

    if not envelopes:
        click.echo("No envelopes found.")
        return

    for item in envelopes:
        click.echo(_envelope_line(item))
    click.echo(f"\nTotal: {len(envelopes)} envelopes")


@envelope.command("deactivate")
@click.argument("envelope_id")
@click.pass_context
def envelope_deactivate(ctx: click.Context, envelope_id: str) -> None:
    """Stop an envelope from accepting new transactions."""
    with ledger_errors():
        updated = get_ledger(ctx).deactivate_envelope(envelope_id)
    click.echo(f"Deactivated envelope {updated.name}")


@envelope.command("delete")
@click.argument("envelope_id")
@click.pass_context
def envelope_delete(ctx: click.Context, envelope_id: str) -> None:
    """Delete an empty envelope with no transaction history."""
    with ledger_errors():
        get_ledger(ctx).delete_envelope(envelope_id)
    click.echo(f"Deleted envelope {envelope_id}")


# Descriptive entities


@click.group()
def payee() -> None:
    """Payee commands."""
    pass


@payee.command("create")
@click.argument("budget_id")
@click.argument("name")
@click.option("--description", help="Payee description")
@click.pass_context
def payee_create(ctx: click.Context, budget_id: str, name: str, description: str | None) -> None:
    """Create a payee for expenses and debt payments."""
    with ledger_errors():
        created = get_ledger(ctx).create_payee(budget_id, name, description)
    click.echo(f"Created payee {created.name}: {created.id}")


@click.group("income-source")
def income_source() -> None:
    """Income source commands."""
    pass


@income_source.command("create")
@click.argument("budget_id")
@click.argument("name")
@click.option("--description", help="Income source description")
@click.option("--expected-amount", callback=parse_amount, help="Expected amount per payment")
@click.option("--frequency-days", type=int, help="Days between payments")
@click.pass_context
def income_source_create(
    ctx: click.Context,
    budget_id: str,
    name: str,
    description: str | None,
    expected_amount: Money | None,
    frequency_days: int | None,
) -> None:
    """Create an income source."""
    with ledger_errors():
        created = get_ledger(ctx).create_income_source(
            budget_id,
            name,
            description=description,
            expected_amount=expected_amount,
            frequency_days=frequency_days,
        )
    click.echo(f"Created income source {created.name}: {created.id}")


@click.group()
def category() -> None:
    """Category commands."""
    pass


@category.command("create")
@click.argument("budget_id")
@click.argument("name")
@click.option("--description", help="Category description")
@click.pass_context
def category_create(ctx: click.Context, budget_id: str, name: str, description: str | None) -> None:
    """Create a reporting category."""
    with ledger_errors():
        created = get_ledger(ctx).create_category(budget_id, name, description)
    click.echo(f"Created category {created.name}: {created.id}")


# Transactions


@click.group()
def tx() -> None:
    """Transaction commands."""
    pass


@tx.command("apply")
@click.argument("budget_id")
@click.argument("transaction_type", type=click.Choice([t.value for t in TransactionType]))
@click.argument("amount", callback=parse_amount)
@click.option("--date", "transaction_date", type=DATE, help="Transaction date (YYYY-MM-DD, default: today)")
@click.option("--from", "from_envelope_id", help="Source envelope id")
@click.option("--to", "to_envelope_id", help="Destination envelope id")
@click.option("--payee", "payee_id", help="Payee id")
@click.option("--income-source", "income_source_id", help="Income source id")
@click.option("--category", "category_id", help="Category id")
@click.option("--description", help="Transaction description")
@click.option(
    "--id", "transaction_id", help="Client-supplied id; retries with the same id are not re-applied"
)
@click.option("--cleared", is_flag=True, help="Mark as cleared with the bank")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_apply(
    ctx: click.Context,
    budget_id: str,
    transaction_type: str,
    amount: Money,
    transaction_date: datetime | None,
    from_envelope_id: str | None,
    to_envelope_id: str | None,
    payee_id: str | None,
    income_source_id: str | None,
    category_id: str | None,
    description: str | None,
    transaction_id: str | None,
    cleared: bool,
    actor: str | None,
) -> None:
    """
    Apply a transaction to a budget.

    Examples:
      envelopes tx apply BUDGET_ID income 1000
      envelopes tx apply BUDGET_ID allocation 400 --to ENVELOPE_ID
      envelopes tx apply BUDGET_ID expense 45.99 --from ENVELOPE_ID --payee PAYEE_ID
    """
    request = TransactionInput(
        transaction_type=transaction_type,
        amount=amount,
        transaction_date=_as_date(transaction_date),
        id=transaction_id,
        description=description,
        from_envelope_id=from_envelope_id,
        to_envelope_id=to_envelope_id,
        payee_id=payee_id,
        income_source_id=income_source_id,
        category_id=category_id,
        is_cleared=cleared,
    )

    ledger = get_ledger(ctx)
    with ledger_errors():
        applied = ledger.apply_transaction(budget_id, request, actor_id=actor)
        found = ledger.get_budget(budget_id)

    click.echo(f"Applied {applied.transaction_type.value} of {applied.amount}: {applied.id}")
    click.echo(f"Available: {found.available_amount}")


@tx.command("import")
@click.argument("budget_id")
@click.argument("payload", type=click.File("r"))
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_import(ctx: click.Context, budget_id: str, payload: TextIO, actor: str | None) -> None:
    """
    Apply transactions from a JSON file (one object or a list of objects).

    Each entry commits on its own. Give entries an "id" so that re-running the
    file after a failure skips the ones already applied.

    Example:
      envelopes tx import BUDGET_ID transactions.json
    """
    try:
        data = json.load(payload)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON: {e}") from e

    entries = data if isinstance(data, list) else [data]
    ledger = get_ledger(ctx)

    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise click.ClickException(f"Entry {index}: expected a JSON object")
        try:
            applied = ledger.apply_transaction(budget_id, TransactionInput.from_dict(entry), actor_id=actor)
        except LedgerError as e:
            raise click.ClickException(f"Entry {index}: {e} ({index - 1} applied)") from e
        click.echo(_transaction_line(applied))

    click.echo(f"\nImported {len(entries)} transactions")


@tx.command("delete")
@click.argument("transaction_id")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_delete(ctx: click.Context, transaction_id: str, actor: str | None) -> None:
    """Soft-delete a transaction, reversing its balance effect."""
    with ledger_errors():
        deleted = get_ledger(ctx).soft_delete_transaction(transaction_id, actor_id=actor)
    click.echo(f"Deleted transaction {deleted.id}")


@tx.command("restore")
@click.argument("transaction_id")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_restore(ctx: click.Context, transaction_id: str, actor: str | None) -> None:
    """Restore a soft-deleted transaction, re-applying its balance effect."""
    with ledger_errors():
        restored = get_ledger(ctx).restore_transaction(transaction_id, actor_id=actor)
    click.echo(f"Restored transaction {restored.id}")


@tx.command("update")
@click.argument("transaction_id")
@click.option("--amount", callback=parse_amount, help="New amount")
@click.option("--date", "transaction_date", type=DATE, help="New date (YYYY-MM-DD)")
@click.option("--description", help="New description")
@click.option("--from", "from_envelope_id", help="New source envelope id")
@click.option("--to", "to_envelope_id", help="New destination envelope id")
@click.option("--payee", "payee_id", help="New payee id")
@click.option("--category", "category_id", help="New category id")
@click.option("--clear", "clear_fields", multiple=True, help="Field to unset (repeatable)")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_update(
    ctx: click.Context,
    transaction_id: str,
    amount: Money | None,
    transaction_date: datetime | None,
    description: str | None,
    from_envelope_id: str | None,
    to_envelope_id: str | None,
    payee_id: str | None,
    category_id: str | None,
    clear_fields: tuple[str, ...],
    actor: str | None,
) -> None:
    """Edit a pending transaction."""
    changes = TransactionUpdate(
        amount=amount,
        transaction_date=_as_date(transaction_date),
        description=description,
        from_envelope_id=from_envelope_id,
        to_envelope_id=to_envelope_id,
        payee_id=payee_id,
        category_id=category_id,
        clear=frozenset(clear_fields),
    )
    if changes.is_empty():
        raise click.UsageError("Nothing to update")

    with ledger_errors():
        updated = get_ledger(ctx).update_transaction(transaction_id, changes, actor_id=actor)
    click.echo(f"Updated transaction {updated.id}")
    click.echo(_transaction_line(updated))


@tx.command("clear")
@click.argument("transaction_id")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_clear(ctx: click.Context, transaction_id: str, actor: str | None) -> None:
    """Mark a pending transaction as cleared."""
    with ledger_errors():
        get_ledger(ctx).mark_cleared(transaction_id, actor_id=actor)
    click.echo(f"Cleared transaction {transaction_id}")


@tx.command("mark-reconciled")
@click.argument("transaction_id")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the change")
@click.pass_context
def tx_mark_reconciled(ctx: click.Context, transaction_id: str, actor: str | None) -> None:
    """Mark a cleared transaction as reconciled."""
    with ledger_errors():
        get_ledger(ctx).mark_reconciled(transaction_id, actor_id=actor)
    click.echo(f"Reconciled transaction {transaction_id}")


@tx.command("list")
@click.argument("budget_id")
@click.option("--type", "transaction_type", type=click.Choice([t.value for t in TransactionType]))
@click.option("--envelope", "envelope_id", help="Only transactions touching this envelope")
@click.option("--start", "start_date", type=DATE, help="Earliest date (YYYY-MM-DD)")
@click.option("--end", "end_date", type=DATE, help="Latest date (YYYY-MM-DD)")
@click.option("--include-deleted", is_flag=True, help="Include soft-deleted transactions")
@click.option("--limit", type=int, help="Maximum number of transactions")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tx_list(
    ctx: click.Context,
    budget_id: str,
    transaction_type: str | None,
    envelope_id: str | None,
    start_date: datetime | None,
    end_date: datetime | None,
    include_deleted: bool,
    limit: int | None,
    as_json: bool,
) -> None:
    """List transactions, newest first."""
    filters = TransactionFilters(
        start_date=_as_date(start_date),
        end_date=_as_date(end_date),
        transaction_type=TransactionType(transaction_type) if transaction_type else None,
        envelope_id=envelope_id,
        include_deleted=include_deleted,
    )
    with ledger_errors():
        transactions = get_ledger(ctx).list_transactions(budget_id, filters, limit=limit)

    if as_json:
        click.echo(format_json([t.to_dict() for t in transactions]))
        return

    if not transactions:
        click.echo("No transactions found.")
        return

    for transaction in transactions:
        click.echo(_transaction_line(transaction))
    click.echo(f"\nTotal: {len(transactions)} transactions")


@tx.command("events")
@click.argument("budget_id")
@click.option("--transaction", "transaction_id", help="Only events for this transaction")
@click.pass_context
def tx_events(ctx: click.Context, budget_id: str, transaction_id: str | None) -> None:
    """Show the audit trail."""
    with ledger_errors():
        events = get_ledger(ctx).list_events(budget_id, transaction_id)

    for event in events:
        actor = f" by {event.performed_by}" if event.performed_by else ""
        click.echo(
            f"  {event.performed_at:%Y-%m-%d %H:%M:%S}  {event.event_type.value:<10} "
            f"{event.description}{actor}"
        )
    click.echo(f"\nTotal: {len(events)} events")


# Maintenance


@click.command()
@click.argument("budget_id")
@click.option("--repair", is_flag=True, help="Overwrite drifted balances with replayed values")
@click.option("--json", "as_json", is_flag=True, help="Output report as JSON")
@click.option("--actor", envvar="ENVELOPES_USER_ID", help="User performing the repair")
@click.pass_context
def reconcile(ctx: click.Context, budget_id: str, repair: bool, as_json: bool, actor: str | None) -> None:
    """
    Replay a budget's transactions and compare with stored balances.

    Exits with status 2 when drift is found and not repaired.
    """
    with ledger_errors():
        report = get_ledger(ctx).reconcile_budget(budget_id, repair=repair, actor_id=actor)

    if as_json:
        click.echo(format_json(report.to_dict()))
    else:
        click.echo(report.summary())
        for drift in report.details:
            click.echo(f"  {drift.describe()}")

    if report.drift and not report.repaired:
        ctx.exit(2)


@click.command()
@click.argument("budget_id")
@click.option("--retention-days", type=int, help="Override the configured retention window")
@click.pass_context
def purge(ctx: click.Context, budget_id: str, retention_days: int | None) -> None:
    """Permanently remove old soft-deleted, pending transactions."""
    with ledger_errors():
        purged = get_ledger(ctx).purge_deleted_transactions(budget_id, retention_days=retention_days)
    click.echo(f"Purged {len(purged)} transactions")
