"""Sync commands for qbbridge CLI.

Commands:
- sync trigger: Queue a sync for a company
- sync status: Show pending work and recent history
- sync cancel: Cancel operations not yet claimed
- qwc: Write the .qwc Web Connector file of a company
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from qbbridge.cli.common import db_path_option, load_config, open_database, resolve_company_id
from qbbridge.server.operations import SYNC_TYPES, NothingToQueueError, trigger_sync
from qbbridge.server.qwc import generate_qwc, qwc_filename


@click.group()
def sync() -> None:
    """Queue and inspect QuickBooks syncs."""


@sync.command("trigger")
@click.argument("company_ref")
@click.argument("sync_type", type=click.Choice(SYNC_TYPES))
@click.option("--from-date", default=None, help="Earliest transaction date (YYYY-MM-DD).")
@click.option("--to-date", default=None, help="Latest transaction date (YYYY-MM-DD).")
@click.option("--modified-since", default=None, help="Earliest modification date (YYYY-MM-DD).")
@db_path_option
def trigger(
    company_ref: str,
    sync_type: str,
    from_date: str | None,
    to_date: str | None,
    modified_since: str | None,
    db_path: str | None,
) -> None:
    """Queue SYNC_TYPE operations for company COMPANY_REF.

    The operations run the next time the Web Connector connects.

    Examples:

        qbbridge sync trigger acme transactions --from-date 2024-01-01

        qbbridge sync trigger acme push
    """
    db = open_database(db_path)
    try:
        company_id = resolve_company_id(db, company_ref)
        operations = trigger_sync(db, company_id, sync_type, from_date, to_date, modified_since)
    except NothingToQueueError as e:
        click.echo(str(e))
        return
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Queued {len(operations)} operation(s):")
    for op in operations:
        click.echo(f"  #{op.id} {op.operation_type}")


@sync.command("status")
@click.argument("company_ref")
@click.option("--limit", "-n", type=int, default=10, show_default=True, help="Operations to show.")
@db_path_option
def status(company_ref: str, limit: int, db_path: str | None) -> None:
    """Show pending work and recent operations of COMPANY_REF."""
    db = open_database(db_path)
    try:
        company_id = resolve_company_id(db, company_ref)
        pending = db.count_pending_operations(company_id)
        operations = db.list_operations(company_id, limit)
        last_sync = db.last_successful_sync(company_id)
        counts = db.transaction_counts_by_source(company_id)
    finally:
        db.close()

    click.echo(f"Pending operations: {pending}")
    click.echo(f"Last successful sync: {last_sync.isoformat() if last_sync else 'never'}")
    if counts:
        summary = ", ".join(f"{source}={count}" for source, count in sorted(counts.items()))
        click.echo(f"Transactions: {summary}")
    if operations:
        click.echo("Recent operations:")
        for op in operations:
            line = f"  #{op.id} {op.operation_type:<24} {op.status}"
            if op.error_message:
                line += f" - {op.error_message}"
            click.echo(line)


@sync.command("cancel")
@click.argument("company_ref")
@db_path_option
def cancel(company_ref: str, db_path: str | None) -> None:
    """Cancel operations of COMPANY_REF not yet claimed by a session."""
    db = open_database(db_path)
    try:
        company_id = resolve_company_id(db, company_ref)
        count = db.cancel_pending_operations(company_id)
    finally:
        db.close()
    click.echo(f"Cancelled {count} pending operation(s).")


@click.command()
@click.argument("company_ref")
@click.option("--url", default=None, help="Public base URL (default: QBBRIDGE_PUBLIC_URL).")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output file (default: <company>.qwc).")
@db_path_option
def qwc(company_ref: str, url: str | None, output: str | None, db_path: str | None) -> None:
    """Write the .qwc Web Connector file of COMPANY_REF."""
    config = load_config(db_path)
    base_url = url or config.public_url
    if not base_url:
        click.echo("Error: No public URL. Pass --url or set QBBRIDGE_PUBLIC_URL.", err=True)
        sys.exit(1)

    db = open_database(db_path)
    try:
        company = db.require_company(resolve_company_id(db, company_ref))
    finally:
        db.close()

    if not base_url.startswith("https://"):
        click.echo("Warning: the Web Connector only accepts HTTPS outside localhost.", err=True)

    target = Path(output) if output else Path(qwc_filename(company))
    target.write_text(generate_qwc(company, base_url, config.qwc_run_every_minutes), encoding="utf-8")
    click.echo(f"Wrote {target}")
