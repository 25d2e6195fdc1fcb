"""Company and account mapping commands for qbbridge CLI.

Commands:
- company add: Register a company
- company list: List companies
- mapping set: Map an import source to a QuickBooks account
- mapping list: List a company's mappings
"""

from __future__ import annotations

import sys

import click
from sqlalchemy.exc import IntegrityError

from qbbridge.cli.common import db_path_option, open_database, resolve_company_id
from qbbridge.server.database import ACCOUNT_TYPES
from qbbridge.server.qwc import company_username


@click.group()
def company() -> None:
    """Manage companies (one per QuickBooks company file)."""


@company.command("add")
@click.argument("name")
@click.option("--code", "-c", default=None, help="Short code used in the Web Connector username.")
@click.option("--qb-file", default=None, help="Path of the QuickBooks company file to open.")
@db_path_option
def add_company(name: str, code: str | None, qb_file: str | None, db_path: str | None) -> None:
    """Register a company.

    The Web Connector logs in as sync-<code> (or sync-<first 8 characters
    of the ID> when no code is set).
    """
    db = open_database(db_path)
    try:
        created = db.create_company(name, code=code, qb_file_path=qb_file)
    except IntegrityError:
        click.echo(f"Error: Company code '{code}' already exists", err=True)
        sys.exit(1)
    finally:
        db.close()

    click.echo(f"Created company {created.name}")
    click.echo(f"  ID:       {created.id}")
    click.echo(f"  Username: {company_username(created)}")


@company.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include inactive companies.")
@db_path_option
def list_companies(show_all: bool, db_path: str | None) -> None:
    """List companies."""
    db = open_database(db_path)
    try:
        companies = db.list_companies(active_only=not show_all)
    finally:
        db.close()

    if not companies:
        click.echo("No companies.")
        return
    for c in companies:
        status = "" if c.active else " (inactive)"
        click.echo(f"{c.id}  {c.code or '-':<10}  {c.name}{status}")


@click.group()
def mapping() -> None:
    """Map import sources to QuickBooks accounts."""


@mapping.command("set")
@click.argument("company_ref")
@click.argument("source")
@click.argument("qb_account_name")
@click.option(
    "--type",
    "account_type",
    type=click.Choice(ACCOUNT_TYPES),
    default="credit_card",
    show_default=True,
    help="Kind of QuickBooks account.",
)
@click.option("--default", "is_default", is_flag=True, help="Use as default for this account type.")
@db_path_option
def set_mapping(
    company_ref: str,
    source: str,
    qb_account_name: str,
    account_type: str,
    is_default: bool,
    db_path: str | None,
) -> None:
    """Map SOURCE of company COMPANY_REF to QB_ACCOUNT_NAME.

    Examples:

        qbbridge mapping set acme amex_import "American Express" --type credit_card

        qbbridge mapping set acme manual "Office Expenses" --type expense --default
    """
    db = open_database(db_path)
    try:
        company_id = resolve_company_id(db, company_ref)
        db.set_account_mapping(company_id, source, qb_account_name, account_type, is_default)
    finally:
        db.close()
    click.echo(f"Mapped {source} -> {qb_account_name} ({account_type})")


@mapping.command("list")
@click.argument("company_ref")
@db_path_option
def list_mappings(company_ref: str, db_path: str | None) -> None:
    """List account mappings of a company."""
    db = open_database(db_path)
    try:
        company_id = resolve_company_id(db, company_ref)
        mappings = db.list_account_mappings(company_id)
    finally:
        db.close()

    if not mappings:
        click.echo("No mappings.")
        return
    for m in mappings:
        marker = " [default]" if m.is_default else ""
        click.echo(f"{m.source:<15} {m.account_type:<12} {m.qb_account_name}{marker}")
