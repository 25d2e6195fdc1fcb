"""Shared helpers for qbbridge CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click

from qbbridge.core.config import BridgeConfig

if TYPE_CHECKING:
    from qbbridge.server.database import Database

F = TypeVar("F", bound=Callable[..., Any])


def db_path_option(func: F) -> F:
    """Add the --db-path option (falls back to QBBRIDGE_DB_PATH)."""
    return click.option(
        "--db-path",
        type=click.Path(),
        default=None,
        help="Path to database file (default: QBBRIDGE_DB_PATH or ./qbbridge.db).",
    )(func)


def load_config(db_path: str | None) -> BridgeConfig:
    config = BridgeConfig.from_env()
    if db_path:
        config.db_path = Path(db_path)
    return config


def open_database(db_path: str | None) -> Database:
    """Open the database, creating it if needed."""
    from qbbridge.server.database import Database

    return Database(load_config(db_path).db_path)


def resolve_company_id(db: Database, identifier: str) -> str:
    """Map a company ID, code or ID prefix to a company ID.

    Exits with an error when nothing matches.
    """
    company = db.get_company(identifier) or db.find_company_by_identifier(identifier)
    if company is None:
        click.echo(f"Error: Company not found: {identifier}", err=True)
        sys.exit(1)
    return company.id
