"""Command-line interface for qbbridge.

This module provides the main CLI entry point and assembles all commands.

Commands:
- serve: Run the server
- company: Manage companies
- mapping: Map import sources to QuickBooks accounts
- sync: Queue, inspect and cancel syncs
- qwc: Generate a Web Connector file
"""

from __future__ import annotations

import click

from qbbridge.cli.company import company, mapping
from qbbridge.cli.server import serve
from qbbridge.cli.sync import qwc, sync


@click.group()
@click.version_option(package_name="qbbridge")
def cli() -> None:
    """qbbridge - QuickBooks Web Connector bridge."""


# Server
cli.add_command(serve)

# Administration
cli.add_command(company)
cli.add_command(mapping)

# Sync
cli.add_command(sync)
cli.add_command(qwc)
