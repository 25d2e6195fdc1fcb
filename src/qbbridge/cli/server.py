"""Server command for qbbridge CLI.

Commands:
- serve: Run the Web Connector endpoint and sync API
"""

from __future__ import annotations

import os

import click

from qbbridge.cli.common import db_path_option


@click.command()
@click.option("--host", default="0.0.0.0", show_default=True, help="Interface to bind.")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Port to listen on.")
@db_path_option
@click.option(
    "--log-path",
    type=click.Path(),
    default=None,
    help="Path to log file (default: QBBRIDGE_LOG_PATH or ./qbbridge-server.log).",
)
def serve(host: str, port: int, db_path: str | None, log_path: str | None) -> None:
    """Run the qbbridge server.

    Settings are read from QBBRIDGE_* environment variables; the options
    override the matching variables.

    Examples:

        qbbridge serve --port 8443

        QBBRIDGE_QBWC_PASSWORD=secret qbbridge serve
    """
    import uvicorn

    if db_path:
        os.environ["QBBRIDGE_DB_PATH"] = db_path
    if log_path:
        os.environ["QBBRIDGE_LOG_PATH"] = log_path

    uvicorn.run("qbbridge.server.app:app_factory", factory=True, host=host, port=port)
