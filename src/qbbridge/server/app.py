"""FastAPI application for the qbbridge server.

This module creates and configures the FastAPI application with:
- The Web Connector SOAP endpoint (/qbwc) and its WSDL
- REST API for triggering and inspecting syncs

Usage:
    uvicorn qbbridge.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from qbbridge.core.config import BridgeConfig
from qbbridge.server.api.router import router as api_router
from qbbridge.server.database import Database
from qbbridge.server.sessions import ResponseHandler, SessionManager
from qbbridge.server.soap import QBWCDispatcher

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for qbbridge
    root_logger = logging.getLogger("qbbridge")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def create_app(
    db: Database,
    config: BridgeConfig | None = None,
    response_handler: ResponseHandler | None = None,
) -> FastAPI:
    """Create FastAPI application with a custom database and configuration.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.
        config: Bridge configuration (defaults to BridgeConfig()).
        response_handler: Optional handler for completed operations
            (defaults to the transaction importer).

    Returns:
        Configured FastAPI application.
    """
    config = config or BridgeConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("qbbridge Server Starting")
        logger.info("=" * 60)
        logger.info("  Database:   %s", db.path)
        logger.info("  Logs:       %s", config.log_path.absolute())
        logger.info("  Public URL: %s", config.public_url or "(from request)")
        logger.info("  Auto-queue: %s", "on" if config.auto_queue_default_pulls else "off")
        if not config.qbwc_password:
            logger.warning("  QBBRIDGE_QBWC_PASSWORD is not set: every Web Connector will be rejected")
        if not config.api_key:
            logger.warning("  QBBRIDGE_API_KEY is not set: the sync API is open")
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("qbbridge Server shutting down")

    application = FastAPI(
        title="qbbridge Server",
        description="QuickBooks Web Connector bridge",
        version="0.1.0",
        lifespan=lifespan,
    )

    sessions = SessionManager(db, config, response_handler=response_handler)
    application.state.db = db
    application.state.config = config
    application.state.sessions = sessions
    application.state.dispatcher = QBWCDispatcher(sessions, config)

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    config = BridgeConfig.from_env()
    setup_logging(config.log_path)
    return create_app(db=Database(config.db_path), config=config)
