"""FastAPI dependencies for API routes."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from qbbridge.core.config import BridgeConfig
from qbbridge.server.database import Database
from qbbridge.server.soap import QBWCDispatcher

# Security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_db(request: Request) -> Database:
    """Get database from app state."""
    db: Database = request.app.state.db
    return db


def get_config(request: Request) -> BridgeConfig:
    """Get configuration from app state."""
    config: BridgeConfig = request.app.state.config
    return config


def get_dispatcher(request: Request) -> QBWCDispatcher:
    """Get the Web Connector dispatcher from app state."""
    dispatcher: QBWCDispatcher = request.app.state.dispatcher
    return dispatcher


def require_api_key(
    request: Request,
    api_key: str | None = Security(api_key_header),
) -> None:
    """Check the X-API-Key header when an API key is configured."""
    expected = get_config(request).api_key
    if not expected:
        return
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )
    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
