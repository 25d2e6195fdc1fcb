"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

from qbbridge.server.models import SyncLog, SyncOperation

# === Sync schemas ===


class SyncTriggerRequest(BaseModel):
    """Request body for queueing a sync."""

    company_id: str
    sync_type: str
    from_date: date | None = None
    to_date: date | None = None
    modified_since: date | None = None


class OperationResponse(BaseModel):
    """Queued operation in responses."""

    id: int
    type: str
    status: str
    session_id: int | None = None
    error_message: str | None = None
    created_at: str
    completed_at: str | None = None


class SyncTriggerResponse(BaseModel):
    """Response for a queued sync."""

    success: bool
    message: str
    operations: list[OperationResponse]
    note: str = "Operations will be processed when the Web Connector connects"


class SyncLogResponse(BaseModel):
    """Sync log row in responses."""

    id: int
    sync_type: str
    direction: str
    status: str
    records_processed: int
    records_failed: int
    error_message: str | None
    started_at: str
    completed_at: str | None


class SyncStatusResponse(BaseModel):
    """Sync overview of a company."""

    company_id: str
    pending_operations: int
    recent_operations: list[OperationResponse]
    recent_syncs: list[SyncLogResponse]
    last_successful_sync: str | None
    transactions_by_source: dict[str, int] = Field(default_factory=dict)


class CancelPendingResponse(BaseModel):
    """Response for cancel-pending."""

    cancelled: int


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def operation_to_response(operation: SyncOperation) -> OperationResponse:
    """Convert SyncOperation to response model."""
    return OperationResponse(
        id=operation.id,
        type=operation.operation_type,
        status=operation.status,
        session_id=operation.session_id,
        error_message=operation.error_message,
        created_at=operation.created_at.isoformat(),
        completed_at=operation.completed_at.isoformat() if operation.completed_at else None,
    )


def sync_log_to_response(entry: SyncLog) -> SyncLogResponse:
    """Convert SyncLog to response model."""
    return SyncLogResponse(
        id=entry.id,
        sync_type=entry.sync_type,
        direction=entry.direction,
        status=entry.status,
        records_processed=entry.records_processed,
        records_failed=entry.records_failed,
        error_message=entry.error_message,
        started_at=entry.started_at.isoformat(),
        completed_at=entry.completed_at.isoformat() if entry.completed_at else None,
    )
