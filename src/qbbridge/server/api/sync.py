"""Sync management API routes: trigger, status, cancel and QWC download."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from qbbridge.core.config import BridgeConfig
from qbbridge.server.api.deps import get_config, get_db, require_api_key
from qbbridge.server.database import Database, UnknownCompanyError
from qbbridge.server.models import Company
from qbbridge.server.operations import SYNC_TYPES, trigger_sync
from qbbridge.server.qwc import generate_qwc, qwc_filename
from qbbridge.server.schemas import (
    CancelPendingResponse,
    SyncStatusResponse,
    SyncTriggerRequest,
    SyncTriggerResponse,
    operation_to_response,
    sync_log_to_response,
)

router = APIRouter(
    prefix="/api/sync",
    tags=["sync"],
    dependencies=[Depends(require_api_key)],
)


def _company_or_404(db: Database, company_id: str) -> Company:
    try:
        return db.require_company(company_id)
    except UnknownCompanyError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Company not found",
        ) from e


@router.post("/trigger", response_model=SyncTriggerResponse)
def trigger(
    request: SyncTriggerRequest,
    db: Database = Depends(get_db),
) -> SyncTriggerResponse:
    """Queue the operations of a sync type for a company."""
    if request.sync_type not in SYNC_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid sync type. Must be one of: {', '.join(SYNC_TYPES)}",
        )
    _company_or_404(db, request.company_id)

    try:
        operations = trigger_sync(
            db,
            request.company_id,
            request.sync_type,
            from_date=request.from_date,
            to_date=request.to_date,
            modified_since=request.modified_since,
        )
    except ValueError as e:
        # NothingToQueueError, or a filter value the pull builders reject
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return SyncTriggerResponse(
        success=True,
        message=f"Queued {len(operations)} operations for sync",
        operations=[operation_to_response(op) for op in operations],
    )


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    company_id: str = Query(...),
    limit: int = Query(20, ge=1, le=200),
    db: Database = Depends(get_db),
) -> SyncStatusResponse:
    """Pending work, recent operations and sync history of a company."""
    _company_or_404(db, company_id)
    last_sync = db.last_successful_sync(company_id)
    return SyncStatusResponse(
        company_id=company_id,
        pending_operations=db.count_pending_operations(company_id),
        recent_operations=[operation_to_response(op) for op in db.list_operations(company_id, limit)],
        recent_syncs=[sync_log_to_response(entry) for entry in db.list_sync_logs(company_id)],
        last_successful_sync=last_sync.isoformat() if last_sync else None,
        transactions_by_source=db.transaction_counts_by_source(company_id),
    )


@router.delete("/pending", response_model=CancelPendingResponse)
def cancel_pending(
    company_id: str = Query(...),
    db: Database = Depends(get_db),
) -> CancelPendingResponse:
    """Cancel operations not yet claimed by a Web Connector session."""
    _company_or_404(db, company_id)
    return CancelPendingResponse(cancelled=db.cancel_pending_operations(company_id))


@router.get("/qwc")
def download_qwc(
    http_request: Request,
    company_id: str = Query(...),
    db: Database = Depends(get_db),
    config: BridgeConfig = Depends(get_config),
) -> Response:
    """Download the .qwc Web Connector file of a company."""
    company = _company_or_404(db, company_id)
    base_url = config.public_url or str(http_request.base_url)
    content = generate_qwc(company, base_url, config.qwc_run_every_minutes)
    return Response(
        content=content,
        media_type="application/x-qwc",
        headers={"Content-Disposition": f'attachment; filename="{qwc_filename(company)}"'},
    )
