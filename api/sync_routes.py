import logging
from dataclasses import asdict
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from api.errors import to_http_exception
from core.deps import get_reconciliation_client
from services.errors import SyncFailure
from services.reconciliation import ReconciliationClient

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncReportResponse(BaseModel):
    checkpoints: int
    officers: int
    scan_records: int
    synced_at: datetime


class SyncStatusResponse(BaseModel):
    enabled: bool
    pull_scheduled: bool
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_report: Optional[SyncReportResponse] = None


class ConnectionCheckResponse(BaseModel):
    connected: bool
    message: str


# Manual refresh from the remote log
@router.post("/pull", response_model=SyncReportResponse)
async def pull_now(
    sync: Annotated[ReconciliationClient, Depends(get_reconciliation_client)],
):
    if not sync.enabled:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Remote sync is not configured. Set SHEET_SCRIPT_URL.",
        )
    try:
        report = await sync.pull()
    except SyncFailure as e:
        raise to_http_exception(e)
    return SyncReportResponse(**asdict(report))


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    sync: Annotated[ReconciliationClient, Depends(get_reconciliation_client)],
):
    return SyncStatusResponse(**sync.status())


# "Test connection" from the settings screen
@router.get("/connection", response_model=ConnectionCheckResponse)
async def check_connection(request: Request):
    remote = getattr(request.app.state, "remote_store", None)
    if remote is None:
        return ConnectionCheckResponse(connected=False, message="No sheet URL configured.")

    connected, message = await remote.check_connection()
    if not connected:
        logger.warning(f"[SYNC] Connection check failed for {remote.script_url}")
    return ConnectionCheckResponse(connected=connected, message=message)
