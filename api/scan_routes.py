from typing import Annotated, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator

from api.errors import to_http_exception
from core.deps import (
    get_app_settings,
    get_device_id,
    get_scan_store,
    get_verification_engine,
)
from core.config import Settings
from models.coordinates import Coordinates
from models.scan_record import RecordOrigin, ScanRecordRead, ScanStatus
from services.errors import PatrolError
from services.location_sensor import (
    LocationSensor,
    ReportedLocationSensor,
    SensorErrorCode,
    TrackerLocationSensor,
)
from services.scan_store import ScanRecordStore
from services.verification_service import DraftScan, VerificationEngine

router = APIRouter()


# --- Pydantic Models for Request Payloads ---


# The device's reading rides along with the scanned checkpoint id
class ScanRequest(BaseModel):
    checkpoint_id: str = Field(..., min_length=1)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    # Set instead of a position when the device's geolocation failed
    sensor_error: Optional[SensorErrorCode] = None

    @model_validator(mode="after")
    def check_position_pair(self) -> "ScanRequest":
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be sent together")
        return self

    @property
    def has_reading(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class ConfirmRequest(BaseModel):
    officer_id: Optional[str] = None
    # None keeps the generated diagnosis
    note: Optional[str] = None
    evidence_ref: Optional[str] = None


def build_sensor(data: ScanRequest, settings: Settings) -> LocationSensor:
    if data.sensor_error is not None:
        return ReportedLocationSensor(
            error=data.sensor_error, timeout_s=settings.location_timeout_seconds
        )
    if data.has_reading:
        return ReportedLocationSensor(
            Coordinates(latitude=data.latitude, longitude=data.longitude, accuracy=data.accuracy)
        )
    if settings.tracker_api_url:
        return TrackerLocationSensor(
            settings.tracker_api_url,
            settings.tracker_api_key,
            timeout_s=settings.location_timeout_seconds,
        )
    # Nothing to read from: surfaces as DeviceUnavailable
    return ReportedLocationSensor()


# --- API Endpoints ---


# Scan a checkpoint: returns a draft verdict awaiting confirmation
@router.post("/verify", response_model=DraftScan, status_code=status.HTTP_201_CREATED)
async def verify_scan(
    data: ScanRequest,
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    device_id: Annotated[str, Depends(get_device_id)],
):
    try:
        return await engine.verify(data.checkpoint_id, build_sensor(data, settings), device_id)
    except PatrolError as e:
        raise to_http_exception(e)


@router.get("/drafts/{draft_id}", response_model=DraftScan)
async def get_draft(
    draft_id: str,
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    try:
        return engine.pending(draft_id)
    except PatrolError as e:
        raise to_http_exception(e)


# Officer confirms the verdict; the record becomes permanent
@router.post(
    "/drafts/{draft_id}/confirm",
    response_model=ScanRecordRead,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_draft(
    draft_id: str,
    data: ConfirmRequest,
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    try:
        return await engine.confirm(draft_id, data.officer_id, data.note, data.evidence_ref)
    except PatrolError as e:
        raise to_http_exception(e)


@router.delete("/drafts/{draft_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_draft(
    draft_id: str,
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
):
    try:
        engine.abandon(draft_id)
    except PatrolError as e:
        raise to_http_exception(e)


# Operator left the scanner while a reading was still being acquired
@router.delete("/capture", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_capture(
    engine: Annotated[VerificationEngine, Depends(get_verification_engine)],
    device_id: Annotated[str, Depends(get_device_id)],
):
    engine.cancel_capture(device_id)


# Get Scan Log (local records merged with the synced remote log)
@router.get("", response_model=List[ScanRecordRead])
async def list_scans(
    store: Annotated[ScanRecordStore, Depends(get_scan_store)],
    origin: Optional[RecordOrigin] = None,
    status_filter: Annotated[Optional[ScanStatus], Query(alias="status")] = None,
    limit: Annotated[Optional[int], Query(gt=0, le=5000)] = None,
):
    if origin is None and status_filter is None:
        return store.merged_view(limit=limit)
    return store.list(origin=origin, status=status_filter, limit=limit)


@router.get("/summary", response_model=Dict[str, int])
async def scan_summary(store: Annotated[ScanRecordStore, Depends(get_scan_store)]):
    return store.summary()
