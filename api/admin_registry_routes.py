import logging
import time
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field as PydanticField, field_validator
from sqlalchemy.exc import SQLAlchemyError

from api.checkpoint_routes import (
    CheckpointGeofenceResponse,
    OfficerResponse,
    to_geofence_response,
)
from api.errors import to_http_exception
from core.deps import (
    get_checkpoint_registry,
    get_officer_registry,
    get_reconciliation_client,
    require_admin_role,
)
from models.checkpoint import Checkpoint
from models.officer import Officer, Role
from models.schedule import ADMIN_DEFAULT_TOLERANCE_MINUTES, ScheduleConfig, ScheduleType
from services.errors import PatrolError
from services.reconciliation import ReconciliationClient
from services.registry import CheckpointRegistry, OfficerRegistry, reset_registries
from services.remote_store import SyncAction

logger = logging.getLogger(__name__)

# --- Router Definition ---
router = APIRouter()


# --- Pydantic Data Models ---


# Create model: Data needed when creating a NEW checkpoint via POST
class CheckpointCreate(BaseModel):
    # Generated as cp-<millis> when omitted
    id: Optional[str] = PydanticField(default=None, min_length=1)
    name: str = PydanticField(..., min_length=1)
    latitude: float = PydanticField(..., ge=-90, le=90)
    longitude: float = PydanticField(..., ge=-180, le=180)
    allowed_radius_meters: float = PydanticField(default=50.0, gt=0)  # Ensures radius is positive
    schedule: Optional[ScheduleConfig] = None


# Update model: only the geofence radius and the schedule are editable
class CheckpointUpdate(BaseModel):
    allowed_radius_meters: Optional[float] = PydanticField(default=None, gt=0)
    schedule: Optional[ScheduleConfig] = None


class CheckpointImportEntry(BaseModel):
    id: str = PydanticField(..., min_length=1)
    name: str
    latitude: float = PydanticField(..., ge=-90, le=90)
    longitude: float = PydanticField(..., ge=-180, le=180)
    allowed_radius_meters: float = PydanticField(..., gt=0)
    schedule: Optional[ScheduleConfig] = None


class CheckpointImport(BaseModel):
    checkpoints: List[CheckpointImportEntry]

    @field_validator("checkpoints")
    @classmethod
    def non_empty(cls, value: List[CheckpointImportEntry]) -> List[CheckpointImportEntry]:
        if not value:
            raise ValueError("Invalid file format: no checkpoints")
        return value


class OfficerCreate(BaseModel):
    id: str = PydanticField(..., min_length=1, description="Officer code, e.g. OFF-003")
    name: str = PydanticField(..., min_length=1)
    role: Role = Role.OFFICER


def _schedule_for_new_checkpoint(schedule: Optional[ScheduleConfig]) -> Optional[dict]:
    if schedule is None or schedule.type == ScheduleType.NONE:
        return None
    if schedule.tolerance_minutes is None:
        schedule = schedule.model_copy(update={"tolerance_minutes": ADMIN_DEFAULT_TOLERANCE_MINUTES})
    return schedule.to_wire()


def _new_checkpoint_id() -> str:
    return f"cp-{int(time.time() * 1000)}"


# --- API Endpoints ---


# Endpoint: Create a New Checkpoint
@router.post("/checkpoints", response_model=CheckpointGeofenceResponse, status_code=status.HTTP_201_CREATED)
async def create_checkpoint(
    checkpoint_in: CheckpointCreate,
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
    sync: Annotated[ReconciliationClient, Depends(get_reconciliation_client)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    checkpoint = Checkpoint(
        id=checkpoint_in.id or _new_checkpoint_id(),
        name=checkpoint_in.name,
        latitude=checkpoint_in.latitude,
        longitude=checkpoint_in.longitude,
        allowed_radius_meters=checkpoint_in.allowed_radius_meters,
        schedule=_schedule_for_new_checkpoint(checkpoint_in.schedule),
    )

    try:
        created = registry.add(checkpoint)
    except PatrolError as e:
        raise to_http_exception(e)
    except SQLAlchemyError as e:
        logger.error(f"[REGISTRY] Error creating checkpoint {checkpoint.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not create checkpoint.",
        )

    # Log admin action for auditing
    logger.info(f"[REGISTRY] Admin {admin_user.get('email')} created checkpoint {created.id}")
    sync.push(SyncAction.add_checkpoint(created))
    return to_geofence_response(created)


# Endpoint: Edit radius / schedule of a Checkpoint
@router.patch("/checkpoints/{checkpoint_id}", response_model=CheckpointGeofenceResponse)
async def update_checkpoint(
    checkpoint_id: str,
    checkpoint_in: CheckpointUpdate,
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    try:
        updated = registry.update_geofence(
            checkpoint_id,
            allowed_radius_meters=checkpoint_in.allowed_radius_meters,
            schedule=checkpoint_in.schedule,
        )
    except PatrolError as e:
        raise to_http_exception(e)

    logger.info(f"[REGISTRY] Admin {admin_user.get('email')} updated checkpoint {checkpoint_id}")
    return to_geofence_response(updated)


# Endpoint: Download the checkpoint registry as an importable config
@router.get("/checkpoints/export", response_model=List[CheckpointImportEntry])
async def export_checkpoints(
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    return [
        CheckpointImportEntry(
            id=checkpoint.id,
            name=checkpoint.name,
            latitude=checkpoint.latitude,
            longitude=checkpoint.longitude,
            allowed_radius_meters=checkpoint.allowed_radius_meters,
            schedule=checkpoint.schedule_config if checkpoint.schedule else None,
        )
        for checkpoint in registry.list()
    ]


# Endpoint: Replace the local registry from an exported config (kept local, not pushed)
@router.post("/checkpoints/import")
async def import_checkpoints(
    payload: CheckpointImport,
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    checkpoints = [
        Checkpoint(
            id=entry.id,
            name=entry.name,
            latitude=entry.latitude,
            longitude=entry.longitude,
            allowed_radius_meters=entry.allowed_radius_meters,
            schedule=entry.schedule.to_wire() if entry.schedule else None,
        )
        for entry in payload.checkpoints
    ]
    count = registry.replace_all(checkpoints)
    logger.info(f"[REGISTRY] Admin {admin_user.get('email')} imported {count} checkpoints")
    return {"status": "success", "imported": count}


@router.post("/officers", response_model=OfficerResponse, status_code=status.HTTP_201_CREATED)
async def create_officer(
    officer_in: OfficerCreate,
    registry: Annotated[OfficerRegistry, Depends(get_officer_registry)],
    sync: Annotated[ReconciliationClient, Depends(get_reconciliation_client)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    try:
        officer = registry.add(Officer(id=officer_in.id.strip(), name=officer_in.name.strip(), role=officer_in.role))
    except PatrolError as e:
        raise to_http_exception(e)

    logger.info(f"[REGISTRY] Admin {admin_user.get('email')} added officer {officer.id}")
    sync.push(SyncAction.add_officer(officer))
    return OfficerResponse(
        id=officer.id, name=officer.name, role=officer.role, display_label=officer.display_label
    )


@router.delete("/officers/{officer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_officer(
    officer_id: str,
    registry: Annotated[OfficerRegistry, Depends(get_officer_registry)],
    sync: Annotated[ReconciliationClient, Depends(get_reconciliation_client)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    try:
        registry.remove(officer_id)
    except PatrolError as e:
        raise to_http_exception(e)

    logger.info(f"[REGISTRY] Admin {admin_user.get('email')} removed officer {officer_id}")
    sync.push(SyncAction.remove_officer(officer_id))


# Endpoint: Reset Checkpoints & Officers to the built-in defaults (scan records are kept)
@router.post("/reset-defaults")
async def reset_defaults(
    checkpoints: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
    officers: Annotated[OfficerRegistry, Depends(get_officer_registry)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    reset_registries(checkpoints, officers)
    logger.warning(f"[REGISTRY] Admin {admin_user.get('email')} reset registries to defaults")
    return {"status": "success"}
