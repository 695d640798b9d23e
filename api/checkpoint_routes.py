from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.deps import get_checkpoint_registry, get_officer_registry
from models.officer import Role
from models.schedule import ScheduleConfig
from services.registry import CheckpointRegistry, OfficerRegistry
from utils.geofence import latlon_to_utm

router = APIRouter()

# --- Pydantic Models for Response ---


class CheckpointGeofenceResponse(BaseModel):
    checkpoint_id: str
    name: str
    latitude: float
    longitude: float
    allowed_radius_meters: float
    schedule: ScheduleConfig
    utm: str


class OfficerResponse(BaseModel):
    id: str
    name: str
    role: Role
    display_label: str


def to_geofence_response(checkpoint) -> CheckpointGeofenceResponse:
    return CheckpointGeofenceResponse(
        checkpoint_id=checkpoint.id,
        name=checkpoint.name,
        latitude=checkpoint.latitude,
        longitude=checkpoint.longitude,
        allowed_radius_meters=checkpoint.allowed_radius_meters,
        schedule=checkpoint.schedule_config,
        utm=latlon_to_utm(checkpoint.latitude, checkpoint.longitude),
    )


# --- API Endpoints ---


@router.get("/checkpoints", response_model=List[CheckpointGeofenceResponse])
def list_checkpoints(
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
):
    return [to_geofence_response(checkpoint) for checkpoint in registry.list()]


@router.get("/checkpoints/{checkpoint_id}", response_model=CheckpointGeofenceResponse)
def get_checkpoint_geofence(
    checkpoint_id: str,
    registry: Annotated[CheckpointRegistry, Depends(get_checkpoint_registry)],
):
    """
    Retrieve the geofence (center, radius) and schedule of a checkpoint,
    e.g. to show the officer where the scan is expected to happen.
    """
    checkpoint = registry.get(checkpoint_id)

    if not checkpoint:
        raise HTTPException(status_code=404, detail=f"Checkpoint with ID {checkpoint_id} not found.")

    return to_geofence_response(checkpoint)


# Roster for the officer picker on the confirmation screen
@router.get("/officers", response_model=List[OfficerResponse])
def list_officers(
    registry: Annotated[OfficerRegistry, Depends(get_officer_registry)],
    role: Optional[Role] = None,
):
    return [
        OfficerResponse(
            id=officer.id, name=officer.name, role=officer.role, display_label=officer.display_label
        )
        for officer in registry.list()
        if role is None or officer.role == role
    ]
