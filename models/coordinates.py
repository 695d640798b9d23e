from typing import Optional

from pydantic import BaseModel, Field


# A single position fix, as reported by a device or stored on a checkpoint
class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    # Sensor-reported 1-sigma uncertainty in meters
    accuracy: Optional[float] = Field(default=None, ge=0)
