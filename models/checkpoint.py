from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from models.coordinates import Coordinates
from models.schedule import ScheduleConfig

# Defines the Structure of a Patrol Checkpoint w/ Circular Geofence


class Checkpoint(SQLModel, table=True):
    __tablename__ = "checkpoint"

    id: str = Field(primary_key=True, description="Unique checkpoint identifier, encoded in the QR code")
    name: str = Field(..., description="Human-friendly checkpoint name")
    latitude: float = Field(..., description="Latitude of checkpoint center")
    longitude: float = Field(..., description="Longitude of checkpoint center")
    allowed_radius_meters: float = Field(..., gt=0, description="Allowed scan radius in meters")
    # ScheduleConfig dump in wire (camelCase) form, None means "any time"
    schedule: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))

    @property
    def location(self) -> Coordinates:
        return Coordinates(latitude=self.latitude, longitude=self.longitude)

    @property
    def schedule_config(self) -> ScheduleConfig:
        """Parsed schedule; raises pydantic.ValidationError on a malformed row."""
        if not self.schedule:
            return ScheduleConfig()
        return ScheduleConfig.model_validate(self.schedule)
