from enum import Enum
from typing import Optional

from pydantic import computed_field, field_serializer
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime, from_epoch_millis


# Verdict of a checkpoint scan
class ScanStatus(str, Enum):
    VALID = "VALID"
    INVALID_LOCATION = "INVALID_LOCATION"
    INVALID_TIME = "INVALID_TIME"
    # Only ever produced by the remote log, never by the verification engine
    LATE = "LATE"
    ISSUE_REPORTED = "ISSUE_REPORTED"


class RecordOrigin(str, Enum):
    LOCAL = "LOCAL"
    REMOTE = "REMOTE"


# Defines a Table "scan_record" w/ one row per confirmed checkpoint scan
class ScanRecord(SQLModel, table=True):
    __tablename__ = "scan_record"

    __table_args__ = (
        # Listing is always newest first
        Index("ix_scan_record_timestamp", "timestamp"),
        # Interval schedules look up the last valid visit per checkpoint
        Index("ix_scan_record_checkpoint_id_timestamp", "checkpoint_id", "timestamp"),
        Index("ix_scan_record_origin", "origin"),
        Index("ix_scan_record_status", "status"),
    )

    id: str = Field(primary_key=True)
    # None for records pulled from the remote log, which only keeps the name
    checkpoint_id: Optional[str] = Field(default=None)
    checkpoint_name: str
    # Denormalized "name (id)" label of the confirming officer
    officer_id: str
    # Epoch millis, assigned when the verdict was computed
    timestamp: int
    status: ScanStatus
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)
    accuracy: Optional[float] = Field(default=None)
    distance_from_target: Optional[float] = Field(default=None)
    note: Optional[str] = Field(default=None)
    evidence_ref: Optional[str] = Field(default=None)
    origin: RecordOrigin = Field(default=RecordOrigin.LOCAL)


class ScanRecordRead(SQLModel):
    id: str
    checkpoint_id: Optional[str]
    checkpoint_name: str
    officer_id: str
    timestamp: int
    status: ScanStatus
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    distance_from_target: Optional[float] = None
    note: Optional[str] = None
    evidence_ref: Optional[str] = None
    origin: RecordOrigin

    @computed_field
    @property
    def recorded_at(self) -> Optional[str]:
        return format_utc_datetime(from_epoch_millis(self.timestamp))

    @field_serializer("distance_from_target")
    def serialize_distance(self, value: Optional[float]) -> Optional[float]:
        """Round to centimeters, the sensor is nowhere near that precise anyway"""
        return round(value, 2) if value is not None else None
