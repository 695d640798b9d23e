from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from utils.datetime_helpers import parse_hhmm

DEFAULT_TOLERANCE_MINUTES = 10

# Checkpoints created through the admin API get a slightly wider window
ADMIN_DEFAULT_TOLERANCE_MINUTES = 15


class ScheduleType(str, Enum):
    NONE = "NONE"
    FIXED_TIME = "FIXED_TIME"
    INTERVAL = "INTERVAL"


class ScheduleConfig(BaseModel):
    """
    When a checkpoint may be visited.

    Serialized in camelCase (``fixedTimes``, ``toleranceMinutes``,
    ``intervalMinutes``) because that is the shape the remote sheet stores;
    snake_case is accepted on input as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: ScheduleType = ScheduleType.NONE
    fixed_times: Optional[List[str]] = Field(default=None, alias="fixedTimes")
    tolerance_minutes: Optional[int] = Field(default=None, ge=0, alias="toleranceMinutes")
    interval_minutes: Optional[int] = Field(default=None, gt=0, alias="intervalMinutes")

    @field_validator("fixed_times")
    @classmethod
    def validate_fixed_times(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        for entry in value:
            parse_hhmm(entry)  # raises ValueError on malformed entries
        return value

    @model_validator(mode="after")
    def check_type_fields(self) -> "ScheduleConfig":
        if self.type == ScheduleType.FIXED_TIME and not self.fixed_times:
            raise ValueError("fixedTimes must be non-empty for a FIXED_TIME schedule")
        if self.type == ScheduleType.INTERVAL and self.interval_minutes is None:
            raise ValueError("intervalMinutes is required for an INTERVAL schedule")
        return self

    @property
    def effective_tolerance(self) -> int:
        if self.tolerance_minutes is None:
            return DEFAULT_TOLERANCE_MINUTES
        return self.tolerance_minutes

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
