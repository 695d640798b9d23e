from .checkpoint import Checkpoint
from .coordinates import Coordinates
from .officer import Officer, Role
from .scan_record import RecordOrigin, ScanRecord, ScanRecordRead, ScanStatus
from .schedule import ScheduleConfig, ScheduleType
