import logging
import secrets
import time
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.config import Settings
from models.coordinates import Coordinates
from models.schedule import ScheduleType
from models.scan_record import RecordOrigin, ScanRecord, ScanStatus
from services.clock import Clock
from services.errors import DraftNotFound, UnknownCheckpoint, ValidationIncomplete
from services.location_sensor import CaptureSessions, LocationSensor
from services.reconciliation import ReconciliationClient
from services.registry import CheckpointRegistry, OfficerRegistry
from services.remote_store import SyncAction
from services.scan_store import ScanRecordStore
from utils.datetime_helpers import from_epoch_millis, to_epoch_millis
from utils.geofence import distance_between, in_geofence, latlon_to_utm
from utils.schedule import ScheduleVerdict, evaluate_schedule

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    AWAITING_SENSOR_READING = "AWAITING_SENSOR_READING"
    EVALUATING = "EVALUATING"
    VALID = "VALID"
    INVALID_LOCATION = "INVALID_LOCATION"
    INVALID_TIME = "INVALID_TIME"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    FINALIZED = "FINALIZED"
    ABANDONED = "ABANDONED"


VERDICT_STATES = {
    ScanStatus.VALID: VerificationState.VALID,
    ScanStatus.INVALID_LOCATION: VerificationState.INVALID_LOCATION,
    ScanStatus.INVALID_TIME: VerificationState.INVALID_TIME,
}

ROUTINE_NOTE = "Routine Check: OK"


class DraftScan(BaseModel):
    """A verdict waiting for the officer to confirm it."""

    draft_id: str
    device_id: str
    state: VerificationState
    history: List[VerificationState] = Field(default_factory=list)
    checkpoint_id: str
    checkpoint_name: str
    timestamp: int
    status: ScanStatus
    reading: Coordinates
    distance_from_target: float
    note: str
    utm: str

    def advance(self, state: VerificationState) -> None:
        self.history.append(state)
        self.state = state


def decide_verdict(
    distance: float,
    radius: float,
    accuracy: Optional[float],
    schedule_verdict: ScheduleVerdict,
    degraded_threshold: float = 100.0,
) -> Tuple[ScanStatus, str]:
    """
    Turn the individual checks into a scan status and its explanatory note.

    First match wins:
      1. outside the schedule window -> INVALID_TIME, whatever the position;
      2. sensor accuracy worse than the threshold -> VALID on the QR alone;
      3. outside the geofence -> INVALID_LOCATION;
      4. otherwise VALID.
    A reading without accuracy counts as precise.
    """
    if not schedule_verdict.passed:
        return ScanStatus.INVALID_TIME, schedule_verdict.reason

    accuracy = accuracy or 0
    if accuracy > degraded_threshold:
        return ScanStatus.VALID, f"Weak GPS (Acc: {round(accuracy)}m). Verified by QR."

    if not in_geofence(distance, radius):
        return ScanStatus.INVALID_LOCATION, f"Location Mismatch. Dist: {round(distance)}m"

    return ScanStatus.VALID, ROUTINE_NOTE


def new_record_id(timestamp_ms: int) -> str:
    # Zero-padded millis keep ids sortable by time; suffix avoids same-ms clashes
    return f"{timestamp_ms:013d}-{secrets.token_hex(4)}"


class VerificationEngine:
    """
    Checkpoint scan verification.

    ``verify`` resolves the checkpoint, waits (bounded) for a location
    reading, evaluates the checks and parks the result as a draft.
    ``confirm`` turns a draft into an immutable scan record once an officer
    is selected; ``abandon`` drops it without touching the store.
    """

    def __init__(
        self,
        checkpoints: CheckpointRegistry,
        officers: OfficerRegistry,
        store: ScanRecordStore,
        clock: Clock,
        settings: Settings,
        sync: Optional[ReconciliationClient] = None,
        captures: Optional[CaptureSessions] = None,
    ):
        self._checkpoints = checkpoints
        self._officers = officers
        self._store = store
        self._clock = clock
        self._settings = settings
        self._sync = sync
        self._captures = captures or CaptureSessions()

        self._drafts: Dict[str, DraftScan] = {}
        self._deadlines: Dict[str, float] = {}
        self._device_drafts: Dict[str, str] = {}

    # --- Draft bookkeeping ---

    def _expire_drafts(self) -> None:
        now = time.monotonic()
        for draft_id, deadline in list(self._deadlines.items()):
            if deadline <= now:
                logger.info(f"[SCAN] Draft {draft_id} expired unconfirmed")
                self._discard(draft_id)

    def _discard(self, draft_id: str) -> Optional[DraftScan]:
        draft = self._drafts.pop(draft_id, None)
        self._deadlines.pop(draft_id, None)
        if draft is not None and self._device_drafts.get(draft.device_id) == draft_id:
            del self._device_drafts[draft.device_id]
        return draft

    def pending(self, draft_id: str) -> DraftScan:
        self._expire_drafts()
        draft = self._drafts.get(draft_id)
        if draft is None:
            raise DraftNotFound(draft_id)
        return draft

    # --- Verification ---

    async def verify(
        self,
        checkpoint_id: str,
        sensor: LocationSensor,
        device_id: str = "default",
    ) -> DraftScan:
        self._expire_drafts()

        checkpoint = self._checkpoints.get(checkpoint_id)
        if checkpoint is None:
            logger.warning(f"[SCAN] ❌ Unknown checkpoint '{checkpoint_id}' from device {device_id}")
            sensor.stop()
            raise UnknownCheckpoint(checkpoint_id)

        # A new scan on a device replaces whatever that device had open
        previous = self._device_drafts.get(device_id)
        if previous is not None:
            logger.info(f"[SCAN] Device {device_id} rescanned; dropping draft {previous}")
            self._discard(previous)

        history = [VerificationState.AWAITING_SENSOR_READING]
        reading = await self._captures.for_device(device_id).acquire(
            sensor, self._settings.location_timeout_seconds
        )
        history.append(VerificationState.EVALUATING)

        now = self._clock.now()
        timestamp = to_epoch_millis(now)
        distance = distance_between(reading, checkpoint.location)
        schedule = checkpoint.schedule_config

        last_valid_visit = None
        if self._settings.enforce_interval_schedules and schedule.type == ScheduleType.INTERVAL:
            last_ms = self._store.last_valid_visit(checkpoint.id)
            if last_ms is not None:
                last_valid_visit = from_epoch_millis(last_ms).astimezone(now.tzinfo)

        schedule_verdict = evaluate_schedule(
            schedule,
            now,
            last_valid_visit=last_valid_visit,
            enforce_interval=self._settings.enforce_interval_schedules,
        )
        status, note = decide_verdict(
            distance,
            checkpoint.allowed_radius_meters,
            reading.accuracy,
            schedule_verdict,
            self._settings.degraded_accuracy_meters,
        )
        history.append(VERDICT_STATES[status])

        draft = DraftScan(
            draft_id=secrets.token_urlsafe(12),
            device_id=device_id,
            state=VERDICT_STATES[status],
            history=history,
            checkpoint_id=checkpoint.id,
            checkpoint_name=checkpoint.name,
            timestamp=timestamp,
            status=status,
            reading=reading,
            distance_from_target=distance,
            note=note,
            utm=latlon_to_utm(reading.latitude, reading.longitude),
        )
        draft.advance(VerificationState.AWAITING_CONFIRMATION)

        self._drafts[draft.draft_id] = draft
        self._deadlines[draft.draft_id] = time.monotonic() + self._settings.draft_ttl_seconds
        self._device_drafts[device_id] = draft.draft_id

        logger.info(
            f"[SCAN] 🔍 {checkpoint.name}: {status.value} "
            f"(dist {distance:.0f}m / radius {checkpoint.allowed_radius_meters:.0f}m, "
            f"acc {reading.accuracy if reading.accuracy is not None else '?'}m) -> draft {draft.draft_id}"
        )
        return draft

    # --- Confirmation ---

    async def confirm(
        self,
        draft_id: str,
        officer_id: Optional[str],
        note: Optional[str] = None,
        evidence_ref: Optional[str] = None,
    ) -> ScanRecord:
        draft = self.pending(draft_id)

        officer_id = (officer_id or "").strip()
        if not officer_id:
            raise ValidationIncomplete("Please select your name/ID from the list.")

        officer = self._officers.get(officer_id)
        officer_label = officer.display_label if officer is not None else officer_id

        record = ScanRecord(
            id=new_record_id(draft.timestamp),
            checkpoint_id=draft.checkpoint_id,
            checkpoint_name=draft.checkpoint_name,
            officer_id=officer_label,
            timestamp=draft.timestamp,
            status=draft.status,
            latitude=draft.reading.latitude,
            longitude=draft.reading.longitude,
            accuracy=draft.reading.accuracy,
            distance_from_target=draft.distance_from_target,
            note=note if note is not None else draft.note,
            evidence_ref=evidence_ref or None,
            origin=RecordOrigin.LOCAL,
        )
        # Durable locally before anything else happens
        stored = self._store.append(record)

        self._discard(draft_id)
        draft.advance(VerificationState.FINALIZED)

        if self._sync is not None:
            self._sync.push(SyncAction.log_scan(stored))

        return stored

    def abandon(self, draft_id: str) -> DraftScan:
        draft = self._discard(draft_id)
        if draft is None:
            raise DraftNotFound(draft_id)
        self._captures.cancel(draft.device_id)
        draft.advance(VerificationState.ABANDONED)
        logger.info(f"[SCAN] Draft {draft_id} abandoned by operator")
        return draft

    def cancel_capture(self, device_id: str) -> None:
        """Operator navigated away mid-acquisition."""
        self._captures.cancel(device_id)

    def shutdown(self) -> None:
        self._captures.cancel_all()
        self._drafts.clear()
        self._deadlines.clear()
        self._device_drafts.clear()
