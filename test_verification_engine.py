"""
Scan verification: verdicts, draft lifecycle and location capture.
"""

import asyncio
from datetime import timedelta

import pytest

from core.config import Settings
from models.coordinates import Coordinates
from models.scan_record import RecordOrigin, ScanRecord, ScanStatus
from services.errors import (
    CaptureCancelled,
    DraftNotFound,
    LocationTimeout,
    PermissionDenied,
    UnknownCheckpoint,
    ValidationIncomplete,
)
from services.location_sensor import ReportedLocationSensor, SensorErrorCode
from services.registry import CheckpointRegistry, OfficerRegistry, ensure_registries
from services.remote_store import SyncActionType
from services.scan_store import ScanRecordStore
from services.verification_service import (
    ROUTINE_NOTE,
    VerificationEngine,
    VerificationState,
    decide_verdict,
)
from utils.datetime_helpers import to_epoch_millis
from utils.schedule import SCHEDULE_PASS, ScheduleVerdict

AT_GATE = Coordinates(latitude=13.7563, longitude=100.5018, accuracy=8)
# ~111m north of the gate, outside its 100m radius
NORTH_OF_GATE = Coordinates(latitude=13.7573, longitude=100.5018, accuracy=8)
AT_SERVER_ROOM = Coordinates(latitude=13.7565, longitude=100.5020, accuracy=5)


class SlowSensor:
    def __init__(self, delay: float = 5.0):
        self.delay = delay
        self.stopped = False

    async def read(self) -> Coordinates:
        await asyncio.sleep(self.delay)
        return AT_GATE

    def stop(self) -> None:
        self.stopped = True


class RecordingSync:
    def __init__(self):
        self.actions = []

    def push(self, action):
        self.actions.append(action)


def make_engine(session_factory, clock, sync=None, **overrides):
    ensure_registries(session_factory)
    settings = Settings(**{"location_timeout_seconds": 1.0, **overrides})
    store = ScanRecordStore(session_factory)
    engine = VerificationEngine(
        CheckpointRegistry(session_factory),
        OfficerRegistry(session_factory),
        store,
        clock,
        settings,
        sync=sync,
    )
    return engine, store


def scan(engine, checkpoint_id, reading, device_id="default"):
    return asyncio.run(engine.verify(checkpoint_id, ReportedLocationSensor(reading), device_id))


# --- decide_verdict ---


def test_wrong_time_wins_over_everything():
    wrong = ScheduleVerdict(passed=False, reason="Wrong Time. Schedule: 08:00 (+/- 10m)")
    assert decide_verdict(5000, 100, 500, wrong) == (ScanStatus.INVALID_TIME, wrong.reason)
    assert decide_verdict(0, 100, 5, wrong)[0] == ScanStatus.INVALID_TIME


def test_weak_gps_is_valid_by_qr_even_far_away():
    status, note = decide_verdict(5000, 100, 150, SCHEDULE_PASS)
    assert status == ScanStatus.VALID
    assert note == "Weak GPS (Acc: 150m). Verified by QR."


def test_accuracy_at_threshold_is_not_degraded():
    status, note = decide_verdict(160, 100, 100, SCHEDULE_PASS)
    assert status == ScanStatus.INVALID_LOCATION
    assert note == "Location Mismatch. Dist: 160m"


def test_missing_accuracy_counts_as_precise():
    assert decide_verdict(160, 100, None, SCHEDULE_PASS)[0] == ScanStatus.INVALID_LOCATION


def test_radius_boundary_is_valid():
    assert decide_verdict(100, 100, 5, SCHEDULE_PASS) == (ScanStatus.VALID, ROUTINE_NOTE)


def test_degraded_threshold_is_configurable():
    assert decide_verdict(500, 100, 60, SCHEDULE_PASS, degraded_threshold=50)[0] == ScanStatus.VALID


# --- verify ---


def test_valid_scan_produces_draft(session_factory, morning_clock):
    engine, store = make_engine(session_factory, morning_clock)
    draft = scan(engine, "cp-001", AT_GATE)

    assert draft.status == ScanStatus.VALID
    assert draft.note == ROUTINE_NOTE
    assert draft.checkpoint_name == "Main Entrance Gate"
    assert draft.distance_from_target == pytest.approx(0)
    assert draft.utm.startswith("Zone 47")
    assert draft.timestamp == to_epoch_millis(morning_clock.now())
    assert draft.state == VerificationState.AWAITING_CONFIRMATION
    assert draft.history == [
        VerificationState.AWAITING_SENSOR_READING,
        VerificationState.EVALUATING,
        VerificationState.VALID,
        VerificationState.AWAITING_CONFIRMATION,
    ]
    # Nothing is stored before confirmation
    assert store.count() == 0


def test_outside_radius_is_invalid_location(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    draft = scan(engine, "cp-001", NORTH_OF_GATE)

    assert draft.status == ScanStatus.INVALID_LOCATION
    assert draft.note == "Location Mismatch. Dist: 111m"
    assert VerificationState.INVALID_LOCATION in draft.history


def test_outside_window_is_invalid_time(session_factory, clock_at):
    engine, _ = make_engine(session_factory, clock_at(10, 0))
    draft = scan(engine, "cp-001", NORTH_OF_GATE)

    assert draft.status == ScanStatus.INVALID_TIME
    assert draft.note == "Wrong Time. Schedule: 08:00, 12:00, 16:00, 20:00 (+/- 10m)"


def test_unknown_checkpoint(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    sensor = ReportedLocationSensor(AT_GATE)

    with pytest.raises(UnknownCheckpoint) as exc_info:
        asyncio.run(engine.verify("cp-404", sensor))

    assert "cp-404" in str(exc_info.value)
    assert sensor.stopped


def test_permission_denied_from_device(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    sensor = ReportedLocationSensor(error=SensorErrorCode.PERMISSION_DENIED)

    with pytest.raises(PermissionDenied):
        asyncio.run(engine.verify("cp-001", sensor))
    assert sensor.stopped


def test_slow_sensor_times_out(session_factory, morning_clock):
    engine, store = make_engine(session_factory, morning_clock, location_timeout_seconds=0.05)
    sensor = SlowSensor()

    with pytest.raises(LocationTimeout):
        asyncio.run(engine.verify("cp-001", sensor))

    assert sensor.stopped
    assert store.count() == 0


def test_new_scan_cancels_in_flight_capture(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    slow = SlowSensor()

    async def scenario():
        first = asyncio.create_task(engine.verify("cp-001", slow, "tablet-1"))
        await asyncio.sleep(0.01)
        second = await engine.verify("cp-001", ReportedLocationSensor(AT_GATE), "tablet-1")
        with pytest.raises(CaptureCancelled):
            await first
        return second

    draft = asyncio.run(scenario())
    assert draft.status == ScanStatus.VALID
    assert slow.stopped


def test_other_devices_are_not_cancelled(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)

    async def scenario():
        first = asyncio.create_task(engine.verify("cp-001", SlowSensor(0.05), "tablet-1"))
        await asyncio.sleep(0.01)
        await engine.verify("cp-002", ReportedLocationSensor(AT_SERVER_ROOM), "tablet-2")
        return await first

    assert asyncio.run(scenario()).status == ScanStatus.VALID


def test_rescan_on_device_drops_previous_draft(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    first = scan(engine, "cp-001", AT_GATE, device_id="tablet-1")
    other_device = scan(engine, "cp-001", AT_GATE, device_id="tablet-2")
    second = scan(engine, "cp-001", AT_GATE, device_id="tablet-1")

    with pytest.raises(DraftNotFound):
        engine.pending(first.draft_id)
    assert engine.pending(second.draft_id).draft_id == second.draft_id
    assert engine.pending(other_device.draft_id).device_id == "tablet-2"


def test_drafts_expire(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock, draft_ttl_seconds=0)
    draft = scan(engine, "cp-001", AT_GATE)

    with pytest.raises(DraftNotFound):
        engine.pending(draft.draft_id)


def test_interval_not_enforced_by_default(session_factory, morning_clock):
    engine, store = make_engine(session_factory, morning_clock)
    store.append(_valid_visit("cp-002", morning_clock.now() - timedelta(minutes=12)))

    assert scan(engine, "cp-002", AT_SERVER_ROOM).status == ScanStatus.VALID


def test_interval_enforced_when_enabled(session_factory, morning_clock):
    engine, store = make_engine(session_factory, morning_clock, enforce_interval_schedules=True)
    store.append(_valid_visit("cp-002", morning_clock.now() - timedelta(minutes=12)))

    draft = scan(engine, "cp-002", AT_SERVER_ROOM)
    assert draft.status == ScanStatus.INVALID_TIME
    assert draft.note == "Too soon. Interval: 60m, last visit 12m ago"


def test_interval_first_visit_is_valid(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock, enforce_interval_schedules=True)
    assert scan(engine, "cp-002", AT_SERVER_ROOM).status == ScanStatus.VALID


def _valid_visit(checkpoint_id, when):
    return ScanRecord(
        id=f"visit-{checkpoint_id}",
        checkpoint_id=checkpoint_id,
        checkpoint_name="Server Room B2",
        officer_id="Somsak Jaidee (OFF-001)",
        timestamp=to_epoch_millis(when),
        status=ScanStatus.VALID,
    )


# --- confirm / abandon ---


def test_confirm_without_officer_changes_nothing(session_factory, morning_clock):
    sync = RecordingSync()
    engine, store = make_engine(session_factory, morning_clock, sync=sync)
    draft = scan(engine, "cp-001", AT_GATE)

    for officer_id in (None, "", "   "):
        with pytest.raises(ValidationIncomplete, match="Please select your name/ID from the list."):
            asyncio.run(engine.confirm(draft.draft_id, officer_id))

    assert store.count() == 0
    assert sync.actions == []
    # Still open, the officer can pick a name and retry
    assert engine.pending(draft.draft_id).state == VerificationState.AWAITING_CONFIRMATION


def test_confirm_stores_exactly_one_record(session_factory, morning_clock):
    sync = RecordingSync()
    engine, store = make_engine(session_factory, morning_clock, sync=sync)
    draft = scan(engine, "cp-001", NORTH_OF_GATE)

    record = asyncio.run(engine.confirm(draft.draft_id, "OFF-001"))

    assert store.count() == 1
    assert record.officer_id == "Somsak Jaidee (OFF-001)"
    assert record.status == ScanStatus.INVALID_LOCATION
    assert record.note == "Location Mismatch. Dist: 111m"
    assert record.timestamp == draft.timestamp
    assert record.origin == RecordOrigin.LOCAL
    assert record.latitude == NORTH_OF_GATE.latitude
    assert record.id.startswith(f"{draft.timestamp:013d}-")

    assert len(sync.actions) == 1
    action = sync.actions[0]
    assert action.type == SyncActionType.LOG
    assert action.payload["officerId"] == "Somsak Jaidee (OFF-001)"
    assert action.payload["userLocation"]["latitude"] == NORTH_OF_GATE.latitude

    # A draft is confirmed once
    with pytest.raises(DraftNotFound):
        asyncio.run(engine.confirm(draft.draft_id, "OFF-001"))
    assert store.count() == 1


def test_confirm_keeps_note_and_evidence(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    draft = scan(engine, "cp-001", AT_GATE)

    record = asyncio.run(
        engine.confirm(draft.draft_id, "OFF-002", note="Gate chain broken", evidence_ref="photo-17.jpg")
    )
    assert record.note == "Gate chain broken"
    assert record.evidence_ref == "photo-17.jpg"
    assert record.officer_id == "Mana Meemark (OFF-002)"


def test_confirm_with_unlisted_officer_keeps_raw_id(session_factory, morning_clock):
    engine, _ = make_engine(session_factory, morning_clock)
    draft = scan(engine, "cp-001", AT_GATE)

    record = asyncio.run(engine.confirm(draft.draft_id, "  OFF-099 "))
    assert record.officer_id == "OFF-099"


def test_abandon_discards_draft(session_factory, morning_clock):
    engine, store = make_engine(session_factory, morning_clock)
    draft = scan(engine, "cp-001", AT_GATE)

    abandoned = engine.abandon(draft.draft_id)

    assert abandoned.state == VerificationState.ABANDONED
    assert store.count() == 0
    with pytest.raises(DraftNotFound):
        engine.pending(draft.draft_id)
    with pytest.raises(DraftNotFound):
        engine.abandon(draft.draft_id)
