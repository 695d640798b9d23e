"""
Client for the authoritative remote log: a Google Apps Script web app
sitting in front of a spreadsheet.

GET returns the whole sheet as ``{"logs": [...], "officers": [...],
"checkpoints": [...]}``. POST takes a ``text/plain`` JSON body tagged with an
``action`` field. Apps Script gives no meaningful acknowledgement, so a
successful POST only means the request was delivered.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from models.checkpoint import Checkpoint
from models.officer import Officer, Role
from models.scan_record import RecordOrigin, ScanRecord, ScanStatus
from models.schedule import ScheduleConfig
from services.errors import SyncFailure
from utils.datetime_helpers import parse_remote_timestamp

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_RADIUS_METERS = 50.0


class SyncActionType(str, Enum):
    LOG = "LOG"
    ADD_CHECKPOINT = "ADD_CHECKPOINT"
    ADD_OFFICER = "ADD_OFFICER"
    REMOVE_OFFICER = "REMOVE_OFFICER"


@dataclass(frozen=True)
class SyncAction:
    type: SyncActionType
    payload: Dict[str, Any] = field(default_factory=dict)

    def envelope(self) -> Dict[str, Any]:
        return {"action": self.type.value, **self.payload}

    @classmethod
    def log_scan(cls, record: ScanRecord) -> "SyncAction":
        user_location = None
        if record.latitude is not None and record.longitude is not None:
            user_location = {
                "latitude": record.latitude,
                "longitude": record.longitude,
                "accuracy": record.accuracy,
            }
        return cls(
            SyncActionType.LOG,
            {
                "id": record.id,
                "checkpointId": record.checkpoint_id,
                "checkpointName": record.checkpoint_name,
                "officerId": record.officer_id,
                "timestamp": record.timestamp,
                "status": record.status.value,
                "note": record.note,
                "userLocation": user_location,
                "distanceFromTarget": record.distance_from_target,
                "evidencePhotoUrl": record.evidence_ref,
            },
        )

    @classmethod
    def add_checkpoint(cls, checkpoint: Checkpoint) -> "SyncAction":
        # Flattened; the sheet stores the schedule as a JSON string cell
        return cls(
            SyncActionType.ADD_CHECKPOINT,
            {
                "id": checkpoint.id,
                "name": checkpoint.name,
                "latitude": checkpoint.latitude,
                "longitude": checkpoint.longitude,
                "allowedRadiusMeters": checkpoint.allowed_radius_meters,
                "schedule": json.dumps(checkpoint.schedule or {}),
            },
        )

    @classmethod
    def add_officer(cls, officer: Officer) -> "SyncAction":
        return cls(
            SyncActionType.ADD_OFFICER,
            {"id": officer.id, "name": officer.name, "role": officer.role.value},
        )

    @classmethod
    def remove_officer(cls, officer_id: str) -> "SyncAction":
        return cls(SyncActionType.REMOVE_OFFICER, {"id": officer_id})


@dataclass
class RemoteSnapshot:
    checkpoints: List[Checkpoint] = field(default_factory=list)
    officers: List[Officer] = field(default_factory=list)
    scan_records: List[ScanRecord] = field(default_factory=list)


class RemoteStore(Protocol):
    async def fetch_snapshot(self) -> RemoteSnapshot: ...

    async def submit(self, action: SyncAction) -> None: ...


# --- Row parsing ---


def _parse_schedule(raw: Any) -> Optional[dict]:
    if not raw:
        return None
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        if not data:
            return None
        return ScheduleConfig.model_validate(data).to_wire()
    except (ValueError, TypeError):
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        return None


def parse_checkpoint_row(row: Dict[str, Any]) -> Optional[Checkpoint]:
    try:
        radius = float(row.get("allowedRadiusMeters") or 0)
        if radius <= 0:
            radius = DEFAULT_REMOTE_RADIUS_METERS
        return Checkpoint(
            id=str(row["id"]),
            name=str(row.get("name") or row["id"]),
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            allowed_radius_meters=radius,
            schedule=_parse_schedule(row.get("schedule")),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"[SYNC] Skipping malformed checkpoint row {row!r}: {e}")
        return None


def parse_officer_row(row: Dict[str, Any]) -> Optional[Officer]:
    if row.get("id") in (None, ""):
        logger.warning(f"[SYNC] Skipping officer row without id: {row!r}")
        return None
    try:
        role = Role(row.get("role") or Role.OFFICER.value)
    except ValueError:
        role = Role.OFFICER
    return Officer(id=str(row["id"]), name=str(row.get("name") or row["id"]), role=role)


def _parse_location(raw: Any) -> Dict[str, Optional[float]]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raw = None
    if not isinstance(raw, dict):
        return {"latitude": None, "longitude": None, "accuracy": None}

    def _num(key: str) -> Optional[float]:
        try:
            return float(raw[key]) if raw.get(key) not in (None, "") else None
        except (TypeError, ValueError):
            return None

    return {"latitude": _num("latitude"), "longitude": _num("longitude"), "accuracy": _num("accuracy")}


def parse_log_row(index: int, row: Dict[str, Any]) -> Optional[ScanRecord]:
    """
    Remote rows do not keep the checkpoint id, only its name, so the
    record's checkpoint reference is the name alone.
    """
    try:
        status = ScanStatus(row.get("status"))
    except ValueError:
        logger.warning(f"[SYNC] Skipping log row {index} with unknown status {row.get('status')!r}")
        return None

    timestamp = parse_remote_timestamp(row.get("timestamp"))
    if timestamp is None:
        logger.warning(f"[SYNC] Skipping log row {index} with unreadable timestamp")
        return None

    try:
        distance = float(row.get("distanceFromTarget") or 0)
    except (TypeError, ValueError):
        distance = 0.0

    return ScanRecord(
        id=f"sheet-{index}",
        checkpoint_id=None,
        checkpoint_name=str(row.get("checkpointName") or ""),
        officer_id=str(row.get("officerId") or ""),
        timestamp=timestamp,
        status=status,
        distance_from_target=distance,
        note=row.get("note") or None,
        evidence_ref=row.get("evidencePhotoUrl") or None,
        origin=RecordOrigin.REMOTE,
        **_parse_location(row.get("userLocation")),
    )


def parse_snapshot(data: Dict[str, Any]) -> RemoteSnapshot:
    snapshot = RemoteSnapshot()
    if not isinstance(data, dict):
        raise SyncFailure("Remote snapshot is not a JSON object")

    logs = data.get("logs")
    if isinstance(logs, list):
        for index, row in enumerate(logs):
            record = parse_log_row(index, row) if isinstance(row, dict) else None
            if record is not None:
                snapshot.scan_records.append(record)

    officers = data.get("officers")
    if isinstance(officers, list):
        for row in officers:
            officer = parse_officer_row(row) if isinstance(row, dict) else None
            if officer is not None:
                snapshot.officers.append(officer)

    checkpoints = data.get("checkpoints")
    if isinstance(checkpoints, list):
        for row in checkpoints:
            checkpoint = parse_checkpoint_row(row) if isinstance(row, dict) else None
            if checkpoint is not None:
                snapshot.checkpoints.append(checkpoint)

    return snapshot


class AppsScriptRemoteStore:
    def __init__(
        self,
        script_url: str,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.script_url = script_url
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # Apps Script answers with a redirect to googleusercontent.com
        return httpx.AsyncClient(
            timeout=self.timeout_s, follow_redirects=True, transport=self._transport
        )

    async def _get_json(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(self.script_url)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            raise SyncFailure(f"Could not fetch remote snapshot: {e}") from e
        except ValueError as e:
            raise SyncFailure(f"Remote snapshot is not valid JSON: {e}") from e

    async def fetch_snapshot(self) -> RemoteSnapshot:
        data = await self._get_json()
        snapshot = parse_snapshot(data)
        logger.info(
            f"[SYNC] 📥 Remote snapshot: {len(snapshot.scan_records)} logs, "
            f"{len(snapshot.officers)} officers, {len(snapshot.checkpoints)} checkpoints"
        )
        return snapshot

    async def submit(self, action: SyncAction) -> None:
        try:
            async with self._client() as client:
                response = await client.post(
                    self.script_url,
                    content=json.dumps(action.envelope(), default=str),
                    headers={"Content-Type": "text/plain"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise SyncFailure(f"Could not submit {action.type.value}: {e}") from e

    async def check_connection(self) -> Tuple[bool, str]:
        try:
            data = await self._get_json()
        except SyncFailure:
            return False, "Connection Failed. Check URL permissions."
        logs = data.get("logs") if isinstance(data, dict) else None
        return True, f"Connected. Found {len(logs or [])} logs."
