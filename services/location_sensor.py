import asyncio
import logging
import time
from enum import Enum
from typing import Dict, Optional, Protocol

import httpx

from models.coordinates import Coordinates
from services.errors import (
    CaptureCancelled,
    DeviceUnavailable,
    LocationTimeout,
    PermissionDenied,
)

logger = logging.getLogger(__name__)


class LocationSensor(Protocol):
    async def read(self) -> Coordinates: ...

    def stop(self) -> None: ...


# Error codes a browser/device reports when geolocation fails
class SensorErrorCode(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class ReportedLocationSensor:
    """
    Reading measured on the officer's device and sent along with the scan.

    The device either sends a fix or the error its geolocation API raised;
    both are replayed through the same acquisition path as a live sensor.
    """

    def __init__(
        self,
        reading: Optional[Coordinates] = None,
        error: Optional[SensorErrorCode] = None,
        timeout_s: float = 10.0,
    ):
        self.reading = reading
        self.error = error
        # Device-side geolocation timeout, reported back to the operator
        self.timeout_s = timeout_s
        self.stopped = False

    async def read(self) -> Coordinates:
        if self.error == SensorErrorCode.PERMISSION_DENIED:
            raise PermissionDenied("Location permission denied on the device.")
        if self.error == SensorErrorCode.TIMEOUT:
            raise LocationTimeout(self.timeout_s)
        if self.error == SensorErrorCode.POSITION_UNAVAILABLE or self.reading is None:
            raise DeviceUnavailable("Device could not determine its position.")
        return self.reading

    def stop(self) -> None:
        self.stopped = True


class TrackerLocationSensor:
    """
    Latest point from a self-hosted GPS tracker (Dawarich-compatible API).

    Used when the scanning device does not report a position itself, e.g. a
    fixed kiosk reader paired with the officer's phone tracker.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        max_age_s: int = 300,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.max_age_s = max_age_s
        self.timeout_s = timeout_s
        self._transport = transport
        self.stopped = False

    async def read(self) -> Coordinates:
        now = time.time()
        params = {
            "start_at": time.strftime("%Y-%m-%dT%H:%M:%S%z", time.localtime(now - self.max_age_s)),
            "end_at": time.strftime("%Y-%m-%dT%H:%M:%S%z", time.localtime(now)),
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.get(
                    f"{self.api_url}/api/v1/points", params=params, headers=headers
                )
        except httpx.HTTPError as e:
            raise DeviceUnavailable(f"Tracker unreachable: {e}")

        if response.status_code in (401, 403):
            raise PermissionDenied("Tracker rejected the API key.")
        if response.status_code != 200:
            raise DeviceUnavailable(f"Tracker returned HTTP {response.status_code}")

        points = response.json()
        if not points or not isinstance(points, list):
            raise DeviceUnavailable(f"No tracker fix in the last {self.max_age_s}s.")

        p = points[0]
        try:
            return Coordinates(
                latitude=float(p["latitude"]),
                longitude=float(p["longitude"]),
                accuracy=float(p["accuracy"]) if p.get("accuracy") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DeviceUnavailable(f"Malformed tracker point: {e}")

    def stop(self) -> None:
        # The HTTP client is scoped to read(); cancelling the read closes it
        self.stopped = True


class CaptureSession:
    """
    At most one in-flight location acquisition per device.

    Starting a new acquisition cancels the previous one, whose caller then
    gets CaptureCancelled instead of a stale reading. The sensor is stopped
    on every exit path.
    """

    def __init__(self, device_id: str = "default"):
        self.device_id = device_id
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._sensor: Optional[LocationSensor] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def acquire(self, sensor: LocationSensor, timeout_seconds: float) -> Coordinates:
        self.cancel()
        self._generation += 1
        generation = self._generation
        self._sensor = sensor
        task = asyncio.ensure_future(sensor.read())
        self._task = task

        try:
            return await asyncio.wait_for(task, timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"[SENSOR] ⏱️ Device {self.device_id}: no fix within {timeout_seconds:g}s"
            )
            raise LocationTimeout(timeout_seconds)
        except asyncio.CancelledError:
            if generation != self._generation:
                raise CaptureCancelled("Location capture cancelled on this device; reading discarded.")
            raise
        finally:
            sensor.stop()
            if generation == self._generation:
                self._task = None
                self._sensor = None

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            logger.info(f"[SENSOR] Device {self.device_id}: cancelling in-flight acquisition")
            # The waiting caller sees a stale generation and gets CaptureCancelled
            self._generation += 1
            self._task.cancel()
        if self._sensor is not None:
            self._sensor.stop()
        self._task = None
        self._sensor = None


class CaptureSessions:
    """Capture sessions keyed by the X-Device-Id of the scanning device."""

    def __init__(self):
        self._sessions: Dict[str, CaptureSession] = {}

    def for_device(self, device_id: str) -> CaptureSession:
        session = self._sessions.get(device_id)
        if session is None:
            session = CaptureSession(device_id)
            self._sessions[device_id] = session
        return session

    def cancel(self, device_id: str) -> None:
        session = self._sessions.get(device_id)
        if session is not None:
            session.cancel()

    def cancel_all(self) -> None:
        for session in self._sessions.values():
            session.cancel()
