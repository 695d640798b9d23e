"""Domain errors raised by the verification and sync services.

Routers translate these into HTTP responses; nothing in ``services/`` knows
about FastAPI.
"""


class PatrolError(Exception):
    """Base class for all checkpoint verification errors."""


class UnknownCheckpoint(PatrolError):
    def __init__(self, checkpoint_id: str):
        self.checkpoint_id = checkpoint_id
        super().__init__(f"Unknown QR Code. Checkpoint ID '{checkpoint_id}' not found in system.")


class SensorError(PatrolError):
    """The location reading could not be acquired. Retry by scanning again."""


class LocationTimeout(SensorError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"GPS timed out after {timeout_seconds:g}s. Move to open sky.")


class PermissionDenied(SensorError):
    pass


class DeviceUnavailable(SensorError):
    pass


class ValidationIncomplete(PatrolError):
    """Confirmation attempted without the information it requires."""


class DraftNotFound(PatrolError):
    def __init__(self, draft_id: str):
        self.draft_id = draft_id
        super().__init__(f"Scan draft '{draft_id}' not found or already closed.")


class SyncFailure(PatrolError):
    """The remote store could not be reached or returned garbage."""


class CaptureCancelled(SensorError):
    """A newer scan on the same device replaced this in-flight reading."""


class DuplicateEntity(PatrolError):
    pass


class UnknownEntity(PatrolError):
    pass
