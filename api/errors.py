from fastapi import HTTPException, status

from services.errors import (
    CaptureCancelled,
    DeviceUnavailable,
    DraftNotFound,
    DuplicateEntity,
    LocationTimeout,
    PatrolError,
    PermissionDenied,
    SyncFailure,
    UnknownCheckpoint,
    UnknownEntity,
    ValidationIncomplete,
)

# Most specific first; the first isinstance match wins
_STATUS_BY_ERROR = [
    (UnknownCheckpoint, status.HTTP_404_NOT_FOUND),
    (DraftNotFound, status.HTTP_404_NOT_FOUND),
    (UnknownEntity, status.HTTP_404_NOT_FOUND),
    (DuplicateEntity, status.HTTP_409_CONFLICT),
    (CaptureCancelled, status.HTTP_409_CONFLICT),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (DeviceUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LocationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (ValidationIncomplete, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SyncFailure, status.HTTP_502_BAD_GATEWAY),
]


def to_http_exception(error: PatrolError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
