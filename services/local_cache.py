"""
Local copies of the remote collections.

Each replace is one transaction, so a reader sees either the old collection
or the new one. Pull results only ever land here; swapping this class is how
an incremental merge-by-id strategy would be introduced.
"""

import logging
from typing import Callable, Protocol, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from models.checkpoint import Checkpoint
from models.officer import Officer
from models.scan_record import RecordOrigin, ScanRecord
from services.registry import CheckpointRegistry, OfficerRegistry

logger = logging.getLogger(__name__)


class LocalCache(Protocol):
    def replace_checkpoints(self, checkpoints: Sequence[Checkpoint]) -> int: ...

    def replace_officers(self, officers: Sequence[Officer]) -> int: ...

    def replace_scan_records(self, records: Sequence[ScanRecord]) -> int: ...


class SqlLocalCache:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._checkpoints = CheckpointRegistry(session_factory)
        self._officers = OfficerRegistry(session_factory)

    def replace_checkpoints(self, checkpoints: Sequence[Checkpoint]) -> int:
        return self._checkpoints.replace_all(checkpoints)

    def replace_officers(self, officers: Sequence[Officer]) -> int:
        return self._officers.replace_all(officers)

    def replace_scan_records(self, records: Sequence[ScanRecord]) -> int:
        """
        Replace the mirrored remote log. LOCAL records are never touched, so a
        pull cannot lose a scan confirmed on this device.
        """
        remote_rows = [
            ScanRecord.model_validate(
                {**record.model_dump(), "origin": RecordOrigin.REMOTE}
            )
            for record in records
        ]
        with self._session_factory() as session:
            try:
                session.execute(
                    delete(ScanRecord).where(ScanRecord.origin == RecordOrigin.REMOTE)
                )
                session.add_all(remote_rows)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return len(remote_rows)
