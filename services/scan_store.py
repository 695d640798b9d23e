import logging
from collections import Counter
from typing import Callable, Dict, List, Optional

from sqlmodel import Session, func, select

from models.scan_record import RecordOrigin, ScanRecord, ScanStatus
from services.errors import DuplicateEntity

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class ScanRecordStore:
    """
    Append-only store of finalized scan records.

    There is no update or delete: a LOCAL record is written once
    when the officer confirms it. REMOTE rows are only ever swapped wholesale
    by the local cache on a pull.
    """

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def append(self, record: ScanRecord) -> ScanRecord:
        with self._session_factory() as session:
            if session.get(ScanRecord, record.id) is not None:
                raise DuplicateEntity(f"Scan record '{record.id}' already exists.")
            session.add(record)
            session.commit()
            session.refresh(record)
            logger.info(
                f"[SCAN] 💾 Stored {record.status.value} scan {record.id} "
                f"at {record.checkpoint_name} by {record.officer_id}"
            )
            return record

    def get(self, record_id: str) -> Optional[ScanRecord]:
        with self._session_factory() as session:
            return session.get(ScanRecord, record_id)

    def list(
        self,
        origin: Optional[RecordOrigin] = None,
        status: Optional[ScanStatus] = None,
        limit: Optional[int] = None,
    ) -> List[ScanRecord]:
        statement = select(ScanRecord)
        if origin is not None:
            statement = statement.where(ScanRecord.origin == origin)
        if status is not None:
            statement = statement.where(ScanRecord.status == status)
        statement = statement.order_by(ScanRecord.timestamp.desc(), ScanRecord.id.desc())
        if limit is not None:
            statement = statement.limit(limit)

        with self._session_factory() as session:
            return list(session.exec(statement).all())

    def count(self, origin: Optional[RecordOrigin] = None) -> int:
        statement = select(func.count()).select_from(ScanRecord)
        if origin is not None:
            statement = statement.where(ScanRecord.origin == origin)
        with self._session_factory() as session:
            return session.exec(statement).one()

    def last_valid_visit(self, checkpoint_id: str) -> Optional[int]:
        """Epoch millis of the newest VALID scan of a checkpoint, if any."""
        statement = (
            select(ScanRecord.timestamp)
            .where(ScanRecord.checkpoint_id == checkpoint_id)
            .where(ScanRecord.status == ScanStatus.VALID)
            .order_by(ScanRecord.timestamp.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            return session.exec(statement).first()

    def summary(self) -> Dict[str, int]:
        """Count of records per status over the merged view, every status present."""
        counts = Counter(record.status for record in self.merged_view())
        return {status.value: counts.get(status, 0) for status in ScanStatus}

    def merged_view(self, limit: Optional[int] = None) -> List[ScanRecord]:
        """
        Local records plus the synced remote log, newest first.

        A scan pushed from this device comes back from the remote log under a
        sheet row id and without its checkpoint id, so remote rows are matched
        to local ones on (timestamp, checkpoint name, officer) and dropped when
        the local copy exists.
        """
        records = self.list()
        local_keys = {
            (r.timestamp, r.checkpoint_name, r.officer_id)
            for r in records
            if r.origin == RecordOrigin.LOCAL
        }
        merged = [
            r
            for r in records
            if r.origin == RecordOrigin.LOCAL
            or (r.timestamp, r.checkpoint_name, r.officer_id) not in local_keys
        ]
        return merged[:limit] if limit is not None else merged
