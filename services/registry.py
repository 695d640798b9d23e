import logging
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from db.seed import default_checkpoints, default_officers
from models.checkpoint import Checkpoint
from models.officer import Officer
from models.schedule import ScheduleConfig
from services.errors import DuplicateEntity, UnknownEntity

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


def _copy_checkpoint(checkpoint: Checkpoint) -> Checkpoint:
    # Fresh instance so the caller's object is never bound to our session
    return Checkpoint.model_validate(checkpoint.model_dump())


def _copy_officer(officer: Officer) -> Officer:
    return Officer.model_validate(officer.model_dump())


class CheckpointRegistry:
    """Checkpoints known to this device. Read-only to the verification path."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def get(self, checkpoint_id: str) -> Optional[Checkpoint]:
        with self._session_factory() as session:
            return session.get(Checkpoint, checkpoint_id)

    def list(self) -> List[Checkpoint]:
        with self._session_factory() as session:
            return list(session.exec(select(Checkpoint).order_by(Checkpoint.id)).all())

    def add(self, checkpoint: Checkpoint) -> Checkpoint:
        with self._session_factory() as session:
            if session.get(Checkpoint, checkpoint.id) is not None:
                raise DuplicateEntity(f"Checkpoint with ID '{checkpoint.id}' already exists.")
            session.add(checkpoint)
            session.commit()
            session.refresh(checkpoint)
            return checkpoint

    def update_geofence(
        self,
        checkpoint_id: str,
        allowed_radius_meters: Optional[float] = None,
        schedule: Optional[ScheduleConfig] = None,
    ) -> Checkpoint:
        """Admin edit of radius and/or schedule; the id never changes."""
        with self._session_factory() as session:
            checkpoint = session.get(Checkpoint, checkpoint_id)
            if checkpoint is None:
                raise UnknownEntity(f"Checkpoint with ID '{checkpoint_id}' not found.")
            if allowed_radius_meters is not None:
                checkpoint.allowed_radius_meters = allowed_radius_meters
            if schedule is not None:
                checkpoint.schedule = schedule.to_wire()
            session.add(checkpoint)
            session.commit()
            session.refresh(checkpoint)
            return checkpoint

    def replace_all(self, checkpoints: Sequence[Checkpoint]) -> int:
        """
        Swap the whole collection in one transaction.

        A repeated id keeps its last row.
        """
        latest = list({c.id: c for c in checkpoints}.values())
        with self._session_factory() as session:
            try:
                session.execute(delete(Checkpoint))
                session.add_all([_copy_checkpoint(c) for c in latest])
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return len(latest)


class OfficerRegistry:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def get(self, officer_id: str) -> Optional[Officer]:
        with self._session_factory() as session:
            return session.get(Officer, officer_id)

    def list(self) -> List[Officer]:
        with self._session_factory() as session:
            return list(session.exec(select(Officer).order_by(Officer.id)).all())

    def add(self, officer: Officer) -> Officer:
        with self._session_factory() as session:
            if session.get(Officer, officer.id) is not None:
                raise DuplicateEntity(f"Officer with ID '{officer.id}' already exists.")
            session.add(officer)
            session.commit()
            session.refresh(officer)
            return officer

    def remove(self, officer_id: str) -> None:
        with self._session_factory() as session:
            officer = session.get(Officer, officer_id)
            if officer is None:
                raise UnknownEntity(f"Officer with ID '{officer_id}' not found.")
            session.delete(officer)
            session.commit()

    def replace_all(self, officers: Sequence[Officer]) -> int:
        latest = list({o.id: o for o in officers}.values())
        with self._session_factory() as session:
            try:
                session.execute(delete(Officer))
                session.add_all([_copy_officer(o) for o in latest])
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
        return len(latest)


# Errors raised while loading a stored row; any of them means the table is unusable
_UNREADABLE = (SQLAlchemyError, LookupError, ValueError, TypeError)


def _checkpoints_readable(checkpoints: Sequence[Checkpoint]) -> bool:
    try:
        for checkpoint in checkpoints:
            checkpoint.schedule_config  # raises on a malformed row
            if not checkpoint.allowed_radius_meters or checkpoint.allowed_radius_meters <= 0:
                return False
    except ValidationError:
        return False
    return True


def _officers_readable(officers: Sequence[Officer]) -> bool:
    return all(
        officer.id and officer.id.strip() and officer.name and officer.name.strip()
        for officer in officers
    )


def ensure_registries(session_factory: SessionFactory) -> None:
    """
    Make sure both registries hold usable data at startup.

    An empty or unreadable collection is replaced by the built-in defaults;
    a bad row never turns into a startup failure.
    """
    checkpoints = CheckpointRegistry(session_factory)
    officers = OfficerRegistry(session_factory)

    try:
        stored_checkpoints = checkpoints.list()
    except _UNREADABLE as e:
        logger.warning(f"[REGISTRY] ⚠️ Stored checkpoints unreadable ({e}); using defaults")
        stored_checkpoints = None

    if not stored_checkpoints or not _checkpoints_readable(stored_checkpoints):
        if stored_checkpoints:
            logger.warning("[REGISTRY] ⚠️ Stored checkpoints malformed; using defaults")
        checkpoints.replace_all(default_checkpoints())
        logger.info("[REGISTRY] Loaded default checkpoints")

    try:
        stored_officers = officers.list()
    except _UNREADABLE as e:
        logger.warning(f"[REGISTRY] ⚠️ Stored officers unreadable ({e}); using defaults")
        stored_officers = None

    if not stored_officers or not _officers_readable(stored_officers):
        if stored_officers:
            logger.warning("[REGISTRY] ⚠️ Stored officers malformed; using defaults")
        officers.replace_all(default_officers())
        logger.info("[REGISTRY] Loaded default officers")


def reset_registries(checkpoints: CheckpointRegistry, officers: OfficerRegistry) -> None:
    checkpoints.replace_all(default_checkpoints())
    officers.replace_all(default_officers())
    logger.info("[REGISTRY] Registries reset to defaults")
