import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from services.errors import SyncFailure
from services.local_cache import LocalCache
from services.remote_store import RemoteStore, SyncAction

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Rows written per collection; 0 means the local copy was kept."""

    checkpoints: int = 0
    officers: int = 0
    scan_records: int = 0
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ReconciliationClient:
    """
    Local-first sync against the remote log.

    Pushes are fire-and-forget tasks; a failed push is logged and left for
    the next pull to paper over. Every push schedules a pull after a settle
    delay, because the remote sheet needs a moment before it reflects the
    write. A newer push replaces a pull that is still waiting out its delay.

    Pulls replace each local collection wholesale, but only when the remote
    collection is non-empty: an empty answer is read as "not available yet".
    """

    def __init__(
        self,
        remote: Optional[RemoteStore],
        cache: LocalCache,
        settle_seconds: float = 2.0,
    ):
        self._remote = remote
        self._cache = cache
        self.settle_seconds = settle_seconds

        self._push_tasks: Set[asyncio.Task] = set()
        self._pending_pull: Optional[asyncio.Task] = None
        self._pending_pull_waiting = False
        self._pull_lock: Optional[asyncio.Lock] = None

        self.last_sync_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_report: Optional[SyncReport] = None

    @property
    def enabled(self) -> bool:
        return self._remote is not None

    @property
    def pull_scheduled(self) -> bool:
        return self._pending_pull is not None and not self._pending_pull.done()

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "pull_scheduled": self.pull_scheduled,
            "last_sync_at": self.last_sync_at,
            "last_error": self.last_error,
            "last_report": asdict(self.last_report) if self.last_report else None,
        }

    # --- Push ---

    def push(self, action: SyncAction) -> Optional[asyncio.Task]:
        """Send an entity to the remote store without waiting for it."""
        if not self.enabled:
            logger.debug(f"[SYNC] Sync disabled, keeping {action.type.value} local only")
            return None

        task = asyncio.get_running_loop().create_task(self._push(action))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)
        return task

    async def _push(self, action: SyncAction) -> None:
        try:
            await self._remote.submit(action)
            logger.info(f"[SYNC] 📤 Submitted {action.type.value}")
        except SyncFailure as e:
            self.last_error = str(e)
            logger.error(f"[SYNC] ❌ Push {action.type.value} failed: {e}")
        # Pull either way; the remote may have taken the write regardless
        self.schedule_pull()

    # --- Pull ---

    def schedule_pull(self, delay: Optional[float] = None) -> asyncio.Task:
        """Pull after the settle delay, superseding a pull still waiting."""
        if self._pending_pull is not None and not self._pending_pull.done():
            if self._pending_pull_waiting:
                self._pending_pull.cancel()
            else:
                # Already fetching; let it finish and queue another behind it
                logger.debug("[SYNC] Pull in progress, queueing another")

        settle = self.settle_seconds if delay is None else delay
        self._pending_pull_waiting = True
        self._pending_pull = asyncio.get_running_loop().create_task(
            self._delayed_pull(settle)
        )
        return self._pending_pull

    async def _delayed_pull(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._pending_pull_waiting = False
        try:
            await self.pull()
        except SyncFailure:
            # Already logged; the next scheduled pull will try again
            pass

    async def pull(self) -> SyncReport:
        if not self.enabled:
            raise SyncFailure("Remote sync is not configured.")

        if self._pull_lock is None:
            self._pull_lock = asyncio.Lock()

        async with self._pull_lock:
            try:
                snapshot = await self._remote.fetch_snapshot()
            except SyncFailure as e:
                self.last_error = str(e)
                logger.error(f"[SYNC] ❌ Pull failed: {e}")
                raise

            report = SyncReport()
            failures = []
            # Scan log first, then officers, then checkpoints; one failing
            # collection keeps its local copy without holding back the rest
            for name, rows, replace in (
                ("scan_records", snapshot.scan_records, self._cache.replace_scan_records),
                ("officers", snapshot.officers, self._cache.replace_officers),
                ("checkpoints", snapshot.checkpoints, self._cache.replace_checkpoints),
            ):
                if not rows:
                    continue
                try:
                    setattr(report, name, await asyncio.to_thread(replace, rows))
                except SQLAlchemyError as e:
                    failures.append(f"{name}: {e}")
                    logger.error(f"[SYNC] ❌ Replacing local {name} failed: {e}")

            self.last_report = report
            if failures:
                self.last_error = "Local cache update failed: " + "; ".join(failures)
                raise SyncFailure(self.last_error)

            self.last_sync_at = report.synced_at
            self.last_error = None
            logger.info(
                f"[SYNC] ✅ Pull complete: {report.scan_records} logs, "
                f"{report.officers} officers, {report.checkpoints} checkpoints replaced"
            )
            return report

    async def aclose(self) -> None:
        tasks = list(self._push_tasks)
        if self._pending_pull is not None:
            tasks.append(self._pending_pull)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending_pull = None
