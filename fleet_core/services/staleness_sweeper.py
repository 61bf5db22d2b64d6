"""
Staleness sweeper.
Two periodic jobs against persisted state: deactivate vehicles that stopped
reporting, and purge ETA records past their retention window.
"""

import logging
from datetime import timedelta
from typing import Optional

from ..core.clock import Clock
from ..core.config import ApplicationConfig
from ..core.event_loop import ManagedEventLoop, PeriodicTask, SleepFunc
from ..data.repositories.base import BatchResult, FleetStore, StoreUnavailableError

logger = logging.getLogger(__name__)


class StalenessSweeper:
    """Vehicle liveness sweep and ETA retention sweep on independent cadences"""

    def __init__(self, config: ApplicationConfig, store: FleetStore, clock: Clock,
                 sleep: Optional[SleepFunc] = None,
                 event_loop: Optional[ManagedEventLoop] = None):
        self.config = config
        self.store = store
        self.clock = clock
        self._vehicle_task = PeriodicTask(
            "vehicle_liveness_sweep", config.vehicle_sweep_interval_seconds,
            self.sweep_inactive_vehicles, sleep=sleep, event_loop=event_loop,
        )
        self._eta_task = PeriodicTask(
            "eta_retention_sweep", config.eta_sweep_interval_seconds,
            self.purge_expired_etas, sleep=sleep, event_loop=event_loop,
        )
        self.vehicles_deactivated = 0
        self.etas_purged = 0

    async def start(self):
        logger.info("Starting staleness sweeper")
        self._vehicle_task.start()
        self._eta_task.start()

    async def stop(self):
        await self._vehicle_task.stop()
        await self._eta_task.stop()
        logger.info("Staleness sweeper stopped")

    async def sweep_inactive_vehicles(self) -> BatchResult:
        """
        Mark active vehicles whose last report is older than the liveness
        threshold as inactive. Vehicles reactivate on their next report.
        """
        now = self.clock.now()
        cutoff = now - timedelta(seconds=self.config.liveness_threshold_seconds)

        def is_stale(doc) -> bool:
            last_report_at = doc.get("last_report_at")
            return bool(doc.get("active")) and last_report_at is not None and last_report_at < cutoff

        try:
            stale = await self.store.query_vehicles(is_stale)
            if not stale:
                return BatchResult()
            result = await self.store.batch_update_vehicles(
                [(doc["id"], {"active": False, "last_seen_at": now}) for doc in stale]
            )
        except StoreUnavailableError as e:
            logger.error(f"Vehicle liveness sweep skipped, store unavailable: {e}")
            return BatchResult()

        self.vehicles_deactivated += len(result.succeeded)
        if result.failed:
            logger.error(f"Vehicle liveness sweep: {len(result.failed)} updates failed: {result.failed}")
        logger.info(f"Marked {len(result.succeeded)} vehicles as inactive")
        return result

    async def purge_expired_etas(self) -> BatchResult:
        """Delete ETA records computed before the retention window"""
        cutoff = self.clock.now() - timedelta(seconds=self.config.eta_retention_seconds)
        try:
            expired = await self.store.query_etas(lambda record: record.computed_at < cutoff)
            if not expired:
                return BatchResult()
            result = await self.store.batch_delete_etas([record.id for record in expired])
        except StoreUnavailableError as e:
            logger.error(f"ETA retention sweep skipped, store unavailable: {e}")
            return BatchResult()

        self.etas_purged += len(result.succeeded)
        if result.failed:
            logger.error(f"ETA retention sweep: {len(result.failed)} deletes failed")
        logger.info(f"Cleaned up {len(result.succeeded)} old ETAs")
        return result

    def get_stats(self):
        return {
            "vehicles_deactivated": self.vehicles_deactivated,
            "etas_purged": self.etas_purged,
        }
