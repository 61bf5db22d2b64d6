"""
Resilient store writer.
Every vehicle mutation goes through here so that an unreachable store turns
into a queued operation instead of an error.
"""

import logging
from typing import Any, Dict

from ..data.models.eta import ETARecord
from ..data.repositories.base import FleetStore, StoreUnavailableError
from .connectivity import ConnectivityMonitor
from .offline_queue import OfflineQueue

logger = logging.getLogger(__name__)


class ResilientWriter:
    """Routes writes to the store, or to the offline queue while disconnected"""

    def __init__(self, store: FleetStore, queue: OfflineQueue, connectivity: ConnectivityMonitor):
        self.store = store
        self.queue = queue
        self.connectivity = connectivity

    def _defer_upsert(self, vehicle_id: str, fields: Dict[str, Any], description: str) -> "_DeferredUpsert":
        deferred = _DeferredUpsert(self, vehicle_id, dict(fields))
        self.queue.enqueue(vehicle_id, deferred, description)
        return deferred

    async def upsert_vehicle(self, vehicle_id: str, fields: Dict[str, Any],
                             description: str = "vehicle update") -> bool:
        """
        Write vehicle fields. Returns True only when this write reached the
        store; otherwise it is waiting in the offline queue or was dropped by
        replay.
        """
        if not self.connectivity.is_online:
            self._defer_upsert(vehicle_id, fields, description)
            return False
        if self.queue.pending_for(vehicle_id):
            # Queue behind already buffered items so the vehicle's updates stay ordered
            deferred = self._defer_upsert(vehicle_id, fields, description)
            await self.queue.flush()
            return deferred.applied
        try:
            await self.store.upsert_vehicle(vehicle_id, fields)
            return True
        except StoreUnavailableError as e:
            self.connectivity.mark_offline(str(e))
            self._defer_upsert(vehicle_id, fields, description)
            return False

    async def append_eta(self, record: ETARecord) -> bool:
        """ETAs are recomputed every tick, so an unreachable store just drops this one"""
        if not self.connectivity.is_online:
            return False
        try:
            await self.store.append_eta(record)
            return True
        except StoreUnavailableError as e:
            self.connectivity.mark_offline(str(e))
            logger.debug(f"Dropped ETA for vehicle {record.vehicle_id} at stop {record.stop_id}: {e}")
            return False


class _DeferredUpsert:
    """Queued vehicle write; records whether replay reached the store"""

    def __init__(self, writer: ResilientWriter, vehicle_id: str, fields: Dict[str, Any]):
        self.writer = writer
        self.vehicle_id = vehicle_id
        self.fields = fields
        self.applied = False

    async def __call__(self):
        try:
            await self.writer.store.upsert_vehicle(self.vehicle_id, self.fields)
        except StoreUnavailableError as e:
            self.writer.connectivity.mark_offline(str(e))
            raise
        self.applied = True
