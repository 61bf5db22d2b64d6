"""
ETA estimation service.
Derives arrival estimates for the next stops of a vehicle and serves the
ranked ETA list for a stop.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from ..core.clock import Clock
from ..core.config import ApplicationConfig
from ..data.models.eta import ETARecord
from ..data.models.route import Route
from ..data.models.vehicle import Vehicle
from ..data.repositories.base import FleetStore
from ..shared.geo import distance_km, eta_minutes
from .store_writer import ResilientWriter

logger = logging.getLogger(__name__)


class EtaEstimator:
    """
    Computes ETAs for the next K stops ahead of a vehicle's current stop.

    New records are always appended; older records for the same (vehicle,
    stop) pair stay until the retention sweep removes them, and readers pick
    the most recently computed one. Readers therefore never observe a stop
    with no ETA between a delete and an insert.
    """

    def __init__(self, config: ApplicationConfig, store: FleetStore,
                 writer: ResilientWriter, clock: Clock):
        self.config = config
        self.store = store
        self.writer = writer
        self.clock = clock

    def compute(self, vehicle: Vehicle, route: Route) -> List[ETARecord]:
        """ETA records for stops current+1 .. current+K, wrapping around the route"""
        now = self.clock.now()
        speed = vehicle.speed_kmh or self.config.fallback_speed_kmh
        records = []
        for offset in range(1, self.config.lookahead_stops + 1):
            stop = route.stop_at(vehicle.current_stop_index + offset)
            distance = distance_km(vehicle.position, stop.position)
            minutes = eta_minutes(distance, speed)
            records.append(ETARecord(
                vehicle_id=vehicle.id,
                stop_id=stop.id,
                route_id=route.id,
                estimated_arrival=now + timedelta(minutes=minutes),
                distance_km=distance,
                minutes=minutes,
                computed_at=now,
            ))
        return records

    async def publish(self, vehicle: Vehicle, route: Route) -> List[ETARecord]:
        """Compute and append ETA records; store round-trips run concurrently"""
        records = self.compute(vehicle, route)
        results = await asyncio.gather(
            *(self.writer.append_eta(record) for record in records),
            return_exceptions=True,
        )
        for record, result in zip(records, results):
            if isinstance(result, Exception):
                logger.error(f"Failed to store ETA for {vehicle.id} at {record.stop_id}: {result}")
        return records

    @staticmethod
    def latest_by_vehicle(records: List[ETARecord]) -> Dict[str, ETARecord]:
        """Most recently computed record per vehicle; later records win ties"""
        latest: Dict[str, ETARecord] = {}
        for record in records:
            current = latest.get(record.vehicle_id)
            if current is None or record.computed_at >= current.computed_at:
                latest[record.vehicle_id] = record
        return latest

    async def ranked_etas_for_stop(self, stop_id: str, limit: int = 5,
                                   upcoming_only: bool = True) -> List[ETARecord]:
        """Authoritative ETA per vehicle for the stop, soonest arrival first"""
        records = await self.store.list_etas(stop_id)
        latest = self.latest_by_vehicle(records).values()
        if upcoming_only:
            now = self.clock.now()
            latest = [r for r in latest if r.estimated_arrival >= now]
        ranked = sorted(latest, key=lambda r: (r.estimated_arrival, r.vehicle_id))
        return ranked[:limit] if limit else ranked

    async def latest_eta(self, vehicle_id: str, stop_id: str) -> Optional[ETARecord]:
        records = [r for r in await self.store.list_etas(stop_id) if r.vehicle_id == vehicle_id]
        return self.latest_by_vehicle(records).get(vehicle_id)
