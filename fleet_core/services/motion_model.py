"""
Motion model service.
Moves registered vehicles along their routes on a fixed tick and takes over
positions reported by real devices.
"""

import asyncio
import logging
import random
from collections import deque
from dataclasses import replace
from datetime import datetime
from typing import Deque, Dict, List, Optional, Set, Tuple

from ..core.clock import Clock
from ..core.config import ApplicationConfig
from ..core.event_loop import ManagedEventLoop, PeriodicTask, SleepFunc
from ..data.models.route import Route
from ..data.models.vehicle import PositionSample, Vehicle
from ..data.validation import RouteValidationError, RouteValidator
from ..shared.geo import average_speed_kmh, clamp_speed, interpolate_position, nearest_stop_index
from .eta_estimator import EtaEstimator
from .store_writer import ResilientWriter

logger = logging.getLogger(__name__)

# Accumulated float steps (10 x 0.1) land just short of 1.0
_PROGRESS_EPSILON = 1e-9

SOURCE_SIMULATED = "simulated"
SOURCE_DEVICE = "device"

REPORT_HISTORY_SIZE = 5


class FleetSimulator:
    """
    Owns the transient motion state of every registered vehicle.

    A vehicle is always en route from current_stop_index to target_stop_index.
    Each tick adds step_fraction to its progress; reaching 1 snaps it onto the
    target stop and starts the next leg. Vehicles fed by a real device are not
    simulated: their reports replace position, speed and timestamp directly.
    """

    def __init__(self, config: ApplicationConfig, writer: ResilientWriter,
                 eta_estimator: EtaEstimator, clock: Clock,
                 rng: Optional[random.Random] = None,
                 sleep: Optional[SleepFunc] = None,
                 event_loop: Optional[ManagedEventLoop] = None):
        self.config = config
        self.writer = writer
        self.eta_estimator = eta_estimator
        self.clock = clock
        self.rng = rng or random.Random()
        self.routes: Dict[str, Route] = {}
        self.vehicles: Dict[str, Vehicle] = {}
        self._device_tracked: Set[str] = set()
        self._report_history: Dict[str, Deque[Tuple[Tuple[float, float], datetime]]] = {}
        self._tick_task = PeriodicTask("motion_tick", config.tick_interval_seconds,
                                       self.tick, sleep=sleep,
                                       event_loop=event_loop)
        self.is_running = False
        self.tick_count = 0
        self.last_tick_at: Optional[datetime] = None

    # --- Registration ---

    def register_route(self, route: Route):
        RouteValidator.ensure_valid_route(route)
        if route.id in self.routes:
            logger.info(f"Replacing route {route.id}")
        self.routes[route.id] = route

    def register_vehicle(self, vehicle_id: str, route_id: str,
                         base_speed_kmh: float = 25.0, start_stop_index: int = 0,
                         source: str = SOURCE_SIMULATED) -> Vehicle:
        """Create a vehicle parked at its start stop. Invalid registrations raise RouteValidationError."""
        route = self.routes.get(route_id)
        errors = RouteValidator.validate_registration(vehicle_id, route, start_stop_index, base_speed_kmh)
        if route is None:
            errors = [f"unknown route {route_id}"]
        if source not in (SOURCE_SIMULATED, SOURCE_DEVICE):
            errors.append(f"unknown tracking source {source!r}")
        if errors:
            raise RouteValidationError(f"vehicle {vehicle_id}", errors)

        vehicle = Vehicle.at_stop(vehicle_id, route, start_stop_index, base_speed_kmh, self.clock.now())
        self.vehicles[vehicle_id] = vehicle
        if source == SOURCE_DEVICE:
            self._device_tracked.add(vehicle_id)
        else:
            self._device_tracked.discard(vehicle_id)
        logger.info(f"Registered vehicle {vehicle_id} on route {route_id} ({source})")
        return vehicle

    def is_simulated(self, vehicle_id: str) -> bool:
        return vehicle_id in self.vehicles and vehicle_id not in self._device_tracked

    # --- Motion ---

    def _next_speed(self, vehicle: Vehicle) -> float:
        half_band = self.config.speed_jitter_kmh / 2
        speed = vehicle.base_speed_kmh + self.rng.uniform(-half_band, half_band)
        return clamp_speed(speed, self.config.min_speed_kmh, self.config.max_speed_kmh)

    def _jitter(self) -> float:
        half = self.config.position_jitter_deg / 2
        return self.rng.uniform(-half, half) if half else 0.0

    def advance(self, vehicle: Vehicle, route: Route) -> None:
        """Move a vehicle one tick along its current leg"""
        vehicle.progress += self.config.step_fraction
        if vehicle.progress >= 1 - _PROGRESS_EPSILON:
            vehicle.current_stop_index = vehicle.target_stop_index
            vehicle.target_stop_index = (vehicle.target_stop_index + 1) % route.stop_count
            vehicle.progress = 0.0
            latitude, longitude = route.stop_at(vehicle.current_stop_index).position
        else:
            latitude, longitude = interpolate_position(
                route.stop_at(vehicle.current_stop_index).position,
                route.stop_at(vehicle.target_stop_index).position,
                vehicle.progress,
            )
            # GPS noise only touches the reported coordinate, never progress
            latitude += self._jitter()
            longitude += self._jitter()

        vehicle.latitude = latitude
        vehicle.longitude = longitude
        vehicle.speed_kmh = self._next_speed(vehicle)
        vehicle.last_report_at = self.clock.now()
        vehicle.active = True

    async def _persist(self, vehicle: Vehicle, route: Optional[Route], description: str):
        await self.writer.upsert_vehicle(vehicle.id, vehicle.to_document(route), description)
        if route is not None and vehicle.active:
            await self.eta_estimator.publish(vehicle, route)

    async def _tick_vehicle(self, vehicle: Vehicle):
        route = self.routes.get(vehicle.route_id)
        if route is None or route.stop_count < 2:
            logger.warning(f"Skipping vehicle {vehicle.id}: route {vehicle.route_id} unavailable")
            return
        self.advance(vehicle, route)
        await self._persist(vehicle, route, "position update")

    async def tick(self):
        """Advance every active simulated vehicle; store round-trips run concurrently"""
        vehicles: List[Vehicle] = [
            v for v in self.vehicles.values()
            if v.active and v.id not in self._device_tracked
        ]
        results = await asyncio.gather(
            *(self._tick_vehicle(v) for v in vehicles),
            return_exceptions=True,
        )
        for vehicle, result in zip(vehicles, results):
            if isinstance(result, Exception):
                logger.error(f"Error updating vehicle {vehicle.id}: {result}")
        self.tick_count += 1
        self.last_tick_at = self.clock.now()

    def _record_report(self, sample: PositionSample) -> Deque[Tuple[Tuple[float, float], datetime]]:
        history = self._report_history.setdefault(
            sample.vehicle_id, deque(maxlen=REPORT_HISTORY_SIZE)
        )
        history.append((sample.position, sample.timestamp))
        return history

    async def report_position(self, sample: PositionSample, derive_speed: bool = False) -> Vehicle:
        """
        Apply a position reported by a real device; reactivates the vehicle.

        With derive_speed the reported speed is ignored and replaced by the
        average speed over the device's recent reports.
        """
        vehicle = self.vehicles.get(sample.vehicle_id)
        if vehicle is None:
            raise KeyError(f"Unknown vehicle {sample.vehicle_id}")

        self._device_tracked.add(vehicle.id)
        history = self._record_report(sample)
        if derive_speed:
            speed = average_speed_kmh(
                history, default=vehicle.base_speed_kmh,
                low=self.config.min_speed_kmh, high=self.config.max_speed_kmh,
            )
            sample = replace(sample, speed_kmh=speed)
        vehicle.apply_sample(sample)
        route = self.routes.get(vehicle.route_id)
        if route is None:
            logger.warning(f"Vehicle {vehicle.id} reported on unknown route {vehicle.route_id}")
        elif self.config.snap_reports_to_nearest_stop:
            index = nearest_stop_index(vehicle.position, route.stop_positions())
            vehicle.current_stop_index = index
            vehicle.target_stop_index = (index + 1) % route.stop_count
            vehicle.progress = 0.0

        await self._persist(vehicle, route, "device position report")
        return vehicle

    async def retire_vehicle(self, vehicle_id: str) -> Vehicle:
        """Explicit stop action: mark the vehicle inactive"""
        vehicle = self.vehicles.get(vehicle_id)
        if vehicle is None:
            raise KeyError(f"Unknown vehicle {vehicle_id}")
        vehicle.active = False
        await self.writer.upsert_vehicle(vehicle_id, {"active": False}, "status change")
        logger.info(f"Vehicle {vehicle_id} retired")
        return vehicle

    # --- Control surface ---

    async def start(self):
        if self.is_running:
            logger.info("Simulation already running")
            return
        logger.info(f"Starting simulation with {len(self.vehicles)} vehicles")
        for vehicle in self.vehicles.values():
            if vehicle.id not in self._device_tracked:
                vehicle.active = True
        self.is_running = True
        self._tick_task.start()

    async def stop(self, retire_vehicles: bool = True):
        """Cancel the pending tick, then issue one final inactive write per simulated vehicle"""
        if not self.is_running:
            return
        logger.info("Stopping simulation")
        self.is_running = False
        await self._tick_task.stop()
        if not retire_vehicles:
            return
        simulated = [v.id for v in self.vehicles.values()
                     if v.active and v.id not in self._device_tracked]
        results = await asyncio.gather(
            *(self.retire_vehicle(vehicle_id) for vehicle_id in simulated),
            return_exceptions=True,
        )
        for vehicle_id, result in zip(simulated, results):
            if isinstance(result, Exception):
                logger.error(f"Error retiring vehicle {vehicle_id}: {result}")

    def status(self) -> Dict[str, object]:
        return {
            "running": self.is_running,
            "vehicle_count": len(self.vehicles),
            "tick_count": self.tick_count,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
        }
