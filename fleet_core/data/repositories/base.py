"""
Store interface consumed by the fleet services.
The store is the system of record for vehicle and ETA state. Implementations
are selected at construction; services never branch on which one they got.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..models.eta import ETARecord
from ..models.vehicle import VEHICLE_FIELDS

logger = logging.getLogger(__name__)

VehicleDocument = Dict[str, Any]
VehiclePredicate = Callable[[VehicleDocument], bool]
ETAPredicate = Callable[[ETARecord], bool]
ActiveVehiclesCallback = Callable[[List[VehicleDocument]], None]


class StoreUnavailableError(RuntimeError):
    """The store could not be reached; the operation may be retried later"""
    pass


@dataclass
class BatchResult:
    """Outcome of a batched update or delete"""
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


def check_vehicle_fields(fields: Dict[str, Any]):
    unknown = set(fields) - set(VEHICLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown vehicle fields: {sorted(unknown)}")


class FleetStore(ABC):
    """Key-value read/write/subscribe interface over vehicles and ETA records"""

    def __init__(self):
        self._subscribers: List[ActiveVehiclesCallback] = []

    async def initialize(self):
        """Open connections or create schema. No-op by default."""

    async def close(self):
        """Release connections. No-op by default."""

    async def stop(self):
        """Stop method for application lifecycle (alias for close)"""
        await self.close()

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable"""

    # --- Vehicles ---

    @abstractmethod
    async def upsert_vehicle(self, vehicle_id: str, fields: Dict[str, Any]):
        """Merge fields into the vehicle document, creating it if needed"""

    @abstractmethod
    async def get_vehicle(self, vehicle_id: str) -> Optional[VehicleDocument]:
        """Vehicle document including its "id", or None"""

    @abstractmethod
    async def list_vehicles(self, active_only: bool = False,
                            route_id: Optional[str] = None) -> List[VehicleDocument]:
        pass

    @abstractmethod
    async def query_vehicles(self, predicate: VehiclePredicate) -> List[VehicleDocument]:
        """Store-wide scan returning the vehicle documents matching predicate"""

    @abstractmethod
    async def batch_update_vehicles(
            self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> BatchResult:
        pass

    # --- ETAs ---

    @abstractmethod
    async def append_eta(self, record: ETARecord):
        pass

    @abstractmethod
    async def list_etas(self, stop_id: Optional[str] = None) -> List[ETARecord]:
        """ETA records, oldest first, optionally restricted to one stop"""

    @abstractmethod
    async def query_etas(self, predicate: ETAPredicate) -> List[ETARecord]:
        pass

    @abstractmethod
    async def batch_delete_etas(self, record_ids: Iterable[str]) -> BatchResult:
        pass

    # --- Subscriptions ---

    async def subscribe_active_vehicles(self, callback: ActiveVehiclesCallback) -> Callable[[], None]:
        """
        Call back with the full active-vehicle list now and after every vehicle change.
        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)
        await self._notify_callback(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def _publish_active_vehicles(self):
        if not self._subscribers:
            return
        for callback in list(self._subscribers):
            await self._notify_callback(callback)

    async def _notify_callback(self, callback: ActiveVehiclesCallback):
        try:
            vehicles = await self.list_vehicles(active_only=True)
        except StoreUnavailableError as e:
            logger.warning(f"Cannot publish active vehicles: {e}")
            return
        try:
            callback(vehicles)
        except Exception as e:
            logger.error(f"Active vehicle subscriber failed: {e}")
