"""
In-memory store.
Used for demos and as the test double; availability and per-record failures
can be toggled to exercise offline and partial-failure paths.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..models.eta import ETARecord
from .base import (
    BatchResult, FleetStore, StoreUnavailableError, VehicleDocument,
    VehiclePredicate, ETAPredicate, check_vehicle_fields,
)

logger = logging.getLogger(__name__)


class InMemoryStore(FleetStore):
    """Dictionary-backed store with failure injection"""

    def __init__(self):
        super().__init__()
        self._vehicles: Dict[str, Dict[str, Any]] = {}
        self._etas: "OrderedDict[str, ETARecord]" = OrderedDict()
        self.available = True
        # Ids (vehicle or ETA record) whose writes fail even while available
        self.failing_ids: Set[str] = set()
        self.upsert_count = 0

    def set_available(self, available: bool):
        self.available = available

    def _ensure_available(self):
        if not self.available:
            raise StoreUnavailableError("in-memory store is offline")

    async def ping(self) -> bool:
        return self.available

    # --- Vehicles ---

    async def upsert_vehicle(self, vehicle_id: str, fields: Dict[str, Any]):
        self._ensure_available()
        check_vehicle_fields(fields)
        if vehicle_id in self.failing_ids:
            raise StoreUnavailableError(f"write to vehicle {vehicle_id} rejected")
        self._vehicles.setdefault(vehicle_id, {}).update(fields)
        self.upsert_count += 1
        await self._publish_active_vehicles()

    async def get_vehicle(self, vehicle_id: str) -> Optional[VehicleDocument]:
        self._ensure_available()
        doc = self._vehicles.get(vehicle_id)
        return None if doc is None else {"id": vehicle_id, **doc}

    async def list_vehicles(self, active_only: bool = False,
                            route_id: Optional[str] = None) -> List[VehicleDocument]:
        self._ensure_available()
        vehicles = []
        for vehicle_id, doc in self._vehicles.items():
            if active_only and not doc.get("active"):
                continue
            if route_id is not None and doc.get("route_id") != route_id:
                continue
            vehicles.append({"id": vehicle_id, **doc})
        return vehicles

    async def query_vehicles(self, predicate: VehiclePredicate) -> List[VehicleDocument]:
        return [doc for doc in await self.list_vehicles() if predicate(doc)]

    async def batch_update_vehicles(
            self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> BatchResult:
        self._ensure_available()
        result = BatchResult()
        for vehicle_id, fields in updates:
            try:
                check_vehicle_fields(fields)
                if vehicle_id in self.failing_ids:
                    raise StoreUnavailableError(f"write to vehicle {vehicle_id} rejected")
                self._vehicles.setdefault(vehicle_id, {}).update(fields)
                result.succeeded.append(vehicle_id)
            except (ValueError, StoreUnavailableError) as e:
                result.failed[vehicle_id] = str(e)
        if result.succeeded:
            await self._publish_active_vehicles()
        return result

    # --- ETAs ---

    async def append_eta(self, record: ETARecord):
        self._ensure_available()
        self._etas[record.id] = record

    async def list_etas(self, stop_id: Optional[str] = None) -> List[ETARecord]:
        self._ensure_available()
        return [r for r in self._etas.values() if stop_id is None or r.stop_id == stop_id]

    async def query_etas(self, predicate: ETAPredicate) -> List[ETARecord]:
        return [r for r in await self.list_etas() if predicate(r)]

    async def batch_delete_etas(self, record_ids: Iterable[str]) -> BatchResult:
        self._ensure_available()
        result = BatchResult()
        for record_id in record_ids:
            if record_id in self.failing_ids:
                result.failed[record_id] = "delete rejected"
                continue
            self._etas.pop(record_id, None)
            result.succeeded.append(record_id)
        return result
