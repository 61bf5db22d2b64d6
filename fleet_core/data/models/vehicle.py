"""
Vehicle data models.
A Vehicle is the mutable motion state of one bus; PositionSample is a single
ephemeral report produced by the motion model or a real device.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .route import Route

# Fields a vehicle document may carry in the store
VEHICLE_FIELDS = (
    "route_id",
    "latitude",
    "longitude",
    "speed_kmh",
    "base_speed_kmh",
    "active",
    "last_report_at",
    "last_seen_at",
    "current_stop_index",
    "target_stop_index",
    "progress",
    "current_stop",
    "next_stop",
)


@dataclass(frozen=True)
class PositionSample:
    """Immutable position report"""
    vehicle_id: str
    latitude: float
    longitude: float
    speed_kmh: float
    timestamp: datetime

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass
class Vehicle:
    """Motion state of a vehicle travelling along its route"""
    id: str
    route_id: str
    latitude: float
    longitude: float
    last_report_at: datetime
    speed_kmh: float = 0.0
    base_speed_kmh: float = 25.0
    active: bool = True
    current_stop_index: int = 0
    target_stop_index: int = 1
    progress: float = 0.0
    last_seen_at: Optional[datetime] = None

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @classmethod
    def at_stop(cls, vehicle_id: str, route: Route, stop_index: int,
                base_speed_kmh: float, now: datetime) -> 'Vehicle':
        """Create a vehicle parked at a stop, heading to the following one"""
        stop = route.stop_at(stop_index)
        return cls(
            id=vehicle_id,
            route_id=route.id,
            latitude=stop.latitude,
            longitude=stop.longitude,
            last_report_at=now,
            speed_kmh=base_speed_kmh,
            base_speed_kmh=base_speed_kmh,
            active=True,
            current_stop_index=stop_index,
            target_stop_index=(stop_index + 1) % route.stop_count,
            progress=0.0,
        )

    def apply_sample(self, sample: PositionSample):
        """Take over a reported position; route progress is left as last known"""
        self.latitude = sample.latitude
        self.longitude = sample.longitude
        self.speed_kmh = max(0.0, sample.speed_kmh)
        self.last_report_at = sample.timestamp
        self.active = True

    def to_sample(self) -> PositionSample:
        return PositionSample(
            vehicle_id=self.id,
            latitude=self.latitude,
            longitude=self.longitude,
            speed_kmh=self.speed_kmh,
            timestamp=self.last_report_at,
        )

    def to_document(self, route: Optional[Route] = None) -> Dict[str, Any]:
        """Flat field document for the store, with stop names when the route is known"""
        doc = {
            "route_id": self.route_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed_kmh": self.speed_kmh,
            "base_speed_kmh": self.base_speed_kmh,
            "active": self.active,
            "last_report_at": self.last_report_at,
            "current_stop_index": self.current_stop_index,
            "target_stop_index": self.target_stop_index,
            "progress": self.progress,
        }
        if self.last_seen_at is not None:
            doc["last_seen_at"] = self.last_seen_at
        if route is not None:
            doc["current_stop"] = route.stop_at(self.current_stop_index).name
            doc["next_stop"] = route.stop_at(self.target_stop_index).name
        return doc


def vehicle_summary(vehicle_id: str, doc: Dict[str, Any]) -> Dict[str, Any]:
    """Consumer-facing view of a vehicle document"""
    last_report_at = doc.get("last_report_at")
    return {
        "id": vehicle_id,
        "route_id": doc.get("route_id"),
        "position": {"latitude": doc.get("latitude"), "longitude": doc.get("longitude")},
        "speed_kmh": doc.get("speed_kmh"),
        "active": bool(doc.get("active")),
        "next_stop": doc.get("next_stop"),
        "last_updated": last_report_at.isoformat() if last_report_at else None,
    }
