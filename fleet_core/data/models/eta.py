"""
ETA record data model.
Records are append-only; the newest record for a (vehicle, stop) pair wins.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass(frozen=True)
class ETARecord:
    """Immutable estimated arrival of one vehicle at one stop"""
    vehicle_id: str
    stop_id: str
    route_id: str
    estimated_arrival: datetime
    distance_km: float
    minutes: int
    computed_at: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "stop_id": self.stop_id,
            "route_id": self.route_id,
            "estimated_arrival": self.estimated_arrival.isoformat(),
            "distance_km": round(self.distance_km, 3),
            "minutes": self.minutes,
            "computed_at": self.computed_at.isoformat(),
        }
