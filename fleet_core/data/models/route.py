"""
Route data model.
Routes are immutable: editing a route means registering a replacement.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Stop:
    """Immutable stop on a route"""
    id: str
    name: str
    latitude: float
    longitude: float
    sequence: int

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @classmethod
    def from_dict(cls, data: dict, sequence: Optional[int] = None) -> 'Stop':
        """
        Create a Stop from a JSON stop entry.

        Accepts either flat latitude/longitude keys or a nested
        {"location": {"latitude", "longitude"}} object.
        """
        location = data.get("location") or {}
        latitude = data.get("latitude", location.get("latitude"))
        longitude = data.get("longitude", location.get("longitude"))
        if latitude is None or longitude is None:
            raise ValueError(f"Stop {data.get('id')!r} has no coordinates")
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            latitude=float(latitude),
            longitude=float(longitude),
            sequence=int(data["sequence"]) if sequence is None else sequence,
        )


@dataclass(frozen=True)
class Route:
    """Immutable route with stops ordered by sequence"""
    id: str
    stops: Tuple[Stop, ...]
    name: str = ""
    route_number: str = ""

    def __post_init__(self):
        # Accept any iterable of stops but keep the stored value hashable
        object.__setattr__(self, "stops", tuple(sorted(self.stops, key=lambda s: s.sequence)))

    @property
    def stop_count(self) -> int:
        return len(self.stops)

    def stop_at(self, index: int) -> Stop:
        return self.stops[index % len(self.stops)]

    def stop_positions(self) -> List[Tuple[float, float]]:
        return [stop.position for stop in self.stops]

    def find_stop(self, stop_id: str) -> Optional[Stop]:
        for stop in self.stops:
            if stop.id == stop_id:
                return stop
        return None

    @classmethod
    def from_dict(cls, data: dict) -> 'Route':
        """
        Create a Route from a JSON route entry.

        Stops without an explicit sequence are numbered by list position.
        Route files number stops from 1, so sequences are re-based to 0.
        """
        raw_stops = data.get("stops", [])
        has_sequence = all("sequence" in s for s in raw_stops)
        if has_sequence and raw_stops:
            base = min(int(s["sequence"]) for s in raw_stops)
            stops = [Stop.from_dict(s, int(s["sequence"]) - base) for s in raw_stops]
        else:
            stops = [Stop.from_dict(s, i) for i, s in enumerate(raw_stops)]
        return cls(
            id=str(data["id"]),
            stops=tuple(stops),
            name=data.get("name", ""),
            route_number=str(data.get("routeNumber", data.get("route_number", ""))),
        )
