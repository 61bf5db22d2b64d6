"""
Geographic helpers shared by the motion model, ETA estimator and API.
Coordinates are (latitude, longitude) pairs in decimal degrees.
"""

from datetime import datetime
from math import radians, sin, cos, sqrt, atan2, floor
from typing import Iterable, List, Optional, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0
DEFAULT_SPEED_KMH = 25.0

Coordinate = Tuple[float, float]


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two points using the haversine formula"""
    lat1, lon1, lat2, lon2 = map(radians, [a[0], a[1], b[0], b[1]])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))


def eta_minutes(distance: float, speed_kmh: float) -> int:
    """
    Whole minutes needed to cover distance at speed.

    A stopped vehicle yields 0, which callers treat as "unknown / at rest"
    rather than "arriving now".
    """
    if speed_kmh == 0:
        return 0
    return int(floor(distance / speed_kmh * 60 + 0.5))


def interpolate_position(a: Coordinate, b: Coordinate, progress: float) -> Coordinate:
    """Linear interpolation between a and b; progress 0 is a, 1 is b"""
    return (
        a[0] + (b[0] - a[0]) * progress,
        a[1] + (b[1] - a[1]) * progress,
    )


def clamp_speed(speed_kmh: float, low: float = 5.0, high: float = 60.0) -> float:
    return max(low, min(high, speed_kmh))


def nearest_stop_index(point: Coordinate, stop_points: Sequence[Coordinate]) -> Optional[int]:
    if not stop_points:
        return None
    distances = [distance_km(point, stop) for stop in stop_points]
    return distances.index(min(distances))


def average_speed_kmh(samples: Iterable[Tuple[Coordinate, datetime]],
                      default: float = DEFAULT_SPEED_KMH,
                      low: float = 5.0, high: float = 60.0) -> float:
    """
    Average speed over a time-ordered history of (coordinate, timestamp) pairs.

    Falls back to default when there are fewer than two samples or no time has
    elapsed between them. Result is clamped to a plausible city-bus range.
    """
    history: List[Tuple[Coordinate, datetime]] = list(samples)
    if len(history) < 2:
        return default

    total_distance = 0.0
    total_hours = 0.0
    for (prev_point, prev_ts), (point, ts) in zip(history, history[1:]):
        hours = (ts - prev_ts).total_seconds() / 3600
        if hours > 0:
            total_distance += distance_km(prev_point, point)
            total_hours += hours

    if total_hours == 0:
        return default
    return clamp_speed(total_distance / total_hours, low, high)


def format_eta(eta: Optional[datetime], now: datetime) -> str:
    """Human readable ETA, e.g. "Arriving now", "7 min", "1h 5m" """
    if eta is None:
        return "Unknown"
    # Halves round up: 2.5 minutes shows as 3
    diff_minutes = int(floor((eta - now).total_seconds() / 60 + 0.5))
    if diff_minutes < 1:
        return "Arriving now"
    if diff_minutes < 60:
        return f"{diff_minutes} min"
    if diff_minutes < 1440:
        return f"{diff_minutes // 60}h {diff_minutes % 60}m"
    return eta.strftime("%H:%M")
