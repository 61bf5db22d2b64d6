from .geo import (
    distance_km,
    eta_minutes,
    interpolate_position,
    clamp_speed,
    nearest_stop_index,
    average_speed_kmh,
    format_eta,
)

__all__ = [
    "distance_km",
    "eta_minutes",
    "interpolate_position",
    "clamp_speed",
    "nearest_stop_index",
    "average_speed_kmh",
    "format_eta",
]
