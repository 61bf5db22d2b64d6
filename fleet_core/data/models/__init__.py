"""
Data models module.
Exports all data model classes.
"""

from .route import Route, Stop
from .vehicle import Vehicle, PositionSample, VEHICLE_FIELDS, vehicle_summary
from .eta import ETARecord

__all__ = [
    "Route",
    "Stop",
    "Vehicle",
    "PositionSample",
    "VEHICLE_FIELDS",
    "vehicle_summary",
    "ETARecord",
]
