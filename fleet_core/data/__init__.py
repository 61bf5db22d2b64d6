"""
Data layer module.
Exports all data layer components including models, sources, and repositories.
"""

from .models import Route, Stop, Vehicle, PositionSample, ETARecord
from .sources import StaticRouteSource, VehicleRegistration
from .repositories import (
    FleetStore, StoreUnavailableError, BatchResult, InMemoryStore, SQLiteStore
)
from .validation import RouteValidationError, RouteValidator

__all__ = [
    # Models
    "Route",
    "Stop",
    "Vehicle",
    "PositionSample",
    "ETARecord",

    # Sources
    "StaticRouteSource",
    "VehicleRegistration",

    # Repositories
    "FleetStore",
    "StoreUnavailableError",
    "BatchResult",
    "InMemoryStore",
    "SQLiteStore",

    # Validation
    "RouteValidationError",
    "RouteValidator",
]
