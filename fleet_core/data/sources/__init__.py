"""
Data sources module.
Exports static route loading.
"""

from .static_routes import StaticRouteSource, VehicleRegistration, demo_network, parse_network

__all__ = [
    "StaticRouteSource",
    "VehicleRegistration",
    "demo_network",
    "parse_network",
]
