"""
Static route data source.
Loads routes and vehicle registrations from ./in/routes.json, falling back to
the built-in demo network when the file is absent.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from ..models.route import Route

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VehicleRegistration:
    """Vehicle to register with the motion model at startup"""
    vehicle_id: str
    route_id: str
    base_speed_kmh: float = 25.0
    start_stop_index: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'VehicleRegistration':
        return cls(
            vehicle_id=str(data["id"]),
            route_id=str(data.get("routeId", data.get("route_id"))),
            base_speed_kmh=float(data.get("speed", data.get("base_speed_kmh", 25.0))),
            start_stop_index=int(data.get("currentStopIndex", data.get("start_stop_index", 0))),
        )


DEMO_ROUTES = [
    {
        "id": "route-1",
        "name": "City Center to Airport",
        "routeNumber": "101",
        "stops": [
            {"id": "stop-1", "name": "City Center", "location": {"latitude": 28.6139, "longitude": 77.2090}, "sequence": 1},
            {"id": "stop-2", "name": "Mall Junction", "location": {"latitude": 28.6169, "longitude": 77.2155}, "sequence": 2},
            {"id": "stop-3", "name": "University Gate", "location": {"latitude": 28.6199, "longitude": 77.2220}, "sequence": 3},
            {"id": "stop-4", "name": "Metro Station", "location": {"latitude": 28.6229, "longitude": 77.2285}, "sequence": 4},
            {"id": "stop-5", "name": "Airport Terminal", "location": {"latitude": 28.6259, "longitude": 77.2350}, "sequence": 5},
        ],
    },
    {
        "id": "route-2",
        "name": "North to South Line",
        "routeNumber": "102",
        "stops": [
            {"id": "stop-6", "name": "North Station", "location": {"latitude": 28.6200, "longitude": 77.2090}, "sequence": 1},
            {"id": "stop-7", "name": "Central Park", "location": {"latitude": 28.6150, "longitude": 77.2090}, "sequence": 2},
            {"id": "stop-8", "name": "Market Square", "location": {"latitude": 28.6100, "longitude": 77.2090}, "sequence": 3},
            {"id": "stop-9", "name": "Hospital", "location": {"latitude": 28.6050, "longitude": 77.2090}, "sequence": 4},
            {"id": "stop-10", "name": "South Terminal", "location": {"latitude": 28.6000, "longitude": 77.2090}, "sequence": 5},
        ],
    },
]

DEMO_VEHICLES = [
    {"id": "bus-101-1", "routeId": "route-1", "speed": 25, "currentStopIndex": 0},
    {"id": "bus-101-2", "routeId": "route-1", "speed": 30, "currentStopIndex": 2},
    {"id": "bus-102-1", "routeId": "route-2", "speed": 20, "currentStopIndex": 1},
]


def parse_network(data: dict) -> Tuple[List[Route], List[VehicleRegistration]]:
    """Parse {"routes": [...], "vehicles": [...]}; malformed entries are logged and skipped"""
    routes = []
    for entry in data.get("routes", []):
        try:
            routes.append(Route.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed route {entry.get('id')!r}: {e}")

    vehicles = []
    for entry in data.get("vehicles", []):
        try:
            vehicles.append(VehicleRegistration.from_dict(entry))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed vehicle {entry.get('id')!r}: {e}")
    return routes, vehicles


def demo_network() -> Tuple[List[Route], List[VehicleRegistration]]:
    return parse_network({"routes": DEMO_ROUTES, "vehicles": DEMO_VEHICLES})


class StaticRouteSource:
    """Route file loader"""

    FILE_NAME = "routes.json"

    def __init__(self, in_dir: Path = Path("in")):
        self.in_dir = Path(in_dir)

    async def load(self) -> Tuple[List[Route], List[VehicleRegistration]]:
        file_path = self.in_dir / self.FILE_NAME
        if not file_path.exists():
            logger.info(f"{file_path} not found, using built-in demo network")
            return demo_network()

        def _load_json():
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)

        try:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, _load_json)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {file_path}: {e}")
            raise

        routes, vehicles = parse_network(data)
        logger.info(f"Loaded {len(routes)} routes and {len(vehicles)} vehicles from {file_path}")
        return routes, vehicles
