import asyncio
import json

import pytest

from fleet_core.data.models.route import Route
from fleet_core.data.sources.static_routes import StaticRouteSource, demo_network, parse_network
from fleet_core.data.validation import RouteValidator


def test_demo_network_is_valid():
    routes, vehicles = demo_network()
    assert [r.id for r in routes] == ["route-1", "route-2"]
    assert all(RouteValidator.validate_route(r) == [] for r in routes)
    assert [(v.vehicle_id, v.route_id, v.base_speed_kmh, v.start_stop_index) for v in vehicles] == [
        ("bus-101-1", "route-1", 25, 0),
        ("bus-101-2", "route-1", 30, 2),
        ("bus-102-1", "route-2", 20, 1),
    ]


def test_route_sequences_are_rebased_and_sorted():
    route = Route.from_dict({
        "id": "r",
        "routeNumber": 7,
        "stops": [
            {"id": "b", "name": "B", "latitude": 1.0, "longitude": 1.0, "sequence": 2},
            {"id": "a", "name": "A", "location": {"latitude": 0.0, "longitude": 0.0}, "sequence": 1},
        ],
    })
    assert [s.id for s in route.stops] == ["a", "b"]
    assert [s.sequence for s in route.stops] == [0, 1]
    assert route.route_number == "7"
    assert route.find_stop("b").name == "B"
    assert route.find_stop("zzz") is None


def test_stop_without_coordinates_is_skipped():
    routes, vehicles = parse_network({
        "routes": [
            {"id": "broken", "stops": [{"id": "x", "name": "X"}]},
            {"id": "ok", "stops": [
                {"id": "a", "latitude": 0.0, "longitude": 0.0},
                {"id": "b", "latitude": 0.0, "longitude": 1.0},
            ]},
        ],
        "vehicles": [{"routeId": "ok"}, {"id": "v1", "route_id": "ok"}],
    })
    assert [r.id for r in routes] == ["ok"]
    assert [v.vehicle_id for v in vehicles] == ["v1"]


def test_invalid_coordinates_are_reported():
    route = Route.from_dict({
        "id": "r",
        "stops": [
            {"id": "a", "latitude": 95.0, "longitude": 0.0},
            {"id": "b", "latitude": 0.0, "longitude": 1.0},
        ],
    })
    errors = RouteValidator.validate_route(route)
    assert len(errors) == 1
    assert "invalid coordinate" in errors[0]


def test_source_reads_routes_file(tmp_path):
    (tmp_path / "routes.json").write_text(json.dumps({
        "routes": [{"id": "r", "stops": [
            {"id": "a", "latitude": 0.0, "longitude": 0.0},
            {"id": "b", "latitude": 0.0, "longitude": 1.0},
        ]}],
        "vehicles": [{"id": "v1", "routeId": "r", "speed": 18}],
    }))

    routes, vehicles = asyncio.run(StaticRouteSource(tmp_path).load())
    assert [r.id for r in routes] == ["r"]
    assert vehicles[0].base_speed_kmh == 18


def test_source_falls_back_to_demo_network(tmp_path):
    routes, vehicles = asyncio.run(StaticRouteSource(tmp_path / "missing").load())
    assert len(routes) == 2
    assert len(vehicles) == 3


def test_unreadable_routes_file_raises(tmp_path):
    (tmp_path / "routes.json").write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        asyncio.run(StaticRouteSource(tmp_path).load())
