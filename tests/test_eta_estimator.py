import asyncio
from datetime import timedelta

import pytest

from fleet_core.data.models.eta import ETARecord


def test_eta_from_stop_a_to_stop_b(simulator, estimator, clock, two_stop_route):
    simulator.register_route(two_stop_route)
    vehicle = simulator.register_vehicle("v1", "r1", base_speed_kmh=30)

    records = estimator.compute(vehicle, two_stop_route)

    first = records[0]
    assert first.stop_id == "B"
    assert first.distance_km == pytest.approx(111.19, abs=0.01)
    assert first.minutes == 222
    assert first.estimated_arrival == clock.now() + timedelta(minutes=222)


def test_lookahead_wraps_around_route(simulator, estimator, five_stop_route):
    simulator.register_route(five_stop_route)
    vehicle = simulator.register_vehicle("v1", "r5", start_stop_index=3)

    records = estimator.compute(vehicle, five_stop_route)
    assert [r.stop_id for r in records] == ["s4", "s0", "s1"]


def test_compute_is_deterministic_for_same_inputs(simulator, estimator, two_stop_route):
    simulator.register_route(two_stop_route)
    vehicle = simulator.register_vehicle("v1", "r1", base_speed_kmh=30)

    first = estimator.compute(vehicle, two_stop_route)
    second = estimator.compute(vehicle, two_stop_route)
    assert [r.estimated_arrival for r in first] == [r.estimated_arrival for r in second]


def test_stopped_vehicle_uses_fallback_speed(simulator, estimator, two_stop_route):
    simulator.register_route(two_stop_route)
    vehicle = simulator.register_vehicle("v1", "r1")
    vehicle.speed_kmh = 0

    first = estimator.compute(vehicle, two_stop_route)[0]
    assert first.minutes == round(111.19 / 25 * 60)


def test_publish_appends_without_deleting(simulator, estimator, store, clock, two_stop_route):
    simulator.register_route(two_stop_route)
    vehicle = simulator.register_vehicle("v1", "r1", base_speed_kmh=30)

    async def run():
        await estimator.publish(vehicle, two_stop_route)
        clock.advance(seconds=10)
        await estimator.publish(vehicle, two_stop_route)
        return await store.list_etas("B")

    records = asyncio.run(run())
    # Lookahead of 3 on a two-stop route visits B twice per publish
    assert len(records) == 4


def _record(vehicle_id, stop_id, arrival, computed_at):
    return ETARecord(
        vehicle_id=vehicle_id,
        stop_id=stop_id,
        route_id="r1",
        estimated_arrival=arrival,
        distance_km=1.0,
        minutes=int((arrival - computed_at).total_seconds() // 60),
        computed_at=computed_at,
    )


def test_ranked_etas_use_latest_record_per_vehicle(estimator, store, clock):
    now = clock.now()
    earlier = now - timedelta(minutes=1)

    async def run():
        await store.append_eta(_record("v1", "S", now + timedelta(minutes=3), earlier))
        await store.append_eta(_record("v1", "S", now + timedelta(minutes=9), now))
        await store.append_eta(_record("v2", "S", now + timedelta(minutes=5), now))
        await store.append_eta(_record("v3", "S", now - timedelta(minutes=2), earlier))
        await store.append_eta(_record("v4", "OTHER", now + timedelta(minutes=1), now))
        return await estimator.ranked_etas_for_stop("S")

    ranked = asyncio.run(run())
    assert [(r.vehicle_id, r.estimated_arrival) for r in ranked] == [
        ("v2", now + timedelta(minutes=5)),
        ("v1", now + timedelta(minutes=9)),
    ]


def test_ranked_etas_respect_limit(estimator, store, clock):
    now = clock.now()

    async def run():
        for i in range(8):
            await store.append_eta(_record(f"v{i}", "S", now + timedelta(minutes=10 - i), now))
        return await estimator.ranked_etas_for_stop("S", limit=5)

    ranked = asyncio.run(run())
    assert [r.vehicle_id for r in ranked] == ["v7", "v6", "v5", "v4", "v3"]


def test_latest_eta(estimator, store, clock):
    now = clock.now()
    old = _record("v1", "S", now + timedelta(minutes=4), now - timedelta(minutes=2))
    new = _record("v1", "S", now + timedelta(minutes=2), now)

    async def run():
        await store.append_eta(old)
        await store.append_eta(new)
        return await estimator.latest_eta("v1", "S"), await estimator.latest_eta("v2", "S")

    latest, missing = asyncio.run(run())
    assert latest == new
    assert missing is None


def test_publish_offline_drops_etas(simulator, estimator, store, queue, connectivity, two_stop_route):
    simulator.register_route(two_stop_route)
    vehicle = simulator.register_vehicle("v1", "r1")
    connectivity.mark_offline("test")

    asyncio.run(estimator.publish(vehicle, two_stop_route))
    assert asyncio.run(store.list_etas()) == []
    assert len(queue) == 0
