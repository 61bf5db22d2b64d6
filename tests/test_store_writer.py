import asyncio
from datetime import timedelta

from fleet_core.core.clock import ManualClock
from fleet_core.data.models.eta import ETARecord
from fleet_core.data.repositories.memory_store import InMemoryStore
from fleet_core.services.connectivity import ConnectivityMonitor
from fleet_core.services.offline_queue import HALT_ON_FAILURE, OfflineQueue
from fleet_core.services.store_writer import ResilientWriter


def test_online_write_goes_straight_to_store(writer, store, queue):
    assert asyncio.run(writer.upsert_vehicle("v1", {"speed_kmh": 20.0})) is True
    assert asyncio.run(store.get_vehicle("v1"))["speed_kmh"] == 20.0
    assert len(queue) == 0


def test_offline_write_is_queued(writer, store, queue, connectivity):
    connectivity.mark_offline("test")
    assert asyncio.run(writer.upsert_vehicle("v1", {"speed_kmh": 20.0})) is False
    assert len(queue) == 1
    assert asyncio.run(store.get_vehicle("v1")) is None


def test_store_failure_marks_offline_and_queues(writer, store, queue, connectivity):
    store.set_available(False)
    assert asyncio.run(writer.upsert_vehicle("v1", {"speed_kmh": 20.0})) is False
    assert connectivity.is_online is False
    assert len(queue) == 1


def test_restoration_replays_updates_in_order(writer, store, queue, connectivity):
    store.set_available(False)

    async def run():
        await writer.upsert_vehicle("v1", {"speed_kmh": 10.0})
        await writer.upsert_vehicle("v1", {"speed_kmh": 20.0})
        await writer.upsert_vehicle("v2", {"speed_kmh": 30.0})
        store.set_available(True)
        await connectivity.check()
        return await store.get_vehicle("v1"), await store.get_vehicle("v2")

    v1, v2 = asyncio.run(run())
    assert v1["speed_kmh"] == 20.0
    assert v2["speed_kmh"] == 30.0
    assert len(queue) == 0
    assert connectivity.is_online is True


def test_restoration_flushes_once_per_transition(store, clock, sleep):
    monitor = ConnectivityMonitor(store, clock, sleep=sleep)
    calls = []

    async def listener():
        calls.append(clock.now())

    monitor.on_restored(listener)

    async def run():
        await monitor.check()
        store.set_available(False)
        await monitor.check()
        await monitor.check()
        store.set_available(True)
        await monitor.check()
        await monitor.check()

    asyncio.run(run())
    assert len(calls) == 1


def test_failing_listener_does_not_block_others(store, clock, sleep):
    monitor = ConnectivityMonitor(store, clock, sleep=sleep)
    calls = []

    async def broken():
        raise RuntimeError("boom")

    async def working():
        calls.append(True)

    monitor.on_restored(broken)
    monitor.on_restored(working)
    monitor.mark_offline("test")

    asyncio.run(monitor.mark_online())
    assert calls == [True]


def test_write_behind_pending_items_keeps_vehicle_order(sleep):
    clock = ManualClock()
    store = InMemoryStore()
    queue = OfflineQueue(clock, policy=HALT_ON_FAILURE)
    monitor = ConnectivityMonitor(store, clock, sleep=sleep)
    writer = ResilientWriter(store, queue, monitor)

    async def run():
        store.set_available(False)
        await writer.upsert_vehicle("v1", {"speed_kmh": 10.0})
        # Store is back but the monitor has not noticed yet
        store.set_available(True)
        monitor.is_online = True
        return await writer.upsert_vehicle("v1", {"speed_kmh": 20.0})

    assert asyncio.run(run()) is True
    assert len(queue) == 0
    assert asyncio.run(store.get_vehicle("v1"))["speed_kmh"] == 20.0
    assert store.upsert_count == 2


def test_failed_eta_append_is_dropped(writer, store, queue, connectivity, clock):
    now = clock.now()
    record = ETARecord("v1", "S", "r1", now + timedelta(minutes=5), 2.0, 5, now)

    store.set_available(False)
    assert asyncio.run(writer.append_eta(record)) is False
    assert connectivity.is_online is False
    assert len(queue) == 0


def test_write_behind_backlog_while_store_still_down_stays_queued(writer, store, queue, connectivity):
    async def run():
        store.set_available(False)
        await writer.upsert_vehicle("v1", {"speed_kmh": 10.0})
        # Monitor believes the store is back before it really is
        connectivity.is_online = True
        applied = await writer.upsert_vehicle("v1", {"speed_kmh": 20.0})
        state = (applied, len(queue), connectivity.is_online)

        store.set_available(True)
        await connectivity.check()
        return state, await store.get_vehicle("v1")

    (applied, queued, online), doc = asyncio.run(run())
    assert applied is False
    assert queued == 2
    assert online is False
    assert doc["speed_kmh"] == 20.0
    assert len(queue) == 0
