import asyncio
import random

import pytest

from fleet_core.core.clock import ManualClock
from fleet_core.core.config import ApplicationConfig
from fleet_core.data.models.route import Route, Stop
from fleet_core.data.repositories.memory_store import InMemoryStore
from fleet_core.services.connectivity import ConnectivityMonitor
from fleet_core.services.eta_estimator import EtaEstimator
from fleet_core.services.motion_model import FleetSimulator
from fleet_core.services.offline_queue import OfflineQueue
from fleet_core.services.store_writer import ResilientWriter


class BlockingSleep:
    """Sleep stand-in that records intervals and parks the caller until cancelled"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.Event().wait()


@pytest.fixture
def sleep():
    return BlockingSleep()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    # Jitter off so positions and speeds are exact
    return ApplicationConfig(speed_jitter_kmh=0.0, position_jitter_deg=0.0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def queue(clock):
    return OfflineQueue(clock)


@pytest.fixture
def connectivity(store, clock, sleep):
    return ConnectivityMonitor(store, clock, sleep=sleep)


@pytest.fixture
def writer(store, queue, connectivity):
    connectivity.on_restored(queue.flush)
    return ResilientWriter(store, queue, connectivity)


@pytest.fixture
def estimator(config, store, writer, clock):
    return EtaEstimator(config, store, writer, clock)


@pytest.fixture
def simulator(config, writer, estimator, clock, sleep):
    return FleetSimulator(config, writer, estimator, clock, rng=random.Random(7), sleep=sleep)


@pytest.fixture
def two_stop_route():
    """A at (0, 0), B at (0, 1): one degree of longitude on the equator"""
    return Route(
        id="r1",
        stops=(
            Stop(id="A", name="Stop A", latitude=0.0, longitude=0.0, sequence=0),
            Stop(id="B", name="Stop B", latitude=0.0, longitude=1.0, sequence=1),
        ),
    )


@pytest.fixture
def five_stop_route():
    return Route(
        id="r5",
        stops=tuple(
            Stop(id=f"s{i}", name=f"Stop {i}", latitude=0.0, longitude=0.01 * i, sequence=i)
            for i in range(5)
        ),
    )
