"""
Services module.
Long-running components registered with the Application.
"""

from .connectivity import ConnectivityMonitor
from .eta_estimator import EtaEstimator
from .motion_model import FleetSimulator
from .offline_queue import OfflineQueue, FlushResult, QueuedOperation
from .staleness_sweeper import StalenessSweeper
from .store_writer import ResilientWriter

__all__ = [
    "ConnectivityMonitor",
    "EtaEstimator",
    "FleetSimulator",
    "OfflineQueue",
    "FlushResult",
    "QueuedOperation",
    "StalenessSweeper",
    "ResilientWriter",
]
