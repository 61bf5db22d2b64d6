"""
Data repositories module.
Exports the store interface and its implementations.
"""

from .base import FleetStore, StoreUnavailableError, BatchResult
from .memory_store import InMemoryStore
from .sqlite_store import SQLiteStore

__all__ = [
    "FleetStore",
    "StoreUnavailableError",
    "BatchResult",
    "InMemoryStore",
    "SQLiteStore",
]
