"""
SQLite store for the fleet core.
Persists vehicle documents and ETA records with aiosqlite in WAL mode.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiosqlite
import pytz

from ..models.eta import ETARecord
from ..models.vehicle import VEHICLE_FIELDS
from .base import (
    BatchResult, FleetStore, StoreUnavailableError, VehicleDocument,
    VehiclePredicate, ETAPredicate, check_vehicle_fields,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_FIELDS = {"last_report_at", "last_seen_at"}
_BOOL_FIELDS = {"active"}


class SQLiteStore(FleetStore):
    """Vehicle and ETA persistence on a single SQLite connection"""

    def __init__(self, db_path: Path, timezone: str = "Asia/Kolkata"):
        super().__init__()
        self.db_path = Path(db_path)
        self.tz = pytz.timezone(timezone)
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self):
        """Initialize database schema and connection"""
        if self._conn is not None:
            return
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(self.db_path))
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=500")  # fail fast, the writer queues offline work

        await conn.execute('''
            CREATE TABLE IF NOT EXISTS vehicles (
                id TEXT PRIMARY KEY,
                route_id TEXT,
                latitude REAL,
                longitude REAL,
                speed_kmh REAL,
                base_speed_kmh REAL,
                active INTEGER,
                last_report_at REAL,
                last_seen_at REAL,
                current_stop_index INTEGER,
                target_stop_index INTEGER,
                progress REAL,
                current_stop TEXT,
                next_stop TEXT
            )
        ''')
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS etas (
                id TEXT PRIMARY KEY,
                vehicle_id TEXT,
                stop_id TEXT,
                route_id TEXT,
                estimated_arrival REAL,
                distance_km REAL,
                minutes INTEGER,
                computed_at REAL
            )
        ''')
        await conn.execute('CREATE INDEX IF NOT EXISTS idx_etas_stop ON etas(stop_id, computed_at)')
        await conn.execute('CREATE INDEX IF NOT EXISTS idx_etas_computed ON etas(computed_at)')
        await conn.commit()

        self._conn = conn
        logger.info(f"SQLite store initialized at {self.db_path}")

    async def close(self):
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
                logger.info("SQLite store closed")

    @asynccontextmanager
    async def _connection(self):
        """Serialize access and translate driver errors into StoreUnavailableError"""
        async with self._lock:
            if self._conn is None:
                raise StoreUnavailableError("SQLite store is not initialized")
            try:
                yield self._conn
            except sqlite3.Error as e:
                logger.error(f"SQLite operation failed: {e}")
                raise StoreUnavailableError(str(e)) from e

    async def ping(self) -> bool:
        try:
            async with self._connection() as conn:
                await conn.execute("SELECT 1")
            return True
        except StoreUnavailableError:
            return False

    # --- Row conversion ---

    def _to_column(self, name: str, value: Any) -> Any:
        if value is None:
            return None
        if name in _TIMESTAMP_FIELDS:
            return value.timestamp()
        if name in _BOOL_FIELDS:
            return int(bool(value))
        return value

    def _from_timestamp(self, value: Optional[float]) -> Optional[datetime]:
        return None if value is None else datetime.fromtimestamp(value, self.tz)

    def _vehicle_from_row(self, row) -> VehicleDocument:
        doc = {"id": row["id"]}
        for name in VEHICLE_FIELDS:
            value = row[name]
            if value is None:
                continue
            if name in _TIMESTAMP_FIELDS:
                value = self._from_timestamp(value)
            elif name in _BOOL_FIELDS:
                value = bool(value)
            doc[name] = value
        return doc

    def _eta_from_row(self, row) -> ETARecord:
        return ETARecord(
            id=row["id"],
            vehicle_id=row["vehicle_id"],
            stop_id=row["stop_id"],
            route_id=row["route_id"],
            estimated_arrival=self._from_timestamp(row["estimated_arrival"]),
            distance_km=row["distance_km"],
            minutes=row["minutes"],
            computed_at=self._from_timestamp(row["computed_at"]),
        )

    async def _upsert(self, conn: aiosqlite.Connection, vehicle_id: str, fields: Dict[str, Any]):
        check_vehicle_fields(fields)
        if not fields:
            await conn.execute("INSERT OR IGNORE INTO vehicles (id) VALUES (?)", (vehicle_id,))
            return
        # Column names come from VEHICLE_FIELDS only, never from caller strings
        columns = list(fields)
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in columns)
        values = [vehicle_id] + [self._to_column(c, fields[c]) for c in columns]
        await conn.execute(
            f"INSERT INTO vehicles (id, {', '.join(columns)}) VALUES (?, {placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {assignments}",
            values,
        )

    # --- Vehicles ---

    async def upsert_vehicle(self, vehicle_id: str, fields: Dict[str, Any]):
        async with self._connection() as conn:
            await self._upsert(conn, vehicle_id, fields)
            await conn.commit()
        await self._publish_active_vehicles()

    async def get_vehicle(self, vehicle_id: str) -> Optional[VehicleDocument]:
        async with self._connection() as conn:
            async with conn.execute("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,)) as cursor:
                row = await cursor.fetchone()
        return None if row is None else self._vehicle_from_row(row)

    async def list_vehicles(self, active_only: bool = False,
                            route_id: Optional[str] = None) -> List[VehicleDocument]:
        conditions, params = [], []
        if active_only:
            conditions.append("active = 1")
        if route_id is not None:
            conditions.append("route_id = ?")
            params.append(route_id)
        query = "SELECT * FROM vehicles"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY id"
        async with self._connection() as conn:
            async with conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [self._vehicle_from_row(row) for row in rows]

    async def query_vehicles(self, predicate: VehiclePredicate) -> List[VehicleDocument]:
        return [doc for doc in await self.list_vehicles() if predicate(doc)]

    async def batch_update_vehicles(
            self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> BatchResult:
        result = BatchResult()
        async with self._connection() as conn:
            for vehicle_id, fields in updates:
                try:
                    await self._upsert(conn, vehicle_id, fields)
                    result.succeeded.append(vehicle_id)
                except (ValueError, sqlite3.Error) as e:
                    result.failed[vehicle_id] = str(e)
            await conn.commit()
        if result.succeeded:
            await self._publish_active_vehicles()
        return result

    # --- ETAs ---

    async def append_eta(self, record: ETARecord):
        async with self._connection() as conn:
            await conn.execute(
                "INSERT INTO etas (id, vehicle_id, stop_id, route_id, estimated_arrival, "
                "distance_km, minutes, computed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id, record.vehicle_id, record.stop_id, record.route_id,
                    record.estimated_arrival.timestamp(), record.distance_km,
                    record.minutes, record.computed_at.timestamp(),
                ),
            )
            await conn.commit()

    async def list_etas(self, stop_id: Optional[str] = None) -> List[ETARecord]:
        query = "SELECT * FROM etas"
        params = []
        if stop_id is not None:
            query += " WHERE stop_id = ?"
            params.append(stop_id)
        query += " ORDER BY computed_at, rowid"
        async with self._connection() as conn:
            async with conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
        return [self._eta_from_row(row) for row in rows]

    async def query_etas(self, predicate: ETAPredicate) -> List[ETARecord]:
        return [r for r in await self.list_etas() if predicate(r)]

    async def batch_delete_etas(self, record_ids: Iterable[str]) -> BatchResult:
        ids = list(record_ids)
        result = BatchResult()
        if not ids:
            return result
        async with self._connection() as conn:
            try:
                await conn.executemany("DELETE FROM etas WHERE id = ?", [(i,) for i in ids])
                await conn.commit()
                result.succeeded.extend(ids)
            except sqlite3.Error as e:
                await conn.rollback()
                result.failed.update({i: str(e) for i in ids})
        return result
