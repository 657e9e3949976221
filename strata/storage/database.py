"""
Database layer for Strata using SQLite

Two stores share one database file:
- chunks: the cold chunk store (JSON payload per world/chunk)
- resource_veins: the spatial record store used by nearby-resource queries
"""
from datetime import datetime, timezone
from typing import List, Optional
import logging
import math
import sqlite3

import aiosqlite

from strata.engine.spatial import Envelope
from strata.errors import PersistenceFailure
from strata.models import ChunkData, VeinRecord
from strata.storage.tiers import decode_chunk, encode_chunk, object_key

logger = logging.getLogger(__name__)

DATABASE_PATH = "strata.db"


class Database:
    """Async database wrapper"""

    def __init__(self, db_path: str = DATABASE_PATH):
        self.db_path = db_path

    def connect(self):
        return aiosqlite.connect(self.db_path)

    async def init(self):
        """Create tables and indexes"""
        async with self.connect() as db:
            # Cold chunk store
            await db.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    world_id TEXT NOT NULL,
                    chunk_x INTEGER NOT NULL,
                    chunk_y INTEGER NOT NULL,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (world_id, chunk_x, chunk_y)
                )
            """)

            # Spatial record store
            await db.execute("""
                CREATE TABLE IF NOT EXISTS resource_veins (
                    id TEXT PRIMARY KEY,
                    world_id TEXT NOT NULL,
                    resource_type TEXT NOT NULL,
                    center_x REAL NOT NULL,
                    center_y REAL NOT NULL,
                    radius REAL NOT NULL,
                    density REAL NOT NULL,
                    quality REAL NOT NULL,
                    depth INTEGER NOT NULL,
                    is_exhausted INTEGER NOT NULL DEFAULT 0,
                    extracted_amount REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_resource_veins_position
                ON resource_veins (world_id, center_x, center_y)
            """)

            await db.commit()
        logger.info(f"Database initialized at {self.db_path}")


class SqliteColdTier:
    """Cold chunk store in the chunks table"""

    def __init__(self, database: Database):
        self.database = database

    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]:
        try:
            async with self.database.connect() as db:
                async with db.execute(
                    "SELECT payload FROM chunks WHERE world_id = ? AND chunk_x = ? AND chunk_y = ?",
                    (world_id, chunk_x, chunk_y)
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure("storage", "get", object_key(world_id, chunk_x, chunk_y), e) from e

        return decode_chunk(row[0]) if row else None

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData) -> None:
        try:
            async with self.database.connect() as db:
                await db.execute(
                    """INSERT OR REPLACE INTO chunks
                    (world_id, chunk_x, chunk_y, payload, updated_at)
                    VALUES (?, ?, ?, ?, ?)""",
                    (world_id, chunk_x, chunk_y, encode_chunk(chunk),
                     datetime.now(timezone.utc).isoformat())
                )
                await db.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure("storage", "set", object_key(world_id, chunk_x, chunk_y), e) from e

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None:
        try:
            async with self.database.connect() as db:
                await db.execute(
                    "DELETE FROM chunks WHERE world_id = ? AND chunk_x = ? AND chunk_y = ?",
                    (world_id, chunk_x, chunk_y)
                )
                await db.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure("storage", "delete", object_key(world_id, chunk_x, chunk_y), e) from e


def _row_to_record(row) -> VeinRecord:
    return VeinRecord(
        id=row["id"],
        world_id=row["world_id"],
        resource_type=row["resource_type"],
        center_x=row["center_x"],
        center_y=row["center_y"],
        radius=row["radius"],
        density=row["density"],
        quality=row["quality"],
        depth=row["depth"],
        is_exhausted=bool(row["is_exhausted"]),
        extracted_amount=row["extracted_amount"],
    )


class SqliteSpatialStore:
    """Vein records in the resource_veins table"""

    def __init__(self, database: Database):
        self.database = database

    async def insert_vein(self, record: VeinRecord) -> bool:
        """Insert a record; an existing id is left untouched. Returns True if inserted."""
        try:
            async with self.database.connect() as db:
                cursor = await db.execute(
                    """INSERT OR IGNORE INTO resource_veins
                    (id, world_id, resource_type, center_x, center_y, radius, density,
                     quality, depth, is_exhausted, extracted_amount, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (record.id, record.world_id, record.resource_type, record.center_x,
                     record.center_y, record.radius, record.density, record.quality,
                     record.depth, int(record.is_exhausted), record.extracted_amount,
                     datetime.now(timezone.utc).isoformat())
                )
                await db.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise PersistenceFailure("spatial", "insert", record.id, e) from e

    async def count_in_envelope(self, world_id: str, envelope: Envelope) -> int:
        try:
            async with self.database.connect() as db:
                async with db.execute(
                    """SELECT COUNT(*) FROM resource_veins
                    WHERE world_id = ?
                    AND center_x >= ? AND center_x < ?
                    AND center_y >= ? AND center_y < ?""",
                    (world_id, envelope.min_x, envelope.max_x, envelope.min_y, envelope.max_y)
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure("spatial", "count", world_id, e) from e

        return row[0] if row else 0

    async def query_radius(self, world_id: str, x: float, y: float, radius: float,
                           resource_type: Optional[str] = None) -> List[VeinRecord]:
        """
        Records within radius of (x, y), nearest first.

        The bounding box narrows rows in SQL; exact distance is checked here.
        """
        sql = """SELECT * FROM resource_veins
            WHERE world_id = ?
            AND center_x BETWEEN ? AND ?
            AND center_y BETWEEN ? AND ?"""
        params = [world_id, x - radius, x + radius, y - radius, y + radius]
        if resource_type is not None:
            sql += " AND resource_type = ?"
            params.append(resource_type)

        try:
            async with self.database.connect() as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailure("spatial", "query", world_id, e) from e

        within = []
        for row in rows:
            record = _row_to_record(row)
            d = math.hypot(record.center_x - x, record.center_y - y)
            if d <= radius:
                within.append((d, record))
        within.sort(key=lambda item: (item[0], item[1].id))
        return [r for _, r in within]
