"""
Strata - Storage Tier Interfaces

The chunk pipeline talks to three collaborators through these protocols:
- CacheTier: hot cache with a TTL, absence is a normal outcome
- ColdTier: durable chunk store, same keying, no TTL
- SpatialStore: vein records queried by envelope and by radius

In-memory implementations live here too. They exchange serialized JSON,
never live objects, so a caller mutating a returned chunk cannot change
what the tier holds.
"""

from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
import json
import math
import time

from strata.engine.spatial import Envelope, SpatialHashGrid
from strata.models import ChunkData, VeinRecord

DEFAULT_CACHE_TTL = 3600
DEFAULT_SWEEP_INTERVAL = 60
DEFAULT_MAX_CACHED_CHUNKS = 10_000
STATS_SAMPLE_KEYS = 10


def cache_key(world_id: str, chunk_x: int, chunk_y: int) -> str:
    return f"chunks:{world_id}:{chunk_x}:{chunk_y}"


def object_key(world_id: str, chunk_x: int, chunk_y: int) -> str:
    return f"chunks/{world_id}/{chunk_x}/{chunk_y}.json"


def encode_chunk(chunk: ChunkData) -> str:
    return json.dumps(chunk.to_dict(), separators=(",", ":"))


def decode_chunk(raw: str) -> ChunkData:
    return ChunkData.from_dict(json.loads(raw))


# ============================================================================
# PROTOCOLS
# ============================================================================

class CacheTier(Protocol):
    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]: ...

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData,
                        ttl: Optional[int] = None) -> None: ...

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None: ...

    async def clear_world(self, world_id: str) -> int: ...

    async def stats(self, world_id: str) -> Dict[str, Any]: ...


class ColdTier(Protocol):
    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]: ...

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData) -> None: ...

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None: ...


class SpatialStore(Protocol):
    async def insert_vein(self, record: VeinRecord) -> bool: ...

    async def count_in_envelope(self, world_id: str, envelope: Envelope) -> int: ...

    async def query_radius(self, world_id: str, x: float, y: float, radius: float,
                           resource_type: Optional[str] = None) -> List[VeinRecord]: ...


# ============================================================================
# IN-MEMORY TIERS
# ============================================================================

class MemoryCacheTier:
    """
    Process-local hot cache with per-key expiry.

    INVARIANTS:
    - Expired entries are swept on write at most once per sweep interval
    - Never more than max_entries entries; the least recently used go first
    """

    def __init__(self, default_ttl: int = DEFAULT_CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic,
                 max_entries: int = DEFAULT_MAX_CACHED_CHUNKS,
                 sweep_interval: float = DEFAULT_SWEEP_INTERVAL):
        self.default_ttl = default_ttl
        self.clock = clock
        self.max_entries = max(1, max_entries)
        self.sweep_interval = sweep_interval
        self.entries: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self._next_sweep = clock() + sweep_interval

    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]:
        key = cache_key(world_id, chunk_x, chunk_y)
        entry = self.entries.get(key)
        if entry is None:
            return None

        raw, expires_at = entry
        if self.clock() >= expires_at:
            del self.entries[key]
            return None
        self.entries.move_to_end(key)
        return decode_chunk(raw)

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData,
                        ttl: Optional[int] = None) -> None:
        now = self.clock()
        if now >= self._next_sweep:
            self.purge_expired(now)

        ttl = self.default_ttl if ttl is None else ttl
        key = cache_key(world_id, chunk_x, chunk_y)
        self.entries[key] = (encode_chunk(chunk), now + ttl)
        self.entries.move_to_end(key)
        while len(self.entries) > self.max_entries:
            self.entries.popitem(last=False)

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None:
        self.entries.pop(cache_key(world_id, chunk_x, chunk_y), None)

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        expired = [key for key, (_, expires_at) in self.entries.items() if now >= expires_at]
        for key in expired:
            del self.entries[key]
        self._next_sweep = now + self.sweep_interval
        return len(expired)

    def _world_keys(self, world_id: str) -> List[str]:
        prefix = f"chunks:{world_id}:"
        return [key for key in self.entries if key.startswith(prefix)]

    async def clear_world(self, world_id: str) -> int:
        keys = self._world_keys(world_id)
        for key in keys:
            del self.entries[key]
        return len(keys)

    async def stats(self, world_id: str) -> Dict[str, Any]:
        self.purge_expired()
        keys = self._world_keys(world_id)
        return {
            "cachedChunks": len(keys),
            "chunkKeys": keys[:STATS_SAMPLE_KEYS],
            "memory": f"{len(self.entries)} entries",
        }


class MemoryColdTier:
    """Durable-shaped chunk store held in a dict of JSON documents"""

    def __init__(self):
        self.objects: Dict[str, str] = {}

    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]:
        raw = self.objects.get(object_key(world_id, chunk_x, chunk_y))
        return decode_chunk(raw) if raw is not None else None

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData) -> None:
        self.objects[object_key(world_id, chunk_x, chunk_y)] = encode_chunk(chunk)

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None:
        self.objects.pop(object_key(world_id, chunk_x, chunk_y), None)


class MemorySpatialStore:
    """
    Vein records indexed by a hash grid per world.

    INVARIANTS:
    - One record per vein id; re-inserting an id is ignored
    """

    def __init__(self, cell_size: float = 16.0):
        self.cell_size = cell_size
        self.grids: Dict[str, SpatialHashGrid] = {}
        self.records: Dict[str, VeinRecord] = {}

    def _grid(self, world_id: str) -> SpatialHashGrid:
        if world_id not in self.grids:
            self.grids[world_id] = SpatialHashGrid(self.cell_size)
        return self.grids[world_id]

    async def insert_vein(self, record: VeinRecord) -> bool:
        if record.id in self.records:
            return False
        self.records[record.id] = record
        self._grid(record.world_id).insert(record.id, record.center_x, record.center_y)
        return True

    async def count_in_envelope(self, world_id: str, envelope: Envelope) -> int:
        return len(self._grid(world_id).query_envelope(envelope))

    async def query_radius(self, world_id: str, x: float, y: float, radius: float,
                           resource_type: Optional[str] = None) -> List[VeinRecord]:
        found = [
            self.records[item_id]
            for item_id in self._grid(world_id).query_radius(x, y, radius)
            if resource_type is None or self.records[item_id].resource_type == resource_type
        ]
        found.sort(key=lambda r: (math.hypot(r.center_x - x, r.center_y - y), r.id))
        return found

    def __len__(self) -> int:
        return len(self.records)
