"""
Strata - Tiered Chunk Store

Resolves a chunk through three tiers, in strict order:
1. Hot cache (hit -> return)
2. Cold store (hit -> return, refresh the cache in the background)
3. Generate (return, persist to cold store then cache in the background)

ARCHITECTURE:
- Tiers are injected (CacheTier, ColdTier); tests use the in-memory ones
- Write-back runs on a BackgroundWriter, never on the response path and
  never tied to the lifetime of the requesting connection
- A failing tier is logged and treated as a miss; only generation errors
  reach the caller

INVARIANTS:
- Exactly one of {cache, storage, generate} determines the returned value
- No request fails solely because persistence is unavailable
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Optional, Set

from strata.errors import GenerationFailure, PersistenceFailure
from strata.models import CHUNK_FORMAT_VERSION, ChunkData, GenerationMethod
from strata.storage.tiers import DEFAULT_CACHE_TTL, CacheTier, ColdTier, cache_key
from strata.world.coordinates import DEFAULT_CHUNK_SIZE, ChunkCoordinate
from strata.world.resources import VeinGenerator
from strata.world.terrain import TerrainField

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """
    Runs persistence side effects as detached tasks.

    Keeps a strong reference to every task until it finishes and logs
    failures through its own logger. drain() lets shutdown and tests wait
    for outstanding writes.
    """

    def __init__(self, name: str = "strata.background"):
        self.tasks: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(name)
        self.completed = 0
        self.failed = 0

    def spawn(self, operation: Awaitable[None], label: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(operation, label))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def _run(self, operation: Awaitable[None], label: str) -> None:
        try:
            await operation
            self.completed += 1
        except Exception as e:
            self.failed += 1
            self.logger.warning(f"Background write {label} failed: {e}")

    @property
    def pending(self) -> int:
        return len(self.tasks)

    async def drain(self) -> None:
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)


class TieredChunkStore:
    """Cache -> cold store -> generator resolution for one world"""

    def __init__(self, cache: CacheTier, cold: ColdTier,
                 terrain_field: TerrainField, vein_generator: VeinGenerator,
                 world_id: str = "default", chunk_size: int = DEFAULT_CHUNK_SIZE,
                 cache_ttl: int = DEFAULT_CACHE_TTL,
                 writer: Optional[BackgroundWriter] = None):
        self.cache = cache
        self.cold = cold
        self.terrain_field = terrain_field
        self.vein_generator = vein_generator
        self.world_id = world_id
        self.chunk_size = chunk_size
        self.cache_ttl = cache_ttl
        self.writer = writer or BackgroundWriter()

        # Stats
        self.cache_hits = 0
        self.storage_hits = 0
        self.generated = 0

    # ========================================================================
    # READ PATH
    # ========================================================================

    async def get_chunk(self, chunk_x: int, chunk_y: int) -> ChunkData:
        """
        Resolve one chunk.

        Raises: GenerationFailure if no tier had it and generation failed
        """
        degraded = False
        key = cache_key(self.world_id, chunk_x, chunk_y)

        try:
            cached = await self.cache.get_chunk(self.world_id, chunk_x, chunk_y)
        except Exception as e:
            self._log_read_failure("cache", key, e)
            degraded = True
            cached = None

        if cached is not None:
            self.cache_hits += 1
            return cached

        try:
            stored = await self.cold.get_chunk(self.world_id, chunk_x, chunk_y)
        except Exception as e:
            self._log_read_failure("storage", key, e)
            degraded = True
            stored = None

        if stored is not None:
            self.storage_hits += 1
            self.writer.spawn(self._write_cache(chunk_x, chunk_y, stored), f"cache:{key}")
            return stored

        chunk = self.generate_chunk(chunk_x, chunk_y, degraded=degraded)
        self.generated += 1
        self.writer.spawn(self._persist(chunk_x, chunk_y, chunk), f"persist:{key}")
        return chunk

    def generate_chunk(self, chunk_x: int, chunk_y: int, degraded: bool = False) -> ChunkData:
        """Build a fresh chunk from the noise fields"""
        started = time.perf_counter()
        try:
            terrain = self.terrain_field.generate_chunk_terrain(chunk_x, chunk_y, self.chunk_size)
            resources = self.vein_generator.generate_chunk_resources(chunk_x, chunk_y, self.chunk_size)
        except Exception as e:
            logger.error(f"Generation failed for chunk ({chunk_x}, {chunk_y}): {e}")
            raise GenerationFailure(chunk_x, chunk_y, e) from e

        method = GenerationMethod.FALLBACK if degraded else GenerationMethod.MULTI_LAYER_NOISE
        return ChunkData(
            coordinate=ChunkCoordinate(chunk_x, chunk_y),
            terrain=terrain,
            resources=resources,
            size=self.chunk_size,
            metadata={
                "version": CHUNK_FORMAT_VERSION,
                "generationMethod": method.value,
                "generationTime": round((time.perf_counter() - started) * 1000, 3),
                "worldId": self.world_id,
                "seed": int(chunk_x * 1000 + chunk_y),
            },
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    async def invalidate(self, chunk_x: int, chunk_y: int) -> None:
        """Drop a chunk from both persistent tiers so the next read regenerates it"""
        await self.cache.delete_chunk(self.world_id, chunk_x, chunk_y)
        await self.cold.delete_chunk(self.world_id, chunk_x, chunk_y)
        logger.info(f"Invalidated chunk ({chunk_x}, {chunk_y}) in world {self.world_id}")

    def get_stats(self) -> dict:
        return {
            "cache_hits": self.cache_hits,
            "storage_hits": self.storage_hits,
            "generated": self.generated,
            "pending_writes": self.writer.pending,
        }

    # ========================================================================
    # WRITE-BACK
    # ========================================================================

    async def _write_cache(self, chunk_x: int, chunk_y: int, chunk: ChunkData) -> None:
        await self.cache.set_chunk(self.world_id, chunk_x, chunk_y, chunk, ttl=self.cache_ttl)

    async def _persist(self, chunk_x: int, chunk_y: int, chunk: ChunkData) -> None:
        """Cold store first, then cache; a failure in one does not skip the other"""
        try:
            await self.cold.set_chunk(self.world_id, chunk_x, chunk_y, chunk)
        except Exception as e:
            logger.warning(f"Failed to persist chunk ({chunk_x}, {chunk_y}) to storage: {e}")

        await self._write_cache(chunk_x, chunk_y, chunk)

    def _log_read_failure(self, tier: str, key: str, error: Exception) -> None:
        failure = error if isinstance(error, PersistenceFailure) else PersistenceFailure(tier, "get", key, error)
        logger.warning(f"{failure}; treating as miss")
