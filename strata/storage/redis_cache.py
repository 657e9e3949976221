"""
Hot chunk cache on Redis.

Chunks are stored as JSON under chunks:{world}:{x}:{y} with SETEX. Any
Redis error is raised as PersistenceFailure; the chunk store decides
whether that matters (it never does on the read path).
"""
from typing import Any, Dict, Optional
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from strata.errors import PersistenceFailure
from strata.models import ChunkData
from strata.storage.tiers import DEFAULT_CACHE_TTL, STATS_SAMPLE_KEYS, cache_key, decode_chunk, encode_chunk


class RedisCacheTier:
    """Chunk cache backed by a redis.asyncio client"""

    def __init__(self, redis_url: Optional[str] = None, default_ttl: int = DEFAULT_CACHE_TTL,
                 client: Any = None):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self._redis = client
        self.logger = logging.getLogger("redis_cache")

    async def connect(self):
        if self._redis is None:
            if not self.redis_url:
                raise PersistenceFailure("cache", "connect", "redis", ValueError("No Redis URL configured"))
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
            self.logger.info("Connected to Redis.")
        return self._redis

    async def get_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> Optional[ChunkData]:
        key = cache_key(world_id, chunk_x, chunk_y)
        client = await self.connect()
        try:
            raw = await client.get(key)
        except RedisError as e:
            raise PersistenceFailure("cache", "get", key, e) from e
        return decode_chunk(raw) if raw else None

    async def set_chunk(self, world_id: str, chunk_x: int, chunk_y: int, chunk: ChunkData,
                        ttl: Optional[int] = None) -> None:
        key = cache_key(world_id, chunk_x, chunk_y)
        client = await self.connect()
        try:
            await client.setex(key, self.default_ttl if ttl is None else ttl, encode_chunk(chunk))
        except RedisError as e:
            raise PersistenceFailure("cache", "set", key, e) from e

    async def delete_chunk(self, world_id: str, chunk_x: int, chunk_y: int) -> None:
        key = cache_key(world_id, chunk_x, chunk_y)
        client = await self.connect()
        try:
            await client.delete(key)
        except RedisError as e:
            raise PersistenceFailure("cache", "delete", key, e) from e

    async def clear_world(self, world_id: str) -> int:
        """Drop every cached chunk of a world. Returns the number of keys removed."""
        pattern = f"chunks:{world_id}:*"
        client = await self.connect()
        removed = 0
        try:
            async for key in client.scan_iter(match=pattern, count=100):
                removed += await client.delete(key)
        except RedisError as e:
            raise PersistenceFailure("cache", "clear", pattern, e) from e

        self.logger.info(f"Cleared {removed} cached chunks for world {world_id}")
        return removed

    async def stats(self, world_id: str) -> Dict[str, Any]:
        """Cached chunk count for a world, a sample of its keys and server memory use"""
        pattern = f"chunks:{world_id}:*"
        client = await self.connect()
        keys = []
        try:
            async for key in client.scan_iter(match=pattern, count=100):
                keys.append(key)
            info = await client.info("memory")
        except RedisError as e:
            raise PersistenceFailure("cache", "stats", pattern, e) from e

        return {
            "cachedChunks": len(keys),
            "chunkKeys": keys[:STATS_SAMPLE_KEYS],
            "memory": info.get("used_memory_human", "unknown"),
        }

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis connection closed.")
