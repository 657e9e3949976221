"""
Strata - Procedural World Server
HTTP API and world stream WebSocket
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware

from strata.config import Settings, settings, setup_logging
from strata.errors import CoordinateOutOfRange, GenerationFailure, PersistenceFailure
from strata.server.stream import StreamSession, WorldStreamHandler
from strata.storage.backfill import VeinBackfill
from strata.storage.chunk_store import BackgroundWriter, TieredChunkStore
from strata.storage.database import Database, SqliteColdTier, SqliteSpatialStore
from strata.storage.nearby import find_nearby_resources
from strata.storage.redis_cache import RedisCacheTier
from strata.storage.tiers import MemoryCacheTier
from strata.world.coordinates import assert_valid_chunk
from strata.world.noise_field import WorldNoise
from strata.world.resources import VeinGenerator
from strata.world.terrain import TerrainField

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(config: Settings = settings) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the world pipeline on startup, drain pending writes on shutdown"""
        setup_logging(config.log_level)

        world_noise = WorldNoise(config.world_seed)
        terrain_field = TerrainField(world_noise)
        vein_generator = VeinGenerator(world_noise, terrain_field)

        database = Database(config.database_path)
        await database.init()

        if config.redis_url:
            cache = RedisCacheTier(config.redis_url, default_ttl=config.cache_ttl_seconds)
        else:
            cache = MemoryCacheTier(default_ttl=config.cache_ttl_seconds)

        writer = BackgroundWriter()
        chunk_store = TieredChunkStore(
            cache=cache,
            cold=SqliteColdTier(database),
            terrain_field=terrain_field,
            vein_generator=vein_generator,
            world_id=config.world_id,
            chunk_size=config.chunk_size,
            cache_ttl=config.cache_ttl_seconds,
            writer=writer,
        )
        spatial_store = SqliteSpatialStore(database)
        backfill = VeinBackfill(
            spatial_store,
            vein_generator,
            chunk_size=config.chunk_size,
            max_concurrent=config.max_concurrent_generations,
            batch_size=config.persist_batch_size,
        )

        app.state.config = config
        app.state.cache = cache
        app.state.chunk_store = chunk_store
        app.state.spatial_store = spatial_store
        app.state.backfill = backfill
        app.state.writer = writer
        app.state.stream_handler = WorldStreamHandler(
            chunk_store, config.chunk_world_size, config.chunk_size
        )

        logger.info(f"{config.app_name} starting for world {config.world_id} (seed {config.world_seed})")
        logger.info("WebSocket endpoint: /ws/world-stream")
        yield

        logger.info(f"{config.app_name} shutting down, {writer.pending} writes pending")
        await writer.drain()
        if isinstance(cache, RedisCacheTier):
            await cache.close()

    app = FastAPI(
        title=config.app_name,
        description="Procedural world chunks, resource veins and viewport streaming",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS configuration for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root(request: Request):
        """API health check"""
        state = request.app.state
        return {
            "name": config.app_name,
            "version": VERSION,
            "status": "running",
            "world_id": config.world_id,
            "stream_sessions": len(state.stream_handler.sessions),
            "pending_writes": state.writer.pending,
        }

    @app.get("/world/chunk")
    async def get_chunk(request: Request, x: int = 0, y: int = 0):
        """Terrain and resources of one chunk"""
        try:
            assert_valid_chunk(x, y, config.chunk_size)
        except CoordinateOutOfRange as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        try:
            chunk = await request.app.state.chunk_store.get_chunk(x, y)
        except GenerationFailure as e:
            logger.error(f"Chunk request failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to generate chunk"
            )

        return {
            "success": True,
            "terrain": chunk.terrain_values(),
            "resources": [vein.to_dict() for vein in chunk.resources],
            "coordinates": {"x": x, "y": y},
            "chunkSize": chunk.size,
            "metadata": {
                "version": chunk.metadata.get("version"),
                "generationMethod": chunk.metadata.get("generationMethod"),
                "generationTime": chunk.metadata.get("generationTime"),
            },
            "timestamp": chunk.timestamp,
        }

    @app.get("/world/nearby-resources")
    async def nearby_resources(request: Request, x: float, y: float,
                               radius: float = Query(100, ge=1, le=1000),
                               resourceType: Optional[str] = None):
        """Persisted veins around a point, nearest first"""
        state = request.app.state
        try:
            return await find_nearby_resources(
                state.spatial_store, state.backfill, config.world_id,
                x, y, radius, config.chunk_size, resourceType
            )
        except CoordinateOutOfRange as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except Exception as e:
            logger.error(f"Failed to query nearby resources at ({x}, {y}) r={radius}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to query nearby resources"
            )

    @app.post("/world/generate-test-resources")
    async def generate_test_resources(request: Request, x: int = 0, y: int = 0):
        """Generate one chunk's veins and persist them to the spatial store"""
        try:
            assert_valid_chunk(x, y, config.chunk_size)
        except CoordinateOutOfRange as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        try:
            veins = await request.app.state.backfill.generate_and_persist(x, y, config.world_id)
        except Exception as e:
            logger.error(f"Test resource generation failed for chunk ({x}, {y}): {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to generate resources"
            )

        return {
            "success": True,
            "chunk": {"chunkX": x, "chunkY": y},
            "generated": len(veins),
            "resources": [vein.to_dict() for vein in veins],
        }

    @app.get("/cache")
    async def cache_admin(request: Request, action: Optional[str] = None):
        """Hot cache statistics for this world, or clear it"""
        cache = request.app.state.cache
        try:
            if action == "stats":
                return {"success": True, **(await cache.stats(config.world_id))}
            if action == "clear":
                removed = await cache.clear_world(config.world_id)
                logger.info(f"Cache cleared for world {config.world_id}: {removed} chunks")
                return {"success": True, "message": f"Cleared {removed} cached chunks"}
        except PersistenceFailure as e:
            logger.error(f"Cache {action} failed: {e}")
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "message": "Chunk Cache API",
            "availableActions": ["stats", "clear"],
            "examples": [
                "/cache?action=stats - View cache statistics",
                "/cache?action=clear - Clear all cached chunks",
            ],
        }

    @app.websocket("/ws/world-stream")
    async def world_stream(websocket: WebSocket):
        """
        World stream endpoint.
        Text frames carry JSON messages; "ping" is answered with "pong".
        """
        await websocket.accept()

        handler: WorldStreamHandler = websocket.app.state.stream_handler
        session = StreamSession(connection_id=uuid.uuid4().hex, send_text=websocket.send_text)
        await handler.on_connect(session)

        try:
            while True:
                raw = await websocket.receive_text()
                await handler.handle_text(session, raw)
        except WebSocketDisconnect as e:
            logger.debug(f"Client {session.connection_id} disconnected: code {e.code}")
        finally:
            await handler.on_disconnect(session)

    return app


app = create_app()


def run():
    uvicorn.run(
        "strata.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
