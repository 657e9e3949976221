"""
Strata - Viewport Stream Scheduler

Streams the chunks of one viewport update to one connection:
1. Compute the prefetch ring (visible bounding box grown by one chunk,
   minus the visible chunks and anything outside the world)
2. Sort visible and prefetch chunks by distance from the camera
3. Send visible chunks, then prefetch chunks, one at a time, yielding to
   the event loop after each
4. Send exactly one viewportComplete

STATES:
IDLE -> STREAMING_VIEWPORT -> STREAMING_PREFETCH -> COMPLETE
IDLE -> COMPLETE when nothing is visible

A failed chunk sends chunkError and streaming resumes at the next index.
If the connection closes, streaming stops without sending anything else;
persistence already scheduled by the chunk store carries on.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional

from strata.server.protocol import Message, MessageBuilder, Phase, Priority, Progress, ViewportUpdate
from strata.storage.chunk_store import TieredChunkStore
from strata.world.coordinates import DEFAULT_CELL_SIZE, DEFAULT_CHUNK_SIZE, ChunkCoordinate, validate_chunk

logger = logging.getLogger(__name__)


DEFAULT_CHUNK_WORLD_SIZE = DEFAULT_CHUNK_SIZE * DEFAULT_CELL_SIZE


class StreamState(Enum):
    IDLE = "idle"
    STREAMING_VIEWPORT = "streaming_viewport"
    STREAMING_PREFETCH = "streaming_prefetch"
    COMPLETE = "complete"


def prefetch_ring(visible: Iterable[ChunkCoordinate],
                  chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[ChunkCoordinate]:
    """One-chunk border around the visible set's bounding box, clipped to the world"""
    visible = list(visible)
    if not visible:
        return []

    visible_set = set(visible)
    min_x = min(c.chunk_x for c in visible)
    max_x = max(c.chunk_x for c in visible)
    min_y = min(c.chunk_y for c in visible)
    max_y = max(c.chunk_y for c in visible)

    return [
        ChunkCoordinate(x, y)
        for x in range(min_x - 1, max_x + 2)
        for y in range(min_y - 1, max_y + 2)
        if ChunkCoordinate(x, y) not in visible_set and validate_chunk(x, y, chunk_size)
    ]


def sort_by_camera(chunks: Iterable[ChunkCoordinate], camera_x: float, camera_y: float,
                   chunk_world_size: float = DEFAULT_CHUNK_WORLD_SIZE) -> List[ChunkCoordinate]:
    """Nearest first, in chunk space. Ties keep their input order."""
    cx = camera_x / chunk_world_size
    cy = camera_y / chunk_world_size
    return sorted(chunks, key=lambda c: math.hypot(c.chunk_x - cx, c.chunk_y - cy))


@dataclass
class StreamSummary:
    request_id: Optional[str]
    chunks_streamed: int = 0
    prefetch_chunks_streamed: int = 0
    failed: List[ChunkCoordinate] = field(default_factory=list)
    cancelled: bool = False


class ViewportStreamer:
    """
    Drives one viewport update for one connection.

    State is private to the instance; each update gets its own streamer.
    """

    def __init__(self, chunk_store: TieredChunkStore,
                 send: Callable[[Message], Awaitable[None]],
                 is_open: Callable[[], bool] = lambda: True,
                 chunk_world_size: float = DEFAULT_CHUNK_WORLD_SIZE,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_store = chunk_store
        self.send = send
        self.is_open = is_open
        self.chunk_world_size = chunk_world_size
        self.chunk_size = chunk_size
        self.state = StreamState.IDLE
        self.history: List[StreamState] = [StreamState.IDLE]

    def _enter(self, state: StreamState) -> None:
        self.state = state
        self.history.append(state)

    async def stream(self, update: ViewportUpdate) -> StreamSummary:
        summary = StreamSummary(request_id=update.request_id)

        visible = sort_by_camera(update.visible_chunks, update.camera_x, update.camera_y,
                                 self.chunk_world_size)
        ring = prefetch_ring(update.visible_chunks, self.chunk_size)
        prefetch = sort_by_camera(ring, update.camera_x, update.camera_y, self.chunk_world_size)

        logger.info(
            f"Streaming {len(visible)} viewport chunks + {len(prefetch)} prefetch chunks "
            f"for update {update.request_id}"
        )

        if visible:
            phases = (
                (StreamState.STREAMING_VIEWPORT, Phase.VIEWPORT, Priority.VIEWPORT, visible),
                (StreamState.STREAMING_PREFETCH, Phase.PREFETCH, Priority.LOW, prefetch),
            )
            for state, phase, priority, chunks in phases:
                self._enter(state)
                if not await self._stream_phase(chunks, phase, priority, summary):
                    summary.cancelled = True
                    logger.info(f"Connection closed; stopped streaming update {update.request_id}")
                    return summary

        self._enter(StreamState.COMPLETE)
        if self.is_open():
            await self.send(MessageBuilder.viewport_complete(
                update.request_id, summary.chunks_streamed, summary.prefetch_chunks_streamed
            ))
        return summary

    async def _stream_phase(self, chunks: List[ChunkCoordinate], phase: Phase, priority: Priority,
                            summary: StreamSummary) -> bool:
        """Returns False if the connection closed mid-phase"""
        total = len(chunks)
        for index, chunk in enumerate(chunks):
            if not self.is_open():
                return False

            try:
                data = await self.chunk_store.get_chunk(chunk.chunk_x, chunk.chunk_y)
            except Exception as e:
                logger.error(f"Error generating chunk {chunk.chunk_x},{chunk.chunk_y}: {e}")
                summary.failed.append(chunk)
                if self.is_open():
                    await self.send(MessageBuilder.chunk_error(
                        chunk.chunk_x, chunk.chunk_y, summary.request_id, priority
                    ))
            else:
                if not self.is_open():
                    return False
                await self.send(MessageBuilder.chunk_data(
                    data, summary.request_id, priority, Progress(index + 1, total, phase)
                ))
                if phase == Phase.VIEWPORT:
                    summary.chunks_streamed += 1
                else:
                    summary.prefetch_chunks_streamed += 1

            # Let other connections' work run between chunks
            await asyncio.sleep(0)

        return True
