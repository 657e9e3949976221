"""
Strata - World Stream Connection Handling

Routes world stream messages for each connected client. Transport-agnostic:
the FastAPI WebSocket endpoint feeds text frames in and provides the
send callable, tests drive it with plain coroutines.

ARCHITECTURE:
- One StreamSession per connection, private to that connection
- requestChunk is answered inline
- updateViewport runs as a session task so the receive loop keeps reading
- Disconnect cancels the session's stream tasks; persistence keeps running
  on the chunk store's background writer
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Set

from strata.errors import CoordinateOutOfRange
from strata.server.protocol import (
    PING, PONG, ChunkRequest, Message, MessageBuilder, MessageType,
    UnknownMessageType, ViewportUpdate,
)
from strata.server.scheduler import DEFAULT_CHUNK_WORLD_SIZE, StreamSummary, ViewportStreamer
from strata.storage.chunk_store import TieredChunkStore
from strata.world.coordinates import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


@dataclass
class StreamSession:
    """Represents a connected client"""
    connection_id: str
    send_text: Callable[[str], Awaitable[None]]
    closed: bool = False

    # Stats
    connected_at: float = field(default_factory=time.time)
    last_message_at: float = field(default_factory=time.time)
    messages_received: int = 0
    messages_sent: int = 0

    tasks: Set[asyncio.Task] = field(default_factory=set)

    def is_open(self) -> bool:
        return not self.closed


class WorldStreamHandler:
    """Message routing for world stream connections"""

    def __init__(self, chunk_store: TieredChunkStore,
                 chunk_world_size: float = DEFAULT_CHUNK_WORLD_SIZE,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_store = chunk_store
        self.chunk_world_size = chunk_world_size
        self.chunk_size = chunk_size
        self.sessions: Dict[str, StreamSession] = {}

    # ========================================================================
    # CONNECTION HANDLING
    # ========================================================================

    async def on_connect(self, session: StreamSession) -> None:
        self.sessions[session.connection_id] = session
        logger.info(f"WebSocket opened: {session.connection_id}")
        await self._send(session, MessageBuilder.connected())

    async def on_disconnect(self, session: StreamSession) -> None:
        """Stop streaming to a closed connection"""
        session.closed = True
        for task in list(session.tasks):
            task.cancel()
        if session.tasks:
            await asyncio.gather(*session.tasks, return_exceptions=True)

        self.sessions.pop(session.connection_id, None)
        logger.info(f"WebSocket closed: {session.connection_id}")

    # ========================================================================
    # MESSAGE HANDLING
    # ========================================================================

    async def handle_text(self, session: StreamSession, raw: str) -> None:
        """Process one incoming text frame"""
        session.last_message_at = time.time()
        session.messages_received += 1

        if raw == PING:
            await self._send_raw(session, PONG)
            return

        try:
            msg = Message.from_json(raw)
        except UnknownMessageType as e:
            await self._send(session, MessageBuilder.error(str(e)))
            return
        except ValueError as e:
            logger.warning(f"Invalid message from {session.connection_id}: {e}")
            await self._send(session, MessageBuilder.error("Invalid message format"))
            return

        handlers = {
            MessageType.REQUEST_CHUNK: self._handle_chunk_request,
            MessageType.UPDATE_VIEWPORT: self._handle_viewport_update,
        }

        handler = handlers.get(msg.type)
        if handler:
            await handler(session, msg)
        else:
            await self._send(session, MessageBuilder.error(f"Unknown message type: {msg.type.value}"))

    async def _handle_chunk_request(self, session: StreamSession, msg: Message) -> None:
        try:
            request = ChunkRequest.from_message(msg)
        except ValueError as e:
            logger.warning(f"Invalid chunk request from {session.connection_id}: {e}")
            await self._send(session, MessageBuilder.error("Invalid message format"))
            return

        x, y = request.chunk.chunk_x, request.chunk.chunk_y
        try:
            request.validate(self.chunk_size)
        except CoordinateOutOfRange as e:
            await self._send(session, MessageBuilder.chunk_error(x, y, request.request_id, error=str(e)))
            return

        try:
            chunk = await self.chunk_store.get_chunk(x, y)
        except Exception as e:
            logger.error(f"Error generating chunk {x},{y}: {e}")
            await self._send(session, MessageBuilder.chunk_error(x, y, request.request_id))
            return

        await self._send(session, MessageBuilder.chunk_data(chunk, request.request_id))

    async def _handle_viewport_update(self, session: StreamSession, msg: Message) -> None:
        try:
            update = ViewportUpdate.from_message(msg, self.chunk_size)
        except ValueError as e:
            logger.warning(f"Invalid viewport update from {session.connection_id}: {e}")
            await self._send(session, MessageBuilder.viewport_error(msg.request_id))
            return

        task = asyncio.create_task(self._run_stream(session, update))
        session.tasks.add(task)
        task.add_done_callback(session.tasks.discard)

    async def _run_stream(self, session: StreamSession, update: ViewportUpdate) -> StreamSummary:
        streamer = ViewportStreamer(
            self.chunk_store,
            send=lambda m: self._send(session, m),
            is_open=session.is_open,
            chunk_world_size=self.chunk_world_size,
            chunk_size=self.chunk_size,
        )
        try:
            return await streamer.stream(update)
        except Exception as e:
            logger.error(f"Error setting up viewport streaming: {e}")
            await self._send(session, MessageBuilder.viewport_error(update.request_id))
            return StreamSummary(request_id=update.request_id)

    # ========================================================================
    # UTILITIES
    # ========================================================================

    async def _send(self, session: StreamSession, msg: Message) -> None:
        await self._send_raw(session, msg.to_json())

    async def _send_raw(self, session: StreamSession, text: str) -> None:
        """Send a frame; a failed send marks the session closed"""
        if session.closed:
            return
        try:
            await session.send_text(text)
            session.messages_sent += 1
        except Exception as e:
            logger.error(f"Error sending to {session.connection_id}: {e}")
            session.closed = True

    def get_stats(self) -> Dict[str, Any]:
        return {
            "connections": len(self.sessions),
            "active_streams": sum(len(s.tasks) for s in self.sessions.values()),
        }
