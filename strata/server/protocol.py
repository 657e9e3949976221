"""
Strata - World Stream Protocol

Message types for the world stream WebSocket.
Every message is a flat JSON object carrying its type, an optional
requestId echoed from the client, and a server timestamp.

MESSAGE FORMAT:
{
    "type": str,          # Message type
    "requestId": str,     # Optional, echoed from the triggering request
    "timestamp": str,     # ISO-8601 server time
    ...                   # Type-specific fields at the top level
}

The liveness check is outside this envelope: a bare "ping" text frame is
answered with a bare "pong".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import json

from strata.models import ChunkData
from strata.world.coordinates import DEFAULT_CHUNK_SIZE, ChunkCoordinate, assert_valid_chunk


PING = "ping"
PONG = "pong"


class MessageType(Enum):
    """All message types"""

    # Client -> Server
    REQUEST_CHUNK = "requestChunk"
    UPDATE_VIEWPORT = "updateViewport"

    # Server -> Client
    CONNECTED = "connected"
    CHUNK_DATA = "chunkData"
    CHUNK_ERROR = "chunkError"
    VIEWPORT_COMPLETE = "viewportComplete"
    VIEWPORT_ERROR = "viewportError"
    ERROR = "error"


class Priority(Enum):
    VIEWPORT = "viewport"
    LOW = "low"


class Phase(Enum):
    VIEWPORT = "viewport"
    PREFETCH = "prefetch"


class UnknownMessageType(ValueError):
    """Well-formed message with a type the server does not handle"""

    def __init__(self, type_name: Any):
        self.type_name = type_name
        super().__init__(f"Unknown message type: {type_name}")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Message:
    """Base message structure"""
    type: MessageType
    fields: Dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"type": self.type.value}
        payload.update(self.fields)
        if self.request_id is not None:
            payload["requestId"] = self.request_id
        payload["timestamp"] = self.timestamp
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @staticmethod
    def from_json(raw: str) -> 'Message':
        """
        Parse a client message.

        Raises: ValueError on malformed JSON or a missing type,
        UnknownMessageType for a type outside MessageType
        """
        try:
            obj = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid JSON: {e}") from e

        if not isinstance(obj, dict) or "type" not in obj:
            raise ValueError("Message must be an object with a type")

        try:
            msg_type = MessageType(obj["type"])
        except ValueError:
            raise UnknownMessageType(obj["type"]) from None

        request_id = obj.get("requestId")
        fields = {k: v for k, v in obj.items() if k not in ("type", "requestId", "timestamp")}
        return Message(
            type=msg_type,
            fields=fields,
            request_id=str(request_id) if request_id is not None else None,
            timestamp=obj.get("timestamp") or now_iso(),
        )


# ============================================================================
# CLIENT -> SERVER MESSAGES
# ============================================================================

def _chunk_axis(data: Dict[str, Any], name: str) -> int:
    value = data.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be an integer")
    return int(value)


def parse_chunk_coordinate(data: Any) -> ChunkCoordinate:
    if not isinstance(data, dict):
        raise ValueError("Chunk coordinate must be an object")
    return ChunkCoordinate(_chunk_axis(data, "chunkX"), _chunk_axis(data, "chunkY"))


def _camera_axis(data: Dict[str, Any], name: str) -> float:
    value = data.get(name, 0)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    return float(value)


@dataclass
class ChunkRequest:
    chunk: ChunkCoordinate
    request_id: Optional[str] = None

    @classmethod
    def from_message(cls, msg: Message) -> 'ChunkRequest':
        return cls(chunk=parse_chunk_coordinate(msg.fields), request_id=msg.request_id)

    def validate(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """Raises: CoordinateOutOfRange if the chunk lies outside the world"""
        assert_valid_chunk(self.chunk.chunk_x, self.chunk.chunk_y, chunk_size)


@dataclass
class ViewportUpdate:
    visible_chunks: List[ChunkCoordinate]
    camera_x: float = 0.0
    camera_y: float = 0.0
    request_id: Optional[str] = None

    @classmethod
    def from_message(cls, msg: Message, chunk_size: int = DEFAULT_CHUNK_SIZE) -> 'ViewportUpdate':
        """
        Raises: ValueError on a malformed payload, CoordinateOutOfRange if
        any visible chunk lies outside the world
        """
        visible = msg.fields.get("visibleChunks", [])
        if not isinstance(visible, list):
            raise ValueError("visibleChunks must be a list")

        chunks = [parse_chunk_coordinate(entry) for entry in visible]
        for chunk in chunks:
            assert_valid_chunk(chunk.chunk_x, chunk.chunk_y, chunk_size)
        return cls(
            visible_chunks=chunks,
            camera_x=_camera_axis(msg.fields, "cameraX"),
            camera_y=_camera_axis(msg.fields, "cameraY"),
            request_id=msg.request_id,
        )


# ============================================================================
# SERVER -> CLIENT MESSAGES
# ============================================================================

@dataclass
class Progress:
    current: int
    total: int
    phase: Phase

    def to_dict(self) -> Dict[str, Any]:
        return {"current": self.current, "total": self.total, "phase": self.phase.value}


class MessageBuilder:
    """Factory for creating properly typed messages"""

    @classmethod
    def connected(cls, message: str = "World stream connected") -> Message:
        return Message(type=MessageType.CONNECTED, fields={"message": message})

    @classmethod
    def chunk_data(cls, chunk: ChunkData, request_id: Optional[str] = None,
                   priority: Optional[Priority] = None,
                   progress: Optional[Progress] = None) -> Message:
        fields = {
            "chunkX": chunk.coordinate.chunk_x,
            "chunkY": chunk.coordinate.chunk_y,
            "data": {"cells": chunk.terrain_values()},
            "resources": [vein.to_dict() for vein in chunk.resources],
            "metadata": dict(chunk.metadata),
        }
        if priority is not None:
            fields["priority"] = priority.value
        if progress is not None:
            fields["progress"] = progress.to_dict()
        return Message(type=MessageType.CHUNK_DATA, fields=fields, request_id=request_id)

    @classmethod
    def chunk_error(cls, chunk_x: int, chunk_y: int, request_id: Optional[str] = None,
                    priority: Optional[Priority] = None,
                    error: str = "Failed to generate chunk") -> Message:
        fields = {"chunkX": chunk_x, "chunkY": chunk_y, "error": error}
        if priority is not None:
            fields["priority"] = priority.value
        return Message(type=MessageType.CHUNK_ERROR, fields=fields, request_id=request_id)

    @classmethod
    def viewport_complete(cls, request_id: Optional[str], chunks_streamed: int,
                          prefetch_chunks_streamed: int) -> Message:
        return Message(
            type=MessageType.VIEWPORT_COMPLETE,
            fields={
                "chunksStreamed": chunks_streamed,
                "prefetchChunksStreamed": prefetch_chunks_streamed,
            },
            request_id=request_id,
        )

    @classmethod
    def viewport_error(cls, request_id: Optional[str],
                       error: str = "Failed to setup chunk streaming") -> Message:
        return Message(type=MessageType.VIEWPORT_ERROR, fields={"error": error}, request_id=request_id)

    @classmethod
    def error(cls, message: str) -> Message:
        return Message(type=MessageType.ERROR, fields={"message": message})
