"""
Strata - Coordinate Normalization

Converts raw world coordinates into canonical fixed-precision form and
into chunk/cell addresses.

INVARIANTS:
- Every coordinate is normalized to 3 decimals before it is stored or compared
- Chunk coordinates floor toward negative infinity
- Cell coordinates use a true modulo, so they are always in [0, chunk_size)
- Full coordinates are derived together from one normalized input
"""

from dataclasses import dataclass
from typing import Iterable, List
import math

from strata.errors import CoordinateOutOfRange


COORDINATE_PRECISION = 3
COORDINATE_TOLERANCE = 0.001
MIN_RESOURCE_DISTANCE = 0.5
COORDINATE_MIN = -1_000_000
COORDINATE_MAX = 1_000_000

DEFAULT_CHUNK_SIZE = 16
DEFAULT_CELL_SIZE = 32  # Pixels per cell; rendering only


@dataclass(frozen=True)
class WorldCoordinate:
    """A point in world space"""
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class ChunkCoordinate:
    """Integer address of a chunk"""
    chunk_x: int
    chunk_y: int

    def to_dict(self) -> dict:
        return {"chunkX": self.chunk_x, "chunkY": self.chunk_y}

    @classmethod
    def from_dict(cls, data: dict) -> 'ChunkCoordinate':
        return cls(chunk_x=int(data["chunkX"]), chunk_y=int(data["chunkY"]))


@dataclass(frozen=True)
class CellCoordinate:
    """Position inside a chunk's local grid"""
    cell_x: float
    cell_y: float


@dataclass(frozen=True)
class FullCoordinate:
    """World, chunk and cell address of one normalized point"""
    x: float
    y: float
    chunk_x: int
    chunk_y: int
    cell_x: float
    cell_y: float

    @property
    def world(self) -> WorldCoordinate:
        return WorldCoordinate(self.x, self.y)

    @property
    def chunk(self) -> ChunkCoordinate:
        return ChunkCoordinate(self.chunk_x, self.chunk_y)


def normalize_value(value: float) -> float:
    """Round one axis to the fixed precision"""
    return round(float(value), COORDINATE_PRECISION)


def normalize(x: float, y: float) -> WorldCoordinate:
    """Normalize a raw point. Idempotent."""
    return WorldCoordinate(normalize_value(x), normalize_value(y))


def to_chunk(coord: WorldCoordinate, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ChunkCoordinate:
    """Chunk containing a point (floors toward negative infinity)"""
    n = normalize(coord.x, coord.y)
    return ChunkCoordinate(
        int(math.floor(n.x / chunk_size)),
        int(math.floor(n.y / chunk_size)),
    )


def _true_mod(value: float, n: int) -> float:
    return normalize_value(((value % n) + n) % n)


def to_cell(coord: WorldCoordinate, chunk_size: int = DEFAULT_CHUNK_SIZE) -> CellCoordinate:
    """Position of a point inside its chunk, always in [0, chunk_size)"""
    n = normalize(coord.x, coord.y)
    cell_x = _true_mod(n.x, chunk_size)
    cell_y = _true_mod(n.y, chunk_size)
    return CellCoordinate(cell_x, cell_y)


def to_full(x: float, y: float, chunk_size: int = DEFAULT_CHUNK_SIZE) -> FullCoordinate:
    """Derive world, chunk and cell coordinates from one normalized point"""
    n = normalize(x, y)
    chunk = to_chunk(n, chunk_size)
    cell = to_cell(n, chunk_size)
    return FullCoordinate(
        x=n.x, y=n.y,
        chunk_x=chunk.chunk_x, chunk_y=chunk.chunk_y,
        cell_x=cell.cell_x, cell_y=cell.cell_y,
    )


def chunk_origin(chunk_x: int, chunk_y: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> WorldCoordinate:
    """World position of a chunk's (0, 0) cell"""
    return WorldCoordinate(float(chunk_x * chunk_size), float(chunk_y * chunk_size))


def validate(x: float, y: float) -> bool:
    """Both axes finite and inside the world bounds"""
    try:
        x = float(x)
        y = float(y)
    except (TypeError, ValueError):
        return False
    return (
        math.isfinite(x) and math.isfinite(y) and
        COORDINATE_MIN <= x <= COORDINATE_MAX and
        COORDINATE_MIN <= y <= COORDINATE_MAX
    )


def assert_valid(x: float, y: float) -> None:
    if not validate(x, y):
        raise CoordinateOutOfRange(x, y, COORDINATE_MIN, COORDINATE_MAX)


def validate_chunk(chunk_x: int, chunk_y: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bool:
    """Chunk origin lies inside the world bounds"""
    origin = chunk_origin(chunk_x, chunk_y, chunk_size)
    return validate(origin.x, origin.y)


def assert_valid_chunk(chunk_x: int, chunk_y: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    origin = chunk_origin(chunk_x, chunk_y, chunk_size)
    assert_valid(origin.x, origin.y)


def distance(a: WorldCoordinate, b: WorldCoordinate) -> float:
    """Euclidean distance"""
    return math.hypot(a.x - b.x, a.y - b.y)


def coordinates_equal(a: WorldCoordinate, b: WorldCoordinate,
                      tolerance: float = COORDINATE_TOLERANCE) -> bool:
    return abs(a.x - b.x) <= tolerance and abs(a.y - b.y) <= tolerance


def is_too_close(a: WorldCoordinate, b: WorldCoordinate,
                 min_distance: float = MIN_RESOURCE_DISTANCE) -> bool:
    return distance(a, b) < min_distance


def validate_position(candidate: WorldCoordinate, existing: Iterable[WorldCoordinate],
                      min_distance: float = MIN_RESOURCE_DISTANCE) -> bool:
    """True when the candidate keeps the minimum separation from every existing point"""
    n = normalize(candidate.x, candidate.y)
    return not any(is_too_close(n, other, min_distance) for other in existing)


def chunks_in_radius(center: WorldCoordinate, radius: float,
                     chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[ChunkCoordinate]:
    """
    Chunks intersecting a circular query.

    Returns the rectangular superset (every chunk touching the circle's
    bounding box), row by row along X.
    """
    n = normalize(center.x, center.y)
    min_cx = int(math.floor((n.x - radius) / chunk_size))
    max_cx = int(math.floor((n.x + radius) / chunk_size))
    min_cy = int(math.floor((n.y - radius) / chunk_size))
    max_cy = int(math.floor((n.y + radius) / chunk_size))

    return [
        ChunkCoordinate(cx, cy)
        for cx in range(min_cx, max_cx + 1)
        for cy in range(min_cy, max_cy + 1)
    ]


def snap_to_grid(x: float, y: float, grid_size: float) -> WorldCoordinate:
    return WorldCoordinate(round(x / grid_size) * grid_size, round(y / grid_size) * grid_size)


def coordinate_hash(x: float, y: float) -> str:
    n = normalize(x, y)
    return f"{n.x},{n.y}"


def parse_coordinate_hash(text: str) -> WorldCoordinate:
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"Invalid coordinate hash: {text}")
    try:
        return WorldCoordinate(float(parts[0]), float(parts[1]))
    except ValueError:
        raise ValueError(f"Invalid coordinate hash: {text}") from None


def deduplicate(coords: Iterable[WorldCoordinate],
                tolerance: float = COORDINATE_TOLERANCE) -> List[WorldCoordinate]:
    """Normalize and drop points within tolerance of an earlier one"""
    result: List[WorldCoordinate] = []
    for coord in coords:
        n = normalize(coord.x, coord.y)
        if not any(coordinates_equal(n, existing, tolerance) for existing in result):
            result.append(n)
    return result


def chunk_key(world_id: str, chunk_x: int, chunk_y: int) -> str:
    """Key used by the in-flight generation map"""
    return f"{world_id}:{chunk_x}:{chunk_y}"
