"""
Strata - Error Taxonomy

Validation errors surface to the caller. Generation, persistence and
backfill errors are isolated per chunk and never abort a batch.
"""

from typing import Optional


class StrataError(Exception):
    """Base class for all world pipeline errors"""


class CoordinateOutOfRange(StrataError, ValueError):
    """Coordinates are not finite or fall outside the world bounds"""

    def __init__(self, x: float, y: float, minimum: float, maximum: float):
        self.x = x
        self.y = y
        super().__init__(
            f"Invalid coordinates: x={x}, y={y}. Coordinates must be finite numbers "
            f"between {minimum} and {maximum}."
        )


class GenerationFailure(StrataError):
    """Terrain or vein generation failed for one chunk"""

    def __init__(self, chunk_x: int, chunk_y: int, cause: Optional[BaseException] = None):
        self.chunk_x = chunk_x
        self.chunk_y = chunk_y
        self.cause = cause
        super().__init__(f"Failed to generate chunk ({chunk_x}, {chunk_y}): {cause}")


class PersistenceFailure(StrataError):
    """Cache or cold store I/O failed"""

    def __init__(self, tier: str, operation: str, key: str,
                 cause: Optional[BaseException] = None):
        self.tier = tier
        self.operation = operation
        self.key = key
        self.cause = cause
        super().__init__(f"{tier} {operation} failed for {key}: {cause}")


class BackfillFailure(StrataError):
    """Lazy vein persistence failed for one chunk"""

    def __init__(self, chunk_x: int, chunk_y: int, cause: Optional[BaseException] = None):
        self.chunk_x = chunk_x
        self.chunk_y = chunk_y
        self.cause = cause
        super().__init__(f"Failed to backfill veins for chunk ({chunk_x}, {chunk_y}): {cause}")
