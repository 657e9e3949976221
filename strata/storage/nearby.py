"""
Nearby-resource query: backfill the chunks a circle touches, then read
the spatial store nearest first, dropping records that sit closer than the
minimum resource distance to one already kept.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from strata.storage.backfill import VeinBackfill
from strata.storage.tiers import SpatialStore
from strata.world.coordinates import (
    DEFAULT_CHUNK_SIZE, MIN_RESOURCE_DISTANCE, WorldCoordinate,
    assert_valid, chunks_in_radius, distance, normalize,
)

logger = logging.getLogger(__name__)


async def find_nearby_resources(spatial_store: SpatialStore, backfill: VeinBackfill, world_id: str,
                                x: float, y: float, radius: float,
                                chunk_size: int = DEFAULT_CHUNK_SIZE,
                                resource_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Raises: CoordinateOutOfRange for invalid points. Backfill failures are
    logged and the query answers with whatever is already persisted.
    """
    assert_valid(x, y)
    center = normalize(x, y)

    report = await backfill.ensure_chunks_have_persisted_veins(
        chunks_in_radius(center, radius, chunk_size), world_id
    )
    if report.failed:
        logger.warning(f"Nearby query at ({center.x}, {center.y}) continuing after {report.failed} backfill failures")

    records = await spatial_store.query_radius(world_id, center.x, center.y, radius, resource_type)

    kept: List[WorldCoordinate] = []
    resources: List[Dict[str, Any]] = []
    for record in records:
        position = normalize(record.center_x, record.center_y)
        if any(distance(position, other) < MIN_RESOURCE_DISTANCE for other in kept):
            continue

        kept.append(position)
        gap = math.hypot(position.x - center.x, position.y - center.y)
        entry = record.to_dict()
        entry.update({
            "centerX": position.x,
            "centerY": position.y,
            "distance": round(gap, 3),
            "withinExtractionArea": gap <= record.radius,
        })
        resources.append(entry)

    return {
        "success": True,
        "query": {
            "x": center.x,
            "y": center.y,
            "radius": radius,
            "resourceType": resource_type,
        },
        "totalFound": len(resources),
        "resources": resources,
        "deduplicationInfo": {
            "originalCount": len(records),
            "deduplicatedCount": len(resources),
            "removedCount": len(records) - len(resources),
        },
    }
