"""
Strata - Spatial Indexing

2D hash grid over vein ids. Backs the in-memory spatial store used by
tests and single-process deployments.

Provides O(1) insertion/removal and O(k) queries where k = ids in the
cells a query touches.
"""

from dataclasses import dataclass
from typing import Any, Dict, Set, Tuple
import math


@dataclass(frozen=True)
class Envelope:
    """Half-open axis-aligned box: [min_x, max_x) x [min_y, max_y)"""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def contains_point(self, x: float, y: float) -> bool:
        return self.min_x <= x < self.max_x and self.min_y <= y < self.max_y

    def intersects(self, other: 'Envelope') -> bool:
        return (self.min_x < other.max_x and self.max_x > other.min_x and
                self.min_y < other.max_y and self.max_y > other.min_y)


Cell = Tuple[int, int]


class SpatialHashGrid:
    """
    2D spatial hash grid keyed by string ids.

    INVARIANTS:
    - Id in grid iff it has been inserted and not removed
    - Id's cell matches its stored position
    - No duplicate ids in the same cell
    """

    def __init__(self, cell_size: float = 16.0):
        self.cell_size = cell_size
        self.cells: Dict[Cell, Set[str]] = {}
        self.positions: Dict[str, Tuple[float, float]] = {}

    def _get_cell(self, x: float, y: float) -> Cell:
        return (
            int(math.floor(x / self.cell_size)),
            int(math.floor(y / self.cell_size)),
        )

    def __contains__(self, item_id: str) -> bool:
        return item_id in self.positions

    def __len__(self) -> int:
        return len(self.positions)

    def insert(self, item_id: str, x: float, y: float) -> None:
        """Insert an id, moving it if already present"""
        if item_id in self.positions:
            self.remove(item_id)

        cell = self._get_cell(x, y)
        self.cells.setdefault(cell, set()).add(item_id)
        self.positions[item_id] = (x, y)

    def remove(self, item_id: str) -> bool:
        """
        Remove an id from the grid.

        Returns: True if the id was in the grid
        """
        if item_id not in self.positions:
            return False

        cell = self._get_cell(*self.positions.pop(item_id))
        members = self.cells.get(cell)
        if members is not None:
            members.discard(item_id)
            if not members:
                del self.cells[cell]
        return True

    def _candidates(self, min_x: float, min_y: float, max_x: float, max_y: float) -> Set[str]:
        min_cell = self._get_cell(min_x, min_y)
        max_cell = self._get_cell(max_x, max_y)

        results: Set[str] = set()
        for cx in range(min_cell[0], max_cell[0] + 1):
            for cy in range(min_cell[1], max_cell[1] + 1):
                members = self.cells.get((cx, cy))
                if members:
                    results.update(members)
        return results

    def query_radius(self, x: float, y: float, radius: float) -> Set[str]:
        """
        Ids within radius of a point.

        Algorithm:
        1. Collect ids in cells overlapping the circle's bounding box
        2. Filter by exact distance
        """
        radius_sq = radius * radius
        results = set()
        for item_id in self._candidates(x - radius, y - radius, x + radius, y + radius):
            ex, ey = self.positions[item_id]
            if (ex - x) ** 2 + (ey - y) ** 2 <= radius_sq:
                results.add(item_id)
        return results

    def query_envelope(self, envelope: Envelope) -> Set[str]:
        """Ids whose position lies inside the half-open envelope"""
        return {
            item_id
            for item_id in self._candidates(envelope.min_x, envelope.min_y, envelope.max_x, envelope.max_y)
            if envelope.contains_point(*self.positions[item_id])
        }

    def clear(self) -> None:
        self.cells.clear()
        self.positions.clear()

    def get_stats(self) -> Dict[str, Any]:
        total_cells = len(self.cells)
        if total_cells > 0:
            per_cell = [len(members) for members in self.cells.values()]
            avg_items = sum(per_cell) / total_cells
            max_items = max(per_cell)
        else:
            avg_items = 0
            max_items = 0

        return {
            "total_items": len(self.positions),
            "total_cells": total_cells,
            "avg_items_per_cell": avg_items,
            "max_items_per_cell": max_items,
            "cell_size": self.cell_size,
        }
