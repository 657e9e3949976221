"""
Strata - Lazy Vein Backfill

Veins reach the spatial record store only when a spatial query first needs
them. Before a nearby-resources query, every chunk it touches is checked;
chunks with no persisted veins are generated and written.

ARCHITECTURE:
- In-flight map keyed worldId:chunkX:chunkY -> pending task. Inserted
  before the first await and removed when the task finishes, so concurrent
  callers for one chunk share one generation
- One semaphore bounds every store round trip a chunk needs: the
  existence count and the generate-and-write that may follow
- Chunks that legitimately have no veins are remembered in a bounded LRU
  so they are not regenerated on every query; chunks with veins are always
  re-counted, so records removed elsewhere are noticed
- Records are written in small batches to spare the store's connections
- Failures are per chunk: logged as BackfillFailure, never raised to the query
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterable, List

from strata.engine.spatial import Envelope
from strata.errors import BackfillFailure
from strata.models import ResourceVein, VeinRecord
from strata.storage.tiers import SpatialStore
from strata.world.coordinates import DEFAULT_CHUNK_SIZE, ChunkCoordinate, chunk_key
from strata.world.resources import VeinGenerator

logger = logging.getLogger(__name__)


DEFAULT_MAX_CONCURRENT = 5
DEFAULT_BATCH_SIZE = 3
DEFAULT_MAX_SETTLED = 10_000

PRESENT = "present"
GENERATED = "generated"
FAILED = "failed"


@dataclass
class BackfillReport:
    checked: int = 0
    generated: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"checked": self.checked, "generated": self.generated, "failed": self.failed}


class VeinBackfill:
    """Persists chunk veins on first demand"""

    def __init__(self, spatial_store: SpatialStore, vein_generator: VeinGenerator,
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 max_concurrent: int = DEFAULT_MAX_CONCURRENT,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 max_settled: int = DEFAULT_MAX_SETTLED):
        self.spatial_store = spatial_store
        self.vein_generator = vein_generator
        self.chunk_size = chunk_size
        self.batch_size = max(1, batch_size)
        self.semaphore = asyncio.Semaphore(max_concurrent)

        self.in_flight: Dict[str, asyncio.Task] = {}
        # Chunks known to have no veins, oldest first
        self.settled: "OrderedDict[str, None]" = OrderedDict()
        self.max_settled = max_settled
        self.generations = 0

    def envelope_for(self, chunk_x: int, chunk_y: int) -> Envelope:
        n = self.chunk_size
        return Envelope(
            min_x=chunk_x * n,
            min_y=chunk_y * n,
            max_x=(chunk_x + 1) * n,
            max_y=(chunk_y + 1) * n,
        )

    async def ensure_chunks_have_persisted_veins(self, chunks: Iterable[ChunkCoordinate],
                                                 world_id: str) -> BackfillReport:
        """Make sure every chunk has its veins in the spatial store"""
        report = BackfillReport()
        if not world_id:
            logger.warning("Backfill requested without a world id; skipping")
            return report

        unique: List[ChunkCoordinate] = list(dict.fromkeys(chunks))
        outcomes = await asyncio.gather(*(self._ensure_chunk(c, world_id) for c in unique))

        report.checked = len(unique)
        report.generated = sum(1 for o in outcomes if o == GENERATED)
        report.failed = sum(1 for o in outcomes if o == FAILED)

        if report.generated or report.failed:
            logger.info(
                f"Backfill for world {world_id}: {report.checked} checked, "
                f"{report.generated} generated, {report.failed} failed"
            )
        return report

    async def _ensure_chunk(self, chunk: ChunkCoordinate, world_id: str) -> str:
        key = chunk_key(world_id, chunk.chunk_x, chunk.chunk_y)
        if key in self.settled:
            self.settled.move_to_end(key)
            return PRESENT

        task = self.in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._backfill_chunk(chunk.chunk_x, chunk.chunk_y, world_id))
            self.in_flight[key] = task
            task.add_done_callback(lambda _, key=key: self.in_flight.pop(key, None))

        # A cancelled caller must not cancel the shared generation
        return await asyncio.shield(task)

    async def _backfill_chunk(self, chunk_x: int, chunk_y: int, world_id: str) -> str:
        try:
            async with self.semaphore:
                existing = await self.spatial_store.count_in_envelope(world_id, self.envelope_for(chunk_x, chunk_y))
                if existing > 0:
                    return PRESENT
                await self.generate_and_persist(chunk_x, chunk_y, world_id)
            return GENERATED
        except Exception as e:
            failure = e if isinstance(e, BackfillFailure) else BackfillFailure(chunk_x, chunk_y, e)
            logger.error(str(failure))
            return FAILED

    def _settle(self, key: str) -> None:
        self.settled[key] = None
        self.settled.move_to_end(key)
        while len(self.settled) > self.max_settled:
            self.settled.popitem(last=False)

    async def generate_and_persist(self, chunk_x: int, chunk_y: int, world_id: str) -> List[ResourceVein]:
        """
        Generate one chunk's veins and write them to the spatial store.

        Raises: BackfillFailure if any record could not be written. Records
        that were written stay; re-running is safe because inserts ignore
        existing ids.
        """
        veins = self.vein_generator.generate_chunk_resources(chunk_x, chunk_y, self.chunk_size)
        self.generations += 1
        records = [VeinRecord.from_vein(vein, world_id) for vein in veins]

        errors: List[BaseException] = []
        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.spatial_store.insert_vein(record) for record in batch),
                return_exceptions=True,
            )
            errors.extend(r for r in results if isinstance(r, BaseException))

        if errors:
            logger.warning(
                f"{len(errors)} of {len(records)} vein writes failed for chunk ({chunk_x}, {chunk_y})"
            )
            raise BackfillFailure(chunk_x, chunk_y, errors[0])

        if not veins:
            self._settle(chunk_key(world_id, chunk_x, chunk_y))
        logger.debug(f"Persisted {len(records)} veins for chunk ({chunk_x}, {chunk_y})")
        return veins
