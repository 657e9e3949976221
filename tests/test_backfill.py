import asyncio

import pytest

from strata.engine.spatial import Envelope
from strata.errors import CoordinateOutOfRange
from strata.models import VeinRecord
from strata.storage.backfill import VeinBackfill
from strata.storage.nearby import find_nearby_resources
from strata.storage.tiers import MemorySpatialStore
from strata.world.coordinates import ChunkCoordinate, MIN_RESOURCE_DISTANCE

CHUNKS = [ChunkCoordinate(x, y) for x in range(2) for y in range(2)]


def _record(record_id, x, y, world="w", resource_type="IRON"):
    return VeinRecord(
        id=record_id, world_id=world, resource_type=resource_type,
        center_x=x, center_y=y, radius=10.0, density=0.5, quality=0.5, depth=3,
    )


class CountingStore(MemorySpatialStore):
    """Tracks how many inserts run at once"""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.max_active = 0

    async def insert_vein(self, record):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        return await super().insert_vein(record)


class CountingLookups(MemorySpatialStore):
    """Tracks how many existence counts run at once"""

    def __init__(self):
        super().__init__()
        self.active = 0
        self.peak = 0

    async def count_in_envelope(self, world_id, envelope):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        return await super().count_in_envelope(world_id, envelope)


class FailingStore(MemorySpatialStore):
    async def insert_vein(self, record):
        raise ConnectionError("pool exhausted")


async def test_backfill_is_idempotent(backfill):
    first = await backfill.ensure_chunks_have_persisted_veins(CHUNKS, "w")
    second = await backfill.ensure_chunks_have_persisted_veins(CHUNKS, "w")

    assert first.checked == len(CHUNKS)
    assert first.generated == len(CHUNKS)
    assert second.generated == 0
    assert backfill.generations == len(CHUNKS)


async def test_existing_records_are_observed_by_a_fresh_backfill(spatial_store, vein_generator):
    await VeinBackfill(spatial_store, vein_generator).ensure_chunks_have_persisted_veins(CHUNKS, "w")

    # A new process sees the persisted records instead of its own bookkeeping
    fresh = VeinBackfill(spatial_store, vein_generator)
    report = await fresh.ensure_chunks_have_persisted_veins(CHUNKS, "w")
    populated = [
        c for c in CHUNKS
        if await spatial_store.count_in_envelope("w", fresh.envelope_for(c.chunk_x, c.chunk_y))
    ]
    assert report.generated == len(CHUNKS) - len(populated)


async def test_concurrent_callers_share_one_generation(backfill):
    reports = await asyncio.gather(
        backfill.ensure_chunks_have_persisted_veins(CHUNKS, "w"),
        backfill.ensure_chunks_have_persisted_veins(list(reversed(CHUNKS)), "w"),
    )
    assert backfill.generations == len(CHUNKS)
    assert not backfill.in_flight
    assert all(r.failed == 0 for r in reports)


async def test_duplicate_chunks_in_one_call_generate_once(backfill):
    report = await backfill.ensure_chunks_have_persisted_veins([ChunkCoordinate(0, 0)] * 3, "w")
    assert report.checked == 1
    assert backfill.generations == 1


async def test_writes_are_batched(vein_generator):
    chunk = next(
        (ChunkCoordinate(x, 0) for x in range(20)
         if len(vein_generator.generate_chunk_resources(x, 0, 16)) > 3),
        None,
    )
    if chunk is None:
        pytest.skip("no chunk with more than one batch of veins")

    store = CountingStore()
    backfill = VeinBackfill(store, vein_generator, batch_size=3)
    veins = await backfill.generate_and_persist(chunk.chunk_x, chunk.chunk_y, "w")

    assert len(store) == len(veins)
    assert store.max_active <= 3


async def test_failed_chunk_is_reported_and_retried(vein_generator):
    backfill = VeinBackfill(FailingStore(), vein_generator)
    # Chunks with no veins succeed trivially, so look for one that has some
    chunk = next(
        ChunkCoordinate(x, 0) for x in range(20)
        if vein_generator.generate_chunk_resources(x, 0, 16)
    )

    first = await backfill.ensure_chunks_have_persisted_veins([chunk], "w")
    second = await backfill.ensure_chunks_have_persisted_veins([chunk], "w")

    assert first.failed == 1
    assert second.failed == 1
    assert backfill.generations == 2


async def test_missing_world_id_is_a_no_op(backfill):
    report = await backfill.ensure_chunks_have_persisted_veins(CHUNKS, "")
    assert report.checked == 0
    assert backfill.generations == 0


async def test_envelope_is_half_open(spatial_store):
    await spatial_store.insert_vein(_record("edge", 16.0, 0.0))
    await spatial_store.insert_vein(_record("inside", 15.999, 0.0))

    assert await spatial_store.count_in_envelope("w", Envelope(0, 0, 16, 16)) == 1
    assert await spatial_store.count_in_envelope("w", Envelope(16, 0, 32, 16)) == 1
    assert await spatial_store.count_in_envelope("other", Envelope(0, 0, 16, 16)) == 0


async def test_spatial_store_ignores_duplicate_ids(spatial_store):
    assert await spatial_store.insert_vein(_record("a", 1, 1))
    assert not await spatial_store.insert_vein(_record("a", 2, 2))
    assert len(spatial_store) == 1


async def test_nearby_query_sorts_and_bounds_results(spatial_store, backfill):
    result = await find_nearby_resources(spatial_store, backfill, "w", 8, 8, 20)

    distances = [r["distance"] for r in result["resources"]]
    assert distances == sorted(distances)
    assert all(d <= 20 for d in distances)
    assert result["totalFound"] == len(result["resources"])
    assert result["query"] == {"x": 8.0, "y": 8.0, "radius": 20, "resourceType": None}
    info = result["deduplicationInfo"]
    assert info["originalCount"] - info["removedCount"] == info["deduplicatedCount"]


async def test_nearby_query_removes_near_duplicates(spatial_store, backfill):
    await spatial_store.insert_vein(_record("a", 5.0, 5.0))
    await spatial_store.insert_vein(_record("b", 5.2, 5.0))
    await spatial_store.insert_vein(_record("c", 7.0, 5.0))

    result = await find_nearby_resources(spatial_store, backfill, "w", 5, 5, 3)

    assert [r["id"] for r in result["resources"]] == ["a", "c"]
    assert result["deduplicationInfo"]["removedCount"] == 1
    assert backfill.generations == 0
    kept = result["resources"]
    assert abs(kept[0]["centerX"] - kept[1]["centerX"]) >= MIN_RESOURCE_DISTANCE


async def test_nearby_query_filters_by_type(spatial_store, backfill):
    await spatial_store.insert_vein(_record("iron", 5.0, 5.0, resource_type="IRON"))
    await spatial_store.insert_vein(_record("gold", 6.0, 5.0, resource_type="GOLD"))

    result = await find_nearby_resources(spatial_store, backfill, "w", 5, 5, 3, resource_type="GOLD")
    assert [r["id"] for r in result["resources"]] == ["gold"]


async def test_nearby_query_proceeds_when_backfill_fails(vein_generator):
    store = FailingStore()
    result = await find_nearby_resources(store, VeinBackfill(store, vein_generator), "w", 8, 8, 20)
    assert result["totalFound"] == 0


async def test_nearby_query_rejects_bad_coordinates(spatial_store, backfill):
    with pytest.raises(CoordinateOutOfRange):
        await find_nearby_resources(spatial_store, backfill, "w", 5_000_000, 0, 10)


async def test_existence_checks_are_bounded_by_the_semaphore(vein_generator):
    store = CountingLookups()
    backfill = VeinBackfill(store, vein_generator, max_concurrent=5)
    chunks = [ChunkCoordinate(x, y) for x in range(-7, 7) for y in range(-7, 7)]

    report = await backfill.ensure_chunks_have_persisted_veins(chunks, "w")

    assert report.checked == len(chunks)
    assert report.failed == 0
    assert 1 <= store.peak <= 5


async def test_records_removed_elsewhere_are_regenerated(spatial_store, vein_generator):
    chunks = [ChunkCoordinate(x, y) for x in range(4) for y in range(4)]
    with_veins = [c for c in chunks if vein_generator.generate_chunk_resources(c.chunk_x, c.chunk_y, 16)]
    backfill = VeinBackfill(spatial_store, vein_generator)
    await backfill.ensure_chunks_have_persisted_veins(chunks, "w")

    # Another process wipes the world's records
    spatial_store.records.clear()
    spatial_store.grids.clear()
    report = await backfill.ensure_chunks_have_persisted_veins(chunks, "w")

    assert report.generated == len(with_veins)
    assert backfill.generations == len(chunks) + len(with_veins)
    assert len(backfill.settled) == len(chunks) - len(with_veins)


async def test_empty_chunk_memory_is_bounded(vein_generator):
    backfill = VeinBackfill(MemorySpatialStore(), vein_generator, max_settled=2)
    chunks = [ChunkCoordinate(x, y) for x in range(-5, 5) for y in range(-5, 5)]

    await backfill.ensure_chunks_have_persisted_veins(chunks, "w")

    assert len(backfill.settled) <= 2
