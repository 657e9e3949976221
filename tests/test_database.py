import pytest

from conftest import WORLD, make_chunk
from strata.engine.spatial import Envelope
from strata.models import VeinRecord
from strata.storage.backfill import VeinBackfill
from strata.storage.database import Database, SqliteColdTier, SqliteSpatialStore
from strata.world.coordinates import ChunkCoordinate
from strata.world.terrain import TerrainType


@pytest.fixture
async def database(tmp_path):
    db = Database(str(tmp_path / "strata-test.db"))
    await db.init()
    return db


def _record(record_id, x, y, resource_type="IRON", world="w"):
    return VeinRecord(
        id=record_id, world_id=world, resource_type=resource_type,
        center_x=x, center_y=y, radius=12.5, density=0.4, quality=0.7, depth=4,
    )


async def test_cold_tier_round_trip(database):
    cold = SqliteColdTier(database)
    assert await cold.get_chunk(WORLD, 0, 0) is None

    await cold.set_chunk(WORLD, 0, 0, make_chunk(0, 0, TerrainType.FOREST))
    stored = await cold.get_chunk(WORLD, 0, 0)
    assert stored.terrain[1][1] == TerrainType.FOREST

    # Overwrite replaces the payload
    await cold.set_chunk(WORLD, 0, 0, make_chunk(0, 0, TerrainType.SWAMP))
    assert (await cold.get_chunk(WORLD, 0, 0)).terrain[0][0] == TerrainType.SWAMP

    await cold.delete_chunk(WORLD, 0, 0)
    assert await cold.get_chunk(WORLD, 0, 0) is None


async def test_cold_tier_keys_by_world(database):
    cold = SqliteColdTier(database)
    await cold.set_chunk("a", 1, 1, make_chunk(1, 1))
    assert await cold.get_chunk("b", 1, 1) is None


async def test_init_is_repeatable(database):
    await database.init()
    assert await SqliteColdTier(database).get_chunk(WORLD, 0, 0) is None


async def test_insert_ignores_existing_ids(database):
    store = SqliteSpatialStore(database)
    assert await store.insert_vein(_record("v1", 1.0, 1.0))
    assert not await store.insert_vein(_record("v1", 50.0, 50.0))

    found = await store.query_radius("w", 1.0, 1.0, 5)
    assert [r.id for r in found] == ["v1"]
    assert found[0].center_x == 1.0
    assert found[0].is_exhausted is False


async def test_envelope_count_is_half_open(database):
    store = SqliteSpatialStore(database)
    await store.insert_vein(_record("left", 0.0, 0.0))
    await store.insert_vein(_record("right", 16.0, 3.0))

    assert await store.count_in_envelope("w", Envelope(0, 0, 16, 16)) == 1
    assert await store.count_in_envelope("w", Envelope(16, 0, 32, 16)) == 1
    assert await store.count_in_envelope("other", Envelope(0, 0, 16, 16)) == 0


async def test_radius_query_is_exact_and_sorted(database):
    store = SqliteSpatialStore(database)
    await store.insert_vein(_record("far", 9.0, 0.0))
    await store.insert_vein(_record("near", 2.0, 0.0))
    # Inside the bounding box but outside the circle
    await store.insert_vein(_record("corner", 9.0, 9.0))
    await store.insert_vein(_record("gold", 4.0, 0.0, resource_type="GOLD"))

    found = await store.query_radius("w", 0.0, 0.0, 10)
    assert [r.id for r in found] == ["near", "gold", "far"]

    gold = await store.query_radius("w", 0.0, 0.0, 10, resource_type="GOLD")
    assert [r.id for r in gold] == ["gold"]


async def test_backfill_against_sqlite(database, vein_generator):
    store = SqliteSpatialStore(database)
    backfill = VeinBackfill(store, vein_generator)
    chunks = [ChunkCoordinate(0, 0), ChunkCoordinate(1, 0)]

    report = await backfill.ensure_chunks_have_persisted_veins(chunks, "w")
    assert report.failed == 0

    expected = sum(len(vein_generator.generate_chunk_resources(c.chunk_x, c.chunk_y, 16)) for c in chunks)
    stored = await store.count_in_envelope("w", Envelope(0, 0, 32, 16))
    assert stored == expected
