import pytest

from strata.models import CHUNK_FORMAT_VERSION, ChunkData
from strata.storage.backfill import VeinBackfill
from strata.storage.chunk_store import BackgroundWriter, TieredChunkStore
from strata.storage.tiers import MemoryCacheTier, MemoryColdTier, MemorySpatialStore
from strata.world.coordinates import ChunkCoordinate
from strata.world.noise_field import WorldNoise
from strata.world.resources import VeinGenerator
from strata.world.terrain import TerrainField, TerrainType

TEST_SEED = 1337
WORLD = "test-world"


def make_chunk(chunk_x=0, chunk_y=0, terrain=TerrainType.PLAINS, size=2, method="multi_layer_noise"):
    """Small hand-built chunk for tier tests"""
    return ChunkData(
        coordinate=ChunkCoordinate(chunk_x, chunk_y),
        terrain=[[terrain] * size for _ in range(size)],
        resources=[],
        size=size,
        metadata={"version": CHUNK_FORMAT_VERSION, "generationMethod": method, "generationTime": 0.1},
        timestamp="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def world_noise():
    return WorldNoise(TEST_SEED)


@pytest.fixture
def terrain_field(world_noise):
    return TerrainField(world_noise)


@pytest.fixture
def vein_generator(world_noise, terrain_field):
    return VeinGenerator(world_noise, terrain_field)


@pytest.fixture
def cache():
    return MemoryCacheTier()


@pytest.fixture
def cold():
    return MemoryColdTier()


@pytest.fixture
def writer():
    return BackgroundWriter()


@pytest.fixture
def chunk_store(cache, cold, terrain_field, vein_generator, writer):
    return TieredChunkStore(cache, cold, terrain_field, vein_generator, world_id=WORLD, writer=writer)


@pytest.fixture
def spatial_store():
    return MemorySpatialStore()


@pytest.fixture
def backfill(spatial_store, vein_generator):
    return VeinBackfill(spatial_store, vein_generator)
