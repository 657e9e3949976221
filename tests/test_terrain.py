import pytest

from strata.world.noise_field import NoiseField, WorldNoise
from strata.world.terrain import TerrainField, TerrainType, classify, is_traversable


@pytest.mark.parametrize("elevation,moisture,temperature,expected", [
    (-0.5, 0.0, 0.0, TerrainType.OCEAN),
    (0.8, 0.0, 0.0, TerrainType.MOUNTAINS),
    (0.1, 0.2, 0.0, TerrainType.SWAMP),
    (0.1, 0.0, 0.0, TerrainType.PLAINS),
    (0.2, 0.0, 0.0, TerrainType.HILLS),
    (0.3, 0.2, 0.0, TerrainType.FOREST),
    (0.3, 0.0, 0.0, TerrainType.HILLS),
    (0.6, 0.0, -0.5, TerrainType.TUNDRA),
    (0.6, -0.3, 0.2, TerrainType.DESERT),
    (0.6, 0.0, 0.0, TerrainType.HILLS),
])
def test_classify_decision_tree(elevation, moisture, temperature, expected):
    assert classify(elevation, moisture, temperature) == expected


def test_ocean_is_not_traversable():
    assert not is_traversable(TerrainType.OCEAN)
    assert is_traversable(TerrainType.SWAMP)


def test_noise_field_stays_in_range():
    field = NoiseField(scale=0.1, offset=10.0, shift_x=3.0, shift_y=7.0)
    for x in range(-50, 50, 7):
        for y in range(-50, 50, 11):
            assert -1.0 <= field.sample(x, y) <= 1.0
            assert 0.0 <= field.normalized(x, y) <= 1.0


def test_same_seed_gives_same_fields():
    a, b = WorldNoise(42), WorldNoise(42)
    assert a.fields == b.fields
    assert WorldNoise(43).fields != a.fields


def test_chunk_terrain_is_deterministic(terrain_field):
    first = terrain_field.generate_chunk_terrain(3, -2, 16)
    second = terrain_field.generate_chunk_terrain(3, -2, 16)
    assert first == second

    rebuilt = TerrainField(WorldNoise(1337)).generate_chunk_terrain(3, -2, 16)
    assert rebuilt == first


def test_chunk_terrain_shape_and_indexing(terrain_field):
    grid = terrain_field.generate_chunk_terrain(1, 2, 8)
    assert len(grid) == 8
    assert all(len(row) == 8 for row in grid)
    # Rows are cell_y, columns cell_x
    assert grid[3][5] == terrain_field.terrain_at(1 * 8 + 5, 2 * 8 + 3)


def test_point_rng_is_repeatable(world_noise):
    assert world_noise.point_rng(1.5, 2.5, "a").random() == world_noise.point_rng(1.5, 2.5, "a").random()
    assert world_noise.point_rng(1.5, 2.5, "a").random() != world_noise.point_rng(1.5, 2.5, "b").random()
