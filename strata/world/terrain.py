"""
Strata - Terrain Field

Terrain classification from three decorrelated noise layers:
- Elevation (large scale)
- Moisture (medium scale)
- Temperature (very large scale)

Classification is a fixed decision tree evaluated identically for every
coordinate. The field is a pure function of (world_x, world_y) and the
world seed, so cache, cold storage and regeneration always agree.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List

from strata.world.coordinates import DEFAULT_CHUNK_SIZE
from strata.world.noise_field import WorldNoise


class TerrainType(Enum):
    """Terrain classification of one cell"""
    OCEAN = "OCEAN"
    PLAINS = "PLAINS"
    HILLS = "HILLS"
    MOUNTAINS = "MOUNTAINS"
    DESERT = "DESERT"
    FOREST = "FOREST"
    SWAMP = "SWAMP"
    TUNDRA = "TUNDRA"


# Rows indexed by cell_y, columns by cell_x
TerrainGrid = List[List[TerrainType]]


OCEAN_ELEVATION = -0.2
MOUNTAIN_ELEVATION = 0.7
LOWLAND_ELEVATION = 0.2
MIDLAND_ELEVATION = 0.5
HIGH_MOISTURE = 0.1
LOW_MOISTURE = -0.2
HIGH_TEMPERATURE = 0.1
LOW_TEMPERATURE = -0.3


@dataclass(frozen=True)
class NoiseValues:
    """Raw layer values at one coordinate"""
    elevation: float
    moisture: float
    temperature: float


def classify(elevation: float, moisture: float, temperature: float) -> TerrainType:
    """Terrain decision tree"""
    if elevation < OCEAN_ELEVATION:
        return TerrainType.OCEAN
    if elevation > MOUNTAIN_ELEVATION:
        return TerrainType.MOUNTAINS

    if elevation < LOWLAND_ELEVATION:
        return TerrainType.SWAMP if moisture > HIGH_MOISTURE else TerrainType.PLAINS

    if elevation < MIDLAND_ELEVATION:
        return TerrainType.FOREST if moisture > HIGH_MOISTURE else TerrainType.HILLS

    # High ground below the mountain line
    if temperature < LOW_TEMPERATURE:
        return TerrainType.TUNDRA
    if moisture < LOW_MOISTURE and temperature > HIGH_TEMPERATURE:
        return TerrainType.DESERT
    return TerrainType.HILLS


def is_traversable(terrain: TerrainType) -> bool:
    return terrain != TerrainType.OCEAN


class TerrainField:
    """Samples the terrain layers of one world"""

    def __init__(self, world_noise: WorldNoise):
        self.noise = world_noise

    def sample(self, world_x: float, world_y: float) -> NoiseValues:
        return NoiseValues(
            elevation=self.noise.elevation.sample(world_x, world_y),
            moisture=self.noise.moisture.sample(world_x, world_y),
            temperature=self.noise.temperature.sample(world_x, world_y),
        )

    def terrain_at(self, world_x: float, world_y: float) -> TerrainType:
        values = self.sample(world_x, world_y)
        return classify(values.elevation, values.moisture, values.temperature)

    def elevation_at(self, world_x: float, world_y: float) -> float:
        return self.noise.elevation.sample(world_x, world_y)

    def moisture_at(self, world_x: float, world_y: float) -> float:
        return self.noise.moisture.sample(world_x, world_y)

    def temperature_at(self, world_x: float, world_y: float) -> float:
        return self.noise.temperature.sample(world_x, world_y)

    def generate_chunk_terrain(self, chunk_x: int, chunk_y: int,
                               chunk_size: int = DEFAULT_CHUNK_SIZE) -> TerrainGrid:
        """Classify every cell of a chunk"""
        grid: TerrainGrid = []
        for cell_y in range(chunk_size):
            world_y = chunk_y * chunk_size + cell_y
            grid.append([
                self.terrain_at(chunk_x * chunk_size + cell_x, world_y)
                for cell_x in range(chunk_size)
            ])
        return grid
