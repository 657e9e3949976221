"""
Strata - Seeded Noise Fields

Every noise source used by terrain and vein generation lives on one
WorldNoise object built from the world seed. Nothing here keeps per-call
state, so any field can be sampled concurrently and re-sampling a
coordinate always returns the same value.

ARCHITECTURE:
- NoiseField wraps 2D simplex noise with a scale, a world-space offset
  and a seed-derived shift in noise space
- WorldNoise owns one NoiseField per layer (terrain and resources)
- Discrete per-point choices use a Random seeded from the world seed and
  the normalized coordinate, never the global random module
"""

from dataclasses import dataclass
from typing import Dict
import random

from noise import snoise2


# Keeps noise-space inputs small enough for single-precision sampling
SEED_SHIFT_RANGE = 1024.0


@dataclass(frozen=True)
class NoiseField:
    """
    One decorrelated 2D noise layer.

    sample(x, y) = snoise2((x + offset) * scale + shift_x,
                           (y + offset) * scale + shift_y)
    """
    scale: float
    offset: float = 0.0
    shift_x: float = 0.0
    shift_y: float = 0.0

    def sample(self, x: float, y: float) -> float:
        """Raw noise value in [-1, 1]"""
        value = snoise2(
            (x + self.offset) * self.scale + self.shift_x,
            (y + self.offset) * self.scale + self.shift_y,
        )
        return max(-1.0, min(1.0, value))

    def normalized(self, x: float, y: float) -> float:
        """Noise value mapped to [0, 1]"""
        return (self.sample(x, y) + 1.0) / 2.0


# (scale, world-space offset) per layer
TERRAIN_LAYERS = {
    "elevation": (0.001, 0.0),
    "moisture": (0.002, 10000.0),
    "temperature": (0.0005, 20000.0),
}

RESOURCE_LAYERS = {
    "density": (0.1, 0.0),
    "type": (0.08, 0.0),
    "richness": (0.12, 0.0),
    "size": (0.1, 0.0),
    "depth": (0.15, 0.0),
}


class WorldNoise:
    """
    All noise sources for one world.

    Construct once per process (or per world) and pass it by reference to
    the terrain field and vein generator.
    """

    def __init__(self, seed: int = 1337):
        self.seed = seed
        rng = random.Random(seed)
        self.fields: Dict[str, NoiseField] = {}

        for name, (scale, offset) in list(TERRAIN_LAYERS.items()) + list(RESOURCE_LAYERS.items()):
            self.fields[name] = NoiseField(
                scale=scale,
                offset=offset,
                shift_x=rng.uniform(0.0, SEED_SHIFT_RANGE),
                shift_y=rng.uniform(0.0, SEED_SHIFT_RANGE),
            )

    @property
    def elevation(self) -> NoiseField:
        return self.fields["elevation"]

    @property
    def moisture(self) -> NoiseField:
        return self.fields["moisture"]

    @property
    def temperature(self) -> NoiseField:
        return self.fields["temperature"]

    @property
    def density(self) -> NoiseField:
        return self.fields["density"]

    @property
    def resource_type(self) -> NoiseField:
        return self.fields["type"]

    @property
    def richness(self) -> NoiseField:
        return self.fields["richness"]

    @property
    def size(self) -> NoiseField:
        return self.fields["size"]

    @property
    def depth(self) -> NoiseField:
        return self.fields["depth"]

    def point_rng(self, x: float, y: float, salt: str = "") -> random.Random:
        """Deterministic RNG for one normalized world coordinate"""
        return random.Random(f"{self.seed}:{x:.3f}:{y:.3f}:{salt}")

    def chunk_rng(self, chunk_x: int, chunk_y: int, salt: str = "") -> random.Random:
        """Deterministic RNG for one chunk"""
        return random.Random(f"{self.seed}:chunk:{chunk_x}:{chunk_y}:{salt}")
