"""
Strata - Resource Vein Generation

Produces the resource veins of one chunk:
1. Rejection-sample candidate positions inside the chunk
2. Drop candidates where the density field is too low
3. Pick a type by rarity-weighted sampling of the type field
4. Synthesize deposit, quality and extraction properties
5. Attach environment: terrain, climate, hazards

INVARIANTS:
- Any two veins are at least MIN_RESOURCE_DISTANCE apart, within a chunk
  and across chunk borders (candidates keep half that distance from the
  border)
- Same world seed + same chunk -> same veins, same ids, same properties
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
import logging
import math
import uuid

from strata.models import (
    ClimateType, Deposit, Discovery, EnvironmentalHazard, Environment, Extraction,
    Proximity, Quality, ResourceVein, VeinLocation, VeinMetadata, grade_for_richness,
)
from strata.world.coordinates import (
    DEFAULT_CHUNK_SIZE, MIN_RESOURCE_DISTANCE, WorldCoordinate,
    chunk_origin, distance, normalize, to_full, validate_position,
)
from strata.world.noise_field import WorldNoise
from strata.world.resource_catalog import RESOURCE_CONFIGS, ResourceType
from strata.world.terrain import TerrainField

logger = logging.getLogger(__name__)


BASE_RESOURCE_PROBABILITY = 0.15
DENSITY_THRESHOLD = 0.2
MAX_ATTEMPTS_PER_RESOURCE = 10

COMMON_RARITY = 0.7
RARE_RARITY = 0.3
ULTRA_RARE_RARITY = 0.1
COMMON_MULTIPLIER = 1.5
RARE_MULTIPLIER = 0.3
ULTRA_RARE_MULTIPLIER = 0.1

NEARBY_VEIN_RADIUS = 8.0

VEIN_NAMESPACE = uuid.UUID("6f1c3a52-8d0e-4b8e-9a57-2b1f0c7d4e91")


def rarity_weight(rarity: float) -> float:
    """Selection weight for a type's base rarity"""
    if rarity >= COMMON_RARITY:
        return rarity * COMMON_MULTIPLIER
    if rarity <= ULTRA_RARE_RARITY:
        return rarity * ULTRA_RARE_MULTIPLIER
    if rarity <= RARE_RARITY:
        return rarity * RARE_MULTIPLIER
    return rarity


def build_weighted_types() -> List[Tuple[ResourceType, float]]:
    """All types with their weights, heaviest first"""
    weighted = [(rtype, rarity_weight(config.rarity)) for rtype, config in RESOURCE_CONFIGS.items()]
    weighted.sort(key=lambda item: item[1], reverse=True)
    return weighted


def pick_weighted(weighted: Sequence[Tuple[ResourceType, float]], position: float) -> ResourceType:
    """
    Map position in [0, 1] onto the cumulative weight line.

    Falls back to the heaviest type when rounding leaves the threshold
    above the accumulated total.
    """
    total = sum(weight for _, weight in weighted)
    threshold = position * total
    accumulator = 0.0
    for rtype, weight in weighted:
        accumulator += weight
        if accumulator >= threshold:
            return rtype
    return weighted[0][0]


class VeinGenerator:
    """
    Generates resource veins for chunks of one world.

    Stateless between calls; safe to share across requests.
    """

    def __init__(self, world_noise: WorldNoise, terrain_field: TerrainField,
                 min_distance: float = MIN_RESOURCE_DISTANCE):
        self.noise = world_noise
        self.terrain = terrain_field
        self.min_distance = min_distance
        self.weighted_types = build_weighted_types()

    # ========================================================================
    # PLACEMENT
    # ========================================================================

    def max_resources_per_chunk(self, chunk_size: int) -> int:
        return int(math.ceil(chunk_size * chunk_size * BASE_RESOURCE_PROBABILITY))

    def candidate_positions(self, chunk_x: int, chunk_y: int,
                            chunk_size: int = DEFAULT_CHUNK_SIZE,
                            max_count: Optional[int] = None,
                            known: Iterable[WorldCoordinate] = ()) -> List[WorldCoordinate]:
        """
        Rejection-sample well-separated positions inside a chunk.

        Each accepted position is at least min_distance from every earlier
        one and from every known position.
        """
        if max_count is None:
            max_count = self.max_resources_per_chunk(chunk_size)

        origin = chunk_origin(chunk_x, chunk_y, chunk_size)
        margin = self.min_distance / 2
        span = chunk_size - 2 * margin
        low_x, high_x = origin.x + margin, origin.x + chunk_size - margin
        low_y, high_y = origin.y + margin, origin.y + chunk_size - margin

        rng = self.noise.chunk_rng(chunk_x, chunk_y, "positions")
        known = list(known)
        positions: List[WorldCoordinate] = []
        max_attempts = max_count * MAX_ATTEMPTS_PER_RESOURCE

        attempts = 0
        while len(positions) < max_count and attempts < max_attempts:
            attempts += 1
            candidate = normalize(low_x + rng.random() * span, low_y + rng.random() * span)

            # Rounding may nudge a candidate into the border margin
            if not (low_x <= candidate.x <= high_x and low_y <= candidate.y <= high_y):
                continue

            if validate_position(candidate, positions, self.min_distance) and \
                    validate_position(candidate, known, self.min_distance):
                positions.append(candidate)

        return positions

    # ========================================================================
    # GENERATION
    # ========================================================================

    def generate_chunk_resources(self, chunk_x: int, chunk_y: int,
                                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                                 known_positions: Iterable[WorldCoordinate] = ()) -> List[ResourceVein]:
        """All veins of one chunk"""
        veins: List[ResourceVein] = []
        accepted: List[WorldCoordinate] = []

        for position in self.candidate_positions(chunk_x, chunk_y, chunk_size, known=known_positions):
            density = self.noise.density.sample(position.x, position.y)
            if density < DENSITY_THRESHOLD:
                continue

            rtype = self.select_resource_type(position.x, position.y)

            if not validate_position(position, accepted, self.min_distance):
                continue

            veins.append(self.build_vein(rtype, position.x, position.y, chunk_size))
            accepted.append(position)

        self._link_nearby(veins)
        logger.debug(f"Generated {len(veins)} veins for chunk ({chunk_x}, {chunk_y})")
        return veins

    def select_resource_type(self, world_x: float, world_y: float) -> ResourceType:
        return pick_weighted(self.weighted_types, self.noise.resource_type.normalized(world_x, world_y))

    def build_vein(self, rtype: ResourceType, world_x: float, world_y: float,
                   chunk_size: int = DEFAULT_CHUNK_SIZE) -> ResourceVein:
        """Synthesize every property of a vein at one coordinate"""
        config = RESOURCE_CONFIGS[rtype]
        full = to_full(world_x, world_y, chunk_size)
        x, y = full.x, full.y

        richness = max(0.1, min(1.0, self.noise.richness.normalized(x, y) * config.rarity + 0.2))
        size = int(math.floor(
            config.min_size + (config.max_size - config.min_size) * self.noise.size.normalized(x, y)
        ))
        depth = max(1, min(10, int(math.floor(1 + self.noise.depth.normalized(x, y) * 9))))
        accessibility = max(0.1, min(1.0, 1.0 - (depth - 1) / 9))

        grade = grade_for_richness(richness)
        complexity = config.extraction_difficulty
        expected_yield = int(math.floor(size * richness * accessibility / complexity))

        rng = self.noise.point_rng(x, y, rtype.value)
        formation = config.preferred_formations[rng.randrange(len(config.preferred_formations))]
        hazards = self.hazards_for(rtype, depth, x, y)
        now = datetime.now(timezone.utc).isoformat()

        return ResourceVein(
            id=self.vein_id(rtype, x, y),
            type=rtype,
            location=VeinLocation(
                world_x=x, world_y=y,
                chunk_x=full.chunk_x, chunk_y=full.chunk_y,
                cell_x=full.cell_x, cell_y=full.cell_y,
            ),
            deposit=Deposit(
                size=size,
                richness=richness,
                depth=depth,
                accessibility=accessibility,
                formation=formation,
            ),
            quality=Quality(
                grade=grade,
                purity=richness,
                complexity=complexity,
                yield_=expected_yield,
            ),
            extraction=Extraction(
                total_extracted=0.0,
                remaining_reserves=float(size),
                depletion=0.0,
                last_extracted=now,
                extraction_rate=expected_yield // 10,
            ),
            discovery=Discovery(),
            environment=Environment(
                terrain=self.terrain.terrain_at(x, y),
                climate=self.climate_at(x, y),
                hazards=hazards,
                proximity=Proximity(distance_to_water=round(rng.random() * 1000, 3)),
            ),
            metadata=VeinMetadata(
                generated=now,
                seed=int(math.floor(x * 1000 + y)),
                tags=[rtype.value, grade.value, formation.value],
            ),
        )

    def vein_id(self, rtype: ResourceType, world_x: float, world_y: float) -> str:
        return str(uuid.uuid5(VEIN_NAMESPACE, f"{self.noise.seed}:{world_x:.3f}:{world_y:.3f}:{rtype.value}"))

    # ========================================================================
    # ENVIRONMENT
    # ========================================================================

    def climate_at(self, world_x: float, world_y: float) -> ClimateType:
        """Climate from a latitude-like band of Y plus the temperature field"""
        values = self.terrain.sample(world_x, world_y)
        latitude = abs(math.fmod(world_y, 1000)) / 1000

        if latitude < 0.2 or values.temperature < -0.3:
            return ClimateType.ARCTIC
        if latitude < 0.4:
            return ClimateType.TEMPERATE
        if latitude < 0.6 and values.temperature > 0.1:
            return ClimateType.TROPICAL
        if latitude < 0.8 or values.moisture < -0.2:
            return ClimateType.ARID
        return ClimateType.ALPINE

    def hazards_for(self, rtype: ResourceType, depth: int,
                    world_x: float, world_y: float) -> List[EnvironmentalHazard]:
        """Hazards by type and depth, rolled from the coordinate's own RNG"""
        rng = self.noise.point_rng(world_x, world_y, "hazards")
        hazards: List[EnvironmentalHazard] = []

        if RESOURCE_CONFIGS[rtype].is_fissile:
            hazards.append(EnvironmentalHazard.RADIATION)

        instability_roll, toxic_roll, acid_roll = rng.random(), rng.random(), rng.random()

        if depth >= 7:
            hazards.append(EnvironmentalHazard.HIGH_PRESSURE)
            if instability_roll < 0.3:
                hazards.append(EnvironmentalHazard.INSTABILITY)

        if depth >= 5 and toxic_roll < 0.2:
            hazards.append(EnvironmentalHazard.TOXIC_GASES)

        if acid_roll < 0.1:
            hazards.append(EnvironmentalHazard.ACIDIC_WATER)

        return hazards

    def _link_nearby(self, veins: List[ResourceVein]) -> None:
        for vein in veins:
            here = WorldCoordinate(vein.location.world_x, vein.location.world_y)
            vein.environment.proximity.nearby_veins = [
                other.id for other in veins
                if other.id != vein.id and
                distance(here, WorldCoordinate(other.location.world_x, other.location.world_y))
                <= NEARBY_VEIN_RADIUS
            ]
