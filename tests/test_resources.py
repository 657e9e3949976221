import itertools
import math

import pytest

from strata.models import EnvironmentalHazard, ResourceVein, VeinRecord
from strata.world.coordinates import MIN_RESOURCE_DISTANCE, WorldCoordinate, distance, to_chunk
from strata.world.resource_catalog import (
    RESOURCE_CONFIGS, ResourceType, calculate_vein_value, resources_by_rarity,
)
from strata.world.resources import build_weighted_types, pick_weighted, rarity_weight

BLOCK = [(cx, cy) for cx in range(-1, 2) for cy in range(-1, 2)]


def _position(vein):
    return WorldCoordinate(vein.location.world_x, vein.location.world_y)


def _stable_view(vein):
    """Vein dict without wall-clock fields"""
    data = vein.to_dict()
    data["metadata"].pop("generated")
    data["extraction"].pop("lastExtracted")
    return data


def test_rarity_weights():
    assert rarity_weight(0.9) == pytest.approx(1.35)
    assert rarity_weight(0.5) == pytest.approx(0.5)
    assert rarity_weight(0.25) == pytest.approx(0.075)
    assert rarity_weight(0.05) == pytest.approx(0.005)


def test_weighted_selection_walks_heaviest_first():
    weighted = build_weighted_types()
    weights = [w for _, w in weighted]
    assert weights == sorted(weights, reverse=True)
    assert pick_weighted(weighted, 0.0) == ResourceType.QUARTZ


def test_common_types_dominate_selection():
    weighted = build_weighted_types()
    picks = [pick_weighted(weighted, i / 1000) for i in range(1000)]
    assert picks.count(ResourceType.QUARTZ) > picks.count(ResourceType.DIAMOND)
    assert set(picks) <= set(RESOURCE_CONFIGS)


def test_veins_keep_minimum_separation_within_and_across_chunks(vein_generator):
    veins = []
    for cx, cy in BLOCK:
        veins.extend(vein_generator.generate_chunk_resources(cx, cy, 16))

    assert veins
    for a, b in itertools.combinations(veins, 2):
        assert distance(_position(a), _position(b)) >= MIN_RESOURCE_DISTANCE


def test_veins_lie_inside_their_chunk(vein_generator):
    for cx, cy in BLOCK:
        for vein in vein_generator.generate_chunk_resources(cx, cy, 16):
            assert (vein.location.chunk_x, vein.location.chunk_y) == (cx, cy)
            chunk = to_chunk(_position(vein), 16)
            assert (chunk.chunk_x, chunk.chunk_y) == (cx, cy)


def test_chunk_resources_are_deterministic(vein_generator, world_noise, terrain_field):
    from strata.world.resources import VeinGenerator

    first = [_stable_view(v) for v in vein_generator.generate_chunk_resources(2, -3, 16)]
    second = [_stable_view(v) for v in vein_generator.generate_chunk_resources(2, -3, 16)]
    third = [_stable_view(v) for v in VeinGenerator(world_noise, terrain_field).generate_chunk_resources(2, -3, 16)]
    assert first == second == third


def test_vein_properties_follow_their_formulas(vein_generator):
    vein = vein_generator.build_vein(ResourceType.IRON, 3.2, 4.7, 16)
    config = RESOURCE_CONFIGS[ResourceType.IRON]

    assert (vein.location.chunk_x, vein.location.chunk_y) == (0, 0)
    assert (vein.location.cell_x, vein.location.cell_y) == (3.2, 4.7)
    assert 0.1 <= vein.deposit.richness <= 1.0
    assert config.min_size <= vein.deposit.size <= config.max_size
    assert 1 <= vein.deposit.depth <= 10
    assert vein.deposit.accessibility == pytest.approx(max(0.1, 1 - (vein.deposit.depth - 1) / 9))
    assert vein.deposit.formation in config.preferred_formations
    assert vein.quality.purity == vein.deposit.richness
    assert vein.quality.complexity == config.extraction_difficulty
    assert vein.quality.yield_ == math.floor(
        vein.deposit.size * vein.deposit.richness * vein.deposit.accessibility / config.extraction_difficulty
    )
    assert vein.extraction.remaining_reserves == vein.deposit.size
    assert vein.extraction.extraction_rate == vein.quality.yield_ // 10
    assert vein.metadata.seed == math.floor(3.2 * 1000 + 4.7)
    assert ResourceType.IRON.value in vein.metadata.tags


def test_vein_ids_and_properties_repeat_for_same_coordinate(vein_generator):
    a = vein_generator.build_vein(ResourceType.GOLD, 10.5, -3.25)
    b = vein_generator.build_vein(ResourceType.GOLD, 10.5, -3.25)
    assert a.id == b.id
    assert a.deposit == b.deposit
    assert a.environment.hazards == b.environment.hazards
    assert vein_generator.build_vein(ResourceType.GOLD, 10.5, -3.5).id != a.id


def test_fissile_resources_are_radioactive(vein_generator):
    assert EnvironmentalHazard.RADIATION in vein_generator.hazards_for(ResourceType.URANIUM, 1, 0, 0)
    assert EnvironmentalHazard.RADIATION in vein_generator.hazards_for(ResourceType.THORIUM, 1, 0, 0)
    assert EnvironmentalHazard.RADIATION not in vein_generator.hazards_for(ResourceType.IRON, 1, 0, 0)


def test_depth_hazards(vein_generator):
    deep = vein_generator.hazards_for(ResourceType.IRON, 8, 1, 1)
    shallow = vein_generator.hazards_for(ResourceType.IRON, 2, 1, 1)
    assert EnvironmentalHazard.HIGH_PRESSURE in deep
    assert EnvironmentalHazard.HIGH_PRESSURE not in shallow
    assert EnvironmentalHazard.INSTABILITY not in shallow
    assert EnvironmentalHazard.TOXIC_GASES not in shallow


def test_low_latitude_band_is_arctic(vein_generator):
    assert vein_generator.climate_at(5, 100).value == "ARCTIC"
    assert vein_generator.climate_at(5, -1100).value == "ARCTIC"


def test_nearby_veins_are_within_eight_units(vein_generator):
    veins = vein_generator.generate_chunk_resources(0, 0, 16)
    by_id = {v.id: v for v in veins}
    for vein in veins:
        for other_id in vein.environment.proximity.nearby_veins:
            assert other_id != vein.id
            assert distance(_position(vein), _position(by_id[other_id])) <= 8


def test_vein_json_round_trip(vein_generator):
    vein = vein_generator.build_vein(ResourceType.COPPER, -7.125, 12.5)
    assert ResourceVein.from_dict(vein.to_dict()).to_dict() == vein.to_dict()


def test_vein_record_from_vein(vein_generator):
    vein = vein_generator.build_vein(ResourceType.COPPER, -7.125, 12.5)
    record = VeinRecord.from_vein(vein, "w")
    assert record.id == vein.id
    assert (record.center_x, record.center_y) == (-7.125, 12.5)
    assert record.radius == pytest.approx(math.sqrt(vein.deposit.size) * 10)
    assert record.to_dict()["resourceType"] == "COPPER"


def test_record_extraction_keeps_reserve_invariants(vein_generator):
    vein = vein_generator.build_vein(ResourceType.IRON, 1, 1)
    vein.record_extraction(100, "2024-01-01T00:00:00+00:00")
    size, richness = vein.deposit.size, vein.deposit.richness
    assert vein.extraction.total_extracted == 100
    assert vein.extraction.remaining_reserves == size - 100
    assert vein.extraction.depletion == pytest.approx(min(1.0, 100 / (size * richness)))


def test_catalogue_helpers():
    buckets = resources_by_rarity()
    assert ResourceType.QUARTZ in buckets["common"]
    assert ResourceType.DIAMOND in buckets["legendary"]
    assert calculate_vein_value(ResourceType.IRON, 100, 1.0, 1.0, 1.0, 1) == 800
