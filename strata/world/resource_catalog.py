"""
Strata - Resource Catalogue

Static properties of every mineral category: rarity, deposit size range,
preferred geological formations, extraction difficulty and economics.
Vein generation reads rarity, size range, formations and difficulty;
value and demand feed the extraction economy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple
import math


class ResourceType(Enum):
    # Base metals
    IRON = "IRON"
    COPPER = "COPPER"
    ALUMINUM = "ALUMINUM"
    ZINC = "ZINC"
    LEAD = "LEAD"
    TIN = "TIN"

    # Precious metals
    GOLD = "GOLD"
    SILVER = "SILVER"
    PLATINUM = "PLATINUM"
    PALLADIUM = "PALLADIUM"

    # Alloying metals
    NICKEL = "NICKEL"
    COBALT = "COBALT"
    CHROMIUM = "CHROMIUM"
    MANGANESE = "MANGANESE"
    MOLYBDENUM = "MOLYBDENUM"
    TUNGSTEN = "TUNGSTEN"
    TITANIUM = "TITANIUM"

    # Battery and rare earth
    LITHIUM = "LITHIUM"
    NEODYMIUM = "NEODYMIUM"
    CERIUM = "CERIUM"
    YTTRIUM = "YTTRIUM"
    SCANDIUM = "SCANDIUM"

    # Fissile
    URANIUM = "URANIUM"
    THORIUM = "THORIUM"

    # Industrial minerals
    QUARTZ = "QUARTZ"
    GRAPHITE = "GRAPHITE"
    DIAMOND = "DIAMOND"
    BERYLLIUM = "BERYLLIUM"

    # Composite deposits
    POLYMETALLIC = "POLYMETALLIC"
    RARE_EARTH_COMPLEX = "RARE_EARTH_COMPLEX"


class FormationType(Enum):
    PEGMATITE = "PEGMATITE"
    MAGMATIC_SULFIDE = "MAGMATIC_SULFIDE"
    KIMBERLITE = "KIMBERLITE"
    CARBONATITE = "CARBONATITE"
    PORPHYRY = "PORPHYRY"
    EPITHERMAL = "EPITHERMAL"
    OROGENIC = "OROGENIC"
    VMS = "VMS"
    PLACER = "PLACER"
    BIF = "BIF"
    LATERITE = "LATERITE"
    SEDEX = "SEDEX"
    SKARN = "SKARN"
    GREISEN = "GREISEN"


class ProcessingStep(Enum):
    CRUSH = "CRUSH"
    FLOTATION = "FLOTATION"
    SMELT = "SMELT"
    CYANIDE_LEACH = "CYANIDE_LEACH"
    ACID_LEACH = "ACID_LEACH"
    CHEMICAL_PROCESSING = "CHEMICAL_PROCESSING"
    ENRICHMENT = "ENRICHMENT"


class MarketDemand(Enum):
    LOW = "LOW"
    STABLE = "STABLE"
    HIGH = "HIGH"
    EXPLOSIVE = "EXPLOSIVE"
    SPECIALIZED = "SPECIALIZED"


@dataclass(frozen=True)
class ResourceConfig:
    """Static properties of one resource type"""
    type: ResourceType
    base_value: int
    rarity: float  # 0 (never) .. 1 (everywhere)
    min_size: int
    max_size: int
    preferred_formations: Tuple[FormationType, ...]
    extraction_difficulty: int  # 1 (trivial) .. 5 (hard)
    processing_steps: Tuple[ProcessingStep, ...]
    market_demand: MarketDemand
    associated_resources: Tuple[ResourceType, ...] = field(default_factory=tuple)

    @property
    def is_fissile(self) -> bool:
        return self.type in (ResourceType.URANIUM, ResourceType.THORIUM)


R = ResourceType
F = FormationType
P = ProcessingStep
D = MarketDemand

_SMELT = (P.CRUSH, P.FLOTATION, P.SMELT)
_CHEM = (P.CRUSH, P.FLOTATION, P.CHEMICAL_PROCESSING)
_FISSILE = (P.CRUSH, P.ACID_LEACH, P.ENRICHMENT)

# type: (value, rarity, min, max, formations, difficulty, steps, demand, associated)
_TABLE = {
    R.IRON: (8, 0.85, 800, 8000, (F.BIF, F.LATERITE), 1, (P.CRUSH, P.SMELT), D.HIGH, (R.MANGANESE,)),
    R.COPPER: (25, 0.65, 400, 4000, (F.PORPHYRY, F.VMS), 2, _SMELT, D.HIGH,
               (R.GOLD, R.SILVER, R.MOLYBDENUM)),
    R.ALUMINUM: (15, 0.7, 600, 6000, (F.LATERITE,), 3, (P.CRUSH, P.CHEMICAL_PROCESSING), D.HIGH, ()),
    R.ZINC: (20, 0.55, 300, 3000, (F.SEDEX, F.VMS), 2, _SMELT, D.STABLE, (R.LEAD, R.SILVER)),
    R.LEAD: (18, 0.45, 250, 2500, (F.SEDEX, F.VMS), 2, _SMELT, D.LOW, (R.ZINC, R.SILVER)),
    R.TIN: (180, 0.25, 150, 1500, (F.PLACER, F.GREISEN), 3, _SMELT, D.STABLE, (R.TUNGSTEN,)),

    R.GOLD: (1800, 0.08, 50, 800, (F.OROGENIC, F.PLACER, F.EPITHERMAL), 4,
             (P.CRUSH, P.FLOTATION, P.CYANIDE_LEACH), D.STABLE, (R.SILVER, R.COPPER)),
    R.SILVER: (450, 0.15, 80, 1200, (F.EPITHERMAL, F.VMS), 4, _SMELT, D.HIGH,
               (R.GOLD, R.LEAD, R.ZINC)),
    R.PLATINUM: (2200, 0.03, 30, 400, (F.MAGMATIC_SULFIDE, F.PLACER), 5, _CHEM, D.SPECIALIZED,
                 (R.PALLADIUM, R.NICKEL)),
    R.PALLADIUM: (1900, 0.04, 35, 450, (F.MAGMATIC_SULFIDE,), 5, _CHEM, D.EXPLOSIVE,
                  (R.PLATINUM, R.NICKEL)),

    R.NICKEL: (140, 0.35, 200, 2000, (F.MAGMATIC_SULFIDE, F.LATERITE), 3, _SMELT, D.HIGH,
               (R.COPPER, R.PLATINUM, R.PALLADIUM)),
    R.COBALT: (320, 0.2, 120, 1200, (F.MAGMATIC_SULFIDE, F.LATERITE), 4, _CHEM, D.EXPLOSIVE,
               (R.NICKEL, R.COPPER)),
    R.CHROMIUM: (85, 0.4, 300, 3000, (F.MAGMATIC_SULFIDE,), 3, (P.CRUSH, P.SMELT), D.HIGH, (R.NICKEL,)),
    R.MANGANESE: (35, 0.5, 400, 4000, (F.LATERITE, F.BIF), 2, (P.CRUSH, P.SMELT), D.HIGH, (R.IRON,)),
    R.MOLYBDENUM: (280, 0.18, 100, 1000, (F.PORPHYRY, F.SKARN), 4, _CHEM, D.STABLE,
                   (R.COPPER, R.TUNGSTEN)),
    R.TUNGSTEN: (550, 0.12, 80, 800, (F.SKARN, F.GREISEN), 5, _CHEM, D.SPECIALIZED,
                 (R.MOLYBDENUM, R.TIN)),
    R.TITANIUM: (380, 0.25, 150, 1500, (F.PLACER, F.MAGMATIC_SULFIDE), 5,
                 (P.CRUSH, P.CHEMICAL_PROCESSING), D.HIGH, ()),

    R.LITHIUM: (850, 0.06, 100, 1000, (F.PEGMATITE,), 4, _CHEM, D.EXPLOSIVE, (R.BERYLLIUM, R.CERIUM)),
    R.NEODYMIUM: (1200, 0.03, 50, 500, (F.CARBONATITE, F.PLACER), 5, _CHEM, D.EXPLOSIVE,
                  (R.CERIUM, R.YTTRIUM)),
    R.CERIUM: (680, 0.04, 60, 600, (F.CARBONATITE, F.PLACER), 5, _CHEM, D.SPECIALIZED,
               (R.NEODYMIUM, R.YTTRIUM)),
    R.YTTRIUM: (950, 0.025, 40, 400, (F.CARBONATITE, F.PLACER), 5, _CHEM, D.SPECIALIZED,
                (R.NEODYMIUM, R.CERIUM)),
    R.SCANDIUM: (2800, 0.015, 25, 250, (F.LATERITE, F.PLACER), 5, _CHEM, D.SPECIALIZED, ()),

    R.URANIUM: (1400, 0.02, 200, 2000, (F.SEDEX, F.PLACER), 5, _FISSILE, D.SPECIALIZED, (R.THORIUM,)),
    R.THORIUM: (1100, 0.025, 150, 1500, (F.PLACER, F.CARBONATITE), 5, _FISSILE, D.SPECIALIZED,
                (R.URANIUM, R.CERIUM)),

    R.QUARTZ: (5, 0.9, 1000, 10000, (F.PEGMATITE, F.OROGENIC), 1, (P.CRUSH,), D.HIGH, (R.GOLD,)),
    R.GRAPHITE: (95, 0.3, 200, 2000, (F.SKARN,), 2, (P.CRUSH, P.FLOTATION), D.HIGH, ()),
    R.DIAMOND: (15000, 0.005, 10, 100, (F.KIMBERLITE,), 5, (P.CRUSH, P.FLOTATION), D.STABLE, ()),
    R.BERYLLIUM: (1800, 0.02, 50, 500, (F.PEGMATITE, F.SKARN), 5, _CHEM, D.SPECIALIZED, (R.LITHIUM,)),

    R.POLYMETALLIC: (200, 0.15, 300, 3000, (F.VMS, F.SEDEX), 4, _SMELT, D.HIGH,
                     (R.COPPER, R.ZINC, R.LEAD, R.SILVER)),
    R.RARE_EARTH_COMPLEX: (800, 0.01, 100, 1000, (F.CARBONATITE, F.PLACER), 5, _CHEM, D.EXPLOSIVE,
                           (R.NEODYMIUM, R.CERIUM, R.YTTRIUM)),
}

RESOURCE_CONFIGS: Dict[ResourceType, ResourceConfig] = {
    rtype: ResourceConfig(
        type=rtype,
        base_value=value,
        rarity=rarity,
        min_size=min_size,
        max_size=max_size,
        preferred_formations=formations,
        extraction_difficulty=difficulty,
        processing_steps=steps,
        market_demand=demand,
        associated_resources=associated,
    )
    for rtype, (value, rarity, min_size, max_size, formations, difficulty, steps, demand, associated)
    in _TABLE.items()
}


def get_resource_config(rtype: ResourceType) -> ResourceConfig:
    return RESOURCE_CONFIGS[rtype]


def resources_by_rarity() -> Dict[str, List[ResourceType]]:
    """Bucket resource types into common / uncommon / rare / legendary"""
    buckets: Dict[str, List[ResourceType]] = {
        "common": [], "uncommon": [], "rare": [], "legendary": [],
    }
    for rtype, config in RESOURCE_CONFIGS.items():
        if config.rarity > 0.5:
            buckets["common"].append(rtype)
        elif config.rarity > 0.2:
            buckets["uncommon"].append(rtype)
        elif config.rarity > 0.05:
            buckets["rare"].append(rtype)
        else:
            buckets["legendary"].append(rtype)
    return buckets


def calculate_vein_value(rtype: ResourceType, size: float, richness: float, purity: float,
                         accessibility: float, depth: float) -> int:
    """Total economic value of a vein"""
    config = get_resource_config(rtype)
    quality_multiplier = richness * purity
    difficulty_penalty = accessibility / math.sqrt(depth)
    return int(math.floor(config.base_value * size * quality_multiplier * difficulty_penalty))
