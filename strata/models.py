"""
Data models for Strata

Resource veins, chunk payloads and spatial-store records. Every model
round-trips through the camelCase JSON form used on the wire and in the
cache and cold stores.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import math

from strata.world.coordinates import ChunkCoordinate
from strata.world.resource_catalog import FormationType, ResourceType
from strata.world.terrain import TerrainGrid, TerrainType


CHUNK_FORMAT_VERSION = "3.0.0"
VEIN_FORMAT_VERSION = "1.0.0"


class ResourceGrade(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    ULTRA = "ULTRA"


class ClimateType(Enum):
    ARCTIC = "ARCTIC"
    TEMPERATE = "TEMPERATE"
    TROPICAL = "TROPICAL"
    ARID = "ARID"
    ALPINE = "ALPINE"


class EnvironmentalHazard(Enum):
    RADIATION = "RADIATION"
    INSTABILITY = "INSTABILITY"
    TOXIC_GASES = "TOXIC_GASES"
    HIGH_PRESSURE = "HIGH_PRESSURE"
    ACIDIC_WATER = "ACIDIC_WATER"


class ScanLevel(Enum):
    SURFACE = "SURFACE"
    SHALLOW = "SHALLOW"
    DEEP = "DEEP"
    GEOLOGICAL = "GEOLOGICAL"


class GenerationMethod(Enum):
    MULTI_LAYER_NOISE = "multi_layer_noise"
    FALLBACK = "multi_layer_noise_fallback"


def grade_for_richness(richness: float) -> ResourceGrade:
    if richness >= 0.8:
        return ResourceGrade.ULTRA
    if richness >= 0.6:
        return ResourceGrade.HIGH
    if richness >= 0.4:
        return ResourceGrade.MEDIUM
    return ResourceGrade.LOW


@dataclass
class VeinLocation:
    world_x: float
    world_y: float
    chunk_x: int
    chunk_y: int
    cell_x: float
    cell_y: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worldX": self.world_x, "worldY": self.world_y,
            "chunkX": self.chunk_x, "chunkY": self.chunk_y,
            "cellX": self.cell_x, "cellY": self.cell_y,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VeinLocation':
        return cls(
            world_x=data["worldX"], world_y=data["worldY"],
            chunk_x=data["chunkX"], chunk_y=data["chunkY"],
            cell_x=data["cellX"], cell_y=data["cellY"],
        )


@dataclass
class Deposit:
    size: int
    richness: float  # 0..1
    depth: int  # 1..10
    accessibility: float  # 0..1
    formation: FormationType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "richness": self.richness,
            "depth": self.depth,
            "accessibility": self.accessibility,
            "formation": self.formation.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Deposit':
        return cls(
            size=data["size"],
            richness=data["richness"],
            depth=data["depth"],
            accessibility=data["accessibility"],
            formation=FormationType(data["formation"]),
        )


@dataclass
class Quality:
    grade: ResourceGrade
    purity: float
    complexity: int
    yield_: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grade": self.grade.value,
            "purity": self.purity,
            "complexity": self.complexity,
            "yield": self.yield_,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quality':
        return cls(
            grade=ResourceGrade(data["grade"]),
            purity=data["purity"],
            complexity=data["complexity"],
            yield_=data["yield"],
        )


@dataclass
class Extraction:
    """
    Extraction progress of a vein.

    INVARIANTS:
    - remaining_reserves == size - total_extracted
    - depletion == clamp(total_extracted / (size * richness), 0, 1)
    """
    total_extracted: float
    remaining_reserves: float
    depletion: float
    last_extracted: str
    extraction_rate: int

    def record(self, amount: float, size: int, richness: float, at: str) -> None:
        """Apply an extraction and keep the reserve invariants"""
        self.total_extracted = min(float(size), self.total_extracted + max(0.0, amount))
        self.remaining_reserves = size - self.total_extracted
        capacity = size * richness
        ratio = self.total_extracted / capacity if capacity > 0 else 1.0
        self.depletion = max(0.0, min(1.0, ratio))
        self.last_extracted = at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalExtracted": self.total_extracted,
            "remainingReserves": self.remaining_reserves,
            "depletion": self.depletion,
            "lastExtracted": self.last_extracted,
            "extractionRate": self.extraction_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Extraction':
        return cls(
            total_extracted=data["totalExtracted"],
            remaining_reserves=data["remainingReserves"],
            depletion=data["depletion"],
            last_extracted=data["lastExtracted"],
            extraction_rate=data["extractionRate"],
        )


@dataclass
class Discovery:
    is_discovered: bool = False
    scan_level: ScanLevel = ScanLevel.SURFACE
    confidence: float = 0.0
    discovered_by: Optional[str] = None
    discovered_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "isDiscovered": self.is_discovered,
            "scanLevel": self.scan_level.value,
            "confidence": self.confidence,
        }
        if self.discovered_by is not None:
            data["discoveredBy"] = self.discovered_by
        if self.discovered_at is not None:
            data["discoveredAt"] = self.discovered_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Discovery':
        return cls(
            is_discovered=data.get("isDiscovered", False),
            scan_level=ScanLevel(data.get("scanLevel", ScanLevel.SURFACE.value)),
            confidence=data.get("confidence", 0.0),
            discovered_by=data.get("discoveredBy"),
            discovered_at=data.get("discoveredAt"),
        )


@dataclass
class Proximity:
    nearby_veins: List[str] = field(default_factory=list)
    geological_features: List[str] = field(default_factory=list)
    distance_to_water: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nearbyVeins": list(self.nearby_veins),
            "geologicalFeatures": list(self.geological_features),
            "distanceToWater": self.distance_to_water,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Proximity':
        return cls(
            nearby_veins=list(data.get("nearbyVeins", [])),
            geological_features=list(data.get("geologicalFeatures", [])),
            distance_to_water=data.get("distanceToWater", 0.0),
        )


@dataclass
class Environment:
    terrain: TerrainType
    climate: ClimateType
    hazards: List[EnvironmentalHazard]
    proximity: Proximity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "terrain": self.terrain.value,
            "climate": self.climate.value,
            "hazards": [h.value for h in self.hazards],
            "proximity": self.proximity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Environment':
        return cls(
            terrain=TerrainType(data["terrain"]),
            climate=ClimateType(data["climate"]),
            hazards=[EnvironmentalHazard(h) for h in data.get("hazards", [])],
            proximity=Proximity.from_dict(data.get("proximity", {})),
        )


@dataclass
class VeinMetadata:
    generated: str
    seed: int
    version: str = VEIN_FORMAT_VERSION
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated": self.generated,
            "seed": self.seed,
            "version": self.version,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VeinMetadata':
        return cls(
            generated=data["generated"],
            seed=data["seed"],
            version=data.get("version", VEIN_FORMAT_VERSION),
            tags=list(data.get("tags", [])),
        )


@dataclass
class ResourceVein:
    """A single resource deposit"""
    id: str
    type: ResourceType
    location: VeinLocation
    deposit: Deposit
    quality: Quality
    extraction: Extraction
    discovery: Discovery
    environment: Environment
    metadata: VeinMetadata

    def record_extraction(self, amount: float, at: str) -> None:
        self.extraction.record(amount, self.deposit.size, self.deposit.richness, at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "location": self.location.to_dict(),
            "deposit": self.deposit.to_dict(),
            "quality": self.quality.to_dict(),
            "extraction": self.extraction.to_dict(),
            "discovery": self.discovery.to_dict(),
            "environment": self.environment.to_dict(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceVein':
        return cls(
            id=data["id"],
            type=ResourceType(data["type"]),
            location=VeinLocation.from_dict(data["location"]),
            deposit=Deposit.from_dict(data["deposit"]),
            quality=Quality.from_dict(data["quality"]),
            extraction=Extraction.from_dict(data["extraction"]),
            discovery=Discovery.from_dict(data.get("discovery", {})),
            environment=Environment.from_dict(data["environment"]),
            metadata=VeinMetadata.from_dict(data["metadata"]),
        )


@dataclass
class ChunkData:
    """
    Full contents of one chunk.

    Owned by whichever tier produced it. Tiers exchange serialized copies,
    never shared instances.
    """
    coordinate: ChunkCoordinate
    terrain: TerrainGrid
    resources: List[ResourceVein]
    size: int
    metadata: Dict[str, Any]
    timestamp: str

    @property
    def generation_method(self) -> Optional[str]:
        return self.metadata.get("generationMethod")

    def terrain_values(self) -> List[List[str]]:
        return [[cell.value for cell in row] for row in self.terrain]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinate": self.coordinate.to_dict(),
            "terrain": self.terrain_values(),
            "resources": [vein.to_dict() for vein in self.resources],
            "size": self.size,
            "metadata": dict(self.metadata),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChunkData':
        return cls(
            coordinate=ChunkCoordinate.from_dict(data["coordinate"]),
            terrain=[[TerrainType(cell) for cell in row] for row in data["terrain"]],
            resources=[ResourceVein.from_dict(v) for v in data.get("resources", [])],
            size=data["size"],
            metadata=dict(data.get("metadata", {})),
            timestamp=data.get("timestamp", ""),
        )


@dataclass
class VeinRecord:
    """Spatial-store row for one vein"""
    id: str
    world_id: str
    resource_type: str
    center_x: float
    center_y: float
    radius: float
    density: float
    quality: float
    depth: int
    is_exhausted: bool = False
    extracted_amount: float = 0.0

    @classmethod
    def from_vein(cls, vein: ResourceVein, world_id: str) -> 'VeinRecord':
        return cls(
            id=vein.id,
            world_id=world_id,
            resource_type=vein.type.value,
            center_x=vein.location.world_x,
            center_y=vein.location.world_y,
            radius=math.sqrt(vein.deposit.size) * 10,
            density=vein.deposit.richness,
            quality=vein.quality.purity,
            depth=vein.deposit.depth,
            is_exhausted=False,
            extracted_amount=vein.extraction.total_extracted,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resourceType": self.resource_type,
            "centerX": self.center_x,
            "centerY": self.center_y,
            "radius": self.radius,
            "density": self.density,
            "quality": self.quality,
            "depth": self.depth,
            "isExhausted": self.is_exhausted,
            "extractedAmount": self.extracted_amount,
        }
