"""
Geometry data models

Immutable feature, developable area part and subtraction result types
shared by the validator, the difference engine and the builder.
"""

from typing import Dict, Any, Optional, Tuple, List, Mapping
from dataclasses import dataclass, field, replace

from shapely.geometry import shape, mapping
from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class Feature:
    """A geometry with properties. Never mutated once built."""
    geometry: Optional[BaseGeometry]
    properties: Mapping[str, Any] = field(default_factory=dict)
    id: Optional[Any] = None

    def __post_init__(self):
        # Own a private copy so callers cannot mutate properties after construction
        object.__setattr__(self, "properties", dict(self.properties or {}))

    @property
    def geom_type(self) -> Optional[str]:
        return self.geometry.geom_type if self.geometry is not None else None

    @property
    def is_polygonal(self) -> bool:
        return self.geom_type in ("Polygon", "MultiPolygon")

    def with_geometry(self, geometry: Optional[BaseGeometry]) -> "Feature":
        return replace(self, geometry=geometry)

    def with_properties(self, **updates: Any) -> "Feature":
        properties = dict(self.properties)
        properties.update(updates)
        return replace(self, properties=properties)

    def get(self, key: str, default: Any = None) -> Any:
        return self.properties.get(key, default)

    def to_geojson(self) -> Dict[str, Any]:
        """Convert to GeoJSON Feature dict"""
        feature = {
            "type": "Feature",
            "geometry": mapping(self.geometry) if self.geometry is not None else None,
            "properties": dict(self.properties),
        }
        if self.id is not None:
            feature["id"] = self.id
        return feature

    @classmethod
    def from_geojson(cls, data: Dict[str, Any]) -> "Feature":
        """
        Build from a well-formed GeoJSON Feature or geometry dict.

        No repair is attempted here; use GeometryValidator for untrusted input.
        """
        if data.get("type") == "Feature":
            geometry = data.get("geometry")
            return cls(
                geometry=shape(geometry) if geometry else None,
                properties=data.get("properties") or {},
                id=data.get("id"),
            )
        return cls(geometry=shape(data))


@dataclass(frozen=True)
class SubtractionResult:
    """Outcome of one DifferenceEngine.subtract call"""
    feature: Feature
    strategy: str
    estimated: bool = False
    area_removed_sqm: float = 0.0
    estimated_area_reduction_sqm: float = 0.0
    attempts: Tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return self.strategy not in ("no_overlap", "unchanged")

    @property
    def failed(self) -> bool:
        """Shapes overlapped but no strategy could subtract them"""
        return self.strategy == "unchanged"


@dataclass(frozen=True)
class DevelopableAreaPart:
    """One polygon of a generated developable area"""
    feature: Feature
    part_index: int
    name: str
    area_sqm: float
    label: Optional[str] = None
    auto_generated: bool = True
    estimated: bool = False
    fallback: bool = False
    strategies: Tuple[str, ...] = ()
    # Share of area-ratio estimates for constraints that could not be subtracted
    estimated_reduction_sqm: float = 0.0

    @property
    def effective_area_sqm(self) -> float:
        return max(0.0, self.area_sqm - self.estimated_reduction_sqm)

    @property
    def geometry(self) -> Optional[BaseGeometry]:
        return self.feature.geometry

    def to_geojson(self) -> Dict[str, Any]:
        properties = dict(self.feature.properties)
        properties.update({
            "name": self.name,
            "label": self.label,
            "partIndex": self.part_index,
            "area_sqm": round(self.area_sqm, 2),
            "autoGenerated": self.auto_generated,
            "generatedDevelopableArea": True,
            "usage": "Developable Area",
        })
        if self.estimated:
            properties["estimated"] = True
        if self.estimated_reduction_sqm:
            properties["estimated_area_reduction_sqm"] = round(self.estimated_reduction_sqm, 2)
            properties["effective_area_sqm"] = round(self.effective_area_sqm, 2)
        if self.fallback:
            properties["fallback"] = True
        if self.strategies:
            properties["strategies"] = list(self.strategies)
        return {
            "type": "Feature",
            "geometry": mapping(self.geometry) if self.geometry is not None else None,
            "properties": properties,
        }


@dataclass
class LayerReport:
    """Per-layer statistics for one developable area run"""
    layer: str
    available: bool = True
    fetched: int = 0
    intersecting: int = 0
    subtracted: int = 0
    failed: int = 0
    recovered: int = 0
    estimated: int = 0
    estimated_reduction_sqm: float = 0.0
    strategies: Dict[str, int] = field(default_factory=dict)

    def record(self, result: SubtractionResult):
        self.strategies[result.strategy] = self.strategies.get(result.strategy, 0) + 1
        if result.changed:
            self.subtracted += 1
        if result.failed:
            self.failed += 1
        if result.estimated:
            self.estimated += 1
        self.estimated_reduction_sqm += result.estimated_area_reduction_sqm


@dataclass
class DevelopableAreaResult:
    """Parts produced by one builder run, with per-site layer reports"""
    parts: List[DevelopableAreaPart] = field(default_factory=list)
    layer_reports: List[LayerReport] = field(default_factory=list)
    # Last sequence number issued by the run's RunContext
    run_sequence: int = 0

    @property
    def total_area_sqm(self) -> float:
        return sum(part.area_sqm for part in self.parts)

    @property
    def estimated_reduction_sqm(self) -> float:
        return sum(part.estimated_reduction_sqm for part in self.parts)

    @property
    def effective_area_sqm(self) -> float:
        """Measured area less area-ratio estimates for unsubtracted constraints"""
        return sum(part.effective_area_sqm for part in self.parts)

    @property
    def estimated(self) -> bool:
        return any(part.estimated for part in self.parts)

    @property
    def fallback(self) -> bool:
        return any(part.fallback for part in self.parts)

    def to_feature_collection(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [part.to_geojson() for part in self.parts],
        }
