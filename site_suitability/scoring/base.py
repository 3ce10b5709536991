"""
Criterion scoring contract

Every criterion maps its feature data plus the developable area to a
ScoreResult with a 0-3 score and a reproducible description. Scorers are
stateless apart from configuration and never raise.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple, Iterable

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from ..analysis.models import Feature, DevelopableAreaResult
from ..analysis.geometry_utils import LocalProjection, GeometryUtils
from ..analysis.validator import GeometryValidator
from ..config import get_config, ScoringConfig, GeometryConfig


NOT_ASSESSED = "Not assessed - no developable area provided."

SCORE_RANGE = (0, 1, 2, 3)


@dataclass
class ScoreResult:
    """Score for one criterion"""
    score: int
    distance_or_coverage: float = math.inf
    description: str = ""
    supporting_features: List[Feature] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    criterion: Optional[str] = None

    @property
    def assessed(self) -> bool:
        return self.context.get("assessed", True)

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "description": self.description}


def normalize_features(data: Any, validator: Optional[GeometryValidator] = None) -> List[Feature]:
    """
    Canonical feature list for any scoring input

    Accepts None, a FeatureCollection, a list of features or geometries,
    a single Feature or a bare geometry.
    """
    validator = validator or GeometryValidator.geographic()
    return validator.normalize_collection(data)


def attribute_records(data: Any) -> List[Dict[str, Any]]:
    """
    Attribute dicts for non-geometric criteria

    Geometry is optional here: records without one are still kept.
    """
    if data is None:
        return []
    if isinstance(data, Feature):
        return [dict(data.properties)]
    if isinstance(data, dict):
        if data.get("type") == "FeatureCollection" or "features" in data:
            return attribute_records(data.get("features") or [])
        if data.get("type") == "Feature" or "properties" in data:
            return [dict(data.get("properties") or {})]
        if "attributes" in data:
            return [dict(data.get("attributes") or {})]
        return [data]
    if isinstance(data, (list, tuple)):
        records = []
        for item in data:
            records.extend(attribute_records(item))
        return records
    return []


def first_value(record: Dict[str, Any], fields: Iterable[str]) -> Any:
    for key in fields:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def feature_name(feature: Feature, fields: Iterable[str]) -> Optional[str]:
    """First non-empty property among fields"""
    for key in fields:
        value = feature.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class SiteGeometry:
    """
    Developable area projected for metric comparisons

    Distances are boundary-to-boundary in meters, coverage is a percentage
    of the developable area.
    """

    def __init__(self, geometry: BaseGeometry, local_crs: Optional[str] = None):
        self.geometry = geometry
        self.projection = LocalProjection.for_geometry(geometry, local_crs)
        self.local = self.projection.to_local(geometry)
        self.area_sqm = self.local.area

    def to_local(self, feature: Feature) -> BaseGeometry:
        return self.projection.to_local(feature.geometry)

    def buffered(self, distance_m: float) -> BaseGeometry:
        return self.local.buffer(distance_m)

    def distance_to(self, feature: Feature) -> float:
        geometry = self.to_local(feature)
        if self.local.intersects(geometry):
            return 0.0
        return self.local.distance(geometry)

    def nearest(self, features: List[Feature]) -> Tuple[Optional[Feature], float]:
        nearest_feature = None
        min_distance = math.inf
        for feature in features:
            try:
                distance = self.distance_to(feature)
            except GEOSException as e:
                logger.debug(f"Distance calculation failed: {e}")
                continue
            if distance < min_distance:
                nearest_feature, min_distance = feature, distance
        return nearest_feature, min_distance

    def coverage_pct(self, features: List[Feature]) -> Tuple[float, List[Feature]]:
        """Percentage of the developable area covered by the union of polygonal features"""
        if self.area_sqm <= 0:
            return 0.0, []
        pieces = []
        covering = []
        for feature in features:
            if not feature.is_polygonal:
                continue
            geometry = self.to_local(feature)
            if not self.local.intersects(geometry):
                continue
            pieces.append(geometry.intersection(self.local))
            covering.append(feature)
        if not pieces:
            return 0.0, []
        covered = unary_union(pieces).area
        return min(100.0, covered / self.area_sqm * 100.0), covering

    def intersecting(self, features: List[Feature], buffer_m: float = 0.0) -> List[Feature]:
        zone = self.buffered(buffer_m) if buffer_m else self.local
        return [f for f in features if zone.intersects(self.to_local(f))]


class CriterionScorer:
    """
    Base class for all criteria

    Subclasses set `name` and implement `_calculate` and
    `get_score_description`. Geometric criteria set
    `requires_developable_area` and receive a SiteGeometry.
    """

    name = "criterion"
    requires_developable_area = True

    def __init__(self, config: Optional[ScoringConfig] = None, geometry: Optional[GeometryConfig] = None):
        self.config = config or get_config().scoring
        self.geometry_config = geometry or get_config().geometry
        self.local_crs = self.geometry_config.local_crs
        self.validator = GeometryValidator.geographic(self.geometry_config)

    def calculate_score(self, feature_data: Any, developable_area: Any = None) -> ScoreResult:
        """
        Score this criterion

        Args:
            feature_data: Criterion input (features, attributes or a number)
            developable_area: Developable area geometry, Feature,
                FeatureCollection of parts or DevelopableAreaResult

        Returns:
            ScoreResult with description filled in
        """
        try:
            site = self.site_geometry(developable_area)
            if site is None and self.requires_developable_area:
                return self._finish(self.not_assessed())
            result = self._calculate(feature_data, site)
        except Exception as e:
            logger.error(f"{self.name} scoring failed: {e}")
            result = ScoreResult(score=0, context={"assessed": False, "error": str(e)})
        return self._finish(result)

    def get_score_description(self, result: ScoreResult) -> str:
        raise NotImplementedError

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        raise NotImplementedError

    def not_assessed(self) -> ScoreResult:
        return ScoreResult(score=0, context={"assessed": False, "reason": "no_developable_area"})

    def features(self, feature_data: Any) -> List[Feature]:
        return normalize_features(feature_data, self.validator)

    def site_geometry(self, developable_area: Any) -> Optional[SiteGeometry]:
        """Union of the polygonal developable area parts, or None"""
        if developable_area is None:
            return None
        if isinstance(developable_area, DevelopableAreaResult):
            developable_area = [part.feature for part in developable_area.parts]
        polygons = []
        for feature in normalize_features(developable_area, self.validator):
            polygons.extend(GeometryUtils.polygons(feature.geometry))
        if not polygons:
            return None
        geometry = unary_union(polygons) if len(polygons) > 1 else polygons[0]
        return SiteGeometry(geometry, self.local_crs)

    def _finish(self, result: ScoreResult) -> ScoreResult:
        if result.score not in SCORE_RANGE:
            logger.warning(f"{self.name} produced out-of-range score {result.score}; clamping")
            result.score = max(0, min(3, int(result.score)))
        result.criterion = self.name
        if not result.assessed and result.context.get("reason") == "no_developable_area":
            result.description = NOT_ASSESSED
        elif not result.assessed:
            result.description = "Not assessed - data could not be evaluated."
        else:
            try:
                result.description = self.get_score_description(result)
            except Exception as e:
                logger.error(f"{self.name} description failed: {e}")
                result.description = "Not assessed"
        return result


class ProximityScorer(CriterionScorer):
    """
    Distance-band scorer

    Score 1 when the nearest feature is within `impacted_m` (0 means
    intersection only), 2 within `near_m`, else 3. No features scores 3.
    """

    name_fields: Tuple[str, ...] = ("name", "NAME")
    no_features_score = 3

    def thresholds(self) -> Tuple[float, float]:
        raise NotImplementedError

    def score_for_distance(self, distance: float) -> int:
        impacted_m, near_m = self.thresholds()
        if distance <= impacted_m:
            return 1
        if distance <= near_m:
            return 2
        return 3

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        features = self.features(feature_data)
        if not features:
            return ScoreResult(
                score=self.no_features_score,
                context={"feature_count": 0, "distance_m": None, "nearest_name": None},
            )

        nearest, distance = site.nearest(features)
        if nearest is None:
            return ScoreResult(score=self.no_features_score, context={"feature_count": len(features)})

        _, near_m = self.thresholds()
        supporting = [f for f in features if site.distance_to(f) <= near_m]
        return ScoreResult(
            score=self.score_for_distance(distance),
            distance_or_coverage=distance,
            supporting_features=supporting,
            context={
                "feature_count": len(features),
                "distance_m": round(distance, 1),
                "intersects": distance == 0,
                "nearest_name": feature_name(nearest, self.name_fields),
            },
        )


class CoverageScorer(CriterionScorer):
    """
    Coverage-band scorer

    0% covered scores 3, under `high_pct` scores 2, otherwise 1.
    """

    label = "feature"

    def high_pct(self) -> float:
        raise NotImplementedError

    def score_for_coverage(self, coverage: float) -> int:
        if coverage <= 0:
            return 3
        if coverage < self.high_pct():
            return 2
        return 1

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        features = self.features(feature_data)
        coverage, covering = site.coverage_pct(features)
        return ScoreResult(
            score=self.score_for_coverage(coverage),
            distance_or_coverage=coverage,
            supporting_features=covering,
            context={"coverage_pct": round(coverage, 2), "feature_count": len(covering)},
        )

    def get_score_description(self, result: ScoreResult) -> str:
        coverage = result.context.get("coverage_pct", 0.0)
        if result.score == 3:
            return f"No {self.label} coverage within the developable area."
        if result.score == 2:
            return f"Partial {self.label} coverage ({coverage:.1f}% of the developable area)."
        return f"Significant {self.label} coverage ({coverage:.1f}% of the developable area)."
