"""
Site attribute criteria: developable area size, regularity, contour and
site remediation
"""

import numbers
from typing import Any, Optional, List

from loguru import logger

from .base import CriterionScorer, ScoreResult, SiteGeometry, attribute_records, first_value
from ..analysis.geometry_utils import GeometryUtils


class DevelopableAreaSizeScorer(CriterionScorer):
    """
    Developable area size

    feature_data may be an area in square meters; otherwise the area of
    the supplied developable area is used.
    """

    name = "developable_area"
    requires_developable_area = False

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        if isinstance(feature_data, numbers.Real) and not isinstance(feature_data, bool):
            area = float(feature_data)
        elif site is not None:
            area = site.area_sqm
        else:
            return self.not_assessed()

        if area >= self.config.developable_area_large_sqm:
            score = 3
        elif area >= self.config.developable_area_medium_sqm:
            score = 2
        else:
            score = 1
        return ScoreResult(score=score, distance_or_coverage=area, context={"area_sqm": round(area, 1)})

    def get_score_description(self, result: ScoreResult) -> str:
        if result.score == 3:
            return "Large developable area (>4,000 sqm)"
        if result.score == 2:
            return "Medium developable area (2,000-4,000 sqm)"
        return "Small developable area (<2,000 sqm)"


class SiteRegularityScorer(CriterionScorer):
    """Shape regularity against the minimum rotated bounding rectangle"""

    name = "site_regularity"

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        geometry = site.local
        rectangle = geometry.minimum_rotated_rectangle
        if rectangle.area <= 0:
            return ScoreResult(score=1, context={"ratio": 0.0, "near_rectangular": False})

        ratio = geometry.area / rectangle.area
        polygons = GeometryUtils.polygons(geometry)
        largest = max(polygons, key=lambda p: p.area)
        # Drop sub-meter noise vertices before measuring corners
        angles = GeometryUtils.interior_angles(largest.simplify(0.5, preserve_topology=True))
        tolerance = self.config.regularity_angle_tolerance_deg
        near_rectangular = bool(angles) and all(abs(a - 90.0) <= tolerance for a in angles)

        if ratio >= self.config.regularity_high_ratio or (
            near_rectangular and ratio > self.config.regularity_rectangular_min_ratio
        ):
            score = 3
        elif ratio >= self.config.regularity_medium_ratio:
            score = 2
        else:
            score = 1
        return ScoreResult(
            score=score,
            distance_or_coverage=ratio,
            context={"ratio": round(ratio, 3), "near_rectangular": near_rectangular, "corners": len(angles)},
        )

    def get_score_description(self, result: ScoreResult) -> str:
        if result.score == 3:
            return "The site is regular in shape."
        if result.score == 2:
            return "The site is moderately irregular in shape."
        return "The site is highly irregular in shape."


class ContourScorer(CriterionScorer):
    """
    Elevation change across the site

    feature_data may be the elevation change in meters, a dict with
    `min`/`max`, or contour line features with an elevation attribute.
    """

    name = "site_contour"
    requires_developable_area = False

    ELEVATION_FIELDS = ("elevation", "ELEVATION", "CONTOUR", "contour", "elev")

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        change = self._elevation_change(feature_data, site)
        if change is None:
            return ScoreResult(score=3, context={"elevation_change_m": None})

        if change < self.config.contour_low_change_m:
            score = 3
        elif change <= self.config.contour_medium_change_m:
            score = 2
        else:
            score = 1
        return ScoreResult(score=score, distance_or_coverage=change, context={"elevation_change_m": round(change, 2)})

    def _elevation_change(self, feature_data: Any, site: Optional[SiteGeometry]) -> Optional[float]:
        if feature_data is None:
            return None
        if isinstance(feature_data, numbers.Real) and not isinstance(feature_data, bool):
            return abs(float(feature_data))
        if isinstance(feature_data, dict) and "min" in feature_data and "max" in feature_data:
            return abs(float(feature_data["max"]) - float(feature_data["min"]))

        records = attribute_records(feature_data)
        if site is not None:
            features = self.features(feature_data)
            crossing = site.intersecting(features)
            if crossing:
                records = [dict(f.properties) for f in crossing]

        elevations: List[float] = []
        for record in records:
            value = first_value(record, self.ELEVATION_FIELDS)
            try:
                elevations.append(float(value))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring contour without elevation: {value!r}")
        if not elevations:
            return None
        return max(elevations) - min(elevations)

    def get_score_description(self, result: ScoreResult) -> str:
        change = result.context.get("elevation_change_m")
        if change is None:
            return "No contour data available; the site is assumed to be relatively flat."
        if result.score == 3:
            return f"The site is relatively flat ({change:.1f}m elevation change)."
        if result.score == 2:
            return f"The site has a moderate slope ({change:.1f}m elevation change)."
        return f"The site has a significant slope ({change:.1f}m elevation change)."


class SiteRemediationScorer(CriterionScorer):
    """Usage and potential site remediation (fixed placeholder score)"""

    name = "site_remediation"
    requires_developable_area = False

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        return ScoreResult(score=self.config.site_remediation_score, context={"fixed": True})

    def get_score_description(self, result: ScoreResult) -> str:
        return "Site remediation requirements not yet assessed; moderate remediation assumed."
