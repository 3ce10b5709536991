"""
Polygon difference with ordered fallback strategies

Boolean difference on real-world cadastral and environmental data fails
often enough (near-coincident edges, slivers, self-touching rings) that a
single call is not dependable. DifferenceEngine walks a list of named
strategies and returns the first acceptable result. It never raises: the
worst case is the base returned unchanged.

All geometry passed in is expected to be in a projected CRS in meters.
"""

from typing import Optional, List, Tuple, Callable

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import Polygon, Point, box
from shapely.geometry.base import BaseGeometry

from .models import Feature, SubtractionResult
from .geometry_utils import GeometryUtils
from .validator import GeometryValidator
from ..config import get_config, GeometryConfig


Strategy = Callable[[BaseGeometry, BaseGeometry], Optional[BaseGeometry]]


class DifferenceEngine:
    """
    Subtract one polygon from another

    Usage:
        engine = DifferenceEngine()
        result = engine.subtract(site, flood_extent)
        result.feature, result.strategy, result.estimated
    """

    # Strategies whose output approximates the cutout rather than following it
    ESTIMATED_STRATEGIES = ("circular_approximation", "multi_circle")

    def __init__(self, config: Optional[GeometryConfig] = None):
        self.config = config or get_config().geometry
        self.validator = GeometryValidator.projected(self.config)
        self.strategies: List[Tuple[str, Strategy]] = [
            ("expanded_box", self._expanded_box),
            ("direct", self._direct),
            ("epsilon_buffer", self._epsilon_buffer),
            ("simplified", self._simplified),
            ("circular_approximation", self._circular_approximation),
            ("multi_circle", self._multi_circle),
        ]

    def subtract(self, base: Feature, cutout: Feature) -> SubtractionResult:
        """
        Subtract cutout from base

        Args:
            base: Feature whose polygonal geometry is reduced
            cutout: Feature to remove

        Returns:
            SubtractionResult naming the strategy that produced the geometry
        """
        try:
            return self._subtract(base, cutout)
        except Exception as e:
            logger.warning(f"Difference failed unexpectedly, keeping base unchanged: {e}")
            return SubtractionResult(feature=base, strategy="unchanged", attempts=("error",))

    def subtract_feature(self, base: Feature, cutout: Feature) -> Feature:
        """Same as subtract but returns only the resulting Feature"""
        return self.subtract(base, cutout).feature

    def _subtract(self, base: Feature, cutout: Feature) -> SubtractionResult:
        base_geom = self._prepare(base.geometry)
        if base_geom is None:
            logger.debug("Base geometry unusable, returning unchanged")
            return SubtractionResult(feature=base, strategy="unchanged")

        if cutout.geometry is None or cutout.geometry.is_empty:
            return SubtractionResult(feature=base, strategy="no_overlap")

        cutout_geom = cutout.geometry
        if self._is_degenerate(cutout_geom):
            effective = self._expanded_box_geometry(cutout_geom)
        else:
            effective = self._prepare(cutout_geom)
            if effective is None:
                effective = cutout_geom.convex_hull

        if not base_geom.intersects(effective):
            return SubtractionResult(feature=base, strategy="no_overlap")

        base_area = base_geom.area
        if effective.buffer(self.config.epsilon_buffer_m).covers(base_geom):
            return SubtractionResult(
                feature=base.with_geometry(Polygon()),
                strategy="covered",
                area_removed_sqm=base_area,
            )

        attempts = []
        for name, strategy in self.strategies:
            if name == "expanded_box" and not self._is_degenerate(cutout_geom):
                continue
            attempts.append(name)
            try:
                candidate = strategy(base_geom, cutout_geom if name == "expanded_box" else effective)
            except (GEOSException, ValueError, ZeroDivisionError) as e:
                logger.debug(f"Difference strategy {name} raised: {e}")
                continue

            candidate = self._accept(candidate, base_geom)
            if candidate is None:
                logger.debug(f"Difference strategy {name} produced no acceptable result")
                continue

            estimated = name in self.ESTIMATED_STRATEGIES
            if name != "direct":
                logger.debug(f"Difference resolved with {name} strategy")
            return SubtractionResult(
                feature=base.with_geometry(candidate),
                strategy=name,
                estimated=estimated,
                area_removed_sqm=max(0.0, base_area - candidate.area),
                attempts=tuple(attempts),
            )

        estimate = min(base_area, effective.area) * self.config.area_estimate_ratio
        logger.warning(
            f"All difference strategies failed; keeping base unchanged "
            f"(estimated reduction {estimate:.1f} sqm)"
        )
        return SubtractionResult(
            feature=base,
            strategy="unchanged",
            estimated=True,
            estimated_area_reduction_sqm=estimate,
            attempts=tuple(attempts),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(self, geometry: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
        polygonal = GeometryUtils.polygonal(geometry)
        if polygonal is None:
            return None
        repaired, _ = self.validator.repair(polygonal)
        return repaired

    @staticmethod
    def _is_degenerate(geometry: BaseGeometry) -> bool:
        """True when the cutout has no usable area (point, line, or ring under 4 points)"""
        polygons = GeometryUtils.polygons(geometry)
        if not polygons:
            return True
        return all(len(p.exterior.coords) < 4 or p.area == 0 for p in polygons)

    def _expanded_box_geometry(self, geometry: BaseGeometry) -> Polygon:
        center = GeometryUtils.center_point(geometry)
        minx, miny, maxx, maxy = geometry.bounds
        half = max(self.config.placeholder_half_size_m, (maxx - minx) / 2, (maxy - miny) / 2)
        return GeometryUtils.square(center.x, center.y, half)

    def _accept(self, candidate: Optional[BaseGeometry], base: BaseGeometry) -> Optional[BaseGeometry]:
        """Return the polygonal part of candidate if it is a usable difference of base"""
        candidate = GeometryUtils.polygonal(candidate)
        if candidate is None or not candidate.is_valid:
            return None
        tolerance = base.area * 1e-6 + 1e-6
        if candidate.area > base.area + tolerance:
            return None
        return candidate

    def _circle_radius(self, cutout: BaseGeometry, multiplier: float) -> float:
        area = cutout.area or 2500.0
        return max(self.config.circle_min_radius_m, GeometryUtils.equivalent_radius(area) * multiplier)

    def _clip_to_base(self, circle: BaseGeometry, base: BaseGeometry) -> BaseGeometry:
        """Clip an approximating circle to the (slightly expanded) base"""
        expanded = base.buffer(self.config.base_expansion_m)
        try:
            clipped = circle.intersection(expanded)
            if not clipped.is_empty:
                return clipped
        except GEOSException as e:
            logger.debug(f"Circle/base intersection failed: {e}")
        try:
            clipped = circle.intersection(box(*expanded.bounds))
            if not clipped.is_empty:
                return clipped
        except GEOSException as e:
            logger.debug(f"Circle/bbox intersection failed: {e}")
        return circle

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _expanded_box(self, base: BaseGeometry, cutout: BaseGeometry) -> BaseGeometry:
        return base.difference(self._expanded_box_geometry(cutout))

    @staticmethod
    def _direct(base: BaseGeometry, cutout: BaseGeometry) -> BaseGeometry:
        return base.difference(cutout)

    def _epsilon_buffer(self, base: BaseGeometry, cutout: BaseGeometry) -> BaseGeometry:
        eps = self.config.epsilon_buffer_m
        result = base.buffer(eps).difference(cutout.buffer(eps))
        return result.intersection(base)

    def _simplified(self, base: BaseGeometry, cutout: BaseGeometry) -> BaseGeometry:
        tolerance = self.config.simplify_tolerance_m
        result = base.simplify(tolerance).difference(cutout.simplify(tolerance))
        return result.intersection(base)

    def _circular_approximation(self, base: BaseGeometry, cutout: BaseGeometry) -> Optional[BaseGeometry]:
        center = GeometryUtils.center_point(cutout)
        if center is None:
            return None
        radius = self._circle_radius(cutout, self.config.circle_radius_multiplier)
        clip = self._clip_to_base(center.buffer(radius), base)
        try:
            return base.difference(clip)
        except GEOSException as e:
            logger.debug(f"Circular difference failed, retrying on simplified base: {e}")
        return base.simplify(self.config.simplify_tolerance_m).difference(clip)

    def _multi_circle(self, base: BaseGeometry, cutout: BaseGeometry) -> Optional[BaseGeometry]:
        polygons = GeometryUtils.polygons(cutout)
        if not polygons:
            return None
        largest = max(polygons, key=lambda p: p.area)
        radius = self._circle_radius(cutout, self.config.circle_radius_multiplier) * self.config.multi_circle_radius_ratio

        result = base
        for x, y in GeometryUtils.sample_vertices(largest, self.config.multi_circle_max_vertices):
            circle = Point(x, y).buffer(radius)
            try:
                result = result.difference(circle)
            except GEOSException as e:
                logger.debug(f"Vertex circle difference failed: {e}")

        if base.area - result.area < base.area * self.config.multi_circle_min_reduction:
            return None
        return result
