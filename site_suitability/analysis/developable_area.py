"""
Developable Area Builder

Derives the developable area of a site: the site boundary minus
biodiversity values, easements, buffered power lines, 1% AEP flood
extents and excluded zoning, split into labelled parts.

Process:
1. Normalize the boundary (repair if invalid)
2. Compute the query envelope (bbox padded by 100%)
3. For each constraint layer in order: fetch, normalize, filter to
   intersecting features, subtract each through DifferenceEngine
4. Split the result, drop fragments <= 100 sqm, sort by area, label A, B, C...
5. On any failure fall back to the original boundary
"""

import asyncio
import string
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Tuple, Callable

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import shape, box
from shapely.geometry.base import BaseGeometry

from .models import Feature, DevelopableAreaPart, DevelopableAreaResult, LayerReport
from .geometry_utils import LocalProjection, GeometryUtils
from .validator import GeometryValidator
from .difference import DifferenceEngine
from ..collectors.acquisition import FeatureAcquisition, FeatureSource
from ..config import get_config, PipelineConfig


LAYER_SEQUENCE = ("biodiversity", "easements", "power_lines", "flood", "excluded_zoning")

PART_NAME = "Developable Area - Auto"


@dataclass
class RunContext:
    """
    Sequence counter for developable area names

    build() creates a fresh context per call; pass one in to continue
    numbering across calls.
    """
    sequence: int = 0

    def next_sequence(self) -> int:
        self.sequence += 1
        return self.sequence


class DevelopableAreaBuilder:
    """
    Build developable area parts for one or more sites

    Usage:
        builder = DevelopableAreaBuilder(source=ArcGISFeatureCollector())
        result = await builder.build(site_geojson)
        result.to_feature_collection()
    """

    def __init__(
        self,
        source: Optional[FeatureSource] = None,
        config: Optional[PipelineConfig] = None,
        acquisition: Optional[FeatureAcquisition] = None
    ):
        self.config = config or get_config()
        self.geometry_config = self.config.geometry
        self.acquisition = acquisition or FeatureAcquisition(source, self.config.api.fetch_deadline_s)
        self.validator = GeometryValidator.geographic(self.geometry_config)
        self.engine = DifferenceEngine(self.geometry_config)
        self.excluded_zone_codes = set(self.config.api.excluded_zone_codes)
        self._layer_handlers: Dict[str, Callable[[Feature, List[Feature], LayerReport], Feature]] = {
            "biodiversity": self._subtract_biodiversity,
            "easements": self._subtract_features,
            "power_lines": self._subtract_power_lines,
            "flood": self._subtract_features,
            "excluded_zoning": self._subtract_excluded_zoning,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def build(
        self,
        site: Any,
        layers: Optional[Dict[str, Any]] = None,
        context: Optional[RunContext] = None
    ) -> DevelopableAreaResult:
        """
        Generate developable area parts

        Args:
            site: Boundary Feature/geometry, a FeatureCollection of sites, or a
                dict with isMultipleProperties + allProperties
            layers: Optional pre-fetched FeatureCollections keyed by layer name;
                layers not given are fetched from the source
            context: Optional sequence counter; a new one starts at 1

        Returns:
            DevelopableAreaResult with parts in output order
        """
        context = context if context is not None else RunContext()
        result = DevelopableAreaResult()
        sites = self._sites(site)
        if len(sites) > 1:
            logger.info(f"Generating developable areas for {len(sites)} sites")

        for site_data in sites:
            parts, reports = await self._build_site(site_data, context, layers or {})
            result.parts.extend(parts)
            result.layer_reports.extend(reports)
        result.run_sequence = context.sequence

        logger.info(
            f"Developable area: {len(result.parts)} part(s), "
            f"{result.total_area_sqm:.1f} sqm total"
        )
        return result

    def build_sync(
        self,
        site: Any,
        layers: Optional[Dict[str, Any]] = None,
        context: Optional[RunContext] = None
    ) -> DevelopableAreaResult:
        """Blocking wrapper around build() for callers without an event loop"""
        return asyncio.run(self.build(site, layers, context))

    @staticmethod
    def part_label(index: int) -> str:
        """A, B, ... Z, AA, AB, ..."""
        letters = string.ascii_uppercase
        label = ""
        index += 1
        while index > 0:
            index, remainder = divmod(index - 1, 26)
            label = letters[remainder] + label
        return label

    # ------------------------------------------------------------------
    # Per-site processing
    # ------------------------------------------------------------------

    @staticmethod
    def _sites(site: Any) -> List[Any]:
        if isinstance(site, dict):
            if site.get("isMultipleProperties") and site.get("allProperties"):
                return list(site["allProperties"])
            if site.get("type") == "FeatureCollection":
                return list(site.get("features") or [])
        if isinstance(site, (list, tuple)) and site and isinstance(site[0], (dict, Feature)):
            return list(site)
        return [site]

    async def _build_site(
        self,
        site_data: Any,
        context: RunContext,
        overrides: Dict[str, Any]
    ) -> Tuple[List[DevelopableAreaPart], List[LayerReport]]:
        sequence = context.next_sequence()
        site = self.validator.normalize(site_data)
        if site is None or not site.is_polygonal:
            logger.warning("Site boundary could not be normalized; using original boundary")
            return [self._fallback_part(site_data, None, sequence)], []

        try:
            projection = LocalProjection.for_geometry(site.geometry, self.geometry_config.local_crs)
            envelope = GeometryUtils.bbox_envelope(site.geometry, self.geometry_config.envelope_padding_ratio)
            current = site.with_geometry(projection.to_local(site.geometry))
            reports = []

            # Fetches run concurrently; subtraction stays in layer order
            collections = await asyncio.gather(*[
                self._layer_features(layer, envelope, overrides) for layer in LAYER_SEQUENCE
            ])

            for layer, collection in zip(LAYER_SEQUENCE, collections):
                report = LayerReport(layer=layer, available=collection is not None)
                features = self._project_features(collection, projection)
                report.fetched = len(features)
                if features:
                    current = self._layer_handlers[layer](current, features, report)
                reports.append(report)
                logger.info(
                    f"{layer}: {report.fetched} fetched, {report.intersecting} intersecting, "
                    f"{report.subtracted} subtracted, {report.failed - report.recovered} failed"
                )
                if current.geometry is None or current.geometry.is_empty:
                    logger.warning(f"Developable area fully removed by {layer}")
                    break

            parts = self._split(current, site, projection, sequence, reports)
            if not parts:
                logger.warning("No developable parts above minimum area; using original boundary")
                return [self._fallback_part(site_data, site, sequence)], reports
            return parts, reports
        except Exception as e:
            logger.error(f"Developable area generation failed, using original boundary: {e}")
            return [self._fallback_part(site_data, site, sequence)], []

    async def _layer_features(
        self,
        layer: str,
        envelope: Tuple[float, float, float, float],
        overrides: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        if layer in overrides:
            return overrides[layer]
        return await self.acquisition.fetch_features(layer, envelope)

    def _project_features(self, collection: Any, projection: LocalProjection) -> List[Feature]:
        """Normalize, project to meters and explode multi-part polygons"""
        features = []
        for feature in self.validator.normalize_collection(collection):
            local = projection.to_local(feature.geometry)
            if feature.is_polygonal:
                for polygon in GeometryUtils.polygons(local):
                    features.append(feature.with_geometry(polygon))
            else:
                features.append(feature.with_geometry(local))
        return features

    # ------------------------------------------------------------------
    # Layer handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _intersects(current: Feature, cutout: Feature) -> bool:
        try:
            return current.geometry.intersects(cutout.geometry)
        except GEOSException:
            # Let the difference engine decide
            return True

    def _subtract_features(self, current: Feature, features: List[Feature], report: LayerReport) -> Feature:
        for feature in features:
            if not self._intersects(current, feature):
                continue
            report.intersecting += 1
            result = self.engine.subtract(current, feature)
            report.record(result)
            current = result.feature
        return current

    def _subtract_power_lines(self, current: Feature, features: List[Feature], report: LayerReport) -> Feature:
        buffer_m = self.geometry_config.power_line_buffer_m
        buffered = [f.with_geometry(f.geometry.buffer(buffer_m)) for f in features]
        return self._subtract_features(current, buffered, report)

    def _subtract_excluded_zoning(self, current: Feature, features: List[Feature], report: LayerReport) -> Feature:
        excluded = []
        for feature in features:
            code = feature.get("SYM_CODE", feature.get("sym_code"))
            if code is not None and str(code).strip().upper() not in self.excluded_zone_codes:
                continue
            excluded.append(feature)
        return self._subtract_features(current, excluded, report)

    def _subtract_biodiversity(self, current: Feature, features: List[Feature], report: LayerReport) -> Feature:
        cfg = self.geometry_config
        failed = []

        for start in range(0, len(features), cfg.biodiversity_batch_size):
            batch = features[start:start + cfg.biodiversity_batch_size]
            logger.debug(f"Biodiversity batch {start // cfg.biodiversity_batch_size + 1}: {len(batch)} feature(s)")
            for feature in batch:
                if not self._near(current, feature):
                    continue
                report.intersecting += 1
                cutout = feature.with_geometry(feature.geometry.buffer(cfg.biodiversity_cutout_expansion_m))
                result = self.engine.subtract(current, cutout)
                report.record(result)
                if result.failed:
                    failed.append((cutout, result))
                else:
                    current = result.feature

        if failed:
            logger.info(f"Second pass for {len(failed)} biodiversity feature(s)")
            for cutout, result in failed:
                reduced = self._aggressive_subtract(current, cutout, report)
                if reduced is not current:
                    # Removed geometrically; its area estimate no longer applies
                    report.estimated_reduction_sqm -= result.estimated_area_reduction_sqm
                current = reduced
        return current

    def _near(self, current: Feature, feature: Feature) -> bool:
        """Intersection test tolerant of features just outside the boundary"""
        cfg = self.geometry_config
        try:
            if current.geometry.buffer(cfg.biodiversity_base_buffer_m).intersects(feature.geometry):
                return True
            return current.geometry.distance(feature.geometry) <= cfg.biodiversity_proximity_m
        except GEOSException:
            return True

    def _aggressive_subtract(self, current: Feature, cutout: Feature, report: LayerReport) -> Feature:
        """
        Remove a circle approximating a biodiversity feature

        Used only for features every difference strategy failed on. The
        circle is larger than the regular circular approximation.
        """
        cfg = self.geometry_config
        base = current.geometry
        center = GeometryUtils.center_point(cutout.geometry)
        if center is None:
            return current

        radius = max(
            cfg.circle_min_radius_m,
            GeometryUtils.equivalent_radius(cutout.geometry.area) * cfg.aggressive_radius_multiplier
        )
        expanded = base.buffer(cfg.base_expansion_m)
        clips = [
            ("aggressive_circle", lambda: center.buffer(radius).intersection(expanded)),
            ("aggressive_bbox", lambda: center.buffer(radius).intersection(box(*expanded.bounds))),
            ("aggressive_reduced_circle", lambda: center.buffer(radius * cfg.aggressive_fallback_ratio)),
            ("aggressive_plain_circle", lambda: center.buffer(radius)),
        ]

        for name, make_clip in clips:
            try:
                clip = make_clip()
            except GEOSException as e:
                logger.debug(f"{name} clip failed: {e}")
                continue
            if clip.is_empty:
                continue
            geometry = self._difference_with_simplify(base, clip)
            if geometry is not None:
                report.recovered += 1
                report.estimated += 1
                report.strategies[name] = report.strategies.get(name, 0) + 1
                logger.debug(f"Biodiversity feature removed with {name}")
                return current.with_geometry(geometry)

        logger.warning("Biodiversity feature could not be removed; developable area unchanged")
        return current

    def _difference_with_simplify(self, base: BaseGeometry, clip: BaseGeometry) -> Optional[BaseGeometry]:
        tolerance = self.geometry_config.simplify_tolerance_m
        attempts = (
            lambda: base.difference(clip),
            lambda: base.simplify(tolerance).difference(clip.simplify(tolerance)),
        )
        for attempt in attempts:
            try:
                geometry = GeometryUtils.polygonal(attempt())
            except GEOSException:
                continue
            if geometry is not None and geometry.is_valid and geometry.area <= base.area:
                return geometry
        return None

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _split(
        self,
        current: Feature,
        site: Feature,
        projection: LocalProjection,
        sequence: int,
        reports: List[LayerReport]
    ) -> List[DevelopableAreaPart]:
        min_area = self.geometry_config.min_fragment_area_m2
        polygons = GeometryUtils.polygons(current.geometry)
        kept = [p for p in polygons if p.area > min_area]
        if len(kept) < len(polygons):
            logger.debug(f"Dropped {len(polygons) - len(kept)} fragment(s) <= {min_area} sqm")
        kept.sort(key=lambda p: p.area, reverse=True)

        # Area-ratio estimates for unsubtracted constraints, shared by area
        reduction = sum(r.estimated_reduction_sqm for r in reports)
        kept_area = sum(p.area for p in kept)
        if reduction > 0:
            logger.info(f"Estimated reduction of {reduction:.1f} sqm applied to developable area")

        estimated = any(r.estimated for r in reports)
        strategies = tuple(sorted({
            s for r in reports for s in r.strategies if s not in ("no_overlap", "unchanged")
        }))
        properties = {k: v for k, v in site.properties.items() if k != "repair_strategy"}
        multiple = len(kept) > 1

        parts = []
        for index, polygon in enumerate(kept):
            label = self.part_label(index) if multiple else None
            name = f"{PART_NAME} {sequence}" + (f" - {label}" if label else "")
            parts.append(DevelopableAreaPart(
                feature=Feature(geometry=projection.to_geographic(polygon), properties=properties),
                part_index=index,
                name=name,
                area_sqm=polygon.area,
                label=label,
                estimated=estimated,
                strategies=strategies,
                estimated_reduction_sqm=reduction * polygon.area / kept_area if reduction > 0 else 0.0,
            ))
        return parts

    def _fallback_part(self, site_data: Any, site: Optional[Feature], sequence: int) -> DevelopableAreaPart:
        if site is not None:
            geometry = site.geometry
            properties = {k: v for k, v in site.properties.items() if k != "repair_strategy"}
        else:
            geometry = self._raw_geometry(site_data)
            properties = dict(site_data.get("properties") or {}) if isinstance(site_data, dict) else {}

        return DevelopableAreaPart(
            feature=Feature(geometry=geometry, properties=properties),
            part_index=0,
            name=f"{PART_NAME} {sequence} (Fallback)",
            area_sqm=self._geographic_area(geometry),
            fallback=True,
        )

    @staticmethod
    def _raw_geometry(site_data: Any) -> Optional[BaseGeometry]:
        """Best-effort geometry from input the validator rejected"""
        if isinstance(site_data, BaseGeometry):
            return site_data
        if isinstance(site_data, Feature):
            return site_data.geometry
        if not isinstance(site_data, dict):
            return None
        geometry = site_data.get("geometry", site_data) if site_data.get("type") == "Feature" else site_data
        try:
            return shape(geometry)
        except (GEOSException, ValueError, TypeError, KeyError, AttributeError, IndexError):
            return None

    def _geographic_area(self, geometry: Optional[BaseGeometry]) -> float:
        if geometry is None or geometry.is_empty:
            return 0.0
        try:
            projection = LocalProjection.for_geometry(geometry, self.geometry_config.local_crs)
            return projection.to_local(geometry).area
        except Exception as e:
            logger.debug(f"Could not measure fallback area: {e}")
            return 0.0
