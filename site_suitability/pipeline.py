"""
Main Pipeline Orchestrator for Site Suitability Reports

Flow:

  1. Input: site boundary GeoJSON (single site or multiple properties)
  2. Build the developable area (constraint layers subtracted)
  3. Fetch scoring layers around the developable area
  4. Score the 16 criteria and aggregate (max 48)
  5. Assemble the report JSON

Data Sources:
  - NSW Planning Portal / Spatial Services ArcGIS REST layers
"""

import asyncio
import json
import math
import os
from typing import Dict, Any, Optional, List, Tuple

from loguru import logger
from shapely.geometry import box
from shapely.ops import unary_union
from shapely.geometry.base import BaseGeometry

from .config import get_config, PipelineConfig
from .models import (
    SuitabilityReport, GeoJSONPoint, GeoJSONGeometry,
    DevelopableArea, DevelopableAreaFeature, DevelopableAreaProperties, LayerSummary,
    CriterionScore, ScoreSummary, DataQuality, DataSource
)
from .analysis import DevelopableAreaBuilder, DevelopableAreaResult, GeometryUtils, LocalProjection, GeometryValidator
from .collectors import ArcGISFeatureCollector, FeatureAcquisition, FeatureSource
from .scoring import ScoringEngine, SiteData, CompositeScore, ScoreResult, DEFAULT_CRITERIA


# SiteData field -> layer name. Site layers are queried over the
# developable area only and filtered to features on the site.
SITE_LAYERS = {
    "zoning": "zoning",
    "heritage": "heritage",
    "acid_sulfate_soils": "acid_sulfate_soils",
    "ptal": "ptal",
}

SEARCH_LAYERS = {
    "contours": "contours",
    "water": "water_mains",
    "sewer": "sewer_mains",
    "power": "power_network",
    "roads": "roads",
    "udp": "udp",
    "geoscape": "geoscape",
    "flood": "flood",
    "bushfire": "bushfire",
    "contamination": "contamination",
    "tec": "tec",
    "biodiversity": "biodiversity",
}


class SiteSuitabilityPipeline:
    """
    Main pipeline to generate a site suitability report from a boundary

    Usage:
        pipeline = SiteSuitabilityPipeline()
        report = pipeline.run(site_geojson)
        pipeline.save(report, "output/report.json")
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        cache_dir: Optional[str] = None,
        source: Optional[FeatureSource] = None
    ):
        self.config = config or get_config()
        self.cache_dir = cache_dir

        # Live ArcGIS layers unless a source is supplied
        self.source = source if source is not None else ArcGISFeatureCollector(cache_dir=cache_dir, config=self.config)
        self.acquisition = FeatureAcquisition(self.source, self.config.api.fetch_deadline_s)

        self.builder = DevelopableAreaBuilder(config=self.config, acquisition=self.acquisition)
        self.engine = ScoringEngine(self.config.scoring, include_biodiversity=True, geometry=self.config.geometry)
        self.validator = GeometryValidator.geographic(self.config.geometry)

    def run(self, site: Any, report_id: Optional[str] = None) -> SuitabilityReport:
        """Blocking wrapper around run_async()"""
        return asyncio.run(self.run_async(site, report_id))

    async def run_async(self, site: Any, report_id: Optional[str] = None) -> SuitabilityReport:
        """
        Run the complete pipeline

        Args:
            site: Site boundary (Feature, geometry, FeatureCollection or
                multiple-properties dict)
            report_id: Optional custom report ID

        Returns:
            Complete SuitabilityReport
        """
        logger.info("Stage 1: Building developable area...")
        developable = await self.builder.build(site)

        logger.info("Stage 2: Fetching scoring layers...")
        area = self._area_geometry(developable)
        collections = await self.fetch_scoring_layers(area)

        logger.info("Stage 3: Scoring criteria...")
        data = self.site_data(developable, collections)
        if self.config.concurrent_scoring:
            composite = await self.engine.score_async(data)
        else:
            composite = self.engine.score(data)

        logger.info("Stage 4: Building output model...")
        kwargs = {}
        if report_id:
            kwargs["report_id"] = report_id
        report = SuitabilityReport(
            centroid=self._centroid(area),
            developable_area=self._build_developable_area(developable),
            scores=self._build_scores(composite),
            data_quality=self._build_data_quality(collections),
            **kwargs
        )
        logger.info(f"Pipeline complete. Report ID: {report.report_id}")
        return report

    def score(self, developable_area: Any, collections: Dict[str, Optional[Dict[str, Any]]]) -> CompositeScore:
        """Score an existing developable area against pre-fetched layers"""
        return self.engine.score(self.site_data(developable_area, collections))

    def save(self, report: SuitabilityReport, output_path: str) -> str:
        """Save report to JSON file"""
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report.model_dump(), f, indent=2, ensure_ascii=False)

        logger.info(f"Saved site suitability report to {output_path}")
        return output_path

    # ============================================================
    # Layer acquisition
    # ============================================================

    async def fetch_scoring_layers(self, area: Optional[BaseGeometry]) -> Dict[str, Optional[Dict[str, Any]]]:
        """
        Fetch every scoring layer concurrently

        Returns:
            SiteData field -> FeatureCollection (None when unavailable)
        """
        if area is None:
            logger.warning("No developable area geometry; scoring layers not fetched")
            return {name: None for name in list(SITE_LAYERS) + list(SEARCH_LAYERS)}

        site_bbox = area.bounds
        search_bbox = self.search_envelope(area, self.config.scoring_search_radius_m)
        jobs: List[Tuple[str, str, Tuple[float, float, float, float]]] = []
        jobs.extend((name, layer, site_bbox) for name, layer in SITE_LAYERS.items())
        jobs.extend((name, layer, search_bbox) for name, layer in SEARCH_LAYERS.items())

        results = await asyncio.gather(*[
            self.acquisition.fetch_features(layer, bbox) for _, layer, bbox in jobs
        ])

        collections = {}
        for (name, layer, _), collection in zip(jobs, results):
            if collection is not None and name in SITE_LAYERS:
                collection = self._on_site(collection, area)
            collections[name] = collection
            count = len(collection.get("features") or []) if collection else 0
            logger.debug(f"{layer}: {count} feature(s)" if collection is not None else f"{layer}: unavailable")
        return collections

    def search_envelope(self, area: BaseGeometry, radius_m: float) -> Tuple[float, float, float, float]:
        """Lon/lat bbox of the area's local bounds expanded by radius_m"""
        projection = LocalProjection.for_geometry(area, self.config.geometry.local_crs)
        minx, miny, maxx, maxy = projection.to_local(area).bounds
        expanded = box(minx - radius_m, miny - radius_m, maxx + radius_m, maxy + radius_m)
        return projection.to_geographic(expanded).bounds

    def _on_site(self, collection: Dict[str, Any], area: BaseGeometry) -> Dict[str, Any]:
        """Keep features touching the site; attribute-only records are kept as is"""
        kept = []
        for raw in collection.get("features") or []:
            if not isinstance(raw, dict) or raw.get("geometry") is None:
                kept.append(raw)
                continue
            feature = self.validator.normalize(raw)
            if feature is None or feature.geometry is None:
                continue
            if feature.geometry.intersects(area):
                kept.append(raw)
        return {"type": "FeatureCollection", "features": kept}

    # ============================================================
    # Helper Methods
    # ============================================================

    @staticmethod
    def site_data(developable_area: Any, collections: Dict[str, Optional[Dict[str, Any]]]) -> SiteData:
        """Bundle a developable area and scoring layers into SiteData"""
        size = None
        if isinstance(developable_area, DevelopableAreaResult):
            size = developable_area.effective_area_sqm if developable_area.parts else None
        fields = {name: collections.get(name) for name in list(SITE_LAYERS) + list(SEARCH_LAYERS)}
        return SiteData(developable_area=developable_area, developable_area_size=size, **fields)

    @staticmethod
    def _area_geometry(developable: DevelopableAreaResult) -> Optional[BaseGeometry]:
        polygons = []
        for part in developable.parts:
            polygons.extend(GeometryUtils.polygons(part.geometry))
        if not polygons:
            return None
        return unary_union(polygons)

    @staticmethod
    def _centroid(area: Optional[BaseGeometry]) -> Optional[GeoJSONPoint]:
        if area is None:
            return None
        point = area.centroid
        return GeoJSONPoint(coordinates=[round(point.x, 7), round(point.y, 7)])

    def _build_developable_area(self, developable: DevelopableAreaResult) -> DevelopableArea:
        """Build DevelopableArea model"""
        features = []
        for part in developable.parts:
            geometry = part.to_geojson()["geometry"]
            features.append(DevelopableAreaFeature(
                geometry=GeoJSONGeometry(**geometry) if geometry else None,
                properties=DevelopableAreaProperties(
                    name=part.name,
                    label=part.label,
                    partIndex=part.part_index,
                    area_sqm=round(part.area_sqm, 2),
                    effective_area_sqm=round(part.effective_area_sqm, 2),
                    estimated_area_reduction_sqm=round(part.estimated_reduction_sqm, 2),
                    autoGenerated=part.auto_generated,
                    estimated=part.estimated,
                    fallback=part.fallback,
                    strategies=list(part.strategies),
                    site=_clean(dict(part.feature.properties)),
                ),
            ))

        layers = [
            LayerSummary(
                layer=r.layer,
                available=r.available,
                fetched=r.fetched,
                intersecting=r.intersecting,
                subtracted=r.subtracted,
                failed=r.failed,
                recovered=r.recovered,
                estimated=r.estimated,
                estimated_reduction_sqm=round(r.estimated_reduction_sqm, 2),
                strategies=dict(r.strategies),
            )
            for r in developable.layer_reports
        ]

        return DevelopableArea(
            features=features,
            total_area_sqm=round(developable.total_area_sqm, 2),
            effective_area_sqm=round(developable.effective_area_sqm, 2),
            estimated_area_reduction_sqm=round(developable.estimated_reduction_sqm, 2),
            estimated=developable.estimated,
            fallback=developable.fallback,
            layers=layers,
        )

    def _build_scores(self, composite: CompositeScore) -> ScoreSummary:
        """Build ScoreSummary model in report table order"""
        criteria = []
        for spec in DEFAULT_CRITERIA:
            result = composite.results.get(spec.name)
            if result is not None:
                criteria.append(self._criterion(spec.name, spec.group, spec.title, result))

        extras = [
            self._criterion(name, "Environmental", "Biodiversity Values", result)
            for name, result in composite.extras.items()
        ]

        return ScoreSummary(
            criteria=criteria,
            total=composite.total,
            max=composite.max_total,
            percentage=composite.percentage,
            extras=extras,
        )

    @staticmethod
    def _criterion(name: str, group: str, title: str, result: ScoreResult) -> CriterionScore:
        return CriterionScore(
            name=name,
            group=group,
            title=title,
            score=result.score,
            description=result.description,
            assessed=result.assessed,
            context=_clean(result.context),
        )

    def _build_data_quality(self, collections: Dict[str, Optional[Dict[str, Any]]]) -> DataQuality:
        """Build DataQuality model"""
        sources = []
        missing = []
        layer_names = dict(SITE_LAYERS, **SEARCH_LAYERS)
        for name, layer in layer_names.items():
            collection = collections.get(name)
            available = collection is not None
            sources.append(DataSource(
                layer=layer,
                available=available,
                feature_count=len(collection.get("features") or []) if available else 0,
            ))
            if not available:
                missing.append(layer)
        return DataQuality(data_sources=sources, missing_data=missing)


def _clean(value: Any) -> Any:
    """JSON-safe copy: non-finite floats become None, unknown objects become strings"""
    if isinstance(value, dict):
        return {str(k): _clean(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_clean(v) for v in value]
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if value is None or isinstance(value, (str, int, bool)):
        return value
    return str(value)
