"""
Tests for SiteSuitabilityPipeline run offline against in-memory layers
"""

import asyncio
import json
import math

import pytest
from shapely.geometry import box

from site_suitability.collectors import StaticFeatureSource
from site_suitability.config import PipelineConfig, GeometryConfig
from site_suitability.models import SuitabilityReport
from site_suitability.pipeline import SiteSuitabilityPipeline, SITE_LAYERS, SEARCH_LAYERS

SIDE = math.sqrt(5000.0)


def make_pipeline(layers=None, **config_overrides):
    config = PipelineConfig(**config_overrides)
    return SiteSuitabilityPipeline(config=config, source=StaticFeatureSource(layers or {}))


class TestRun:
    def test_report_structure(self, site_feature):
        report = make_pipeline().run(site_feature)

        assert isinstance(report, SuitabilityReport)
        assert report.report_id.startswith("SS-AU-")
        assert len(report.scores.criteria) == 16
        assert report.scores.max == 48
        assert 0 <= report.scores.total <= 48
        assert report.scores.total == sum(c.score for c in report.scores.criteria)
        assert [e.name for e in report.scores.extras] == ["biodiversity"]
        assert report.data_quality.missing_data == []

    def test_developable_area_in_report(self, site_feature):
        report = make_pipeline().run(site_feature)
        area = report.developable_area

        assert area.type == "FeatureCollection"
        assert len(area.features) == 1
        assert area.total_area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert area.features[0].properties.name == "Developable Area - Auto 1"
        assert area.features[0].properties.site["lot"] == "1//DP123456"
        assert report.centroid is not None

    def test_custom_report_id(self, site_feature):
        report = make_pipeline().run(site_feature, report_id="SS-TEST-1")
        assert report.report_id == "SS-TEST-1"

    def test_criteria_in_table_order(self, site_feature):
        names = [c.name for c in make_pipeline().run(site_feature).scores.criteria]
        assert names[0] == "developable_area"
        assert names[-1] == "tec"

    def test_unavailable_layer_reported(self, site_feature):
        report = make_pipeline({"flood": RuntimeError("service down")}).run(site_feature)

        assert "flood" in report.data_quality.missing_data
        flood = next(s for s in report.data_quality.data_sources if s.layer == "flood")
        assert not flood.available

    def test_constraints_lower_scores(self, geo, site_feature):
        clear = make_pipeline().run(site_feature)
        flooded = make_pipeline({"flood": [geo.feature(box(0, 0, SIDE / 2, SIDE))]}).run(site_feature)

        assert flooded.developable_area.total_area_sqm < clear.developable_area.total_area_sqm
        flood = next(c for c in flooded.scores.criteria if c.name == "flood")
        assert flood.score < 3

    def test_concurrent_scoring_matches(self, geo, site_feature):
        layers = {"bushfire": [geo.feature(box(SIDE + 50, 0, SIDE + 100, SIDE))]}
        sequential = make_pipeline(layers).run(site_feature)
        concurrent = make_pipeline(layers, concurrent_scoring=True).run(site_feature)

        assert concurrent.scores.total == sequential.scores.total
        assert [c.score for c in concurrent.scores.criteria] == [c.score for c in sequential.scores.criteria]

    def test_estimated_reduction_lowers_effective_area(self, geo, site_feature):
        pipeline = make_pipeline({"flood": [geo.feature(box(0, 0, 30, 30))]})
        pipeline.builder.engine.strategies = [("direct", lambda base, cutout: None)]
        report = pipeline.run(site_feature)

        area = report.developable_area
        assert area.total_area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert area.estimated_area_reduction_sqm == pytest.approx(90.0, rel=1e-2)
        assert area.effective_area_sqm == pytest.approx(4910.0, rel=1e-3)
        assert area.features[0].properties.effective_area_sqm == pytest.approx(4910.0, rel=1e-3)

        flood = next(s for s in area.layers if s.layer == "flood")
        assert flood.estimated_reduction_sqm == pytest.approx(90.0, rel=1e-2)
        size = next(c for c in report.scores.criteria if c.name == "developable_area")
        assert size.context["area_sqm"] == pytest.approx(4910.0, rel=1e-3)

    def test_geometry_config_shared(self):
        geometry = GeometryConfig(local_crs="EPSG:28356", placeholder_half_size_deg=0.0005)
        pipeline = make_pipeline(geometry=geometry)

        assert pipeline.builder.geometry_config is geometry
        assert pipeline.builder.engine.config is geometry
        assert pipeline.builder.validator.placeholder_half_size == 0.0005
        assert pipeline.validator.placeholder_half_size == 0.0005
        assert pipeline.engine.geometry_config is geometry
        assert pipeline.engine.scorers["flood"].local_crs == "EPSG:28356"


class TestSave:
    def test_writes_json(self, site_feature, tmp_path):
        pipeline = make_pipeline()
        report = pipeline.run(site_feature)
        path = pipeline.save(report, str(tmp_path / "reports" / "site.json"))

        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        assert data["report_id"] == report.report_id
        assert data["scores"]["max"] == 48
        assert data["developable_area"]["type"] == "FeatureCollection"


class TestLayerFetching:
    def test_search_envelope_contains_area(self, geo, site_square):
        area = geo.to_geo(site_square)
        minx, miny, maxx, maxy = make_pipeline().search_envelope(area, 2000)
        a_minx, a_miny, a_maxx, a_maxy = area.bounds

        assert minx < a_minx and miny < a_miny
        assert maxx > a_maxx and maxy > a_maxy
        # Roughly 2km either side in latitude
        assert (a_miny - miny) == pytest.approx(2000 / 111_000, rel=0.05)

    def test_site_layers_filtered_to_site(self, geo, site_square):
        zoning = geo.collection(
            geo.feature(box(0, 0, 10, 10), SYM_CODE="R2"),
            geo.feature(box(500, 500, 600, 600), SYM_CODE="IN1"),
            {"type": "Feature", "geometry": None, "properties": {"SYM_CODE": "SP2"}},
        )
        kept = make_pipeline()._on_site(zoning, geo.to_geo(site_square))
        assert [f["properties"]["SYM_CODE"] for f in kept["features"]] == ["R2", "SP2"]

    def test_no_area_skips_fetch(self):
        source = StaticFeatureSource()
        pipeline = SiteSuitabilityPipeline(config=PipelineConfig(), source=source)

        collections = asyncio.run(pipeline.fetch_scoring_layers(None))

        assert set(collections) == set(SITE_LAYERS) | set(SEARCH_LAYERS)
        assert all(c is None for c in collections.values())
        assert source.requests == []

    def test_every_layer_requested(self, geo, site_square):
        source = StaticFeatureSource()
        pipeline = SiteSuitabilityPipeline(config=PipelineConfig(), source=source)

        asyncio.run(pipeline.fetch_scoring_layers(geo.to_geo(site_square)))

        requested = {layer for layer, _ in source.requests}
        assert requested == set(SITE_LAYERS.values()) | set(SEARCH_LAYERS.values())
