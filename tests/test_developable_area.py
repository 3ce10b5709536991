"""
Tests for DevelopableAreaBuilder
"""

import asyncio
import math
import time

import pytest
import requests
from shapely.geometry import LineString, box

from site_suitability.analysis import DevelopableAreaBuilder, RunContext, LAYER_SEQUENCE, SubtractionResult
from site_suitability.collectors import StaticFeatureSource, FeatureAcquisition, ArcGISFeatureCollector
from site_suitability.collectors.arcgis import ArcGISAPIClient
from site_suitability.config import PipelineConfig


SIDE = math.sqrt(5000.0)


def make_builder(layers=None, delay_s=0.0, deadline_s=None):
    source = StaticFeatureSource(layers or {}, delay_s=delay_s)
    if deadline_s is not None:
        return DevelopableAreaBuilder(acquisition=FeatureAcquisition(source, deadline_s=deadline_s))
    return DevelopableAreaBuilder(source=source)


def report_for(result, layer):
    return next(r for r in result.layer_reports if r.layer == layer)


class SlowSession:
    """requests session whose calls hang until their timeout"""

    def __init__(self, delay_s):
        self.delay_s = delay_s
        self.timeouts = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.timeouts.append(timeout)
        time.sleep(min(timeout, self.delay_s))
        raise requests.exceptions.Timeout(f"no response within {timeout}s")


class TestBuild:
    def test_no_constraints_returns_whole_site(self, site_feature):
        result = make_builder().build_sync(site_feature)

        assert len(result.parts) == 1
        part = result.parts[0]
        assert part.name == "Developable Area - Auto 1"
        assert part.label is None
        assert part.area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert not result.fallback
        assert not result.estimated

    def test_biodiversity_forty_percent(self, geo, site_feature):
        layers = {"biodiversity": [geo.feature(box(0, 0, 0.4 * SIDE, SIDE))]}
        result = make_builder(layers).build_sync(site_feature)

        assert len(result.parts) == 1
        # 40% strip plus 1m cutout expansion
        assert 2900 < result.total_area_sqm < 3000
        assert not result.estimated
        report = report_for(result, "biodiversity")
        assert report.intersecting == 1
        assert report.subtracted == 1

    def test_split_parts_labelled_by_area(self, geo, site_feature):
        layers = {"flood": [geo.feature(box(30, -5, 40, SIDE + 5))]}
        result = make_builder(layers).build_sync(site_feature)

        assert [p.label for p in result.parts] == ["A", "B"]
        assert [p.name for p in result.parts] == [
            "Developable Area - Auto 1 - A",
            "Developable Area - Auto 1 - B",
        ]
        assert result.parts[0].area_sqm >= result.parts[1].area_sqm
        assert [p.part_index for p in result.parts] == [0, 1]

    def test_split_parts_cover_remaining_area(self, geo, site_feature, site_square):
        strip = box(30, -5, 40, SIDE + 5)
        result = make_builder({"flood": [geo.feature(strip)]}).build_sync(site_feature)

        expected = site_square.difference(strip).area
        assert len(result.parts) == 2
        assert sum(p.area_sqm for p in result.parts) == pytest.approx(expected, rel=1e-3)
        assert result.effective_area_sqm == pytest.approx(expected, rel=1e-3)

    def test_small_fragments_dropped(self, geo, site_feature):
        # Leaves a 1m x 70m sliver on the left and a 20m strip on the right
        layers = {"easements": [geo.feature(box(1, -5, SIDE - 20, SIDE + 5))]}
        result = make_builder(layers).build_sync(site_feature)

        assert len(result.parts) == 1
        assert result.total_area_sqm == pytest.approx(20 * SIDE, rel=1e-2)

    def test_everything_removed_falls_back_to_site(self, geo, site_feature):
        layers = {"flood": [geo.feature(box(-10, -10, SIDE + 10, SIDE + 10))]}
        result = make_builder(layers).build_sync(site_feature)

        assert len(result.parts) == 1
        part = result.parts[0]
        assert part.fallback
        assert part.name == "Developable Area - Auto 1 (Fallback)"
        assert part.area_sqm == pytest.approx(5000.0, rel=1e-3)

    def test_power_lines_buffered(self, geo, site_feature):
        line = LineString([(SIDE / 2, -20), (SIDE / 2, SIDE + 20)])
        result = make_builder({"power_lines": [geo.feature(line)]}).build_sync(site_feature)

        assert len(result.parts) == 2
        # 20m corridor removed
        assert result.total_area_sqm == pytest.approx((SIDE - 20) * SIDE, rel=1e-2)

    def test_only_excluded_zones_subtracted(self, geo, site_feature):
        layers = {"excluded_zoning": [
            geo.feature(box(0, 0, SIDE / 2, SIDE), SYM_CODE="C2"),
            geo.feature(box(SIDE / 2, 0, SIDE, SIDE), SYM_CODE="R2"),
        ]}
        result = make_builder(layers).build_sync(site_feature)

        assert result.total_area_sqm == pytest.approx(2500.0, rel=1e-2)
        assert report_for(result, "excluded_zoning").intersecting == 1

    def test_layer_order_and_reports(self, site_feature):
        result = make_builder().build_sync(site_feature)
        assert [r.layer for r in result.layer_reports] == list(LAYER_SEQUENCE)
        assert all(r.available for r in result.layer_reports)

    def test_site_properties_carried(self, site_feature):
        part = make_builder().build_sync(site_feature).parts[0]
        assert part.feature.get("lot") == "1//DP123456"

    def test_feature_collection_output(self, site_feature):
        collection = make_builder().build_sync(site_feature).to_feature_collection()
        properties = collection["features"][0]["properties"]

        assert collection["type"] == "FeatureCollection"
        assert properties["generatedDevelopableArea"] is True
        assert properties["autoGenerated"] is True
        assert properties["usage"] == "Developable Area"
        assert properties["partIndex"] == 0

    def test_prefetched_layers_override_source(self, geo, site_feature):
        builder = DevelopableAreaBuilder(source=None)
        flood = geo.collection(geo.feature(box(0, 0, SIDE / 2, SIDE)))
        result = builder.build_sync(site_feature, layers={"flood": flood})

        assert result.total_area_sqm == pytest.approx(2500.0, rel=1e-2)
        assert report_for(result, "flood").available
        assert not report_for(result, "easements").available


class TestFailureHandling:
    def test_failing_layer_is_skipped(self, geo, site_feature):
        layers = {
            "flood": RuntimeError("service down"),
            "easements": [geo.feature(box(0, 0, SIDE / 2, SIDE))],
        }
        result = make_builder(layers).build_sync(site_feature)

        assert not report_for(result, "flood").available
        assert result.total_area_sqm == pytest.approx(2500.0, rel=1e-2)

    def test_slow_source_times_out(self, geo, site_feature):
        layers = {"flood": [geo.feature(box(0, 0, SIDE / 2, SIDE))]}
        result = make_builder(layers, delay_s=0.5, deadline_s=0.01).build_sync(site_feature)

        assert not any(r.available for r in result.layer_reports)
        assert result.total_area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert not result.fallback

    def test_unusable_site_falls_back(self):
        site = {"type": "Feature", "geometry": None, "properties": {"lot": "9"}}
        result = make_builder().build_sync(site)

        assert len(result.parts) == 1
        assert result.parts[0].fallback
        assert result.parts[0].area_sqm == 0.0
        assert result.parts[0].feature.get("lot") == "9"

    def test_biodiversity_second_pass(self, geo, site_feature, monkeypatch):
        builder = make_builder({"biodiversity": [geo.feature(box(0, 0, 10, 10))]})

        def fail(base, cutout):
            return SubtractionResult(feature=base, strategy="unchanged", estimated=True, estimated_area_reduction_sqm=10.0)

        monkeypatch.setattr(builder.engine, "subtract", fail)
        result = builder.build_sync(site_feature)

        report = report_for(result, "biodiversity")
        assert report.failed == 1
        assert report.recovered == 1
        assert report.strategies.get("aggressive_circle") == 1
        assert result.estimated
        assert result.total_area_sqm < 5000.0
        # Recovered geometrically, so no area estimate remains
        assert report.estimated_reduction_sqm == 0.0
        assert result.estimated_reduction_sqm == 0.0


    def test_unsubtracted_constraint_reduces_effective_area(self, geo, site_feature):
        builder = make_builder({"flood": [geo.feature(box(0, 0, 30, 30))]})
        builder.engine.strategies = [("direct", lambda base, cutout: None)]
        result = builder.build_sync(site_feature)

        part = result.parts[0]
        assert part.area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert part.estimated
        # 10% of the 900 sqm constraint
        assert part.estimated_reduction_sqm == pytest.approx(90.0, rel=1e-2)
        assert part.effective_area_sqm == pytest.approx(4910.0, rel=1e-3)
        assert result.effective_area_sqm == pytest.approx(4910.0, rel=1e-3)
        assert report_for(result, "flood").estimated_reduction_sqm == pytest.approx(90.0, rel=1e-2)

        properties = result.to_feature_collection()["features"][0]["properties"]
        assert properties["estimated_area_reduction_sqm"] == pytest.approx(90.0, rel=1e-2)
        assert properties["effective_area_sqm"] == pytest.approx(4910.0, rel=1e-3)

    def test_slow_service_bounded_by_deadline(self, site_feature):
        config = PipelineConfig()
        config.api.fetch_deadline_s = 0.3
        config.api.retry_delay = 0.0
        config.api.min_request_interval = 0.0
        config.api.token = None
        session = SlowSession(delay_s=3.0)
        collector = ArcGISFeatureCollector(api_client=ArcGISAPIClient(session=session, config=config), config=config)
        builder = DevelopableAreaBuilder(source=collector, config=config)

        started = time.monotonic()
        result = builder.build_sync(site_feature)
        elapsed = time.monotonic() - started

        assert elapsed < 1.5
        assert not any(r.available for r in result.layer_reports)
        assert result.total_area_sqm == pytest.approx(5000.0, rel=1e-3)
        assert all(t <= 0.3 for t in session.timeouts)

    def test_cancellation_propagates(self, site_feature):
        builder = make_builder(delay_s=1.0, deadline_s=5.0)

        async def cancel_build():
            task = asyncio.create_task(builder.build(site_feature))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task.cancelled()

        assert asyncio.run(cancel_build())


class TestMultipleSites:
    def test_sequence_per_site(self, geo):
        sites = {
            "isMultipleProperties": True,
            "allProperties": [
                geo.feature(box(0, 0, 50, 50)),
                geo.feature(box(500, 0, 550, 50)),
            ],
        }
        result = make_builder().build_sync(sites)
        assert [p.name for p in result.parts] == [
            "Developable Area - Auto 1",
            "Developable Area - Auto 2",
        ]

    def test_sequence_restarts_each_run(self, site_feature):
        builder = make_builder()
        first = builder.build_sync(site_feature)
        second = builder.build_sync(site_feature)
        assert first.parts[0].name == second.parts[0].name == "Developable Area - Auto 1"
        assert first.run_sequence == second.run_sequence == 1

    def test_run_sequence_counts_sites(self, geo):
        sites = geo.collection(geo.feature(box(0, 0, 50, 50)), geo.feature(box(500, 0, 550, 50)))
        assert make_builder().build_sync(sites).run_sequence == 2

    def test_shared_context_continues_numbering(self, site_feature):
        builder = make_builder()
        context = RunContext()

        builder.build_sync(site_feature, context=context)
        second = builder.build_sync(site_feature, context=context)

        assert second.parts[0].name == "Developable Area - Auto 2"
        assert second.run_sequence == 2
        assert context.sequence == 2

    def test_feature_collection_of_sites(self, geo):
        sites = geo.collection(geo.feature(box(0, 0, 50, 50)), geo.feature(box(500, 0, 550, 50)))
        assert len(make_builder().build_sync(sites).parts) == 2


class TestPartLabel:
    @pytest.mark.parametrize("index,label", [(0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"), (51, "AZ"), (52, "BA")])
    def test_labels(self, index, label):
        assert DevelopableAreaBuilder.part_label(index) == label
