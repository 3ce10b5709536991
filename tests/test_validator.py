"""
Tests for GeometryValidator normalization and repair
"""

import pytest
from shapely.geometry import Polygon, Point, box

from site_suitability.analysis import GeometryValidator, Feature


@pytest.fixture
def validator():
    """Tolerances in meters"""
    return GeometryValidator.projected()


SQUARE = [[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]


class TestNormalize:
    def test_geometry_dict(self, validator):
        feature = validator.normalize({"type": "Polygon", "coordinates": [SQUARE]})
        assert feature.geom_type == "Polygon"
        assert feature.geometry.area == pytest.approx(100.0)

    def test_feature_keeps_properties_and_id(self, validator):
        feature = validator.normalize({
            "type": "Feature",
            "id": 7,
            "geometry": {"type": "Polygon", "coordinates": [SQUARE]},
            "properties": {"lot": "12"},
        })
        assert feature.id == 7
        assert feature.get("lot") == "12"

    def test_feature_collection_uses_first_feature(self, validator):
        collection = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [SQUARE]}, "properties": {"n": 1}},
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {"n": 2}},
            ],
        }
        assert validator.normalize(collection).get("n") == 1

    def test_unclosed_ring_is_closed(self, validator):
        feature = validator.normalize({"type": "Polygon", "coordinates": [SQUARE[:-1]]})
        coords = list(feature.geometry.exterior.coords)
        assert coords[0] == coords[-1]
        assert feature.geometry.area == pytest.approx(100.0)

    def test_type_inferred_from_depth(self, validator):
        assert validator.normalize([SQUARE]).geom_type == "Polygon"
        assert validator.normalize([[SQUARE], [[[20, 20], [30, 20], [30, 30], [20, 20]]]]).geom_type == "MultiPolygon"
        assert validator.normalize([1.0, 2.0]).geom_type == "Point"

    def test_z_dropped(self, validator):
        ring = [[x, y, 5.0] for x, y in SQUARE]
        feature = validator.normalize({"type": "Polygon", "coordinates": [ring]})
        assert not feature.geometry.has_z

    def test_arcgis_rings(self, validator):
        feature = validator.normalize({"rings": [SQUARE]})
        assert feature.geom_type == "Polygon"

    def test_shapely_geometry(self, validator):
        feature = validator.normalize(box(0, 0, 5, 5))
        assert feature.geometry.area == pytest.approx(25.0)
        assert feature.properties == {}

    def test_geo_interface(self, validator):
        class Parcel:
            __geo_interface__ = {"type": "Polygon", "coordinates": [SQUARE]}

        assert validator.normalize(Parcel()).geom_type == "Polygon"

    def test_geometry_collection_keeps_polygons(self, validator):
        feature = validator.normalize({
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": [50, 50]},
                {"type": "Polygon", "coordinates": [SQUARE]},
            ],
        })
        assert feature.geom_type == "Polygon"

    def test_ring_with_two_points_becomes_placeholder(self, validator):
        feature = validator.normalize({"type": "Polygon", "coordinates": [[[0, 0], [4, 0], [0, 0]]]})
        # Square of half-size 10m about (2, 0)
        assert feature.geometry.area == pytest.approx(400.0)
        assert feature.geometry.centroid.x == pytest.approx(2.0)

    def test_degenerate_hole_dropped(self, validator):
        feature = validator.normalize({
            "type": "Polygon",
            "coordinates": [SQUARE, [[2, 2], [3, 3], [2, 2]]],
        })
        assert len(feature.geometry.interiors) == 0

    def test_non_finite_positions_dropped(self, validator):
        ring = [[0, 0], [10, 0], [float("nan"), 5], [10, 10], [0, 10], [0, 0]]
        feature = validator.normalize({"type": "Polygon", "coordinates": [ring]})
        assert feature.geometry.area == pytest.approx(100.0)

    def test_lines_and_points_pass_through(self, validator):
        line = validator.normalize({"type": "LineString", "coordinates": [[0, 0], [10, 0]]})
        point = validator.normalize({"type": "Point", "coordinates": [3, 4]})
        assert line.geom_type == "LineString"
        assert point.geometry.equals(Point(3, 4))

    @pytest.mark.parametrize("data", [
        None,
        "not geometry",
        {"type": "Polygon", "coordinates": []},
        {"type": "Feature", "geometry": None, "properties": {}},
        {"type": "FeatureCollection", "features": []},
    ])
    def test_unusable_input(self, validator, data):
        assert validator.normalize(data) is None


class TestRepair:
    def test_bowtie_repaired(self, validator):
        bowtie = {"type": "Polygon", "coordinates": [[[0, 0], [10, 10], [10, 0], [0, 10], [0, 0]]]}
        feature = validator.normalize(bowtie)
        assert feature.geometry.is_valid
        assert feature.geometry.area > 0
        assert feature.get("repair_strategy") in ("zero_buffer", "strip_vertices", "simplify", "convex_hull")

    def test_valid_geometry_untouched(self, validator):
        geometry = box(0, 0, 1, 1)
        repaired, strategy = validator.repair(geometry)
        assert strategy is None
        assert repaired is geometry

    def test_strategies_run_in_order(self, validator):
        calls = []

        def failing(name):
            def strategy(geometry):
                calls.append(name)
                return Polygon()
            return strategy

        validator.repair_strategies = [("first", failing("first")), ("second", failing("second"))]
        bowtie = Polygon([(0, 0), (10, 10), (10, 0), (0, 10)])

        assert validator.repair(bowtie) == (None, None)
        assert calls == ["first", "second"]

    def test_feature_input_is_not_mutated(self, validator):
        original = Feature(geometry=Polygon([(0, 0), (10, 10), (10, 0), (0, 10)]), properties={"a": 1})
        repaired = validator.normalize(original)
        assert "repair_strategy" in repaired.properties
        assert "repair_strategy" not in original.properties


class TestNormalizeCollection:
    def test_drops_unusable_entries(self, validator):
        features = validator.normalize_collection({
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [SQUARE]}, "properties": {}},
                {"type": "Feature", "geometry": None, "properties": {}},
                None,
            ],
        })
        assert len(features) == 1

    def test_accepts_list_and_none(self, validator):
        assert validator.normalize_collection(None) == []
        assert len(validator.normalize_collection([box(0, 0, 1, 1), box(2, 2, 3, 3)])) == 2
