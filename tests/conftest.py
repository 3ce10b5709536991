"""
Shared fixtures

Geometry is drawn in meters on a plane centred near Parramatta and
projected to lon/lat, so tests can reason about areas and distances
directly.
"""

import math

import pytest
from shapely.geometry import box, mapping
from shapely.geometry.base import BaseGeometry

from site_suitability.analysis import LocalProjection


REF_LON = 151.0
REF_LAT = -33.8

# Side of a 5000 sqm square
SIDE = math.sqrt(5000.0)


class GeoFactory:
    """Build lon/lat GeoJSON from geometry drawn in local meters"""

    def __init__(self):
        self.projection = LocalProjection(REF_LON, REF_LAT)

    def to_geo(self, geometry: BaseGeometry) -> BaseGeometry:
        return self.projection.to_geographic(geometry)

    def feature(self, geometry: BaseGeometry, **properties):
        return {
            "type": "Feature",
            "geometry": mapping(self.to_geo(geometry)),
            "properties": properties,
        }

    def collection(self, *features):
        return {"type": "FeatureCollection", "features": list(features)}


@pytest.fixture
def geo():
    return GeoFactory()


@pytest.fixture
def site_square():
    """5000 sqm square in local meters"""
    return box(0, 0, SIDE, SIDE)


@pytest.fixture
def site_feature(geo, site_square):
    return geo.feature(site_square, lot="1//DP123456")
