"""
Geometry utilities for coordinate transformations and calculations
"""

import math
from typing import List, Tuple, Optional

from pyproj import Transformer
from shapely.geometry import Polygon, MultiPolygon, GeometryCollection, Point, box
from shapely.geometry.polygon import orient
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform


class LocalProjection:
    """
    Planar projection centred on a site

    Buffers, areas and distances are computed in meters after projecting
    lon/lat geometry through this object. Without an explicit CRS an
    azimuthal equidistant projection centred on the reference point is used,
    which keeps distortion negligible at site scale.
    """

    def __init__(self, ref_lon: float, ref_lat: float, local_crs: Optional[str] = None):
        self.ref_lon = ref_lon
        self.ref_lat = ref_lat
        self.local_crs = local_crs or (
            f"+proj=aeqd +lat_0={ref_lat} +lon_0={ref_lon} "
            "+x_0=0 +y_0=0 +datum=WGS84 +units=m +no_defs"
        )
        self._forward = Transformer.from_crs("EPSG:4326", self.local_crs, always_xy=True)
        self._inverse = Transformer.from_crs(self.local_crs, "EPSG:4326", always_xy=True)

    @classmethod
    def for_geometry(cls, geometry: BaseGeometry, local_crs: Optional[str] = None) -> "LocalProjection":
        """Create a projection centred on the geometry's bounding box"""
        minx, miny, maxx, maxy = geometry.bounds
        return cls((minx + maxx) / 2, (miny + maxy) / 2, local_crs)

    def to_local(self, geometry: BaseGeometry) -> BaseGeometry:
        """Project lon/lat geometry to local meters"""
        return transform(self._forward.transform, geometry)

    def to_geographic(self, geometry: BaseGeometry) -> BaseGeometry:
        """Project local meters back to lon/lat"""
        return transform(self._inverse.transform, geometry)


class GeometryUtils:
    """Utility functions for geometric operations"""

    @staticmethod
    def polygons(geometry: Optional[BaseGeometry]) -> List[Polygon]:
        """Explode any geometry into its non-empty polygon parts"""
        if geometry is None or geometry.is_empty:
            return []
        if isinstance(geometry, Polygon):
            return [geometry]
        if isinstance(geometry, (MultiPolygon, GeometryCollection)):
            parts = []
            for geom in geometry.geoms:
                parts.extend(GeometryUtils.polygons(geom))
            return parts
        return []

    @staticmethod
    def polygonal(geometry: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
        """
        Keep only the polygonal content of a geometry

        Returns a Polygon, a MultiPolygon, or None when nothing polygonal remains.
        """
        parts = GeometryUtils.polygons(geometry)
        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        return MultiPolygon(parts)

    @staticmethod
    def bbox_envelope(geometry: BaseGeometry, padding_ratio: float = 2.0) -> Tuple[float, float, float, float]:
        """
        Square query envelope about the geometry's bbox centre

        The side length is the larger bbox dimension times padding_ratio.
        """
        minx, miny, maxx, maxy = geometry.bounds
        center_x = (minx + maxx) / 2
        center_y = (miny + maxy) / 2
        size = max(abs(maxx - minx), abs(maxy - miny)) * padding_ratio
        half = size / 2
        return (center_x - half, center_y - half, center_x + half, center_y + half)

    @staticmethod
    def square(center_x: float, center_y: float, half_size: float) -> Polygon:
        return box(center_x - half_size, center_y - half_size, center_x + half_size, center_y + half_size)

    @staticmethod
    def center_point(geometry: BaseGeometry) -> Optional[Point]:
        """
        Centre used for circular approximations

        Centroid first, then a point guaranteed inside, then the first vertex.
        """
        for candidate in (lambda g: g.centroid, lambda g: g.representative_point()):
            try:
                point = candidate(geometry)
                if point is not None and not point.is_empty:
                    return point
            except Exception:
                continue
        coords = GeometryUtils.first_coordinate(geometry)
        return Point(coords) if coords else None

    @staticmethod
    def first_coordinate(geometry: BaseGeometry) -> Optional[Tuple[float, float]]:
        for polygon in GeometryUtils.polygons(geometry):
            return tuple(polygon.exterior.coords[0][:2])
        if hasattr(geometry, "coords"):
            coords = list(geometry.coords)
            if coords:
                return tuple(coords[0][:2])
        return None

    @staticmethod
    def equivalent_radius(area: float) -> float:
        """Radius of the circle with the given area"""
        return math.sqrt(max(area, 0.0) / math.pi)

    @staticmethod
    def sample_vertices(polygon: Polygon, max_vertices: int = 8) -> List[Tuple[float, float]]:
        """Evenly sample at most max_vertices shell vertices"""
        coords = list(polygon.exterior.coords)[:-1]
        if not coords:
            return []
        step = max(1, len(coords) // max_vertices)
        return [tuple(c[:2]) for c in coords[::step][:max_vertices]]

    @staticmethod
    def interior_angles(polygon: Polygon) -> List[float]:
        """
        Interior angles of the shell in degrees

        Reflex vertices report angles above 180. Collinear and repeated
        vertices are skipped.
        """
        coords = list(orient(polygon, sign=1.0).exterior.coords)[:-1]
        n = len(coords)
        angles = []
        for i in range(n):
            ax, ay = coords[i - 1][:2]
            bx, by = coords[i][:2]
            cx, cy = coords[(i + 1) % n][:2]
            v1 = (bx - ax, by - ay)
            v2 = (cx - bx, cy - by)
            if v1 == (0, 0) or v2 == (0, 0):
                continue
            # Counter-clockwise shell: left turns are convex corners
            turn = math.degrees(math.atan2(v1[0] * v2[1] - v1[1] * v2[0], v1[0] * v2[0] + v1[1] * v2[1]))
            if abs(turn) < 1e-6:
                continue
            angles.append(180.0 - turn)
        return angles
