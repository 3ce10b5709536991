"""
Geometry validator

Normalizes loosely-shaped polygon input (GeoJSON geometry, Feature,
FeatureCollection, ArcGIS rings, shapely objects) into a canonical 2-D
Feature with closed rings, repairing invalid polygons through an ordered
list of named strategies.
"""

import math
from typing import Dict, Any, Optional, List, Tuple, Callable, Sequence

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import (
    Polygon, MultiPolygon, Point, LineString, MultiLineString, MultiPoint, shape, mapping
)
from shapely.geometry.base import BaseGeometry
from shapely.validation import explain_validity

from .models import Feature
from .geometry_utils import GeometryUtils
from ..config import get_config, GeometryConfig


Ring = List[Tuple[float, float]]

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


class GeometryValidator:
    """
    Normalize and repair polygon input

    Usage:
        validator = GeometryValidator.geographic()
        feature = validator.normalize(geojson)
    """

    def __init__(self, placeholder_half_size: float, simplify_tolerance: float):
        self.placeholder_half_size = placeholder_half_size
        self.simplify_tolerance = simplify_tolerance
        self.repair_strategies: List[Tuple[str, Callable[[BaseGeometry], BaseGeometry]]] = [
            ("zero_buffer", self._zero_buffer),
            ("strip_vertices", self._strip_vertices),
            ("simplify", self._simplify),
            ("convex_hull", self._convex_hull),
        ]

    @classmethod
    def geographic(cls, geometry: Optional[GeometryConfig] = None) -> "GeometryValidator":
        """Validator with tolerances in degrees (lon/lat input)"""
        geometry = geometry or get_config().geometry
        return cls(geometry.placeholder_half_size_deg, geometry.repair_simplify_tolerance_deg)

    @classmethod
    def projected(cls, geometry: Optional[GeometryConfig] = None) -> "GeometryValidator":
        """Validator with tolerances in meters (local projection)"""
        geometry = geometry or get_config().geometry
        return cls(geometry.placeholder_half_size_m, geometry.repair_simplify_tolerance_m)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def normalize(self, data: Any) -> Optional[Feature]:
        """
        Normalize any supported input into a single Feature

        Args:
            data: GeoJSON dict, Feature, shapely geometry, or an object
                exposing coordinates/rings

        Returns:
            Feature with a valid 2-D geometry, or None if nothing usable remains
        """
        if data is None:
            return None

        if isinstance(data, Feature):
            if data.geometry is None:
                return None
            return self._finish(data.geometry, data.properties, data.id)

        if isinstance(data, BaseGeometry):
            return self._finish(data, {}, None)

        if isinstance(data, dict):
            return self._normalize_dict(data)

        if isinstance(data, (list, tuple)):
            return self._from_coordinates(data, None, {}, None)

        if hasattr(data, "__geo_interface__"):
            return self._normalize_dict(dict(data.__geo_interface__))

        for attr in ("coordinates", "rings"):
            if hasattr(data, attr):
                return self._normalize_dict({attr: getattr(data, attr)})

        logger.debug(f"Unsupported geometry input type: {type(data).__name__}")
        return None

    def normalize_collection(self, data: Any) -> List[Feature]:
        """
        Normalize every feature of a collection

        Accepts a FeatureCollection dict, a list of features/geometries,
        a single feature, or None. Unusable entries are dropped.
        """
        if data is None:
            return []
        if isinstance(data, dict):
            if data.get("type") == "FeatureCollection" or "features" in data:
                items = data.get("features") or []
            else:
                items = [data]
        elif isinstance(data, (list, tuple)):
            items = list(data)
        else:
            items = [data]

        features = []
        for item in items:
            feature = self.normalize(item)
            if feature is not None:
                features.append(feature)
        dropped = len(items) - len(features)
        if dropped:
            logger.debug(f"Dropped {dropped} unusable feature(s) during normalization")
        return features

    @staticmethod
    def is_valid(geometry: Optional[BaseGeometry]) -> bool:
        return geometry is not None and not geometry.is_empty and geometry.is_valid

    @staticmethod
    def explain(geometry: BaseGeometry) -> str:
        return explain_validity(geometry)

    def repair(self, geometry: BaseGeometry) -> Tuple[Optional[BaseGeometry], Optional[str]]:
        """
        Repair an invalid polygonal geometry

        Returns:
            (geometry, strategy name). The strategy is None when the input was
            already valid; geometry is None when every strategy failed.
        """
        if self._usable(geometry):
            return geometry, None

        logger.debug(f"Invalid geometry: {explain_validity(geometry)}")
        for name, strategy in self.repair_strategies:
            try:
                candidate = strategy(geometry)
            except (GEOSException, ValueError) as e:
                logger.debug(f"Repair strategy {name} raised: {e}")
                continue
            candidate = GeometryUtils.polygonal(candidate)
            if self._usable(candidate):
                logger.debug(f"Geometry repaired with {name}")
                return candidate, name
        logger.warning("Geometry could not be repaired by any strategy")
        return None, None

    # ------------------------------------------------------------------
    # Input parsing
    # ------------------------------------------------------------------

    def _normalize_dict(self, data: Dict[str, Any]) -> Optional[Feature]:
        geom_type = data.get("type")

        if geom_type == "FeatureCollection" or (geom_type is None and "features" in data):
            features = data.get("features") or []
            if not features:
                return None
            return self.normalize(features[0])

        if geom_type == "Feature" or (geom_type is None and "geometry" in data):
            properties = data.get("properties") or {}
            geometry = data.get("geometry")
            if geometry is None:
                return None
            if isinstance(geometry, BaseGeometry):
                return self._finish(geometry, properties, data.get("id"))
            if not isinstance(geometry, dict):
                return None
            return self._geometry_dict(geometry, properties, data.get("id"))

        return self._geometry_dict(data, {}, None)

    def _geometry_dict(self, geometry: Dict[str, Any], properties, feature_id) -> Optional[Feature]:
        if "rings" in geometry:
            # ArcGIS JSON: every ring listed flat, shells and holes together
            return self._from_coordinates(geometry.get("rings") or [], "Polygon", properties, feature_id)

        geom_type = geometry.get("type")
        if geom_type == "GeometryCollection":
            parts = []
            for sub in geometry.get("geometries") or []:
                feature = self._geometry_dict(sub, {}, None) if isinstance(sub, dict) else None
                if feature is not None and feature.is_polygonal:
                    parts.extend(GeometryUtils.polygons(feature.geometry))
            if not parts:
                return None
            return self._finish(MultiPolygon(parts) if len(parts) > 1 else parts[0], properties, feature_id)

        coordinates = geometry.get("coordinates")
        if coordinates is None:
            return None
        return self._from_coordinates(coordinates, geom_type, properties, feature_id)

    def _from_coordinates(
        self,
        coordinates: Any,
        geom_type: Optional[str],
        properties,
        feature_id
    ) -> Optional[Feature]:
        if not isinstance(coordinates, (list, tuple)):
            return None
        geom_type = geom_type or self._infer_type(coordinates)
        if geom_type is None:
            return None

        geometry = self._build_geometry(geom_type, coordinates)
        if geometry is None:
            return None
        return self._finish(geometry, properties, feature_id)

    @staticmethod
    def _infer_type(coordinates: Sequence) -> Optional[str]:
        """Infer the geometry type from the nesting depth of the coordinates"""
        depth = 0
        node = coordinates
        while isinstance(node, (list, tuple)):
            depth += 1
            node = next((item for item in node if item is not None), None)
        return {1: "Point", 2: "LineString", 3: "Polygon", 4: "MultiPolygon"}.get(depth)

    def _build_geometry(self, geom_type: str, coordinates: Sequence) -> Optional[BaseGeometry]:
        if geom_type == "Point":
            position = self._clean_position(coordinates)
            return Point(position) if position else None

        if geom_type == "MultiPoint":
            points = [p for p in (self._clean_position(c) for c in coordinates) if p]
            return MultiPoint(points) if points else None

        if geom_type == "LineString":
            return self._line(coordinates)

        if geom_type == "MultiLineString":
            lines = [line for line in (self._line(c) for c in coordinates) if line is not None]
            return MultiLineString(lines) if lines else None

        if geom_type == "Polygon":
            return self._polygon(coordinates)

        if geom_type == "MultiPolygon":
            polygons = [p for p in (self._polygon(c) for c in coordinates if isinstance(c, (list, tuple))) if p]
            if not polygons:
                return None
            return MultiPolygon(polygons) if len(polygons) > 1 else polygons[0]

        logger.debug(f"Unsupported geometry type: {geom_type}")
        return None

    # ------------------------------------------------------------------
    # Coordinate cleaning
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_position(position: Any) -> Optional[Tuple[float, float]]:
        """Coerce a position to a finite (x, y), dropping extra dimensions"""
        if not isinstance(position, (list, tuple)) or len(position) < 2:
            return None
        try:
            x = float(position[0])
            y = float(position[1])
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        return (x, y)

    def _line(self, coordinates: Any) -> Optional[LineString]:
        if not isinstance(coordinates, (list, tuple)):
            return None
        points = [p for p in (self._clean_position(c) for c in coordinates) if p]
        if len(set(points)) < 2:
            return None
        return LineString(points)

    def _ring(self, coordinates: Any) -> Optional[Ring]:
        """
        Clean one ring: valid 2-D points, at least 3 distinct, closed

        Rings with 1-2 distinct points become a square placeholder about
        their centroid. Rings with no usable points return None.
        """
        if not isinstance(coordinates, (list, tuple)):
            return None
        points = [p for p in (self._clean_position(c) for c in coordinates) if p]
        if not points:
            return None

        distinct = list(dict.fromkeys(points))
        if len(distinct) < 3:
            center_x = sum(p[0] for p in distinct) / len(distinct)
            center_y = sum(p[1] for p in distinct) / len(distinct)
            placeholder = GeometryUtils.square(center_x, center_y, self.placeholder_half_size)
            logger.debug(f"Ring with {len(distinct)} distinct point(s) replaced by placeholder square")
            return [tuple(c) for c in placeholder.exterior.coords]

        if points[0] != points[-1]:
            points.append(points[0])
        return points

    def _polygon(self, rings: Any) -> Optional[Polygon]:
        if not isinstance(rings, (list, tuple)) or not rings:
            return None
        shell = self._ring(rings[0])
        if shell is None:
            return None
        holes = []
        for ring in rings[1:]:
            hole = self._ring(ring) if self._distinct_count(ring) >= 3 else None
            if hole is not None:
                holes.append(hole)
        return Polygon(shell, holes)

    def _distinct_count(self, ring: Any) -> int:
        if not isinstance(ring, (list, tuple)):
            return 0
        return len({p for p in (self._clean_position(c) for c in ring) if p})

    # ------------------------------------------------------------------
    # Validity and repair
    # ------------------------------------------------------------------

    def _finish(self, geometry: BaseGeometry, properties, feature_id) -> Optional[Feature]:
        """Force 2-D, then validate and repair polygonal geometry"""
        if geometry is None or geometry.is_empty:
            return None
        if geometry.has_z:
            geometry = shape(self._drop_z(mapping(geometry)))

        if geometry.geom_type not in POLYGONAL_TYPES:
            return Feature(geometry=geometry, properties=properties, id=feature_id)

        repaired, strategy = self.repair(geometry)
        if repaired is None:
            return None
        feature = Feature(geometry=repaired, properties=properties, id=feature_id)
        if strategy:
            feature = feature.with_properties(repair_strategy=strategy)
        return feature

    @classmethod
    def _drop_z(cls, node: Any) -> Any:
        if isinstance(node, dict):
            return {k: cls._drop_z(v) if k in ("coordinates", "geometries") else v for k, v in node.items()}
        if isinstance(node, (list, tuple)):
            if node and isinstance(node[0], (int, float)):
                return tuple(node[:2])
            return [cls._drop_z(item) for item in node]
        return node

    @staticmethod
    def _usable(geometry: Optional[BaseGeometry]) -> bool:
        return (
            geometry is not None
            and not geometry.is_empty
            and geometry.geom_type in POLYGONAL_TYPES
            and geometry.is_valid
            and geometry.area > 0
        )

    @staticmethod
    def _zero_buffer(geometry: BaseGeometry) -> BaseGeometry:
        return geometry.buffer(0)

    def _strip_vertices(self, geometry: BaseGeometry) -> Optional[BaseGeometry]:
        """Rebuild rings without duplicate or collinear vertices"""
        polygons = []
        for polygon in GeometryUtils.polygons(geometry):
            shell = self._strip_ring(list(polygon.exterior.coords))
            if shell is None:
                continue
            holes = [h for h in (self._strip_ring(list(r.coords)) for r in polygon.interiors) if h]
            polygons.append(Polygon(shell, holes))
        if not polygons:
            return None
        return MultiPolygon(polygons) if len(polygons) > 1 else polygons[0]

    @staticmethod
    def _strip_ring(coords: List[Tuple[float, ...]]) -> Optional[Ring]:
        points: Ring = []
        for c in coords:
            point = (c[0], c[1])
            if not points or points[-1] != point:
                points.append(point)
        if len(points) > 1 and points[0] == points[-1]:
            points.pop()

        changed = True
        while changed and len(points) >= 3:
            changed = False
            n = len(points)
            for i in range(n):
                ax, ay = points[i - 1]
                bx, by = points[i]
                cx, cy = points[(i + 1) % n]
                cross = (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)
                scale = max(abs(bx - ax), abs(by - ay), abs(cx - ax), abs(cy - ay), 1e-12)
                if abs(cross) <= 1e-12 * scale * scale:
                    points.pop(i)
                    changed = True
                    break

        if len(points) < 3:
            return None
        return points + [points[0]]

    def _simplify(self, geometry: BaseGeometry) -> BaseGeometry:
        return geometry.simplify(self.simplify_tolerance, preserve_topology=True)

    @staticmethod
    def _convex_hull(geometry: BaseGeometry) -> BaseGeometry:
        return geometry.convex_hull
