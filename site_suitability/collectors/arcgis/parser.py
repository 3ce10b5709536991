"""
ArcGIS response parser

Converts ArcGIS query responses (GeoJSON or Esri JSON) into GeoJSON
FeatureCollection dicts
"""

from typing import Dict, Any, List, Optional


class ArcGISResponseParser:
    """Parses ArcGIS REST query responses"""

    @staticmethod
    def parse(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Parse a query response into a GeoJSON FeatureCollection

        Handles both 'f=geojson' and 'f=json' (Esri JSON) responses

        Args:
            data: JSON response from the service

        Returns:
            FeatureCollection dict (possibly with no features)
        """
        if not data:
            return {"type": "FeatureCollection", "features": []}

        features = []
        for element in data.get("features") or []:
            if not isinstance(element, dict):
                continue
            if element.get("type") == "Feature":
                features.append(element)
                continue
            # Esri JSON feature: {"attributes": {...}, "geometry": {...}}
            features.append({
                "type": "Feature",
                "properties": element.get("attributes") or {},
                "geometry": ArcGISResponseParser.esri_geometry_to_geojson(element.get("geometry")),
            })

        return {"type": "FeatureCollection", "features": features}

    @staticmethod
    def esri_geometry_to_geojson(geometry: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Convert an Esri JSON geometry to GeoJSON"""
        if not geometry:
            return None
        if "rings" in geometry:
            return ArcGISResponseParser._rings_to_geojson(geometry["rings"])
        if "paths" in geometry:
            paths = geometry["paths"]
            if len(paths) == 1:
                return {"type": "LineString", "coordinates": paths[0]}
            return {"type": "MultiLineString", "coordinates": paths}
        if "points" in geometry:
            return {"type": "MultiPoint", "coordinates": geometry["points"]}
        if "x" in geometry and "y" in geometry:
            return {"type": "Point", "coordinates": [geometry["x"], geometry["y"]]}
        return None

    @staticmethod
    def _rings_to_geojson(rings: List[List[List[float]]]) -> Dict[str, Any]:
        """
        Group Esri rings into polygons

        Esri shells are clockwise and holes counter-clockwise; each hole is
        attached to the preceding shell.
        """
        polygons: List[List[List[List[float]]]] = []
        for ring in rings:
            if ArcGISResponseParser._signed_area(ring) <= 0 or not polygons:
                polygons.append([ring])
            else:
                polygons[-1].append(ring)
        if len(polygons) == 1:
            return {"type": "Polygon", "coordinates": polygons[0]}
        return {"type": "MultiPolygon", "coordinates": polygons}

    @staticmethod
    def _signed_area(ring: List[List[float]]) -> float:
        area = 0.0
        for i in range(len(ring) - 1):
            area += ring[i][0] * ring[i + 1][1] - ring[i + 1][0] * ring[i][1]
        return area / 2.0
