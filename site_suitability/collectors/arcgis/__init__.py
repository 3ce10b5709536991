"""
ArcGIS REST data collection module

Modular layer collector with separate components for:
- API client: ArcGIS REST query communication
- Parser: GeoJSON / Esri JSON response parsing
- Cache: Caching functionality
- Collector: Main orchestrator class
"""

from .api_client import ArcGISAPIClient
from .parser import ArcGISResponseParser
from .cache import LayerCache
from .collector import ArcGISFeatureCollector

__all__ = [
    "ArcGISAPIClient",
    "ArcGISResponseParser",
    "LayerCache",
    "ArcGISFeatureCollector",
]
