"""
Main ArcGIS Collector

Orchestrates ArcGIS layer collection components
"""

import asyncio
from typing import Dict, Any, Optional, Tuple
from loguru import logger

from .api_client import ArcGISAPIClient
from .cache import LayerCache
from .parser import ArcGISResponseParser
from ...config import get_config, PipelineConfig


class ArcGISFeatureCollector:
    """
    Collect layer features from ArcGIS REST services

    Each named layer maps to an endpoint in APIConfig.layers. Supports
    caching to disk for debugging and reuse.
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        api_client: Optional[ArcGISAPIClient] = None,
        config: Optional[PipelineConfig] = None
    ):
        self.config = config or get_config()
        self.api_client = api_client or ArcGISAPIClient(config=self.config)
        self.cache = LayerCache(cache_dir, self.config.api.cache_ttl_s)
        self.parser = ArcGISResponseParser()

    def fetch_layer(
        self,
        layer: str,
        bbox: Tuple[float, float, float, float],
        deadline_s: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Fetch all features of a layer intersecting a bounding box

        Args:
            layer: Layer name (key of APIConfig.layers)
            bbox: (min_lon, min_lat, max_lon, max_lat)
            deadline_s: Time budget for the HTTP work, including retries

        Returns:
            GeoJSON FeatureCollection dict

        Raises:
            KeyError: If the layer is not configured
            FeatureFetchError: If the service fails after all retries
        """
        endpoint = self.config.api.layers[layer]

        cache_path = self.cache.get_cache_path(layer, bbox)
        if cache_path:
            cached_data = self.cache.load(cache_path)
            if cached_data:
                return self.parser.parse(cached_data)

        logger.info(f"Fetching {layer} features for bbox {tuple(round(v, 6) for v in bbox)}")
        data = self.api_client.query(endpoint, bbox, deadline_s=deadline_s)
        collection = self.parser.parse(data)
        logger.info(f"Fetched {len(collection['features'])} {layer} feature(s)")

        if cache_path:
            self.cache.save(cache_path, collection)
        return collection

    async def fetch_features(self, layer: str, bbox: Tuple[float, float, float, float]) -> Dict[str, Any]:
        """
        Async wrapper running the blocking request in a worker thread

        The request is bounded by the fetch deadline so the worker does not
        outlive an awaiting caller that has already given up.
        """
        return await asyncio.to_thread(self.fetch_layer, layer, bbox, self.config.api.fetch_deadline_s)
