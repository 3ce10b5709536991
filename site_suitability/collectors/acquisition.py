"""
Feature acquisition boundary

Wraps any feature source with a fixed deadline. Upstream failures and
timeouts surface as None so the caller can treat the layer as
unavailable and carry on. Cancellation of the caller propagates.
"""

import asyncio
from typing import Dict, Any, Optional, Tuple, Union, Protocol

from loguru import logger

from ..config import get_config


BBox = Tuple[float, float, float, float]


class FeatureSource(Protocol):
    """Anything that can asynchronously return a FeatureCollection for a layer"""

    async def fetch_features(self, layer: str, bbox: BBox) -> Optional[Dict[str, Any]]:
        ...


class StaticFeatureSource:
    """
    In-memory feature source

    Layers map to FeatureCollection dicts (or lists of features). A layer
    mapped to an exception instance raises it, which is useful for
    exercising failure handling offline.
    """

    def __init__(self, layers: Optional[Dict[str, Union[Dict[str, Any], list, Exception]]] = None, delay_s: float = 0.0):
        self.layers = dict(layers or {})
        self.delay_s = delay_s
        self.requests = []

    async def fetch_features(self, layer: str, bbox: BBox) -> Optional[Dict[str, Any]]:
        self.requests.append((layer, bbox))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        data = self.layers.get(layer)
        if isinstance(data, Exception):
            raise data
        if data is None:
            return {"type": "FeatureCollection", "features": []}
        if isinstance(data, list):
            return {"type": "FeatureCollection", "features": data}
        return data


class FeatureAcquisition:
    """
    Deadline-bounded access to a FeatureSource

    Usage:
        acquisition = FeatureAcquisition(ArcGISFeatureCollector())
        collection = await acquisition.fetch_features("flood", bbox)
    """

    def __init__(self, source: Optional[FeatureSource], deadline_s: Optional[float] = None):
        self.source = source
        self.deadline_s = deadline_s if deadline_s is not None else get_config().api.fetch_deadline_s

    async def fetch_features(self, layer: str, bbox: BBox) -> Optional[Dict[str, Any]]:
        """
        Fetch candidate features for a layer

        Args:
            layer: Layer name
            bbox: Query envelope (min_lon, min_lat, max_lon, max_lat)

        Returns:
            GeoJSON FeatureCollection dict, or None if the layer is unavailable
        """
        if self.source is None:
            return None
        try:
            return await asyncio.wait_for(self.source.fetch_features(layer, bbox), timeout=self.deadline_s)
        except asyncio.TimeoutError:
            logger.warning(f"Fetching {layer} exceeded {self.deadline_s}s deadline; layer skipped")
        except Exception as e:
            logger.warning(f"Fetching {layer} failed; layer skipped: {e}")
        return None
