"""
ArcGIS REST API client

Handles communication with ArcGIS MapServer/FeatureServer query endpoints including:
- Rate limiting
- Retry logic
- Error handling
"""

import time
import requests
from typing import Dict, Any, Optional, Tuple
from loguru import logger

from ...config import get_config, LayerEndpoint, PipelineConfig
from ...exceptions import FeatureFetchError


BBox = Tuple[float, float, float, float]


class ArcGISAPIClient:
    """Client for ArcGIS REST layer queries"""

    def __init__(self, session: Optional[requests.Session] = None, config: Optional[PipelineConfig] = None):
        self.config = config or get_config()
        self.session = session or requests.Session()
        self.timeout = self.config.api.request_timeout
        self._last_request_time = 0
        self._min_request_interval = self.config.api.min_request_interval

    def _rate_limit(self):
        """Ensure we don't exceed rate limits"""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    @staticmethod
    def build_params(endpoint: LayerEndpoint, bbox: BBox, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Build envelope query parameters for a layer

        Args:
            endpoint: Layer endpoint (url, where clause, out fields)
            bbox: (min_lon, min_lat, max_lon, max_lat) in EPSG:4326
            token: Optional service token

        Returns:
            Query string parameters
        """
        params = {
            "where": endpoint.where,
            "geometry": ",".join(f"{v:.8f}" for v in bbox),
            "geometryType": "esriGeometryEnvelope",
            "inSR": 4326,
            "spatialRel": "esriSpatialRelIntersects",
            "outFields": endpoint.out_fields,
            "returnGeometry": "true",
            "outSR": 4326,
            "f": "geojson",
        }
        if token:
            params["token"] = token
        return params

    def query(
        self,
        endpoint: LayerEndpoint,
        bbox: BBox,
        retry_delay: Optional[float] = None,
        deadline_s: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Execute a layer query with retry logic

        Args:
            endpoint: Layer endpoint
            bbox: Query envelope in lon/lat
            retry_delay: Initial delay between retries (increases with attempts)
            deadline_s: Total time budget; request timeouts are capped to what
                remains and no retry starts once it is spent

        Returns:
            JSON response from the service

        Raises:
            FeatureFetchError: If query fails after all retries or the deadline passes
        """
        retry_delay = self.config.api.retry_delay if retry_delay is None else retry_delay
        max_retries = self.config.api.max_retries
        params = self.build_params(endpoint, bbox, self.config.api.token)
        headers = {"User-Agent": self.config.api.user_agent}
        expires = time.monotonic() + deadline_s if deadline_s is not None else None

        self._rate_limit()

        for attempt in range(max_retries):
            timeout = self._request_timeout(expires)
            if timeout <= 0:
                raise FeatureFetchError(f"ArcGIS deadline of {deadline_s}s spent after {attempt} attempt(s)")
            try:
                response = self.session.get(
                    endpoint.url,
                    params=params,
                    headers=headers,
                    timeout=timeout
                )
                response.raise_for_status()
                data = response.json()
                if isinstance(data, dict) and "error" in data:
                    error = data["error"] or {}
                    raise FeatureFetchError(
                        f"ArcGIS service error {error.get('code')}: {error.get('message')}"
                    )
                return data
            except requests.exceptions.Timeout:
                wait_time = retry_delay * (attempt + 1)
                logger.warning(f"ArcGIS timeout (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s...")
                if attempt < max_retries - 1:
                    self._wait(wait_time, expires)
                else:
                    logger.error(f"ArcGIS query failed: timeout after {max_retries} attempts")
                    raise FeatureFetchError(f"ArcGIS timeout after {max_retries} attempts")
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status in [429, 502, 503, 504] and attempt < max_retries - 1:
                    wait_time = retry_delay * (attempt + 1)
                    logger.warning(f"ArcGIS {status} (attempt {attempt + 1}/{max_retries}). Retrying in {wait_time}s...")
                    self._wait(wait_time, expires)
                else:
                    logger.error(f"ArcGIS query failed: HTTP {status} after {attempt + 1} attempts")
                    raise FeatureFetchError(f"ArcGIS HTTP error {status}") from e
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.warning(f"ArcGIS request failed (attempt {attempt + 1}): {e}")
                if attempt < max_retries - 1:
                    self._wait(retry_delay * (attempt + 1), expires)
                else:
                    logger.error(f"ArcGIS query failed after {max_retries} attempts: {e}")
                    raise FeatureFetchError(f"ArcGIS request failed after {max_retries} attempts: {e}") from e

        return {"type": "FeatureCollection", "features": []}

    def _request_timeout(self, expires: Optional[float]) -> float:
        """Per-request timeout, capped by the remaining deadline"""
        if expires is None:
            return self.timeout
        return min(self.timeout, expires - time.monotonic())

    @staticmethod
    def _wait(wait_time: float, expires: Optional[float]):
        """Sleep before a retry, or give up if the retry could not start before the deadline"""
        if expires is not None and time.monotonic() + wait_time >= expires:
            raise FeatureFetchError("ArcGIS deadline reached before next retry")
        time.sleep(wait_time)
