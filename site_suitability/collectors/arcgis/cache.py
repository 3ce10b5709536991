"""
Layer response caching

Caches ArcGIS layer responses to disk, one directory per layer, with an
optional age limit so planning layers are refreshed periodically.
"""

import os
import json
import time
import hashlib
from typing import Dict, Any, Optional, Tuple
from loguru import logger


class LayerCache:
    """
    Disk cache of layer query results

    Layout: <cache_dir>/<layer>/<md5 of layer + bbox>.json
    """

    def __init__(self, cache_dir: Optional[str] = None, ttl_s: Optional[float] = None):
        self.cache_dir = cache_dir
        self.ttl_s = ttl_s

    def get_cache_path(self, layer: str, bbox: Tuple[float, float, float, float]) -> Optional[str]:
        """Get cache file path for a layer query"""
        if not self.cache_dir:
            return None
        cache_key = f"{layer}_" + "_".join(f"{v:.6f}" for v in bbox)
        cache_hash = hashlib.md5(cache_key.encode()).hexdigest()[:12]
        return os.path.join(self.cache_dir, layer, f"{cache_hash}.json")

    def is_expired(self, cache_path: str) -> bool:
        if self.ttl_s is None:
            return False
        return time.time() - os.path.getmtime(cache_path) > self.ttl_s

    def load(self, cache_path: str) -> Optional[Dict[str, Any]]:
        """Load layer data from cache if present and fresh"""
        if not os.path.exists(cache_path):
            return None
        if self.is_expired(cache_path):
            logger.debug(f"Cache entry expired: {cache_path}")
            return None
        try:
            with open(cache_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            logger.info(f"Loaded layer data from cache: {cache_path}")
            return data
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cache {cache_path}: {e}")
        return None

    def save(self, cache_path: str, data: Dict[str, Any]):
        """Save layer data to cache"""
        if not self.cache_dir:
            return
        try:
            os.makedirs(os.path.dirname(cache_path), exist_ok=True)
            with open(cache_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, ensure_ascii=False)
            logger.debug(f"Saved layer data to cache: {cache_path}")
        except (OSError, TypeError) as e:
            logger.warning(f"Failed to save cache {cache_path}: {e}")
