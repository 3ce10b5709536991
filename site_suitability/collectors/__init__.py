"""
Data collectors for Site Suitability
"""

from .acquisition import FeatureAcquisition, FeatureSource, StaticFeatureSource
from .arcgis import ArcGISFeatureCollector

__all__ = [
    "FeatureAcquisition",
    "FeatureSource",
    "StaticFeatureSource",
    "ArcGISFeatureCollector",
]
