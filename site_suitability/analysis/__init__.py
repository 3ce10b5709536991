"""
Geometry analysis modules for Site Suitability
"""

from .models import Feature, SubtractionResult, DevelopableAreaPart, DevelopableAreaResult, LayerReport
from .geometry_utils import GeometryUtils, LocalProjection
from .validator import GeometryValidator
from .difference import DifferenceEngine
from .developable_area import DevelopableAreaBuilder, RunContext, LAYER_SEQUENCE

__all__ = [
    "Feature",
    "SubtractionResult",
    "DevelopableAreaPart",
    "DevelopableAreaResult",
    "LayerReport",
    "GeometryUtils",
    "LocalProjection",
    "GeometryValidator",
    "DifferenceEngine",
    "DevelopableAreaBuilder",
    "RunContext",
    "LAYER_SEQUENCE",
]
