"""
Pydantic models for the Site Suitability report
"""

from datetime import datetime, timezone
from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field
import uuid


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# GeoJSON Types
# ============================================================

class GeoJSONPoint(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: List[float]  # [longitude, latitude]


class GeoJSONGeometry(BaseModel):
    type: str
    coordinates: Any


# ============================================================
# Developable Area Models
# ============================================================

class DevelopableAreaProperties(BaseModel):
    name: str
    label: Optional[str] = None
    partIndex: int = 0
    area_sqm: float
    effective_area_sqm: float
    estimated_area_reduction_sqm: float = 0.0
    autoGenerated: bool = True
    generatedDevelopableArea: bool = True
    usage: str = "Developable Area"
    estimated: bool = False
    fallback: bool = False
    strategies: List[str] = Field(default_factory=list)
    site: Dict[str, Any] = Field(default_factory=dict)  # Carried site attributes


class DevelopableAreaFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: Optional[GeoJSONGeometry] = None
    properties: DevelopableAreaProperties


class LayerSummary(BaseModel):
    layer: str
    available: bool
    fetched: int = 0
    intersecting: int = 0
    subtracted: int = 0
    failed: int = 0
    recovered: int = 0
    estimated: int = 0
    estimated_reduction_sqm: float = 0.0
    strategies: Dict[str, int] = Field(default_factory=dict)


class DevelopableArea(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[DevelopableAreaFeature] = Field(default_factory=list)
    total_area_sqm: float = 0.0
    effective_area_sqm: float = 0.0  # Less area-ratio estimates
    estimated_area_reduction_sqm: float = 0.0
    estimated: bool = False
    fallback: bool = False
    layers: List[LayerSummary] = Field(default_factory=list)


# ============================================================
# Scoring Models
# ============================================================

class CriterionScore(BaseModel):
    name: str
    group: str
    title: str
    score: int = Field(ge=0, le=3)
    description: str
    assessed: bool = True
    context: Dict[str, Any] = Field(default_factory=dict)


class ScoreSummary(BaseModel):
    criteria: List[CriterionScore] = Field(default_factory=list)
    total: int = 0
    max: int = 48
    percentage: float = 0.0
    extras: List[CriterionScore] = Field(default_factory=list)


# ============================================================
# Data Quality Model
# ============================================================

class DataSource(BaseModel):
    layer: str
    source: str = "arcgis"
    available: bool = True
    feature_count: int = 0


class DataQuality(BaseModel):
    data_sources: List[DataSource] = Field(default_factory=list)
    missing_data: List[str] = Field(default_factory=list)
    last_validated: str = Field(default_factory=_now)


# ============================================================
# Main Report Model
# ============================================================

class SuitabilityReport(BaseModel):
    """Developable area and suitability score for one submission"""

    report_id: str = Field(default_factory=lambda: f"SS-AU-{datetime.now().strftime('%Y%m%d%H%M%S')}-{str(uuid.uuid4())[:4]}")
    created_at: str = Field(default_factory=_now)
    data_version: str = "1.0"

    centroid: Optional[GeoJSONPoint] = None
    developable_area: DevelopableArea
    scores: ScoreSummary
    data_quality: DataQuality
