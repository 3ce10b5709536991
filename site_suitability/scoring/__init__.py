"""
Criterion scoring for Site Suitability
"""

from .base import (
    ScoreResult, CriterionScorer, ProximityScorer, CoverageScorer, SiteGeometry,
    normalize_features, NOT_ASSESSED
)
from .hazards import FloodScorer, BushfireScorer, ContaminationScorer
from .planning import HeritageScorer, AcidSulfateSoilsScorer, ZoningScorer
from .access import RoadsScorer, UDPProximityScorer, PTALScorer
from .environment import TECScorer, BiodiversityCoverageScorer, GeoscapeScorer
from .servicing import UtilityScorer, ServicingScorer
from .site import DevelopableAreaSizeScorer, SiteRegularityScorer, ContourScorer, SiteRemediationScorer
from .aggregator import ScoreAggregator, CompositeScore
from .engine import ScoringEngine, SiteData, CriterionSpec, DEFAULT_CRITERIA

__all__ = [
    "ScoreResult",
    "CriterionScorer",
    "ProximityScorer",
    "CoverageScorer",
    "SiteGeometry",
    "normalize_features",
    "NOT_ASSESSED",
    "FloodScorer",
    "BushfireScorer",
    "ContaminationScorer",
    "HeritageScorer",
    "AcidSulfateSoilsScorer",
    "ZoningScorer",
    "RoadsScorer",
    "UDPProximityScorer",
    "PTALScorer",
    "TECScorer",
    "BiodiversityCoverageScorer",
    "GeoscapeScorer",
    "UtilityScorer",
    "ServicingScorer",
    "DevelopableAreaSizeScorer",
    "SiteRegularityScorer",
    "ContourScorer",
    "SiteRemediationScorer",
    "ScoreAggregator",
    "CompositeScore",
    "ScoringEngine",
    "SiteData",
    "CriterionSpec",
    "DEFAULT_CRITERIA",
]
