"""
Scoring engine

Runs the criterion suite against the inputs gathered for a site and
aggregates the results. The default suite is the 16-criterion report
table (maximum 48).
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple

from loguru import logger

from .base import CriterionScorer, ScoreResult
from .aggregator import ScoreAggregator, CompositeScore
from .hazards import FloodScorer, BushfireScorer, ContaminationScorer
from .planning import HeritageScorer, AcidSulfateSoilsScorer, ZoningScorer
from .access import RoadsScorer, UDPProximityScorer, PTALScorer
from .environment import TECScorer, BiodiversityCoverageScorer, GeoscapeScorer
from .servicing import ServicingScorer
from .site import DevelopableAreaSizeScorer, SiteRegularityScorer, ContourScorer, SiteRemediationScorer
from ..config import get_config, ScoringConfig, GeometryConfig


@dataclass
class SiteData:
    """Inputs for every criterion of one site"""
    developable_area: Any = None
    developable_area_size: Optional[float] = None
    contours: Any = None
    zoning: Any = None
    heritage: Any = None
    acid_sulfate_soils: Any = None
    water: Any = None
    sewer: Any = None
    power: Any = None
    roads: Any = None
    udp: Any = None
    ptal: Any = None
    geoscape: Any = None
    flood: Any = None
    bushfire: Any = None
    contamination: Any = None
    tec: Any = None
    biodiversity: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CriterionSpec:
    """Row of the scoring table"""
    name: str
    group: str
    title: str


DEFAULT_CRITERIA: List[CriterionSpec] = [
    CriterionSpec("developable_area", "Primary Site Attributes", "Developable Area"),
    CriterionSpec("site_contour", "Secondary Site Attributes", "Site Contour"),
    CriterionSpec("site_regularity", "Secondary Site Attributes", "Site Regularity"),
    CriterionSpec("zoning", "Planning", "Zoning"),
    CriterionSpec("heritage", "Planning", "Heritage"),
    CriterionSpec("acid_sulfate_soils", "Planning", "Acid Sulphate Soil"),
    CriterionSpec("servicing", "Access & Services", "Servicing"),
    CriterionSpec("access", "Access & Services", "Access"),
    CriterionSpec("strategic_centre", "Access & Services", "Proximity to Strategic Centre"),
    CriterionSpec("ptal", "Access & Services", "Public Transport Access Level (PTAL)"),
    CriterionSpec("built_form", "Utilisation & Improvements", "Built Form"),
    CriterionSpec("flood", "Hazards", "Flood risk (1% AEP)"),
    CriterionSpec("bushfire", "Hazards", "Bushfire Risk"),
    CriterionSpec("contamination", "Site Contamination", "Contaminated sites Register"),
    CriterionSpec("site_remediation", "Site Contamination", "Usage & potential site remediation"),
    CriterionSpec("tec", "Environmental", "Threatened Ecological Communities"),
]


class ScoringEngine:
    """
    Score a site against every criterion

    Usage:
        engine = ScoringEngine()
        composite = engine.score(SiteData(developable_area=parts, flood=flood_fc))
        composite.to_dict()
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        include_biodiversity: bool = False,
        geometry: Optional[GeometryConfig] = None
    ):
        self.config = config or get_config().scoring
        self.geometry_config = geometry or get_config().geometry
        self.aggregator = ScoreAggregator(self.config.max_total)
        self.scorers: Dict[str, CriterionScorer] = {
            "developable_area": DevelopableAreaSizeScorer(self.config, self.geometry_config),
            "site_contour": ContourScorer(self.config, self.geometry_config),
            "site_regularity": SiteRegularityScorer(self.config, self.geometry_config),
            "zoning": ZoningScorer(self.config, self.geometry_config),
            "heritage": HeritageScorer(self.config, self.geometry_config),
            "acid_sulfate_soils": AcidSulfateSoilsScorer(self.config, self.geometry_config),
            "servicing": ServicingScorer(self.config, self.geometry_config),
            "access": RoadsScorer(self.config, self.geometry_config),
            "strategic_centre": UDPProximityScorer(self.config, self.geometry_config),
            "ptal": PTALScorer(self.config, self.geometry_config),
            "built_form": GeoscapeScorer(self.config, self.geometry_config),
            "flood": FloodScorer(self.config, self.geometry_config),
            "bushfire": BushfireScorer(self.config, self.geometry_config),
            "contamination": ContaminationScorer(self.config, self.geometry_config),
            "site_remediation": SiteRemediationScorer(self.config, self.geometry_config),
            "tec": TECScorer(self.config, self.geometry_config),
        }
        self.extra_scorers: Dict[str, CriterionScorer] = {}
        if include_biodiversity:
            self.extra_scorers["biodiversity"] = BiodiversityCoverageScorer(self.config, self.geometry_config)

    @staticmethod
    def inputs(data: SiteData) -> Dict[str, Any]:
        """Criterion name -> feature data"""
        return {
            "developable_area": data.developable_area_size,
            "site_contour": data.contours,
            "site_regularity": None,
            "zoning": data.zoning,
            "heritage": data.heritage,
            "acid_sulfate_soils": data.acid_sulfate_soils,
            "servicing": {"water": data.water, "sewer": data.sewer, "power": data.power},
            "access": data.roads,
            "strategic_centre": data.udp,
            "ptal": data.ptal,
            "built_form": data.geoscape,
            "flood": data.flood,
            "bushfire": data.bushfire,
            "contamination": data.contamination,
            "site_remediation": None,
            "tec": data.tec,
            "biodiversity": data.biodiversity,
        }

    def _jobs(self, data: SiteData) -> List[Tuple[str, CriterionScorer, Any, bool]]:
        inputs = self.inputs(data)
        jobs = [(name, scorer, inputs.get(name), False) for name, scorer in self.scorers.items()]
        jobs.extend((name, scorer, inputs.get(name), True) for name, scorer in self.extra_scorers.items())
        return jobs

    def _collect(self, outcomes: List[Tuple[str, ScoreResult, bool]]) -> CompositeScore:
        results = {name: result for name, result, extra in outcomes if not extra}
        composite = self.aggregator.aggregate(results)
        composite.extras = {name: result for name, result, extra in outcomes if extra}
        logger.info(f"Site score: {composite.total}/{composite.max_total} ({composite.percentage}%)")
        return composite

    def score(self, data: SiteData) -> CompositeScore:
        """Score every criterion sequentially"""
        outcomes = []
        for name, scorer, feature_data, extra in self._jobs(data):
            result = scorer.calculate_score(feature_data, data.developable_area)
            logger.debug(f"{name}: {result.score} - {result.description}")
            outcomes.append((name, result, extra))
        return self._collect(outcomes)

    async def score_async(self, data: SiteData) -> CompositeScore:
        """Score every criterion concurrently in worker threads"""
        jobs = self._jobs(data)
        results = await asyncio.gather(*[
            asyncio.to_thread(scorer.calculate_score, feature_data, data.developable_area)
            for _, scorer, feature_data, _ in jobs
        ])
        outcomes = [(name, result, extra) for (name, _, _, extra), result in zip(jobs, results)]
        return self._collect(outcomes)
