"""
Coverage criteria: threatened ecological communities, biodiversity values
and existing built form
"""

from .base import CoverageScorer, ScoreResult


class TECScorer(CoverageScorer):
    """Threatened Ecological Community coverage"""

    name = "tec"
    label = "threatened ecological community"

    def high_pct(self) -> float:
        return self.config.tec_high_coverage_pct


class BiodiversityCoverageScorer(CoverageScorer):
    """Biodiversity Values Map coverage"""

    name = "biodiversity"
    label = "biodiversity values"

    def high_pct(self) -> float:
        return self.config.biodiversity_high_coverage_pct


class GeoscapeScorer(CoverageScorer):
    """Existing building footprint coverage (Geoscape buildings)"""

    name = "built_form"
    label = "building"

    def high_pct(self) -> float:
        return self.config.geoscape_high_coverage_pct

    def get_score_description(self, result: ScoreResult) -> str:
        coverage = result.context.get("coverage_pct", 0.0)
        count = result.context.get("feature_count", 0)
        if result.score == 3:
            return "No existing buildings within the developable area."
        if result.score == 2:
            return f"Low existing building coverage ({coverage:.1f}%, {count} building(s))."
        return f"High existing building coverage ({coverage:.1f}%, {count} building(s))."
