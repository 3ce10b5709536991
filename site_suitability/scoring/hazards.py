"""
Hazard criteria: flood, bushfire and contaminated land
"""

from typing import Tuple

from .base import ProximityScorer, ScoreResult


class FloodScorer(ProximityScorer):
    """1% AEP flood extent proximity"""

    name = "flood"

    def thresholds(self) -> Tuple[float, float]:
        return 0.0, self.config.flood_near_m

    def get_score_description(self, result: ScoreResult) -> str:
        if result.score == 1:
            return "Site is impacted by flooding (1% AEP flood extent intersects the developable area)."
        if result.score == 2:
            return f"Site is within {result.distance_or_coverage:.0f}m of a 1% AEP flood extent."
        if result.context.get("feature_count"):
            return f"No flood extent within {self.config.flood_near_m:.0f}m of the site."
        return "No flood extents identified near the site."


class BushfireScorer(ProximityScorer):
    """Bushfire prone land proximity"""

    name = "bushfire"
    name_fields = ("Category", "CATEGORY", "d_Category", "category")

    def thresholds(self) -> Tuple[float, float]:
        return 0.0, self.config.bushfire_near_m

    def get_score_description(self, result: ScoreResult) -> str:
        category = result.context.get("nearest_name")
        suffix = f" ({category})" if category else ""
        if result.score == 1:
            return f"Site is mapped as bushfire prone land{suffix}."
        if result.score == 2:
            return f"Site is within {result.distance_or_coverage:.0f}m of bushfire prone land{suffix}."
        return "Site is not mapped as or near bushfire prone land."


class ContaminationScorer(ProximityScorer):
    """Notified contaminated land proximity"""

    name = "contamination"
    name_fields = ("SiteName", "SITE_NAME", "site_name", "name")

    def thresholds(self) -> Tuple[float, float]:
        return self.config.contamination_impacted_m, self.config.contamination_near_m

    def get_score_description(self, result: ScoreResult) -> str:
        site_name = result.context.get("nearest_name")
        named = f": {site_name}" if site_name else ""
        if result.score == 1:
            if result.context.get("intersects"):
                return f"Site is on the contaminated land register{named}."
            return f"Site is within {self.config.contamination_impacted_m:.0f}m of a notified contaminated site{named}."
        if result.score == 2:
            return f"Notified contaminated site within {result.distance_or_coverage:.0f}m{named}."
        return "Site is not on or near the contaminated land register."
