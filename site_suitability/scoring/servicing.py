"""
Servicing criteria: water, sewer and power network availability
"""

from typing import Any, Dict

from .base import CriterionScorer, ScoreResult, SiteGeometry


class UtilityScorer(CriterionScorer):
    """
    One utility network

    Scores 1 when any network line intersects a buffer around the
    developable area, otherwise 0.
    """

    label = "utility"

    def __init__(self, name: str, label: str, config=None, geometry=None):
        super().__init__(config, geometry)
        self.name = name
        self.label = label

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        nearby = site.intersecting(self.features(feature_data), self.config.utility_buffer_m)
        return ScoreResult(
            score=1 if nearby else 0,
            distance_or_coverage=0.0 if nearby else float("inf"),
            supporting_features=nearby,
            context={"available": bool(nearby), "feature_count": len(nearby)},
        )

    def get_score_description(self, result: ScoreResult) -> str:
        if result.score:
            return f"{self.label.capitalize()} available within {self.config.utility_buffer_m:.0f}m."
        return f"No {self.label} identified within {self.config.utility_buffer_m:.0f}m."


class ServicingScorer(CriterionScorer):
    """
    Combined servicing score

    Input is a dict of utility name to features, using the keys
    `water`, `sewer` and `power`. The score is the number of
    available utilities (0-3).
    """

    name = "servicing"

    UTILITIES = (("water", "water mains"), ("sewer", "sewer mains"), ("power", "electricity network"))

    def __init__(self, config=None, geometry=None):
        super().__init__(config, geometry)
        self.utility_scorers = {key: UtilityScorer(key, label, config, geometry) for key, label in self.UTILITIES}

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        data: Dict[str, Any] = feature_data if isinstance(feature_data, dict) else {}
        results: Dict[str, ScoreResult] = {}
        for key, scorer in self.utility_scorers.items():
            results[key] = scorer.calculate_score(data.get(key), site.geometry)

        available = [key for key, r in results.items() if r.score]
        return ScoreResult(
            score=sum(r.score for r in results.values()),
            supporting_features=[f for r in results.values() for f in r.supporting_features],
            context={"utilities": {k: r.score for k, r in results.items()}, "available": available},
        )

    def get_score_description(self, result: ScoreResult) -> str:
        available = result.context.get("available") or []
        if not available:
            return "No water, sewer or power infrastructure identified nearby."
        if len(available) == len(self.UTILITIES):
            return "Water, sewer and power available."
        missing = [key for key, _ in self.UTILITIES if key not in available]
        return f"{', '.join(a.capitalize() for a in available)} available; {', '.join(missing)} not identified."
