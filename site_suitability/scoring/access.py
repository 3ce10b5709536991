"""
Access criteria: road frontage, strategic centre proximity and PTAL
"""

import re
from typing import Any, Optional, List

from .base import (
    CriterionScorer, ScoreResult, SiteGeometry, attribute_records, first_value, feature_name
)


class RoadsScorer(CriterionScorer):
    """Road access within a buffer of the developable area"""

    name = "access"

    NAME_FIELDS = ("ROADNAMEST", "ROADNAME", "name")
    LANE_FIELDS = ("LANECOUNT", "lanes", "LANES")

    @staticmethod
    def lane_count(value: Any) -> int:
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        roads = site.intersecting(self.features(feature_data), self.config.road_buffer_m)
        if not roads:
            return ScoreResult(score=1, context={"road_count": 0})

        multi_lane = [
            r for r in roads
            if self.lane_count(first_value(r.properties, self.LANE_FIELDS)) >= self.config.road_min_lanes
        ]
        frontage = multi_lane or roads
        names = sorted({n for n in (feature_name(r, self.NAME_FIELDS) for r in frontage) if n})
        return ScoreResult(
            score=3 if multi_lane else 2,
            distance_or_coverage=0.0,
            supporting_features=roads,
            context={
                "road_count": len(roads),
                "multi_lane_count": len(multi_lane),
                "road_names": names,
                "functions": sorted({str(r.get("FUNCTION")) for r in roads if r.get("FUNCTION")}),
            },
        )

    def get_score_description(self, result: ScoreResult) -> str:
        names = ", ".join(result.context.get("road_names") or [])
        named = f" ({names})" if names else ""
        if result.score == 3:
            return f"Direct access to a multi-lane road{named}."
        if result.score == 2:
            return f"Access to a single-lane road{named}."
        return f"No road within {self.config.road_buffer_m:.0f}m of the developable area."


class UDPProximityScorer(CriterionScorer):
    """Proximity to Urban Development Program precincts (strategic centres)"""

    name = "strategic_centre"

    NAME_FIELDS = ("PRECINCT_NAME", "PRECINCT_TYPE", "name")

    def _calculate(self, feature_data: Any, site: SiteGeometry) -> ScoreResult:
        precincts = self.features(feature_data)
        nearest, distance = site.nearest(precincts)
        if nearest is None:
            return ScoreResult(score=1, context={"precinct": None, "distance_m": None})

        if distance <= self.config.udp_near_m:
            score = 3
        elif distance <= self.config.udp_far_m:
            score = 2
        else:
            score = 1
        return ScoreResult(
            score=score,
            distance_or_coverage=distance,
            supporting_features=[nearest],
            context={
                "precinct": feature_name(nearest, self.NAME_FIELDS),
                "precinct_type": nearest.get("PRECINCT_TYPE"),
                "distance_m": round(distance, 1),
            },
        )

    def get_score_description(self, result: ScoreResult) -> str:
        precinct = result.context.get("precinct")
        named = f" ({precinct})" if precinct else ""
        distance = result.distance_or_coverage
        if result.score == 3:
            if distance == 0:
                return f"Site is within a strategic centre precinct{named}."
            return f"Site is {distance:.0f}m from a strategic centre precinct{named}."
        if result.score == 2:
            return f"Site is {distance:.0f}m from a strategic centre precinct{named}."
        if precinct is None and distance == float("inf"):
            return "No strategic centre precinct identified nearby."
        return f"Site is more than {self.config.udp_far_m:.0f}m from a strategic centre precinct."


class PTALScorer(CriterionScorer):
    """Public Transport Accessibility Level"""

    name = "ptal"
    requires_developable_area = False

    VALUE_FIELDS = ("legend", "ptal_desc", "ptal", "PTAL")
    LABELS = ["1 - Low", "2 - Low-Medium", "3 - Medium", "4 - Medium-High", "5 - High", "6 - Very High"]
    # Longest names first so "medium-high" is not read as "medium"
    NAMED_RANKS = [
        ("very high", 6), ("medium high", 4), ("low medium", 2),
        ("high", 5), ("medium", 3), ("low", 1),
    ]

    @classmethod
    def rank(cls, value: Any) -> Optional[int]:
        """Rank 1-6 for a PTAL value such as 5, '5 - High' or 'Medium-High'"""
        if value is None:
            return None
        text = str(value).strip().lower()
        match = re.match(r"^([1-6])\b", text)
        if match:
            return int(match.group(1))
        text = re.sub(r"[-_]+", " ", text)
        text = re.sub(r"\s+", " ", text)
        for name, rank in cls.NAMED_RANKS:
            if name in text:
                return rank
        return None

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        if isinstance(feature_data, (str, int, float)):
            records = [{"ptal": feature_data}]
        elif isinstance(feature_data, (list, tuple)) and all(isinstance(v, (str, int, float)) for v in feature_data):
            records = [{"ptal": v} for v in feature_data]
        else:
            records = attribute_records(feature_data)

        ranks: List[int] = [r for r in (self.rank(first_value(rec, self.VALUE_FIELDS)) for rec in records) if r]
        if not ranks:
            return ScoreResult(score=0, context={"ptal": None})

        best = max(ranks)
        if best >= 5:
            score = 3
        elif best >= 3:
            score = 2
        else:
            score = 1
        return ScoreResult(score=score, context={"ptal": self.LABELS[best - 1], "rank": best})

    def get_score_description(self, result: ScoreResult) -> str:
        label = result.context.get("ptal")
        if label is None:
            return "Not assessed - no PTAL data available."
        if result.score == 3:
            return f"High public transport accessibility (PTAL {label})."
        if result.score == 2:
            return f"Moderate public transport accessibility (PTAL {label})."
        return f"Low public transport accessibility (PTAL {label})."
