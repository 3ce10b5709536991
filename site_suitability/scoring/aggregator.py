"""
Composite score aggregation
"""

import numbers
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Mapping

from .base import ScoreResult
from ..config import get_config


@dataclass
class CompositeScore:
    """Sum of criterion scores against a fixed maximum"""
    results: Dict[str, Any] = field(default_factory=dict)
    total: int = 0
    max_total: int = 48
    percentage: float = 0.0
    # Reported alongside but excluded from the total
    extras: Dict[str, ScoreResult] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        criteria = {}
        for name, result in self.results.items():
            if isinstance(result, ScoreResult):
                criteria[name] = result.to_dict()
            else:
                criteria[name] = {"score": ScoreAggregator.score_value(result), "description": ""}
        summary = {
            "criteria": criteria,
            "total": self.total,
            "max": self.max_total,
            "percentage": self.percentage,
        }
        if self.extras:
            summary["extras"] = {name: result.to_dict() for name, result in self.extras.items()}
        return summary


class ScoreAggregator:
    """
    Sum criterion scores with no weighting

    Usage:
        composite = ScoreAggregator().aggregate({"flood": flood_result, "site_remediation": 2})
    """

    def __init__(self, max_total: Optional[int] = None):
        self.max_total = max_total or get_config().scoring.max_total

    @staticmethod
    def score_value(result: Any) -> int:
        """Numeric score of a ScoreResult, plain number, mapping or object with .score"""
        if result is None or isinstance(result, bool):
            return 0
        if isinstance(result, numbers.Real):
            value = result
        elif isinstance(result, Mapping):
            value = result.get("score", 0)
        else:
            value = getattr(result, "score", 0)
        try:
            return int(value)
        except (TypeError, ValueError):
            return 0

    def aggregate(self, results: Mapping[str, Any]) -> CompositeScore:
        """
        Aggregate criterion results

        Args:
            results: criterion name -> ScoreResult (or number / mapping with "score")

        Returns:
            CompositeScore with total, max and percentage rounded to 2 dp
        """
        total = sum(self.score_value(r) for r in results.values())
        percentage = round(total / self.max_total * 100, 2)
        return CompositeScore(
            results=dict(results),
            total=total,
            max_total=self.max_total,
            percentage=percentage,
        )
