"""
Planning criteria: heritage, acid sulfate soils and zoning
"""

import re
from typing import Any, Optional, List

from .base import CriterionScorer, ScoreResult, SiteGeometry, attribute_records, first_value


class HeritageScorer(CriterionScorer):
    """Heritage significance of items affecting the site"""

    name = "heritage"
    requires_developable_area = False

    SIGNIFICANCE_FIELDS = ("SIG", "significance", "SIGNIFICANCE")
    NAME_FIELDS = ("H_NAME", "name", "NAME")
    CLASS_FIELDS = ("LAY_CLASS", "class")

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        records = [r for r in attribute_records(feature_data) if first_value(r, self.SIGNIFICANCE_FIELDS)]
        if not records:
            return ScoreResult(score=3, context={"significance": None, "item_count": 0})

        worst_score, worst = 3, None
        for record in records:
            significance = str(first_value(record, self.SIGNIFICANCE_FIELDS)).lower()
            if "state" in significance or "national" in significance:
                score = 1
            elif "local" in significance:
                score = 2
            else:
                score = 3
            if worst is None or score < worst_score:
                worst_score, worst = score, record

        return ScoreResult(
            score=worst_score,
            context={
                "significance": first_value(worst, self.SIGNIFICANCE_FIELDS),
                "item_name": first_value(worst, self.NAME_FIELDS),
                "item_class": first_value(worst, self.CLASS_FIELDS),
                "item_count": len(records),
            },
        )

    def get_score_description(self, result: ScoreResult) -> str:
        name = result.context.get("item_name")
        item = f" ({name})" if name else ""
        if result.score == 1:
            return f"State or national heritage significance{item}."
        if result.score == 2:
            return f"Local heritage significance{item}."
        if result.context.get("item_count"):
            return "Heritage items present with no state or local significance."
        return "No heritage items affecting the site."


class AcidSulfateSoilsScorer(CriterionScorer):
    """Acid sulfate soils class"""

    name = "acid_sulfate_soils"
    requires_developable_area = False

    CLASS_FIELDS = ("LAY_CLASS", "CLASS", "class", "ASS_CLASS", "Class")
    HIGH_RISK = {"1", "2", "2a", "2b"}
    MEDIUM_RISK = {"3", "4"}

    @staticmethod
    def parse_class(value: Any) -> Optional[str]:
        """'Class 2b' -> '2b'"""
        if value is None:
            return None
        match = re.search(r"(\d[a-z]?)", str(value).strip().lower())
        return match.group(1) if match else None

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        classes: List[str] = []
        for record in attribute_records(feature_data):
            soil_class = self.parse_class(first_value(record, self.CLASS_FIELDS))
            if soil_class:
                classes.append(soil_class)

        ranked = []
        for soil_class in set(classes):
            if soil_class in self.HIGH_RISK:
                ranked.append((1, soil_class))
            elif soil_class in self.MEDIUM_RISK:
                ranked.append((2, soil_class))
            else:
                ranked.append((3, soil_class))
        score, matched = min(ranked) if ranked else (3, None)

        return ScoreResult(score=score, context={"soil_class": matched, "classes": sorted(set(classes))})

    def get_score_description(self, result: ScoreResult) -> str:
        soil_class = result.context.get("soil_class")
        if result.score == 1:
            return f"High risk acid sulfate soils (Class {soil_class})."
        if result.score == 2:
            return f"Medium risk acid sulfate soils (Class {soil_class})."
        if soil_class:
            return f"Low risk acid sulfate soils (Class {soil_class})."
        return "No acid sulfate soils identified."


class ZoningScorer(CriterionScorer):
    """
    Land zoning and density controls

    Input is either a dict with `zones`, `fsr` and `hob`, or zoning
    features carrying SYM_CODE (and optionally FSR/HOB attributes).
    """

    name = "zoning"
    requires_developable_area = False

    ZONE_FIELDS = ("SYM_CODE", "zone", "ZONE", "LAY_CLASS")
    FSR_FIELDS = ("FSR", "fsr")
    HOB_FIELDS = ("HOB", "hob", "MAX_B_H")

    def _calculate(self, feature_data: Any, site: Optional[SiteGeometry]) -> ScoreResult:
        zones, fsr, hob = self._controls(feature_data)
        if not zones:
            return ScoreResult(score=0, context={"zones": []})

        high = {z.upper() for z in self.config.high_zones}
        medium = {z.upper() for z in self.config.medium_zones}
        codes = {z.upper() for z in zones}

        if codes & high:
            favourable = (
                (fsr is not None and fsr > self.config.zoning_fsr_threshold)
                or (hob is not None and hob > self.config.zoning_hob_threshold_m)
            )
            score = 3 if favourable else 2
        elif codes & medium:
            score = 2
        else:
            score = 1
        return ScoreResult(score=score, context={"zones": zones, "fsr": fsr, "hob": hob})

    def _controls(self, feature_data: Any):
        zones: List[str] = []
        fsr = hob = None
        if isinstance(feature_data, dict) and "zones" in feature_data:
            zones = [str(z).strip() for z in feature_data.get("zones") or [] if z]
            fsr = self._number(feature_data.get("fsr"))
            hob = self._number(feature_data.get("hob"))
            return zones, fsr, hob

        for record in attribute_records(feature_data):
            zone = first_value(record, self.ZONE_FIELDS)
            if zone and str(zone).strip() not in zones:
                zones.append(str(zone).strip())
            record_fsr = self._number(first_value(record, self.FSR_FIELDS))
            record_hob = self._number(first_value(record, self.HOB_FIELDS))
            if record_fsr is not None:
                fsr = max(fsr or 0.0, record_fsr)
            if record_hob is not None:
                hob = max(hob or 0.0, record_hob)
        return zones, fsr, hob

    @staticmethod
    def _number(value: Any) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(str(value).replace(":1", "").replace("m", "").strip())
        except ValueError:
            return None

    def get_score_description(self, result: ScoreResult) -> str:
        if result.score == 3:
            return "High suitability - Compatible zoning with favourable density controls."
        if result.score == 2:
            return "Medium suitability - Compatible zoning with lower density controls or special purpose zoning."
        if result.score == 1:
            return "Low suitability - Non-compatible zoning."
        return "Not assessed"
