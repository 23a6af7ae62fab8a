"""
Lead Scoring Model for the Rapid Offer pipeline.

Scores a lead against the active buy boxes of its market. Each buy box
yields a weighted percentage; the best match wins and is mapped to a letter
grade through fixed breakpoints.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .cash_flow import calculate_cash_flow, inputs_from_lead

logger = logging.getLogger(__name__)


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    DEAD = "Dead"


class LeadTier(str, Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


# Highest grade first; first threshold the score reaches wins.
GRADE_BREAKPOINTS: Tuple[Tuple[Grade, int], ...] = (
    (Grade.A, 85),
    (Grade.B, 70),
    (Grade.C, 50),
    (Grade.D, 30),
)

GRADE_VALUES = [g.value for g in Grade]

DEFAULT_WEIGHTS: Dict[str, int] = {
    "property_type": 20,
    "beds_baths": 15,
    "sqft": 10,
    "year_built": 10,
    "condition": 15,
    "buy_price": 20,
    "arv": 10,
    "location": 10,
}

EXCLUSION_PENALTY = 30
CASH_FLOW_STRATEGIES = ("buy_hold", "commercial")
DFW_COUNTIES = ("dallas", "tarrant", "collin", "denton")


def grade_for_score(score: int) -> Grade:
    """Map a 0-100 score to its grade bucket."""
    for grade, threshold in GRADE_BREAKPOINTS:
        if score >= threshold:
            return grade
    return Grade.DEAD


def round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def normalize_property_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    pt = value.upper()
    if any(k in pt for k in ("SFR", "SINGLE", "SFH", "HOUSE")):
        return "SFR"
    if any(k in pt for k in ("MULTI", "MF", "DUPLEX", "TRIPLEX", "QUAD")):
        return "MF"
    if "LAND" in pt or "LOT" in pt:
        return "Land"
    if any(k in pt for k in ("COMMERCIAL", "RETAIL", "OFFICE")):
        return "Commercial"
    return None


def normalize_condition(value: Optional[Any]) -> Optional[str]:
    if value is None or value == "":
        return None
    cond = str(value).lower()
    if cond in ("light", "1", "2"):
        return "light"
    if cond in ("medium", "3"):
        return "medium"
    if cond in ("heavy", "4", "5"):
        return "heavy"
    return cond


def intake_or_column(lead, key: str) -> Any:
    """Dialer-captured value for key, else the lead column. Zero counts as captured."""
    value = (lead.dialer_intake or {}).get(key)
    if value is None or value == "":
        return getattr(lead, key, None)
    return value

def determine_market_key(lead) -> Optional[str]:
    """Market key such as TX-DFW, CA-LOSANGELES or OH-STATE."""
    if not lead.state:
        return None
    state_code = lead.state.upper()[:2]
    county = (lead.county or "").strip()

    if state_code == "TX" and county.lower() in DFW_COUNTIES:
        return "TX-DFW"
    if county:
        compact = re.sub(r"\s+", "", county.upper())
        return f"{state_code}-{compact}"
    return f"{state_code}-STATE"


def _money(value: float) -> str:
    return f"${value:,.0f}"


@dataclass
class ScoringResult:
    """Outcome of scoring a lead."""
    score: int = 0
    grade: Grade = Grade.DEAD
    lead_tier: LeadTier = LeadTier.COLD
    matched_buy_box: Optional[Dict[str, Any]] = None
    reasons: List[str] = field(default_factory=list)
    failed_checks: List[str] = field(default_factory=list)
    cash_flow: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "grade": self.grade.value,
            "lead_tier": self.lead_tier.value,
            "matched_buy_box": self.matched_buy_box,
            "reasons": self.reasons,
            "failed_checks": self.failed_checks,
            "cash_flow": self.cash_flow,
        }


class LeadScorer:
    """
    Scores leads against buy boxes.

    Weighted checks (default weights, overridable per scoring config):
    - Property type: 20 (fail-fast, a mismatch scores 0)
    - Beds/Baths: 15
    - Sq ft: 10
    - Year built: 10
    - Condition: 15
    - Buy price within range: 20 (city overrides apply)
    - ARV within range: 10 (half credit when unknown)
    - County: 10
    - Exclusion hit: -30 from earned weight

    Grades: A >= 85, B >= 70, C >= 50, D >= 30, else Dead.
    """

    def __init__(self, weights: Optional[Dict[str, int]] = None):
        self.weights = DEFAULT_WEIGHTS.copy()
        if weights:
            self.weights.update(weights)

    def score(
        self,
        lead,
        buy_boxes: Iterable,
        weights_by_strategy: Optional[Dict[str, Dict[str, int]]] = None,
    ) -> ScoringResult:
        """Score against every box and keep the best match."""
        market_key = determine_market_key(lead)
        if not market_key:
            return ScoringResult(
                lead_tier=self._lead_tier(lead, 0),
                failed_checks=["Could not determine market from lead location"],
            )

        boxes = list(buy_boxes)
        if not boxes:
            return ScoringResult(
                lead_tier=self._lead_tier(lead, 0),
                failed_checks=[f"No active Buy Boxes found for market: {market_key}"],
            )

        best: Optional[ScoringResult] = None
        first: Optional[ScoringResult] = None
        for box in boxes:
            weights = (weights_by_strategy or {}).get(box.strategy or "flip")
            result = self.score_against_buy_box(lead, box, weights)
            if first is None:
                first = result
            if result.score > 0 and (best is None or result.score > best.score):
                best = result

        if best is None:
            # Nothing scored above zero: no match, keep the first box's checks
            return ScoringResult(
                lead_tier=self._lead_tier(lead, 0),
                reasons=first.reasons,
                failed_checks=first.failed_checks,
            )
        return best

    def score_against_buy_box(
        self, lead, box, weights: Optional[Dict[str, int]] = None
    ) -> ScoringResult:
        w = self.weights.copy()
        if weights:
            w.update(weights)

        result = ScoringResult(
            matched_buy_box={"id": box.id, "market_key": box.market_key, "label": box.label},
        )
        intake = lead.dialer_intake or {}

        property_type = normalize_property_type(intake_or_column(lead, "property_type"))
        beds = intake_or_column(lead, "beds")
        baths = intake_or_column(lead, "baths")
        sqft = intake_or_column(lead, "sqft")
        year_built = intake_or_column(lead, "year_built")
        condition = normalize_condition(intake.get("condition_tier"))
        asking_price = intake_or_column(lead, "asking_price")
        arv = lead.arv
        location_text = " ".join(
            filter(None, [intake.get("property_address"), lead.property_address, lead.city])
        ).lower()
        county = (lead.county or "").strip().lower()

        total = 0.0
        earned = 0.0

        # Property type (fail fast)
        total += w["property_type"]
        if box.property_types:
            allowed = [pt.upper() for pt in box.property_types]
            if property_type and property_type.upper() in allowed:
                earned += w["property_type"]
                result.reasons.append("Property type matches Buy Box")
            else:
                result.failed_checks.append(
                    f"Property type mismatch: {property_type or 'unknown'} "
                    f"not in {', '.join(box.property_types)}"
                )
                result.score = 0
                result.grade = Grade.DEAD
                result.lead_tier = self._lead_tier(lead, 0)
                return result
        else:
            earned += w["property_type"]

        # Beds / baths
        total += w["beds_baths"]
        beds_baths_ok = True
        if box.min_beds is not None and (not beds or beds < box.min_beds):
            beds_baths_ok = False
            result.failed_checks.append(f"Beds insufficient: {beds or 'unknown'} < {box.min_beds:g}")
        if box.min_baths is not None and (not baths or baths < box.min_baths):
            beds_baths_ok = False
            result.failed_checks.append(f"Baths insufficient: {baths or 'unknown'} < {box.min_baths:g}")
        if beds_baths_ok:
            earned += w["beds_baths"]
            result.reasons.append(f"Beds/Baths meet requirements ({beds or '?'}/{baths or '?'})")

        # Square footage
        total += w["sqft"]
        if box.min_sqft is not None:
            if sqft and sqft >= box.min_sqft:
                earned += w["sqft"]
                result.reasons.append(f"Square footage meets requirement ({sqft} >= {box.min_sqft})")
            else:
                result.failed_checks.append(
                    f"Square footage insufficient: {sqft or 'unknown'} < {box.min_sqft}"
                )
        else:
            earned += w["sqft"]

        # Year built
        total += w["year_built"]
        if box.min_year_built is not None:
            if year_built and year_built >= box.min_year_built:
                earned += w["year_built"]
                result.reasons.append(
                    f"Year built meets requirement ({year_built} >= {box.min_year_built})"
                )
            else:
                result.failed_checks.append(
                    f"Year built insufficient: {year_built or 'unknown'} < {box.min_year_built}"
                )
        else:
            earned += w["year_built"]

        # Condition
        total += w["condition"]
        if box.condition_allowed:
            allowed_conditions = [normalize_condition(c) for c in box.condition_allowed]
            if condition and condition in allowed_conditions:
                earned += w["condition"]
                result.reasons.append(f"Condition matches allowed types: {condition}")
            else:
                result.failed_checks.append(
                    f"Condition mismatch: {condition or 'unknown'} "
                    f"not in {', '.join(box.condition_allowed)}"
                )
        else:
            earned += w["condition"]

        # Buy price
        total += w["buy_price"]
        if asking_price:
            price_min, price_max = box.buy_price_min, box.buy_price_max
            for city_name, override in (box.city_overrides or {}).items():
                if city_name.lower() in location_text:
                    price_min = override.get("buy_price_min", price_min)
                    price_max = override.get("buy_price_max", price_max)
                    result.reasons.append(f"Using city override for {city_name}")
                    break
            if price_min <= asking_price <= price_max:
                earned += w["buy_price"]
                result.reasons.append(
                    f"Asking price within range: {_money(asking_price)} "
                    f"({_money(price_min)}-{_money(price_max)})"
                )
            else:
                result.failed_checks.append(
                    f"Asking price out of range: {_money(asking_price)} "
                    f"not in {_money(price_min)}-{_money(price_max)}"
                )
        else:
            result.failed_checks.append("Asking price not available")

        # ARV
        total += w["arv"]
        if box.arv_min is not None and box.arv_max is not None:
            if arv and box.arv_min <= arv <= box.arv_max:
                earned += w["arv"]
                result.reasons.append(
                    f"ARV within range: {_money(arv)} ({_money(box.arv_min)}-{_money(box.arv_max)})"
                )
            elif arv:
                result.failed_checks.append(
                    f"ARV out of range: {_money(arv)} not in {_money(box.arv_min)}-{_money(box.arv_max)}"
                )
            else:
                earned += w["arv"] * 0.5
                result.failed_checks.append("ARV not available")
        else:
            earned += w["arv"]

        # Location
        total += w["location"]
        if box.counties:
            counties = [c.strip().lower() for c in box.counties]
            if county and county in counties:
                earned += w["location"]
                result.reasons.append(f"County matches: {county}")
            else:
                result.failed_checks.append(
                    f"County mismatch: {county or 'unknown'} not in {', '.join(box.counties)}"
                )
        else:
            earned += w["location"]

        # Exclusions
        if box.exclusions:
            hits = [e for e in box.exclusions if self._text_matches(lead, e)]
            if hits:
                earned = max(0.0, earned - EXCLUSION_PENALTY)
                result.failed_checks.append(f"Exclusion flags found: {', '.join(hits)}")
            else:
                result.reasons.append("No exclusion flags detected")

        score = round_half_up(earned / total * 100) if total > 0 else 0
        result.score = max(0, min(100, score))
        result.grade = grade_for_score(result.score)
        result.lead_tier = self._lead_tier(lead, result.score)

        if box.requires_positive_cash_flow or (box.strategy or "flip") in CASH_FLOW_STRATEGIES:
            self._apply_cash_flow_cap(lead, box, result)

        return result

    def _apply_cash_flow_cap(self, lead, box, result: ScoringResult):
        """Cash flow or DSCR failure caps the grade at C."""
        cash_flow = calculate_cash_flow(inputs_from_lead(lead, box))
        result.cash_flow = cash_flow.to_dict()

        failed = not cash_flow.cash_flow_pass or (
            cash_flow.dscr is not None and not cash_flow.dscr_pass
        )
        if failed and result.grade in (Grade.A, Grade.B):
            result.grade = Grade.C
            if cash_flow.error:
                result.failed_checks.append(f"Cash flow requirement failed: {cash_flow.error}")
            elif not cash_flow.cash_flow_pass:
                result.failed_checks.append(
                    "Cash flow requirement failed: Monthly cash flow is not positive"
                )
            else:
                result.failed_checks.append(
                    f"DSCR requirement failed: {cash_flow.dscr:.2f} < {cash_flow.required_dscr:.2f}"
                )
        elif not failed:
            result.reasons.append(
                f"Cash flow positive: ${cash_flow.monthly_cash_flow:,.2f}/month"
            )

    @staticmethod
    def _text_matches(lead, phrase: str) -> bool:
        needle = phrase.lower()
        intake = lead.dialer_intake or {}
        description = (lead.description or lead.notes or intake.get("seller_reason") or "").lower()
        if needle in description:
            return True
        return any(needle in (flag or "").lower() for flag in intake.get("red_flags") or [])

    @staticmethod
    def _lead_tier(lead, score: int) -> LeadTier:
        if lead.source == "probate" or score >= 70:
            return LeadTier.HOT
        description = (lead.description or "").lower()
        if (
            (lead.source == "code_violation" and "vacant" in description)
            or (lead.source == "preforeclosure" and (lead.delinquent_amount or 0) > 20000)
            or score >= 50
        ):
            return LeadTier.WARM
        return LeadTier.COLD
