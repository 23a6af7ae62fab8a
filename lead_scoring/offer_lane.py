"""
Offer lane classifier.

Suggests how a deal should be structured (cash, subject-to, seller finance,
novation, lease option) from the dialer's intake answers.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class OfferLane(str, Enum):
    CASH = "cash"
    SUBTO = "subto"
    SELLERFINANCE = "sellerfinance"
    NOVATION = "novation"
    LEASEOPTION = "leaseoption"
    UNKNOWN = "unknown"


HEAVY_CONDITIONS = ("heavy", "4", "5")


@dataclass
class OfferLaneSuggestion:
    suggestion: OfferLane = OfferLane.UNKNOWN
    reasons: List[str] = field(default_factory=list)
    missing_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestion": self.suggestion.value,
            "reasons": self.reasons,
            "missing_fields": self.missing_fields,
        }


def _known(value) -> bool:
    return value not in (None, "", "unknown")


def equity_percent(intake: Dict[str, Any]) -> Optional[float]:
    """Equity as a percent of asking price, or None when it cannot be computed."""
    price = intake.get("asking_price")
    balance = intake.get("mortgage_balance")
    if not price or balance is None:
        return None
    return (price - balance) / price * 100


def classify_offer_lane(intake: Optional[Dict[str, Any]]) -> OfferLaneSuggestion:
    """Rules are checked in order; the first that applies wins."""
    intake = intake or {}
    free_and_clear = intake.get("mortgage_free_and_clear")
    current = intake.get("mortgage_current")
    flexibility = intake.get("seller_flexibility")
    motivation = intake.get("motivation_rating")
    condition = str(intake.get("condition_tier") or "").lower()
    occupancy = intake.get("occupancy_type")

    missing = []
    if not _known(free_and_clear):
        missing.append("mortgage_free_and_clear")
    if not _known(current):
        missing.append("mortgage_current")
    if not _known(flexibility):
        missing.append("seller_flexibility")
    if not motivation:
        missing.append("motivation_rating")
    if missing:
        return OfferLaneSuggestion(
            reasons=["Not enough intake data to suggest a lane"],
            missing_fields=missing,
        )

    if free_and_clear == "yes":
        return OfferLaneSuggestion(
            OfferLane.SELLERFINANCE, ["Property is free and clear; seller can carry the note"]
        )

    equity = equity_percent(intake)
    if equity is not None and equity < 20:
        return OfferLaneSuggestion(OfferLane.SUBTO, [f"Low equity ({equity:.0f}%)"])

    if flexibility == "price" and motivation < 3:
        return OfferLaneSuggestion(
            OfferLane.NOVATION, ["Seller is firm on terms but flexible on price with low motivation"]
        )

    if motivation >= 4 and condition in HEAVY_CONDITIONS:
        return OfferLaneSuggestion(
            OfferLane.CASH, [f"High motivation ({motivation}/5) and heavy rehab"]
        )

    if flexibility in ("terms", "both") and occupancy in ("tenant", "vacant"):
        return OfferLaneSuggestion(
            OfferLane.LEASEOPTION, [f"Terms flexibility with {occupancy} occupancy"]
        )

    if current == "yes" and equity is not None and equity < 50:
        return OfferLaneSuggestion(
            OfferLane.SUBTO, [f"Mortgage current with moderate equity ({equity:.0f}%)"]
        )

    return OfferLaneSuggestion(reasons=["No lane rule matched"])
