"""
Lead decision core for the Rapid Offer pipeline.

This module provides the pure, storage-free pieces of the pipeline:
- Compliance checking of dialer notes
- Buy-box scoring (0-100 scale) and grading (A, B, C, D, Dead)
- Cash flow evaluation for buy & hold and commercial boxes
- Deal routing (route, priority, SLA)
- Offer lane classification
"""

from .compliance import ComplianceChecker, ComplianceResult, check_compliance
from .cash_flow import CashFlowInputs, CashFlowResult, calculate_cash_flow
from .scoring_model import LeadScorer, ScoringResult, Grade, LeadTier, grade_for_score
from .lead_router import DealRouter, RoutingDecision, Route, PriorityLevel
from .offer_lane import OfferLane, OfferLaneSuggestion, classify_offer_lane

__all__ = [
    "ComplianceChecker",
    "ComplianceResult",
    "check_compliance",
    "CashFlowInputs",
    "CashFlowResult",
    "calculate_cash_flow",
    "LeadScorer",
    "ScoringResult",
    "Grade",
    "LeadTier",
    "grade_for_score",
    "DealRouter",
    "RoutingDecision",
    "Route",
    "PriorityLevel",
    "OfferLane",
    "OfferLaneSuggestion",
    "classify_offer_lane",
]
