"""Tests for the offer lane classifier."""

import pytest

from lead_scoring.offer_lane import OfferLane, classify_offer_lane, equity_percent


@pytest.fixture
def intake():
    return {
        "asking_price": 150000,
        "mortgage_free_and_clear": "no",
        "mortgage_balance": 100000,
        "mortgage_current": "yes",
        "seller_flexibility": "terms",
        "motivation_rating": 4,
        "condition_tier": "medium",
        "occupancy_type": "vacant",
    }


def test_missing_fields_give_unknown():
    result = classify_offer_lane({"mortgage_free_and_clear": "unknown", "motivation_rating": 3})
    assert result.suggestion == OfferLane.UNKNOWN
    assert result.missing_fields == ["mortgage_free_and_clear", "mortgage_current", "seller_flexibility"]


def test_none_intake():
    assert classify_offer_lane(None).suggestion == OfferLane.UNKNOWN


def test_free_and_clear_is_seller_finance(intake):
    intake["mortgage_free_and_clear"] = "yes"
    assert classify_offer_lane(intake).suggestion == OfferLane.SELLERFINANCE


def test_low_equity_is_subto(intake):
    intake["mortgage_balance"] = 135000
    result = classify_offer_lane(intake)
    assert result.suggestion == OfferLane.SUBTO
    assert result.reasons == ["Low equity (10%)"]


def test_price_flexible_low_motivation_is_novation(intake):
    intake.update(seller_flexibility="price", motivation_rating=2)
    assert classify_offer_lane(intake).suggestion == OfferLane.NOVATION


def test_motivated_heavy_rehab_is_cash(intake):
    intake.update(condition_tier="heavy", motivation_rating=5)
    assert classify_offer_lane(intake).suggestion == OfferLane.CASH


def test_terms_with_vacant_is_lease_option(intake):
    assert classify_offer_lane(intake).suggestion == OfferLane.LEASEOPTION


def test_current_mortgage_moderate_equity_is_subto(intake):
    intake.update(occupancy_type="owner")
    assert classify_offer_lane(intake).suggestion == OfferLane.SUBTO


def test_no_rule_matches(intake):
    intake.update(occupancy_type="owner", mortgage_balance=10000)
    result = classify_offer_lane(intake)
    assert result.suggestion == OfferLane.UNKNOWN
    assert result.missing_fields == []


def test_equity_needs_price_and_balance():
    assert equity_percent({"asking_price": 200000, "mortgage_balance": 50000}) == 75
    assert equity_percent({"asking_price": 200000}) is None
    assert equity_percent({"mortgage_balance": 1}) is None
