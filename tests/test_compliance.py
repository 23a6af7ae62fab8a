"""Tests for the compliance phrase scan."""

from lead_scoring.compliance import ComplianceChecker, check_compliance


def test_clean_text_has_no_violations():
    result = check_compliance("Seller wants to move closer to family by spring.")
    assert result.has_violations is False
    assert result.violations == []


def test_empty_and_none_text():
    assert check_compliance("").has_violations is False
    assert check_compliance(None).has_violations is False


def test_case_insensitive_substring_match():
    result = check_compliance("I GUARANTEED them a quick close")
    # "guaranteed" contains "guarantee", both are reported
    assert result.violations == ["guarantee", "guaranteed"]


def test_violations_follow_phrase_order_and_are_unique():
    result = check_compliance("This is our final offer, I promise. I promise again. Definitely.")
    assert result.violations == ["definitely", "final offer", "promise"]


def test_custom_phrase_list():
    checker = ComplianceChecker(phrases=["No Risk"])
    assert checker.check("there is no risk at all").violations == ["no risk"]
    assert checker.check("guaranteed").has_violations is False


def test_to_dict():
    assert check_compliance("certainly").to_dict() == {
        "has_violations": True,
        "violations": ["certain", "certainly"],
    }
