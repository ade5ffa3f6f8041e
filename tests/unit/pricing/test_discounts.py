"""
Unit tests for discount rule matching and stacking.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from resort_booking.pricing.discounts import DiscountRule, evaluate_discounts, rule_matches

# 2025-07-04 is a Friday, 2025-07-07 a Monday
FRIDAY = date(2025, 7, 4)
MONDAY = date(2025, 7, 7)


def rule(percent: str, condition_type: str = "ALWAYS", value: object = None, label: str = "") -> DiscountRule:
    return DiscountRule(
        label=label or f"{condition_type} {percent}%",
        percent=Decimal(percent),
        condition_type=condition_type,
        condition_value=value,
    )


@pytest.mark.unit
def test_same_type_discounts_compete_and_different_types_stack() -> None:
    """Two ALWAYS rules keep only the best; a matching WEEKEND rule adds on top."""
    rules = [rule("5"), rule("10"), rule("5", "WEEKEND")]

    result = evaluate_discounts(rules, FRIDAY, date(2025, 7, 6))

    assert result.percent == Decimal("15")
    assert [d.percent for d in result.applied] == [Decimal("10"), Decimal("5")]
    assert result.label is None


@pytest.mark.unit
def test_single_applied_discount_exposes_label() -> None:
    result = evaluate_discounts([rule("12", label="Summer deal")], MONDAY, date(2025, 7, 9))

    assert result.percent == Decimal("12")
    assert result.label == "Summer deal"


@pytest.mark.unit
def test_first_rule_wins_a_tie_within_a_type() -> None:
    rules = [rule("10", label="first"), rule("10", label="second")]

    result = evaluate_discounts(rules, MONDAY, date(2025, 7, 9))

    assert result.label == "first"


@pytest.mark.unit
def test_stacked_discounts_are_capped_at_100() -> None:
    rules = [
        rule("60"),
        rule("50", "MIN_NIGHTS", {"minNights": 2}),
    ]

    result = evaluate_discounts(rules, MONDAY, date(2025, 7, 10))

    assert result.percent == Decimal("100")


@pytest.mark.unit
def test_no_matching_rules_give_zero() -> None:
    result = evaluate_discounts([rule("10", "WEEKEND")], MONDAY, date(2025, 7, 9))

    assert result.percent == Decimal("0")
    assert result.applied == []


@pytest.mark.unit
@pytest.mark.parametrize(
    "check_in, expected",
    [
        (date(2025, 7, 4), True),  # Friday
        (date(2025, 7, 5), True),  # Saturday
        (date(2025, 7, 6), False),  # Sunday
        (date(2025, 7, 7), False),  # Monday
    ],
)
def test_weekend_rule_uses_check_in_day(check_in: date, expected: bool) -> None:
    assert rule_matches(rule("5", "WEEKEND"), check_in, date(2025, 7, 12)) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "check_in, expected",
    [
        (date(2025, 7, 7), True),  # Monday
        (date(2025, 7, 10), True),  # Thursday
        (date(2025, 7, 11), False),  # Friday
        (date(2025, 7, 13), False),  # Sunday
    ],
)
def test_weekday_rule_covers_monday_to_thursday(check_in: date, expected: bool) -> None:
    assert rule_matches(rule("5", "WEEKDAY"), check_in, date(2025, 7, 20)) is expected


@pytest.mark.unit
def test_min_nights_rule() -> None:
    weekly = rule("15", "MIN_NIGHTS", {"minNights": 7})

    assert rule_matches(weekly, MONDAY, date(2025, 7, 14)) is True
    assert rule_matches(weekly, MONDAY, date(2025, 7, 13)) is False


@pytest.mark.unit
def test_date_range_rule_matches_on_overlap() -> None:
    high_season = rule("20", "DATE_RANGE", {"startDate": "2025-07-10", "endDate": "2025-07-20"})

    assert rule_matches(high_season, date(2025, 7, 8), date(2025, 7, 11)) is True
    assert rule_matches(high_season, date(2025, 7, 5), date(2025, 7, 10)) is False


@pytest.mark.unit
def test_json_string_payload_is_parsed() -> None:
    assert rule_matches(rule("5", "MIN_NIGHTS", '{"minNights": 2}'), MONDAY, date(2025, 7, 9))


@pytest.mark.unit
@pytest.mark.parametrize(
    "condition_type, value",
    [
        ("MIN_NIGHTS", None),
        ("MIN_NIGHTS", "not json"),
        ("MIN_NIGHTS", {"nights": 3}),
        ("DATE_RANGE", {"startDate": "2025-07-01"}),
        ("DATE_RANGE", {"startDate": "July", "endDate": "August"}),
        ("SEASONAL", None),
    ],
)
def test_malformed_rules_never_match(condition_type: str, value: object) -> None:
    assert rule_matches(rule("10", condition_type, value), MONDAY, date(2025, 7, 20)) is False


@pytest.mark.unit
def test_inactive_rule_is_ignored() -> None:
    inactive = DiscountRule(
        label="Off", percent=Decimal("10"), condition_type="ALWAYS", is_active=False
    )

    assert evaluate_discounts([inactive], MONDAY, date(2025, 7, 9)).percent == Decimal("0")


@pytest.mark.unit
def test_from_row_converts_percent_to_decimal() -> None:
    parsed = DiscountRule.from_row(
        {"id": 3, "label": "Early bird", "percent": 7.5, "condition_type": "ALWAYS"}
    )

    assert parsed.percent == Decimal("7.5")
    assert parsed.id == 3
    assert parsed.condition_value is None
