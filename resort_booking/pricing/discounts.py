"""
Conditional discount evaluation.

Rules of the same condition type compete (highest percent wins); winners of
different condition types stack by addition.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import structlog

from resort_booking.models.enums import DiscountCondition
from resort_booking.utils.datetime import nights_between

logger = structlog.get_logger(__name__)

FRIDAY, SATURDAY = 4, 5
MAX_DISCOUNT_PERCENT = Decimal("100")


@dataclass(frozen=True)
class DiscountRule:
    label: str
    percent: Decimal
    condition_type: str
    condition_value: Optional[Any] = None
    is_active: bool = True
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "DiscountRule":
        return cls(
            id=row.get("id"),
            label=row["label"],
            percent=Decimal(str(row["percent"])),
            condition_type=row["condition_type"],
            condition_value=row.get("condition_value"),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass(frozen=True)
class AppliedDiscount:
    label: str
    percent: Decimal
    condition_type: str


@dataclass(frozen=True)
class DiscountResult:
    applied: list[AppliedDiscount] = field(default_factory=list)
    percent: Decimal = Decimal("0")

    @property
    def label(self) -> Optional[str]:
        """Display label, only when exactly one discount applies."""
        return self.applied[0].label if len(self.applied) == 1 else None


def _payload(value: Any) -> Optional[dict[str, Any]]:
    # Older rows stored the payload as a JSON string
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def rule_matches(rule: DiscountRule, check_in: date, check_out: date) -> bool:
    """
    Test a single rule against a stay.

    Malformed payloads never match; they are logged and skipped.

    Args:
        rule (DiscountRule): Rule to test.
        check_in (date): First night.
        check_out (date): Departure day.

    Returns:
        bool: True if the rule applies to the stay.
    """
    if not rule.is_active:
        return False

    condition = rule.condition_type
    try:
        if condition == DiscountCondition.ALWAYS.value:
            return True

        if condition == DiscountCondition.MIN_NIGHTS.value:
            payload = _payload(rule.condition_value)
            if payload is None or "minNights" not in payload:
                raise ValueError("missing minNights")
            return nights_between(check_in, check_out) >= int(payload["minNights"])

        if condition == DiscountCondition.DATE_RANGE.value:
            payload = _payload(rule.condition_value)
            if payload is None:
                raise ValueError("missing date range")
            range_start = date.fromisoformat(payload["startDate"])
            range_end = date.fromisoformat(payload["endDate"])
            return check_in < range_end and check_out > range_start

        if condition == DiscountCondition.WEEKEND.value:
            return check_in.weekday() in (FRIDAY, SATURDAY)

        if condition == DiscountCondition.WEEKDAY.value:
            return check_in.weekday() <= 3
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(
            "discount_rule_malformed",
            discount_id=rule.id,
            condition_type=condition,
            error=str(e),
        )
        return False

    logger.warning("discount_rule_unknown_condition", discount_id=rule.id, condition_type=condition)
    return False


def evaluate_discounts(
    rules: Iterable[DiscountRule], check_in: date, check_out: date
) -> DiscountResult:
    """
    Combine the matching rules into one discount percent.

    Within a condition type only the highest percent counts (first rule wins a
    tie); the per-type winners are summed. The sum is capped at 100.

    Example:
        Two ALWAYS rules at 5% and 10% plus a matching WEEKEND rule at 5%
        give 10 + 5 = 15%.

    Returns:
        DiscountResult: Winning discounts, in first-seen type order, and the total percent.
    """
    best_by_type: dict[str, AppliedDiscount] = {}
    for rule in rules:
        if not rule_matches(rule, check_in, check_out):
            continue
        try:
            percent = Decimal(str(rule.percent))
        except InvalidOperation:
            logger.warning("discount_rule_bad_percent", discount_id=rule.id, percent=rule.percent)
            continue
        if percent <= 0:
            continue

        current = best_by_type.get(rule.condition_type)
        if current is None or percent > current.percent:
            best_by_type[rule.condition_type] = AppliedDiscount(
                label=rule.label, percent=percent, condition_type=rule.condition_type
            )

    applied = list(best_by_type.values())
    total = sum((d.percent for d in applied), Decimal("0"))
    return DiscountResult(applied=applied, percent=min(total, MAX_DISCOUNT_PERCENT))
