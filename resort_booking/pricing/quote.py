"""Itemized stay pricing. All amounts are Decimal, rounded half-up to cents."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from math import ceil
from typing import Union

from resort_booking.errors import BookingValidationError

Number = Union[Decimal, int, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")


def round_money(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def units_required(guests: int, max_guests_per_unit: int) -> int:
    """
    Number of units needed to house a party.

    Example:
        >>> units_required(7, 6)
        2
    """
    if guests < 1:
        raise BookingValidationError("At least one guest is required")
    if max_guests_per_unit < 1:
        raise BookingValidationError("Collection has no guest capacity configured")
    return ceil(guests / max_guests_per_unit)


@dataclass(frozen=True)
class PriceBreakdown:
    nightly_rate: Decimal
    original_nightly_rate: Decimal
    nights: int
    units: int
    subtotal: Decimal
    original_subtotal: Decimal
    cleaning_fee: Decimal
    service_fee: Decimal
    total_price: Decimal
    original_total_price: Decimal
    discount_percent: Decimal


def calculate_price(
    base_nightly_rate: Number,
    nights: int,
    cleaning_fee: Number,
    service_fee_percent: Number,
    discount_percent: Number = 0,
    units: int = 1,
) -> PriceBreakdown:
    """
    Price a stay for one or more units.

    The subtotal is computed from the unrounded discounted rate and rounded
    once, so original_subtotal - subtotal stays within a cent of the exact
    discount. The service fee is a percent of the rounded discounted subtotal.

    Args:
        base_nightly_rate: Undiscounted rate per unit per night.
        nights: Number of nights, at least 1.
        cleaning_fee: Per-unit cleaning fee.
        service_fee_percent: Service fee as a percent of the subtotal.
        discount_percent: Combined discount percent from evaluate_discounts.
        units: Units booked.

    Returns:
        PriceBreakdown: Itemized price.

    Example:
        >>> calculate_price(100, 3, 50, 10).total_price
        Decimal('380.00')
    """
    if nights < 1:
        raise BookingValidationError("Stay must be at least one night")
    if units < 1:
        raise BookingValidationError("At least one unit is required")

    base = Decimal(str(base_nightly_rate))
    fee_percent = Decimal(str(service_fee_percent))
    discount = Decimal(str(discount_percent))
    multiplier = (HUNDRED - discount) / HUNDRED

    discounted_rate = base * multiplier
    subtotal = round_money(discounted_rate * nights * units)
    original_subtotal = round_money(base * nights * units)
    total_cleaning = round_money(Decimal(str(cleaning_fee)) * units)

    service_fee = round_money(subtotal * fee_percent / HUNDRED)
    original_service_fee = round_money(original_subtotal * fee_percent / HUNDRED)

    return PriceBreakdown(
        nightly_rate=round_money(discounted_rate),
        original_nightly_rate=round_money(base),
        nights=nights,
        units=units,
        subtotal=subtotal,
        original_subtotal=original_subtotal,
        cleaning_fee=total_cleaning,
        service_fee=service_fee,
        total_price=subtotal + total_cleaning + service_fee,
        original_total_price=original_subtotal + total_cleaning + original_service_fee,
        discount_percent=discount,
    )


def referral_discount_amount(total_price: Number, percent: Number) -> Decimal:
    """Referral discount granted to a guest arriving through an active affiliate link."""
    return round_money(Decimal(str(total_price)) * Decimal(str(percent)) / HUNDRED)


@dataclass(frozen=True)
class ReferralAdjustedTotal:
    payable_total: Decimal
    referral_discount: Decimal
    pre_referral_total: Decimal


def apply_referral_discount(total_price: Number, referral_discount: Number) -> ReferralAdjustedTotal:
    """
    Subtract a referral discount from a quoted total.

    The pre-referral total is kept because commission is computed on it, not
    on what the guest paid. The payable total never goes below zero.
    """
    total = round_money(total_price)
    amount = round_money(referral_discount)
    return ReferralAdjustedTotal(
        payable_total=max(ZERO, total - amount),
        referral_discount=amount,
        pre_referral_total=total,
    )
