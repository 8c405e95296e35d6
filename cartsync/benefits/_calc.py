"""
Benefit calculation — pure, stateless pricing.

Nothing here raises and nothing reads the clock: "now" is always passed in.

    calc = calculate_discount(Decimal("100"), "massage", membership, now=now)
    calc.final_price   # Decimal("85.00")
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Protocol

from cartsync.benefits._types import (
    RENEWAL_WINDOW_DAYS,
    ZERO,
    DiscountCalculation,
    Membership,
    MembershipStatus,
    MembershipValidation,
)

CENT = Decimal("0.01")

# ═══════════════════════════════════════════════════════════════════════════════
# Membership Status
# ═══════════════════════════════════════════════════════════════════════════════


def is_expired(membership: Membership, *, now: datetime) -> bool:
    return membership.status is MembershipStatus.EXPIRED or membership.expires_at <= now


def is_active(membership: Membership | None, *, now: datetime) -> bool:
    if membership is None:
        return False
    return membership.status is MembershipStatus.ACTIVE and membership.expires_at > now


def days_until_expiration(membership: Membership, *, now: datetime) -> int:
    seconds = (membership.expires_at - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def validate_membership(membership: Membership | None, *, now: datetime) -> MembershipValidation:
    """Full status check with renewal hint and human-readable errors."""
    if membership is None:
        return MembershipValidation(
            is_valid=False,
            is_active=False,
            is_expired=False,
            days_until_expiration=0,
            requires_renewal=False,
            errors=("No membership found",),
        )

    active = is_active(membership, now=now)
    expired = is_expired(membership, now=now)
    days = days_until_expiration(membership, now=now)

    errors: list[str] = []
    if expired:
        errors.append("Membership has expired")
    elif membership.status is not MembershipStatus.ACTIVE:
        errors.append("Membership is not active")

    return MembershipValidation(
        is_valid=active,
        is_active=active,
        is_expired=expired,
        days_until_expiration=days,
        requires_renewal=expired or (active and days <= RENEWAL_WINDOW_DAYS),
        errors=tuple(errors),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Pricing
# ═══════════════════════════════════════════════════════════════════════════════


def _to_decimal(value: Decimal | int | float | str) -> Decimal | None:
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _clamp_percentage(pct: Decimal) -> Decimal:
    if not pct.is_finite() or pct < 0:
        return ZERO
    return min(pct, Decimal("1"))


def calculate_discount(
    price: Decimal | int | float | str,
    service_id: str | None,
    membership: Membership | None,
    *,
    now: datetime,
) -> DiscountCalculation:
    """
    Membership discount for one unit price.

    Zero discount when the membership is absent, inactive or expired, when
    the service is not eligible, or when the price is not a finite,
    non-negative number. Amounts are rounded half-up to cents.
    """
    amount = _to_decimal(price)
    if amount is None:
        return DiscountCalculation.none(ZERO)
    if amount < 0:
        return DiscountCalculation.none(amount)
    if membership is None or service_id is None or not is_active(membership, now=now):
        return DiscountCalculation.none(amount)

    benefits = membership.benefits
    if service_id not in benefits.eligible_services:
        return DiscountCalculation.none(amount)

    pct = _clamp_percentage(benefits.discount_percentage)
    discount = min((amount * pct).quantize(CENT, rounding=ROUND_HALF_UP), amount)
    return DiscountCalculation(
        original_price=amount,
        discount_amount=discount,
        final_price=amount - discount,
        discount_percentage=pct,
        savings=discount,
    )


def is_eligible_for_free_delivery(membership: Membership | None, *, now: datetime) -> bool:
    return is_active(membership, now=now)


# ═══════════════════════════════════════════════════════════════════════════════
# Product Classification
# ═══════════════════════════════════════════════════════════════════════════════

_SERVICE_BY_HANDLE: dict[str, str] = {
    "home-massage-spa": "massage",
    "massage-therapy": "massage",
    "spa-services": "massage",
    "ems-training": "ems",
    "personal-training": "ems",
    "fitness-training": "ems",
    "home-yoga": "yoga",
    "yoga-sessions": "yoga",
    "wellness-yoga": "yoga",
    "cosmetics-supplements": "supplements",
    "health-supplements": "supplements",
    "beauty-cosmetics": "supplements",
}


class Classifiable(Protocol):
    @property
    def handle(self) -> str: ...

    @property
    def service_id(self) -> str | None: ...


def service_for_handle(handle: str) -> str | None:
    """Known product handle → service id, None for everything else."""
    return _SERVICE_BY_HANDLE.get(handle.strip().lower())


def classify_product(product: Classifiable) -> str | None:
    """Explicit service id wins; otherwise derived from the handle."""
    if product.service_id:
        return product.service_id
    return service_for_handle(product.handle)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CENT",
    "is_active",
    "is_expired",
    "days_until_expiration",
    "validate_membership",
    "calculate_discount",
    "is_eligible_for_free_delivery",
    "service_for_handle",
    "classify_product",
    "Classifiable",
)
