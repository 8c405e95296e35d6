"""
Benefits — stateless membership pricing.

    from cartsync import benefits as B

    calc = B.calculate_discount(Decimal("100"), "massage", membership, now=now)
    free = B.is_eligible_for_free_delivery(membership, now=now)
"""

from __future__ import annotations

from cartsync.benefits._types import (
    DEFAULT_DISCOUNT_PERCENTAGE,
    DEFAULT_ELIGIBLE_SERVICES,
    STANDARD_DELIVERY_COST,
    RENEWAL_WINDOW_DAYS,
    ZERO,
    MembershipStatus,
    MembershipBenefits,
    Membership,
    MembershipStats,
    DiscountCalculation,
    MembershipValidation,
)
from cartsync.benefits._calc import (
    CENT,
    is_active,
    is_expired,
    days_until_expiration,
    validate_membership,
    calculate_discount,
    is_eligible_for_free_delivery,
    service_for_handle,
    classify_product,
)

__all__ = (
    "DEFAULT_DISCOUNT_PERCENTAGE",
    "DEFAULT_ELIGIBLE_SERVICES",
    "STANDARD_DELIVERY_COST",
    "RENEWAL_WINDOW_DAYS",
    "ZERO",
    "CENT",
    "MembershipStatus",
    "MembershipBenefits",
    "Membership",
    "MembershipStats",
    "DiscountCalculation",
    "MembershipValidation",
    "is_active",
    "is_expired",
    "days_until_expiration",
    "validate_membership",
    "calculate_discount",
    "is_eligible_for_free_delivery",
    "service_for_handle",
    "classify_product",
)
