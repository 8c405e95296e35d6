"""
Membership and pricing types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

# ═══════════════════════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_DISCOUNT_PERCENTAGE = Decimal("0.15")
DEFAULT_ELIGIBLE_SERVICES: frozenset[str] = frozenset({"massage", "ems", "yoga", "supplements"})
STANDARD_DELIVERY_COST = Decimal("25")
RENEWAL_WINDOW_DAYS = 30

ZERO = Decimal("0")


# ═══════════════════════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════════════════════


class MembershipStatus(Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class MembershipBenefits:
    """Benefit descriptor. Percentage is a fraction in [0, 1]."""

    discount_percentage: Decimal = DEFAULT_DISCOUNT_PERCENTAGE
    free_delivery: bool = True
    eligible_services: frozenset[str] = DEFAULT_ELIGIBLE_SERVICES


@dataclass(frozen=True, slots=True)
class Membership:
    """
    Membership record as the backend reports it.

    is_cached / is_degraded are set only by the resilience layer:
    a cached copy came from the snapshot store, a degraded one was
    synthesized because the backend was unreachable.
    """

    id: str
    customer_id: str
    status: MembershipStatus
    started_at: datetime
    expires_at: datetime
    benefits: MembershipBenefits = field(default_factory=MembershipBenefits)
    is_cached: bool = False
    is_degraded: bool = False


@dataclass(frozen=True, slots=True)
class MembershipStats:
    total_savings: Decimal
    services_used: int
    orders_with_free_delivery: int
    member_since: datetime
    average_order_value: Decimal
    total_orders: int

    @staticmethod
    def zero(now: datetime) -> MembershipStats:
        """Conservative stats used when nothing better is known."""
        return MembershipStats(
            total_savings=ZERO,
            services_used=0,
            orders_with_free_delivery=0,
            member_since=now,
            average_order_value=ZERO,
            total_orders=0,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Derived Values
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class DiscountCalculation:
    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    discount_percentage: Decimal
    savings: Decimal

    @staticmethod
    def none(price: Decimal) -> DiscountCalculation:
        return DiscountCalculation(
            original_price=price,
            discount_amount=ZERO,
            final_price=price,
            discount_percentage=ZERO,
            savings=ZERO,
        )

    @property
    def applied(self) -> bool:
        return self.discount_amount > 0


@dataclass(frozen=True, slots=True)
class MembershipValidation:
    is_valid: bool
    is_active: bool
    is_expired: bool
    days_until_expiration: int
    requires_renewal: bool
    errors: tuple[str, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "DEFAULT_DISCOUNT_PERCENTAGE",
    "DEFAULT_ELIGIBLE_SERVICES",
    "STANDARD_DELIVERY_COST",
    "RENEWAL_WINDOW_DAYS",
    "ZERO",
    "MembershipStatus",
    "MembershipBenefits",
    "Membership",
    "MembershipStats",
    "DiscountCalculation",
    "MembershipValidation",
)
