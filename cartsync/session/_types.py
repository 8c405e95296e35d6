"""
Enhanced cart — a Cart plus its membership benefit projection.

Derived on every cart or membership change. Never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from cartsync._errors import CommerceError
from cartsync.benefits import (
    STANDARD_DELIVERY_COST,
    ZERO,
    MembershipStatus,
    MembershipValidation,
)
from cartsync.cart import Cart

# ═══════════════════════════════════════════════════════════════════════════════
# Benefit Projection
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ServiceDiscount:
    """Discount applied to one cart line. Amounts are line totals."""

    line_id: str | None
    merchandise_id: str
    product_handle: str
    service_id: str
    quantity: int
    unit_discount: Decimal
    original_price: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    final_price: Decimal


@dataclass(frozen=True, slots=True)
class DeliveryInfo:
    is_free: bool
    reason: str
    original_cost: Decimal | None = None

    @staticmethod
    def for_member(free: bool) -> DeliveryInfo:
        if free:
            return DeliveryInfo(is_free=True, reason="Member Benefit", original_cost=STANDARD_DELIVERY_COST)
        return DeliveryInfo(is_free=False, reason="Standard Delivery")


@dataclass(frozen=True, slots=True)
class MembershipCartBenefits:
    service_discounts: tuple[ServiceDiscount, ...]
    free_delivery: bool
    total_savings: Decimal
    membership_status: MembershipStatus
    validation_errors: tuple[str, ...] = ()

    @staticmethod
    def none(errors: tuple[str, ...] = ()) -> MembershipCartBenefits:
        return MembershipCartBenefits(
            service_discounts=(),
            free_delivery=False,
            total_savings=ZERO,
            membership_status=MembershipStatus.NONE,
            validation_errors=errors,
        )


@dataclass(frozen=True, slots=True)
class EnhancedCart:
    cart: Cart
    benefits: MembershipCartBenefits
    delivery: DeliveryInfo

    @property
    def discounted_total(self) -> Decimal:
        return max(ZERO, self.cart.total - self.benefits.total_savings)


# ═══════════════════════════════════════════════════════════════════════════════
# Reports
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class BenefitsSummary:
    has_discounts: bool
    has_free_delivery: bool
    total_savings: Decimal
    discount_count: int
    status_message: str


@dataclass(frozen=True, slots=True)
class StatusCheck:
    """
    Outcome of a backend membership re-check.

    completed=False means the check could not run; `warning` says why and the
    caller decides whether to proceed. It is never raised.
    """

    completed: bool
    validation: MembershipValidation | None = None
    warning: CommerceError | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ServiceDiscount",
    "DeliveryInfo",
    "MembershipCartBenefits",
    "EnhancedCart",
    "BenefitsSummary",
    "StatusCheck",
)
