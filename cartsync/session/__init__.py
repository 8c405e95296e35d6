"""
Session — membership-aware cart for one customer.

    from cartsync import session as S

    s = S.session(platform).memberships(backend).customer("c-1").build()
    result = await s.benefits.add_to_cart_with_benefits(merchandise_id, unit_price=price, product=p)
"""

from __future__ import annotations

from cartsync.session._types import (
    ServiceDiscount,
    DeliveryInfo,
    MembershipCartBenefits,
    EnhancedCart,
    BenefitsSummary,
    StatusCheck,
)
from cartsync.session._service import EnhancedListener, MembershipCart
from cartsync.session._builder import CartSession, SessionBuilder, session

__all__ = (
    "ServiceDiscount",
    "DeliveryInfo",
    "MembershipCartBenefits",
    "EnhancedCart",
    "BenefitsSummary",
    "StatusCheck",
    "EnhancedListener",
    "MembershipCart",
    "CartSession",
    "SessionBuilder",
    "session",
)
