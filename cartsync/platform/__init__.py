"""
Platform — what the cart core consumes from the commerce backend.

    from cartsync import platform as P

    backend: P.CommercePlatform = P.InMemoryCommercePlatform(catalogue)
"""

from __future__ import annotations

from cartsync.platform._protocol import (
    LineInput,
    LineUpdate,
    CheckoutRedirect,
    CommercePlatform,
    MembershipBackend,
)
from cartsync.platform._memory import (
    CatalogueEntry,
    InMemoryCommercePlatform,
    InMemoryMemberships,
)

__all__ = (
    "LineInput",
    "LineUpdate",
    "CheckoutRedirect",
    "CommercePlatform",
    "MembershipBackend",
    "CatalogueEntry",
    "InMemoryCommercePlatform",
    "InMemoryMemberships",
)
