"""
External commerce platform contract.

The cart core only ever talks to these protocols; the wire format behind
them is the adapter's business.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from cartsync.benefits import Membership, MembershipStats
from cartsync.cart._types import Cart

# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class LineInput:
    merchandise_id: str
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class LineUpdate:
    line_id: str
    merchandise_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class CheckoutRedirect:
    """Where to send the customer to finish a purchase or renewal."""

    customer_id: str
    checkout_url: str


# ═══════════════════════════════════════════════════════════════════════════════
# Protocols — Adapters Implement These
# ═══════════════════════════════════════════════════════════════════════════════


class CommercePlatform(Protocol):
    """
    Authoritative cart state.

    Example:
        class StorefrontApi:
            async def add_lines(self, cart_id: str, lines: Sequence[LineInput]) -> Cart:
                payload = await self.client.mutate(CART_LINES_ADD, cart_id, lines)
                return to_cart(payload["cart"])
            ...
    """

    async def create_cart(self) -> Cart: ...

    async def get_cart(self, cart_id: str) -> Cart | None:
        """None when the cart no longer exists."""
        ...

    async def add_lines(self, cart_id: str, lines: Sequence[LineInput]) -> Cart: ...

    async def remove_lines(self, cart_id: str, line_ids: Sequence[str]) -> Cart: ...

    async def update_lines(self, cart_id: str, lines: Sequence[LineUpdate]) -> Cart:
        """Quantity 0 removes the line."""
        ...


class MembershipBackend(Protocol):
    async def get_membership(self, customer_id: str) -> Membership | None:
        """None when the customer has no membership at all."""
        ...

    async def get_stats(self, customer_id: str) -> MembershipStats: ...

    async def purchase(self, customer_id: str) -> CheckoutRedirect: ...

    async def renew(self, membership_id: str) -> CheckoutRedirect: ...

    async def cancel(self, membership_id: str) -> Membership: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "LineInput",
    "LineUpdate",
    "CheckoutRedirect",
    "CommercePlatform",
    "MembershipBackend",
)
