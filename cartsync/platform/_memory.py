"""
In-memory platform and membership backend.

Authoritative fakes for tests and examples, with failure injection and
pausable operations:

    platform = InMemoryCommercePlatform({"gid://variant/1": CatalogueEntry(Decimal("100"), product)})
    platform.fail_next("remove_lines", times=3)      # ConnectionError x3
    gate = platform.pause("add_lines")               # calls wait on gate.set()
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import timedelta
from decimal import Decimal

from cartsync._errors import Errors
from cartsync._types import Clock, utc_now
from cartsync.benefits import Membership, MembershipStats, MembershipStatus
from cartsync.cart._types import Cart, CartLine, ProductSummary
from cartsync.platform._protocol import CheckoutRedirect, LineInput, LineUpdate

# ═══════════════════════════════════════════════════════════════════════════════
# Failure Injection
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class _Faults:
    pending: dict[str, list[Exception]] = field(default_factory=dict)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def enter(self, operation: str) -> None:
        self.calls.append(operation)
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        queue = self.pending.get(operation)
        if queue:
            raise queue.pop(0)


class _Injectable:
    _faults: _Faults
    latency: float

    def fail_next(self, operation: str, times: int = 1, exc: Exception | None = None) -> None:
        """Make the next `times` calls of operation raise exc."""
        error = exc if exc is not None else ConnectionError("network unreachable")
        self._faults.pending.setdefault(operation, []).extend([error] * times)

    def pause(self, operation: str) -> asyncio.Event:
        """Block calls of operation until the returned event is set."""
        gate = asyncio.Event()
        self._faults.gates[operation] = gate
        return gate

    def resume(self, operation: str) -> None:
        gate = self._faults.gates.pop(operation, None)
        if gate is not None:
            gate.set()

    def calls(self, operation: str | None = None) -> list[str]:
        if operation is None:
            return list(self._faults.calls)
        return [c for c in self._faults.calls if c == operation]

    async def _enter(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        await self._faults.enter(operation)


# ═══════════════════════════════════════════════════════════════════════════════
# Commerce Platform
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CatalogueEntry:
    price: Decimal
    product: ProductSummary


class InMemoryCommercePlatform(_Injectable):
    def __init__(
        self,
        catalogue: Mapping[str, CatalogueEntry] | None = None,
        *,
        currency: str = "AED",
        latency: float = 0.0,
    ) -> None:
        self.catalogue: dict[str, CatalogueEntry] = dict(catalogue or {})
        self.currency = currency
        self.latency = latency
        self.carts: dict[str, Cart] = {}
        self._faults = _Faults()
        self._cart_ids = itertools.count(1)
        self._line_ids = itertools.count(1)

    def _store(self, cart_id: str, lines: Sequence[CartLine]) -> Cart:
        cart = Cart.from_lines(
            tuple(lines),
            id=cart_id,
            currency=self.currency,
            checkout_url=f"https://checkout.example/{cart_id}",
        )
        self.carts[cart_id] = cart
        return cart

    def _cart(self, cart_id: str) -> Cart:
        cart = self.carts.get(cart_id)
        if cart is None:
            raise Errors.not_found("Cart", cart_id)
        return cart

    async def create_cart(self) -> Cart:
        await self._enter("create_cart")
        return self._store(f"cart_{next(self._cart_ids)}", ())

    async def get_cart(self, cart_id: str) -> Cart | None:
        await self._enter("get_cart")
        return self.carts.get(cart_id)

    async def add_lines(self, cart_id: str, lines: Sequence[LineInput]) -> Cart:
        await self._enter("add_lines")
        current = list(self._cart(cart_id).lines)
        for item in lines:
            entry = self.catalogue.get(item.merchandise_id)
            if entry is None:
                raise Errors.validation("merchandise_id", item.merchandise_id, "known merchandise")
            if item.quantity < 1:
                raise Errors.validation("quantity", item.quantity, ">= 1")
            for i, line in enumerate(current):
                if line.merchandise_id == item.merchandise_id:
                    current[i] = line.with_quantity(line.quantity + item.quantity)
                    break
            else:
                current.append(CartLine.create(
                    item.merchandise_id,
                    quantity=item.quantity,
                    unit_price=entry.price,
                    product=entry.product,
                    id=f"line_{next(self._line_ids)}",
                    currency=self.currency,
                ))
        return self._store(cart_id, current)

    async def remove_lines(self, cart_id: str, line_ids: Sequence[str]) -> Cart:
        await self._enter("remove_lines")
        doomed = set(line_ids)
        kept = [line for line in self._cart(cart_id).lines if line.id not in doomed]
        return self._store(cart_id, kept)

    async def update_lines(self, cart_id: str, lines: Sequence[LineUpdate]) -> Cart:
        await self._enter("update_lines")
        current = list(self._cart(cart_id).lines)
        for item in lines:
            index = next((i for i, line in enumerate(current) if line.id == item.line_id), None)
            if index is None:
                raise Errors.line_not_found(item.merchandise_id, item.line_id)
            if item.quantity <= 0:
                del current[index]
            else:
                current[index] = current[index].with_quantity(item.quantity)
        return self._store(cart_id, current)


# ═══════════════════════════════════════════════════════════════════════════════
# Membership Backend
# ═══════════════════════════════════════════════════════════════════════════════


class InMemoryMemberships(_Injectable):
    def __init__(
        self,
        memberships: Mapping[str, Membership] | None = None,
        *,
        clock: Clock = utc_now,
        latency: float = 0.0,
    ) -> None:
        self.memberships: dict[str, Membership] = dict(memberships or {})
        self.stats: dict[str, MembershipStats] = {}
        self.clock = clock
        self.latency = latency
        self._faults = _Faults()

    def _by_id(self, membership_id: str) -> Membership:
        for membership in self.memberships.values():
            if membership.id == membership_id:
                return membership
        raise Errors.not_found("Membership", membership_id)

    async def get_membership(self, customer_id: str) -> Membership | None:
        await self._enter("get_membership")
        return self.memberships.get(customer_id)

    async def get_stats(self, customer_id: str) -> MembershipStats:
        await self._enter("get_stats")
        return self.stats.get(customer_id) or MembershipStats.zero(self.clock())

    async def purchase(self, customer_id: str) -> CheckoutRedirect:
        await self._enter("purchase")
        return CheckoutRedirect(
            customer_id=customer_id,
            checkout_url=f"https://checkout.example/membership/{customer_id}",
        )

    async def renew(self, membership_id: str) -> CheckoutRedirect:
        await self._enter("renew")
        membership = self._by_id(membership_id)
        now = self.clock()
        start = max(now, membership.expires_at)
        self.memberships[membership.customer_id] = replace(
            membership,
            status=MembershipStatus.ACTIVE,
            expires_at=start + timedelta(days=365),
        )
        return CheckoutRedirect(
            customer_id=membership.customer_id,
            checkout_url=f"https://checkout.example/membership/{membership_id}/renew",
        )

    async def cancel(self, membership_id: str) -> Membership:
        await self._enter("cancel")
        membership = self._by_id(membership_id)
        cancelled = replace(membership, status=MembershipStatus.EXPIRED, expires_at=self.clock())
        self.memberships[membership.customer_id] = cancelled
        return cancelled


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CatalogueEntry",
    "InMemoryCommercePlatform",
    "InMemoryMemberships",
)
