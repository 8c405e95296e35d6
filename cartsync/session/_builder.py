"""
Session builder — fluent API.

One CartSession per customer session, passed explicitly to whatever needs
it. Nothing here is a module-level singleton.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from cartsync._types import Clock, utc_now
from cartsync.benefits import Membership
from cartsync.cart import Cart, OptimisticCart, RollbackPolicy
from cartsync.platform import CommercePlatform, MembershipBackend
from cartsync.resilience import Connectivity, KeyValueStore, Resilience, ResiliencePolicy
from cartsync.session._service import MembershipCart

# ═══════════════════════════════════════════════════════════════════════════════
# Cart Session
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartSession:
    """The cart-session handle: state machine, benefit view, resilience."""

    cart: OptimisticCart
    benefits: MembershipCart
    resilience: Resilience

    async def close(self) -> None:
        """Let in-flight reconciliations finish, then detach the benefit view."""
        await self.cart.settle()
        self.benefits.close()


# ═══════════════════════════════════════════════════════════════════════════════
# Session Builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SessionBuilder:
    """
    Fluent session builder.

    Example:
        s = (
            session(platform)
            .memberships(backend)
            .store(FileStore(cache_dir))
            .policy(ResiliencePolicy().with_retries(3))
            .customer("c-1")
            .build()
        )
    """

    _platform: CommercePlatform
    _memberships: MembershipBackend | None = None
    _store: KeyValueStore | None = None
    _policy: ResiliencePolicy = field(default_factory=ResiliencePolicy)
    _rollback: RollbackPolicy = RollbackPolicy.KEEP
    _connectivity: Connectivity | None = None
    _clock: Clock = utc_now
    _customer_id: str | None = None
    _membership: Membership | None = None
    _cart: Cart | None = None

    def memberships(self, backend: MembershipBackend) -> SessionBuilder:
        return replace(self, _memberships=backend)

    def store(self, store: KeyValueStore) -> SessionBuilder:
        """Where membership snapshots persist. Defaults to MemoryStore."""
        return replace(self, _store=store)

    def policy(self, policy: ResiliencePolicy) -> SessionBuilder:
        return replace(self, _policy=policy)

    def rollback(self, rollback: RollbackPolicy) -> SessionBuilder:
        return replace(self, _rollback=rollback)

    def connectivity(self, connectivity: Connectivity) -> SessionBuilder:
        return replace(self, _connectivity=connectivity)

    def clock(self, clock: Clock) -> SessionBuilder:
        return replace(self, _clock=clock)

    def customer(self, customer_id: str, membership: Membership | None = None) -> SessionBuilder:
        """Identify the customer, optionally with an already-known membership."""
        return replace(self, _customer_id=customer_id, _membership=membership)

    def cart(self, cart: Cart) -> SessionBuilder:
        """Start from an existing cart instead of an empty one."""
        return replace(self, _cart=cart)

    def build(self) -> CartSession:
        resilience = Resilience(
            self._policy,
            store=self._store,
            connectivity=self._connectivity,
            clock=self._clock,
        )
        cart = OptimisticCart(self._platform, resilience, rollback=self._rollback, cart=self._cart)
        benefits = MembershipCart(
            cart,
            resilience,
            memberships=self._memberships,
            customer_id=self._customer_id,
            membership=self._membership,
        )
        return CartSession(cart=cart, benefits=benefits, resilience=resilience)


# ═══════════════════════════════════════════════════════════════════════════════
# session() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════


def session(platform: CommercePlatform) -> SessionBuilder:
    """
    Start a session builder for a commerce platform.

    Example:
        from cartsync import session as S

        s = S.session(platform).memberships(backend).customer("c-1").build()
        await s.benefits.load_membership()
    """
    return SessionBuilder(platform)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("CartSession", "SessionBuilder", "session")
