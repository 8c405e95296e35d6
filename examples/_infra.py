"""Shared infrastructure for examples."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from datetime import timedelta
from decimal import Decimal

from cartsync import utc_now
from cartsync.benefits import Membership, MembershipStatus
from cartsync.cart import ProductSummary
from cartsync.platform import CatalogueEntry, InMemoryCommercePlatform, InMemoryMemberships


# Catalogue
MASSAGE = "gid://variant/massage-60"
YOGA = "gid://variant/yoga-session"
TOWEL = "gid://variant/towel"

CATALOGUE = {
    MASSAGE: CatalogueEntry(
        Decimal("100"),
        ProductSummary(id="p-massage", handle="home-massage-spa", title="Home Massage 60 min"),
    ),
    YOGA: CatalogueEntry(
        Decimal("80"),
        ProductSummary(id="p-yoga", handle="yoga-sessions", title="Yoga Session"),
    ),
    TOWEL: CatalogueEntry(
        Decimal("20"),
        ProductSummary(id="p-towel", handle="spa-towel", title="Spa Towel"),
    ),
}


def price(merchandise_id: str) -> Decimal:
    return CATALOGUE[merchandise_id].price


def product(merchandise_id: str) -> ProductSummary:
    return CATALOGUE[merchandise_id].product


# Fake backends
def demo_platform(latency: float = 0.05) -> InMemoryCommercePlatform:
    return InMemoryCommercePlatform(CATALOGUE, latency=latency)


def demo_memberships(customer_id: str = "alice", latency: float = 0.05) -> InMemoryMemberships:
    now = utc_now()
    return InMemoryMemberships(
        {
            customer_id: Membership(
                id=f"mem-{customer_id}",
                customer_id=customer_id,
                status=MembershipStatus.ACTIVE,
                started_at=now - timedelta(days=100),
                expires_at=now + timedelta(days=20),
            ),
        },
        latency=latency,
    )


# Helpers
def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def run(main: Callable[[], Coroutine[object, object, None]]) -> None:
    asyncio.run(main())
