from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cartsync.benefits import Membership, MembershipBenefits, MembershipStatus
from cartsync.cart import ProductSummary
from cartsync.platform import CatalogueEntry, InMemoryCommercePlatform, InMemoryMemberships
from cartsync.resilience import ManualConnectivity, MemoryStore, Resilience, ResiliencePolicy

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

MASSAGE = "gid://variant/massage-60"
YOGA = "gid://variant/yoga-session"
TOWEL = "gid://variant/towel"


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


def products() -> dict[str, ProductSummary]:
    return {
        MASSAGE: ProductSummary(id="p-massage", handle="home-massage-spa", title="Home Massage 60 min"),
        YOGA: ProductSummary(id="p-yoga", handle="yoga-sessions", title="Yoga Session"),
        TOWEL: ProductSummary(id="p-towel", handle="spa-towel", title="Spa Towel"),
    }


PRICES = {
    MASSAGE: Decimal("100"),
    YOGA: Decimal("80"),
    TOWEL: Decimal("20"),
}


def make_membership(
    *,
    customer_id: str = "cust-1",
    status: MembershipStatus = MembershipStatus.ACTIVE,
    expires_in: timedelta = timedelta(days=200),
    now: datetime = T0,
    discount: str = "0.15",
) -> Membership:
    return Membership(
        id=f"mem-{customer_id}",
        customer_id=customer_id,
        status=status,
        started_at=now - timedelta(days=30),
        expires_at=now + expires_in,
        benefits=MembershipBenefits(discount_percentage=Decimal(discount)),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalogue() -> dict[str, ProductSummary]:
    return products()


def catalogue_entries() -> dict[str, CatalogueEntry]:
    return {
        merchandise_id: CatalogueEntry(PRICES[merchandise_id], product)
        for merchandise_id, product in products().items()
    }


@pytest.fixture
def platform() -> InMemoryCommercePlatform:
    return InMemoryCommercePlatform(catalogue_entries())


@pytest.fixture
def active_membership() -> Membership:
    return make_membership()


@pytest.fixture
def memberships(clock: FakeClock, active_membership: Membership) -> InMemoryMemberships:
    return InMemoryMemberships({active_membership.customer_id: active_membership}, clock=clock)


@pytest.fixture
def policy() -> ResiliencePolicy:
    return ResiliencePolicy().with_retries(3, base_delay=0).with_attempt_timeout(seconds=1.0)


@pytest.fixture
def connectivity() -> ManualConnectivity:
    return ManualConnectivity(online=True)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def resilience(
    policy: ResiliencePolicy,
    store: MemoryStore,
    connectivity: ManualConnectivity,
    clock: FakeClock,
) -> Resilience:
    return Resilience(policy, store=store, connectivity=connectivity, clock=clock)
