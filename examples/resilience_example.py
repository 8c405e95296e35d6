"""
Resilience — retry, snapshot cache and offline handling.

Key concepts:
- Every backend call goes through Resilience.execute (timeout + retry)
- Fresh memberships are snapshotted; the snapshot is the fallback
- Offline fails fast instead of burning retries

Level 3: cartsync.resilience
Level 2: combinators.retry / combinators.timeout
Level 1: kungfu.LazyCoroResult
"""

import tempfile

from kungfu import Error, Ok

from cartsync import configure_logging
from cartsync import resilience as R
from cartsync import session as S
from examples._infra import MASSAGE, banner, demo_memberships, demo_platform, price, product, run


async def main() -> None:
    configure_logging(level="INFO")
    banner("Resilience: Retry, Snapshot Fallback, Offline")

    platform = demo_platform(latency=0.01)
    memberships = demo_memberships("bob", latency=0.01)
    connectivity = R.ManualConnectivity()
    policy = (
        R.ResiliencePolicy()
        .with_retries(3, base_delay=0.1)
        .with_attempt_timeout(seconds=2)
        .with_cache_timeout(minutes=5)
    )

    with tempfile.TemporaryDirectory() as cache_dir:
        s = (
            S.session(platform)
            .memberships(memberships)
            .store(R.FileStore(cache_dir))
            .policy(policy)
            .connectivity(connectivity)
            .customer("bob")
            .build()
        )

        print("\n1. Fresh load (snapshot written):")
        await s.benefits.load_membership()
        print(f"   cached={s.benefits.membership.is_cached if s.benefits.membership else None}")

        print("\n2. Backend down for every attempt → snapshot fallback:")
        memberships.fail_next("get_membership", times=3)
        memberships.fail_next("get_stats", times=3)
        match await s.benefits.load_membership():
            case Ok(membership):
                print(f"   served from cache: {membership is not None and membership.is_cached}")
            case Error(e):
                print(f"   error: {e.user_message()}")

        print("\n3. Transient failure, third attempt succeeds:")
        platform.fail_next("create_cart", times=2)
        match await s.benefits.add_to_cart_with_benefits(MASSAGE, unit_price=price(MASSAGE), product=product(MASSAGE)):
            case Ok(enhanced):
                print(f"   ok after {len(platform.calls('create_cart'))} attempts, savings={enhanced.benefits.total_savings}")
            case Error(e):
                print(f"   error: {e.user_message()}")

        print("\n4. Offline:")
        connectivity.set_online(False)
        print(f"   {s.resilience.offline_message()}")
        match await s.benefits.update_quantity_with_benefits(MASSAGE, 3):
            case Ok(_):
                print("   updated")
            case Error(e):
                print(f"   {e.kind.value}; local view still shows x{s.cart.cart.lines[0].quantity}")

        check = await s.benefits.validate_membership_status()
        print(f"   membership check completed={check.completed}")

        connectivity.set_online(True)
        await s.close()

    print("\nDone!")


if __name__ == "__main__":
    run(main)
