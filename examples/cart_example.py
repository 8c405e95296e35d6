"""
Cart — optimistic mutations with membership pricing.

Key concepts:
- Mutations apply locally at once and reconcile in the background
- Awaiting a mutation gives the reconciled Result
- The EnhancedCart is recomputed on every cart change

Level 3: cartsync.session
Level 2: cartsync.cart
Level 1: kungfu.Result
"""

from kungfu import Error, Ok

from cartsync import bind_context, configure_logging
from cartsync import session as S
from cartsync.cart import RollbackPolicy
from examples._infra import MASSAGE, TOWEL, YOGA, banner, demo_memberships, demo_platform, price, product, run


def show(enhanced: S.EnhancedCart) -> None:
    for line in enhanced.cart.lines:
        state = "pending" if line.is_optimistic else line.id
        print(f"   {line.product.title:<22} x{line.quantity}  {line.cost:>8}  [{state}]")
    print(f"   total={enhanced.cart.total} savings={enhanced.benefits.total_savings}"
          f" → {enhanced.discounted_total}  delivery: {enhanced.delivery.reason}")


async def main() -> None:
    configure_logging(level="WARNING")
    bind_context(customer_id="alice")
    banner("Cart: Optimistic Mutations + Membership Benefits")

    platform = demo_platform()
    s = (
        S.session(platform)
        .memberships(demo_memberships("alice"))
        .rollback(RollbackPolicy.KEEP)
        .customer("alice")
        .build()
    )

    print("\n1. Load membership:")
    match await s.benefits.load_membership():
        case Ok(membership):
            print(f"   {membership}")
        case Error(e):
            print(f"   error: {e.user_message()}")

    print("\n2. Add two massages; the view updates before the platform answers:")
    first = s.cart.add(MASSAGE, unit_price=price(MASSAGE), product=product(MASSAGE))
    second = s.cart.add(MASSAGE, unit_price=price(MASSAGE), product=product(MASSAGE))
    show(s.benefits.enhanced_cart)
    await first
    await second
    print("   after reconciliation:")
    show(s.benefits.enhanced_cart)

    print("\n3. Add yoga and a towel (towels are not member services):")
    await s.benefits.add_to_cart_with_benefits(YOGA, unit_price=price(YOGA), product=product(YOGA))
    match await s.benefits.add_to_cart_with_benefits(TOWEL, unit_price=price(TOWEL), product=product(TOWEL)):
        case Ok(enhanced):
            show(enhanced)
        case Error(e):
            print(f"   error: {e.user_message()}")

    print("\n4. Removal fails three times in a row:")
    platform.fail_next("remove_lines", times=3)
    match await s.benefits.remove_from_cart_with_benefits(YOGA):
        case Ok(_):
            print("   removed")
        case Error(e):
            print(f"   {e.kind.value}: {e.user_message()} (retryable={e.is_retryable})")
    show(s.benefits.enhanced_cart)

    summary = s.benefits.benefits_summary()
    print(f"\n5. Summary: {summary.status_message}, saved {summary.total_savings}")

    check = await s.benefits.validate_membership_status()
    if check.validation is not None and check.validation.requires_renewal:
        print(f"   renew soon: {check.validation.days_until_expiration} days left")

    await s.close()
    print("\nDone!")


if __name__ == "__main__":
    run(main)
