"""
Membership cart — keeps an EnhancedCart current over an OptimisticCart.

    benefits = MembershipCart(cart, resilience, memberships=backend, customer_id="c-1")
    await benefits.load_membership()

    match await benefits.add_to_cart_with_benefits("gid://variant/1", unit_price=price, product=p):
        case Ok(enhanced):
            show(enhanced.discounted_total, enhanced.delivery.reason)
        case Error(err):
            show_error(err.user_message())     # optimistic view is still in benefits.enhanced_cart

The projection is recomputed on every cart-changed event and on every
membership change. Without a customer or membership the mutations still
work; the projection just carries no benefits.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import structlog
from kungfu import Error, Ok, Result

from cartsync._errors import CommerceError, Errors
from cartsync.benefits import (
    STANDARD_DELIVERY_COST,
    ZERO,
    Membership,
    MembershipStats,
    MembershipStatus,
    calculate_discount,
    classify_product,
    is_active,
    is_eligible_for_free_delivery,
    is_expired,
    validate_membership,
)
from cartsync.cart import Cart, Mutation, OptimisticCart, ProductSummary
from cartsync.platform import CheckoutRedirect, MembershipBackend
from cartsync.resilience import Resilience
from cartsync.session._types import (
    BenefitsSummary,
    DeliveryInfo,
    EnhancedCart,
    MembershipCartBenefits,
    ServiceDiscount,
    StatusCheck,
)

logger = structlog.get_logger(__name__)

type EnhancedListener = Callable[[EnhancedCart], None]

_STATUS_MESSAGES = {
    MembershipStatus.ACTIVE: "Membership benefits applied",
    MembershipStatus.EXPIRED: "Membership expired - benefits not available",
    MembershipStatus.NONE: "No active membership",
}


class MembershipCart:
    def __init__(
        self,
        cart: OptimisticCart,
        resilience: Resilience,
        *,
        memberships: MembershipBackend | None = None,
        customer_id: str | None = None,
        membership: Membership | None = None,
    ) -> None:
        self._cart = cart
        self._resilience = resilience
        self._backend = memberships
        self._customer_id = customer_id
        self._membership = membership
        self._stats: MembershipStats | None = None
        self._listeners: list[EnhancedListener] = []
        self._enhanced = self._project(cart.cart)
        self._unsubscribe = cart.subscribe(self._on_cart_changed)

    # Read access

    @property
    def cart(self) -> OptimisticCart:
        return self._cart

    @property
    def customer_id(self) -> str | None:
        return self._customer_id

    @property
    def membership(self) -> Membership | None:
        return self._membership

    @property
    def stats(self) -> MembershipStats | None:
        return self._stats

    @property
    def enhanced_cart(self) -> EnhancedCart:
        return self._enhanced

    def get_membership_savings(self) -> Decimal:
        return self._enhanced.benefits.total_savings

    def is_eligible_for_free_delivery(self) -> bool:
        return is_eligible_for_free_delivery(self._membership, now=self._resilience.clock())

    def benefits_summary(self) -> BenefitsSummary:
        benefits = self._enhanced.benefits
        delivery_savings = STANDARD_DELIVERY_COST if benefits.free_delivery else ZERO
        return BenefitsSummary(
            has_discounts=bool(benefits.service_discounts),
            has_free_delivery=benefits.free_delivery,
            total_savings=benefits.total_savings + delivery_savings,
            discount_count=len(benefits.service_discounts),
            status_message=_STATUS_MESSAGES[benefits.membership_status],
        )

    def subscribe(self, listener: EnhancedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        """Stop following the cart."""
        self._unsubscribe()

    # Cart mutations

    async def add_to_cart_with_benefits(
        self,
        merchandise_id: str,
        *,
        unit_price: Decimal,
        product: ProductSummary,
        quantity: int = 1,
    ) -> Result[EnhancedCart, CommerceError]:
        mutation = self._cart.add(merchandise_id, unit_price=unit_price, product=product, quantity=quantity)
        return await self._settle(mutation)

    async def remove_from_cart_with_benefits(
        self,
        merchandise_id: str,
        *,
        line_id: str | None = None,
    ) -> Result[EnhancedCart, CommerceError]:
        return await self._settle(self._cart.delete(merchandise_id, line_id=line_id))

    async def update_quantity_with_benefits(
        self,
        merchandise_id: str,
        quantity: int,
    ) -> Result[EnhancedCart, CommerceError]:
        """Absolute quantity; 0 removes the line."""
        return await self._settle(self._cart.set_quantity(merchandise_id, quantity))

    add_with_benefits = add_to_cart_with_benefits
    remove_with_benefits = remove_from_cart_with_benefits

    async def refresh_benefits(self) -> Result[EnhancedCart, CommerceError]:
        """Pull the server cart and recompute."""
        match await self._cart.refresh():
            case Ok(_):
                return Ok(self._enhanced)
            case Error(err):
                return Error(err)

    async def _settle(self, mutation: Mutation) -> Result[EnhancedCart, CommerceError]:
        match await mutation:
            case Error(err):
                return Error(err)
            case Ok(_):
                pass
        match await self._cart.refresh():
            case Error(err):
                # Mutation is confirmed; only the follow-up read failed.
                logger.warning("session.refresh_failed", kind=err.kind.value, message=err.message)
            case Ok(_):
                pass
        return Ok(self._enhanced)

    # Membership

    def set_membership(self, membership: Membership | None) -> None:
        self._membership = membership
        self._recompute()

    async def load_membership(self) -> Result[Membership | None, CommerceError]:
        """
        Fetch the membership, falling back to the snapshot cache.

        Fresh backend values are cached; fallback values are not.
        """
        backend, customer_id = self._backend, self._customer_id
        if backend is None or customer_id is None:
            return Ok(self._membership)

        resilience = self._resilience
        result = await resilience.execute_with_fallback(
            lambda: backend.get_membership(customer_id),
            lambda: resilience.get_fallback_membership(customer_id),
            "get_membership",
        )
        match result:
            case Error(err):
                return Error(err)
            case Ok(membership):
                pass

        stats = await resilience.execute_with_fallback(
            lambda: backend.get_stats(customer_id),
            lambda: resilience.get_fallback_stats(customer_id),
            "get_stats",
        )
        self._stats = stats.unwrap_or_none()

        if membership is None:
            await resilience.snapshots.clear()
        elif not (membership.is_cached or membership.is_degraded):
            await resilience.cache_snapshot(membership, self._stats)
        self.set_membership(membership)
        return Ok(membership)

    async def validate_membership_status(self) -> StatusCheck:
        """
        Re-check membership against the backend, never the cache.

        Never raises: a failed check comes back as completed=False with the
        classified error as a warning.
        """
        backend, customer_id = self._backend, self._customer_id
        now = self._resilience.clock()
        if customer_id is None:
            return StatusCheck(completed=True, validation=validate_membership(None, now=now))
        if backend is None:
            return StatusCheck(
                completed=False,
                warning=Errors.service_unavailable("validate_membership_status"),
            )

        result = await self._resilience.execute(
            lambda: backend.get_membership(customer_id),
            "validate_membership_status",
        )
        match result:
            case Ok(membership):
                if membership is None:
                    await self._resilience.snapshots.clear()
                else:
                    await self._resilience.cache_snapshot(membership, self._stats)
                self.set_membership(membership)
                validation = validate_membership(membership, now=self._resilience.clock())
                logger.info(
                    "session.membership_validated",
                    customer_id=customer_id,
                    valid=validation.is_valid,
                    requires_renewal=validation.requires_renewal,
                )
                return StatusCheck(completed=True, validation=validation)
            case Error(err):
                logger.warning(
                    "session.membership_validation_incomplete",
                    customer_id=customer_id,
                    kind=err.kind.value,
                    correlation_id=err.context.correlation_id,
                )
                return StatusCheck(completed=False, warning=err)

    async def purchase_membership(self) -> Result[CheckoutRedirect, CommerceError]:
        backend, customer_id = self._backend, self._customer_id
        if backend is None or customer_id is None:
            return Error(Errors.validation("customer_id", customer_id, "identified customer"))
        return await self._resilience.execute(lambda: backend.purchase(customer_id), "purchase_membership")

    async def renew_membership(self) -> Result[CheckoutRedirect, CommerceError]:
        backend, membership = self._backend, self._membership
        if backend is None or membership is None:
            return Error(Errors.membership_not_found(self._customer_id))
        return await self._resilience.execute(lambda: backend.renew(membership.id), "renew_membership")

    async def cancel_membership(self) -> Result[Membership, CommerceError]:
        backend, membership = self._backend, self._membership
        if backend is None or membership is None:
            return Error(Errors.membership_not_found(self._customer_id))
        result = await self._resilience.execute(lambda: backend.cancel(membership.id), "cancel_membership")
        match result:
            case Ok(cancelled):
                await self._resilience.snapshots.clear()
                self.set_membership(cancelled)
        return result

    # Projection

    def _on_cart_changed(self, cart: Cart) -> None:
        self._recompute(cart)

    def _recompute(self, cart: Cart | None = None) -> None:
        self._enhanced = self._project(cart if cart is not None else self._cart.cart)
        for listener in tuple(self._listeners):
            try:
                listener(self._enhanced)
            except Exception:
                logger.exception("session.listener_failed", listener=repr(listener))

    def _project(self, cart: Cart) -> EnhancedCart:
        membership = self._membership
        if membership is None:
            return EnhancedCart(cart, MembershipCartBenefits.none(), DeliveryInfo.for_member(False))

        now = self._resilience.clock()
        validation = validate_membership(membership, now=now)
        discounts: list[ServiceDiscount] = []
        for line in cart.lines:
            service_id = classify_product(line.product)
            calc = calculate_discount(line.unit_price, service_id, membership, now=now)
            if not calc.applied or service_id is None:
                continue
            line_discount = calc.discount_amount * line.quantity
            discounts.append(ServiceDiscount(
                line_id=line.id,
                merchandise_id=line.merchandise_id,
                product_handle=line.product.handle,
                service_id=service_id,
                quantity=line.quantity,
                unit_discount=calc.discount_amount,
                original_price=line.cost,
                discount_amount=line_discount,
                discount_percentage=calc.discount_percentage,
                final_price=line.cost - line_discount,
            ))

        if is_expired(membership, now=now):
            status = MembershipStatus.EXPIRED
        elif is_active(membership, now=now):
            status = MembershipStatus.ACTIVE
        else:
            status = MembershipStatus.NONE

        free = is_eligible_for_free_delivery(membership, now=now)
        benefits = MembershipCartBenefits(
            service_discounts=tuple(discounts),
            free_delivery=free,
            total_savings=sum((d.discount_amount for d in discounts), ZERO),
            membership_status=status,
            validation_errors=validation.errors,
        )
        return EnhancedCart(cart, benefits, DeliveryInfo.for_member(free))


__all__ = (
    "EnhancedListener",
    "MembershipCart",
)
