from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from cartsync.benefits import (
    DEFAULT_ELIGIBLE_SERVICES,
    MembershipStatus,
    calculate_discount,
    classify_product,
    is_eligible_for_free_delivery,
    service_for_handle,
    validate_membership,
)
from cartsync.cart import ProductSummary

from conftest import T0, make_membership


class TestCalculateDiscount:
    def test_active_eligible_membership_gets_fifteen_percent(self) -> None:
        calc = calculate_discount(Decimal("100"), "massage", make_membership(), now=T0)

        assert calc.original_price == Decimal("100")
        assert calc.discount_amount == Decimal("15.00")
        assert calc.final_price == Decimal("85.00")
        assert calc.savings == calc.discount_amount
        assert calc.discount_percentage == Decimal("0.15")

    def test_no_membership_is_neutral(self) -> None:
        calc = calculate_discount(Decimal("100"), "massage", None, now=T0)

        assert calc.discount_amount == 0
        assert calc.final_price == Decimal("100")

    def test_ineligible_service_is_neutral(self) -> None:
        calc = calculate_discount(Decimal("100"), "towels", make_membership(), now=T0)

        assert calc.discount_amount == 0
        assert calc.final_price == Decimal("100")

    def test_missing_service_is_neutral(self) -> None:
        calc = calculate_discount(Decimal("100"), None, make_membership(), now=T0)
        assert not calc.applied

    @pytest.mark.parametrize("service", sorted(DEFAULT_ELIGIBLE_SERVICES) + ["towels", "unknown"])
    def test_expired_membership_is_neutral_for_every_category(self, service: str) -> None:
        expired = make_membership(expires_in=-timedelta(days=1))

        calc = calculate_discount(Decimal("100"), service, expired, now=T0)

        assert calc.discount_amount == 0
        assert calc.final_price == Decimal("100")

    def test_expiry_exactly_now_counts_as_expired(self) -> None:
        membership = make_membership(expires_in=timedelta(0))
        assert calculate_discount(Decimal("100"), "massage", membership, now=T0).discount_amount == 0

    def test_expired_status_is_neutral_even_with_future_date(self) -> None:
        membership = make_membership(status=MembershipStatus.EXPIRED)
        assert calculate_discount(Decimal("100"), "massage", membership, now=T0).discount_amount == 0

    @pytest.mark.parametrize("price", ["0", "0.01", "0.05", "19.99", "100", "12345.67"])
    def test_discount_stays_within_price(self, price: str) -> None:
        p = Decimal(price)
        calc = calculate_discount(p, "yoga", make_membership(), now=T0)

        assert 0 <= calc.discount_amount <= p
        assert calc.final_price == p - calc.discount_amount

    def test_percentage_is_clamped_to_one(self) -> None:
        calc = calculate_discount(Decimal("40"), "ems", make_membership(discount="1.5"), now=T0)

        assert calc.discount_percentage == Decimal("1")
        assert calc.final_price == 0

    def test_negative_percentage_means_no_discount(self) -> None:
        calc = calculate_discount(Decimal("40"), "ems", make_membership(discount="-0.2"), now=T0)
        assert calc.discount_amount == 0

    @pytest.mark.parametrize("price", [Decimal("-5"), Decimal("NaN"), Decimal("Infinity"), "not-a-price"])
    def test_invalid_price_never_raises(self, price: object) -> None:
        calc = calculate_discount(price, "massage", make_membership(), now=T0)  # type: ignore[arg-type]
        assert calc.discount_amount == 0

    def test_rounds_half_up_to_cents(self) -> None:
        calc = calculate_discount(Decimal("0.10"), "massage", make_membership(), now=T0)
        # 0.015 -> 0.02
        assert calc.discount_amount == Decimal("0.02")


class TestFreeDelivery:
    def test_active_future_membership_is_eligible(self) -> None:
        assert is_eligible_for_free_delivery(make_membership(), now=T0)

    def test_no_membership_is_not_eligible(self) -> None:
        assert not is_eligible_for_free_delivery(None, now=T0)

    def test_expired_membership_is_not_eligible(self) -> None:
        assert not is_eligible_for_free_delivery(make_membership(expires_in=-timedelta(seconds=1)), now=T0)

    def test_inactive_status_is_not_eligible(self) -> None:
        assert not is_eligible_for_free_delivery(make_membership(status=MembershipStatus.NONE), now=T0)


class TestValidateMembership:
    def test_missing_membership(self) -> None:
        v = validate_membership(None, now=T0)

        assert not v.is_valid
        assert v.errors == ("No membership found",)

    def test_active_far_from_expiry(self) -> None:
        v = validate_membership(make_membership(expires_in=timedelta(days=200)), now=T0)

        assert v.is_valid and v.is_active and not v.is_expired
        assert v.days_until_expiration == 200
        assert not v.requires_renewal
        assert v.errors == ()

    def test_active_inside_renewal_window(self) -> None:
        v = validate_membership(make_membership(expires_in=timedelta(days=10, hours=1)), now=T0)

        assert v.is_valid
        assert v.days_until_expiration == 11
        assert v.requires_renewal

    def test_expired(self) -> None:
        v = validate_membership(make_membership(expires_in=-timedelta(days=3)), now=T0)

        assert not v.is_valid
        assert v.is_expired
        assert v.days_until_expiration == 0
        assert v.requires_renewal
        assert "Membership has expired" in v.errors


class TestClassification:
    @pytest.mark.parametrize(
        ("handle", "service"),
        [
            ("home-massage-spa", "massage"),
            ("spa-services", "massage"),
            ("personal-training", "ems"),
            ("wellness-yoga", "yoga"),
            ("beauty-cosmetics", "supplements"),
            ("spa-towel", None),
        ],
    )
    def test_handle_mapping(self, handle: str, service: str | None) -> None:
        assert service_for_handle(handle) == service

    def test_explicit_service_id_wins(self) -> None:
        product = ProductSummary(id="p", handle="spa-towel", title="Towel", service_id="massage")
        assert classify_product(product) == "massage"

    def test_falls_back_to_handle(self) -> None:
        product = ProductSummary(id="p", handle="ems-training", title="EMS")
        assert classify_product(product) == "ems"
