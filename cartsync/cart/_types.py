"""
Cart value types.

Totals are never set by hand: Cart.from_lines is the only constructor the
cart code uses, and it sums line costs.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

DEFAULT_CURRENCY = "AED"

# ═══════════════════════════════════════════════════════════════════════════════
# Product & Line
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProductSummary:
    """Lightweight back-reference kept on each line. Never a full product."""

    id: str
    handle: str
    title: str
    image: str | None = None
    service_id: str | None = None


@dataclass(frozen=True, slots=True)
class CartLine:
    id: str | None
    merchandise_id: str
    quantity: int
    unit_price: Decimal
    cost: Decimal
    product: ProductSummary
    currency: str = DEFAULT_CURRENCY

    @staticmethod
    def create(
        merchandise_id: str,
        *,
        quantity: int,
        unit_price: Decimal,
        product: ProductSummary,
        id: str | None = None,
        currency: str = DEFAULT_CURRENCY,
    ) -> CartLine:
        if quantity < 1:
            raise ValueError(f"line quantity must be >= 1, got {quantity}")
        return CartLine(
            id=id,
            merchandise_id=merchandise_id,
            quantity=quantity,
            unit_price=unit_price,
            cost=unit_price * quantity,
            product=product,
            currency=currency,
        )

    @property
    def is_optimistic(self) -> bool:
        """No server-issued id yet."""
        return self.id is None

    def with_quantity(self, quantity: int) -> CartLine:
        if quantity < 1:
            raise ValueError(f"line quantity must be >= 1, got {quantity}")
        return replace(self, quantity=quantity, cost=self.unit_price * quantity)

    def with_id(self, line_id: str | None) -> CartLine:
        return replace(self, id=line_id)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Cart:
    id: str | None
    lines: tuple[CartLine, ...]
    subtotal: Decimal
    total: Decimal
    currency: str
    total_quantity: int
    checkout_url: str | None = None

    @staticmethod
    def from_lines(
        lines: tuple[CartLine, ...] | list[CartLine] = (),
        *,
        id: str | None = None,
        currency: str = DEFAULT_CURRENCY,
        checkout_url: str | None = None,
    ) -> Cart:
        lines = tuple(lines)
        subtotal = sum((line.cost for line in lines), Decimal("0"))
        return Cart(
            id=id,
            lines=lines,
            subtotal=subtotal,
            total=subtotal,
            currency=currency,
            total_quantity=sum(line.quantity for line in lines),
            checkout_url=checkout_url,
        )

    @property
    def is_empty(self) -> bool:
        return not self.lines


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "DEFAULT_CURRENCY",
    "ProductSummary",
    "CartLine",
    "Cart",
)
