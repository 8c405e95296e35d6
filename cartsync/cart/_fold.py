"""
Cart folding rules — the same rules the backend applies, run locally.

Pure functions: each takes a Cart and returns a new one built with
Cart.from_lines, so totals always equal the sum of line costs.
"""

from __future__ import annotations

from decimal import Decimal

from cartsync.cart._types import DEFAULT_CURRENCY, Cart, CartLine, ProductSummary


def empty_cart(cart_id: str | None = None, *, currency: str = DEFAULT_CURRENCY) -> Cart:
    return Cart.from_lines((), id=cart_id, currency=currency)


def _rebuild(cart: Cart, lines: list[CartLine] | tuple[CartLine, ...]) -> Cart:
    return Cart.from_lines(
        tuple(lines),
        id=cart.id,
        currency=cart.currency,
        checkout_url=cart.checkout_url,
    )


def find_line(
    cart: Cart,
    *,
    line_id: str | None = None,
    merchandise_id: str | None = None,
) -> CartLine | None:
    """By line id first, then by merchandise id."""
    if line_id is not None:
        for line in cart.lines:
            if line.id == line_id:
                return line
    if merchandise_id is not None:
        for line in cart.lines:
            if line.merchandise_id == merchandise_id:
                return line
    return None


def add_line(
    cart: Cart,
    merchandise_id: str,
    quantity: int,
    unit_price: Decimal,
    product: ProductSummary,
) -> Cart:
    """Merge into an existing line for the merchandise, else append."""
    if quantity < 1:
        raise ValueError(f"add quantity must be >= 1, got {quantity}")
    lines = list(cart.lines)
    for i, line in enumerate(lines):
        if line.merchandise_id == merchandise_id:
            lines[i] = line.with_quantity(line.quantity + quantity)
            return _rebuild(cart, lines)
    lines.append(CartLine.create(
        merchandise_id,
        quantity=quantity,
        unit_price=unit_price,
        product=product,
        currency=cart.currency,
    ))
    return _rebuild(cart, lines)


def set_quantity(cart: Cart, merchandise_id: str, quantity: int) -> Cart:
    """Absolute quantity. 0 or less removes the line. Unknown merchandise is a no-op."""
    lines = list(cart.lines)
    for i, line in enumerate(lines):
        if line.merchandise_id == merchandise_id:
            if quantity <= 0:
                del lines[i]
            else:
                lines[i] = line.with_quantity(quantity)
            return _rebuild(cart, lines)
    return cart


def remove_line(
    cart: Cart,
    *,
    line_id: str | None = None,
    merchandise_id: str | None = None,
) -> tuple[Cart, CartLine | None]:
    """
    Remove one line located by id, falling back to merchandise id.

    Returns the cart unchanged and None when neither key matches.
    """
    target = find_line(cart, line_id=line_id, merchandise_id=merchandise_id)
    if target is None:
        return cart, None
    lines = [line for line in cart.lines if line is not target]
    return _rebuild(cart, lines), target


def replace_line(cart: Cart, merchandise_id: str, line: CartLine | None) -> Cart:
    """
    Install the authoritative line for a merchandise id.

    None removes the local line. A line missing locally is appended.
    """
    lines = list(cart.lines)
    for i, existing in enumerate(lines):
        if existing.merchandise_id == merchandise_id:
            if line is None:
                del lines[i]
            else:
                lines[i] = line
            return _rebuild(cart, lines)
    if line is None:
        return cart
    lines.append(line)
    return _rebuild(cart, lines)


def adopt_line_id(cart: Cart, merchandise_id: str, line_id: str | None) -> Cart:
    """Give the local line a server-issued id without touching its quantity."""
    line = find_line(cart, merchandise_id=merchandise_id)
    if line is None or line.id == line_id or line_id is None:
        return cart
    return replace_line(cart, merchandise_id, line.with_id(line_id))


__all__ = (
    "empty_cart",
    "find_line",
    "add_line",
    "set_quantity",
    "remove_line",
    "replace_line",
    "adopt_line_id",
)
