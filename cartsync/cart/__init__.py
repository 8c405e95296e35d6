"""
Cart — optimistic local state reconciled with the commerce platform.

    from cartsync import cart as K

    cart = K.OptimisticCart(platform, resilience, rollback=K.RollbackPolicy.KEEP)
    await cart.add("gid://variant/1", unit_price=Decimal("100"), product=summary)
"""

from __future__ import annotations

from cartsync.cart._types import DEFAULT_CURRENCY, ProductSummary, CartLine, Cart
from cartsync.cart._fold import (
    empty_cart,
    find_line,
    add_line,
    set_quantity,
    remove_line,
    replace_line,
    adopt_line_id,
)
from cartsync.cart._state import (
    MutationKind,
    RollbackPolicy,
    Idle,
    OptimisticApplied,
    Reconciling,
    Confirmed,
    RolledBack,
    LineState,
    is_terminal,
)
from cartsync.cart._machine import CartListener, Unsubscribe, Mutation, OptimisticCart

__all__ = (
    "DEFAULT_CURRENCY",
    "ProductSummary",
    "CartLine",
    "Cart",
    "empty_cart",
    "find_line",
    "add_line",
    "set_quantity",
    "remove_line",
    "replace_line",
    "adopt_line_id",
    "MutationKind",
    "RollbackPolicy",
    "Idle",
    "OptimisticApplied",
    "Reconciling",
    "Confirmed",
    "RolledBack",
    "LineState",
    "is_terminal",
    "CartListener",
    "Unsubscribe",
    "Mutation",
    "OptimisticCart",
)
