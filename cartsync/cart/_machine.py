"""
Optimistic cart — apply locally now, reconcile with the platform later.

    cart = OptimisticCart(platform, resilience)

    m = cart.add("gid://variant/1", unit_price=Decimal("100"), product=summary)
    cart.cart.total          # already updated, nothing awaited yet
    result = await m         # Result[Cart, CommerceError] once reconciled

Every mutation runs its optimistic part synchronously, then schedules a
reconciliation task. Reconciliations for the same merchandise id run one
after another (each awaits the previous tail task); different merchandise
ids reconcile concurrently. A confirmation only installs the server line
when its version is still the latest for that merchandise id.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import structlog
from kungfu import Error, Ok, Result

from cartsync._errors import CommerceError, Errors
from cartsync.cart._fold import (
    add_line,
    adopt_line_id,
    empty_cart,
    find_line,
    remove_line,
    replace_line,
    set_quantity,
)
from cartsync.cart._state import (
    Confirmed,
    Idle,
    LineState,
    MutationKind,
    OptimisticApplied,
    Reconciling,
    RollbackPolicy,
    RolledBack,
    is_terminal,
)
from cartsync.cart._types import Cart, CartLine, ProductSummary
from cartsync.platform._protocol import CommercePlatform, LineInput, LineUpdate
from cartsync.resilience import Resilience

logger = structlog.get_logger(__name__)

type CartListener = Callable[[Cart], None]
type Unsubscribe = Callable[[], None]

# ═══════════════════════════════════════════════════════════════════════════════
# Mutation Handle
# ═══════════════════════════════════════════════════════════════════════════════


class Mutation:
    """
    Handle for one issued mutation. Await it for the reconciled outcome.

    The optimistic effect is already visible when the handle is returned.
    """

    __slots__ = ("kind", "merchandise_id", "version", "_future")

    def __init__(
        self,
        kind: MutationKind,
        merchandise_id: str,
        version: int,
        future: asyncio.Future[Result[Cart, CommerceError]],
    ) -> None:
        self.kind = kind
        self.merchandise_id = merchandise_id
        self.version = version
        self._future = future

    def __await__(self) -> Generator[Any, None, Result[Cart, CommerceError]]:
        return self._future.__await__()

    def done(self) -> bool:
        return self._future.done()

    def __repr__(self) -> str:
        return f"Mutation({self.kind.name}, {self.merchandise_id!r}, v{self.version})"


@dataclass(frozen=True, slots=True)
class _Intent:
    kind: MutationKind
    merchandise_id: str
    version: int
    # ADD: quantity to add. SET/UPDATE: absolute target. DELETE: 0.
    quantity: int
    line_id: str | None = None


@dataclass(frozen=True, slots=True)
class _Resolved:
    line_id: str | None
    server_cart: Cart | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# OptimisticCart
# ═══════════════════════════════════════════════════════════════════════════════


class OptimisticCart:
    def __init__(
        self,
        platform: CommercePlatform,
        resilience: Resilience,
        *,
        rollback: RollbackPolicy = RollbackPolicy.KEEP,
        cart: Cart | None = None,
    ) -> None:
        self._platform = platform
        self._resilience = resilience
        self._rollback = rollback
        self._cart = cart if cart is not None else empty_cart()
        self._versions: dict[str, int] = {}
        self._states: dict[str, LineState] = {}
        self._confirmed: dict[str, CartLine | None] = {
            line.merchandise_id: line for line in self._cart.lines if line.id is not None
        }
        self._tails: dict[str, asyncio.Task[Result[Cart, CommerceError]]] = {}
        self._inflight: set[asyncio.Task[Result[Cart, CommerceError]]] = set()
        self._listeners: list[CartListener] = []
        self._creating: asyncio.Task[Result[str, CommerceError]] | None = None

    # Read access

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def rollback_policy(self) -> RollbackPolicy:
        return self._rollback

    @property
    def pending(self) -> int:
        """Number of reconciliations still in flight."""
        return len(self._inflight)

    def state(self, merchandise_id: str) -> LineState:
        return self._states.get(merchandise_id, Idle(merchandise_id, self._versions.get(merchandise_id, 0)))

    def failures(self) -> dict[str, RolledBack]:
        return {m: s for m, s in self._states.items() if isinstance(s, RolledBack)}

    def subscribe(self, listener: CartListener) -> Unsubscribe:
        """Call listener with the new cart after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def settle(self) -> None:
        """Wait until every in-flight reconciliation has finished."""
        while self._inflight:
            await asyncio.wait(set(self._inflight))

    # Mutations (synchronous optimistic part)

    def add(
        self,
        merchandise_id: str,
        *,
        unit_price: Decimal,
        product: ProductSummary,
        quantity: int = 1,
    ) -> Mutation:
        if quantity < 1:
            return self._rejected(
                MutationKind.ADD,
                merchandise_id,
                Errors.validation("quantity", quantity, ">= 1"),
            )
        self._cart = add_line(self._cart, merchandise_id, quantity, unit_price, product)
        return self._schedule(MutationKind.ADD, merchandise_id, quantity=quantity)

    def update(self, merchandise_id: str, delta: int) -> Mutation:
        """Relative change. Reaching 0 removes the line."""
        line = find_line(self._cart, merchandise_id=merchandise_id)
        if line is None:
            return self._rejected(MutationKind.UPDATE, merchandise_id, Errors.line_not_found(merchandise_id))
        return self._apply_quantity(MutationKind.UPDATE, line, line.quantity + delta)

    def set_quantity(self, merchandise_id: str, quantity: int) -> Mutation:
        """Absolute quantity. 0 removes the line."""
        line = find_line(self._cart, merchandise_id=merchandise_id)
        if line is None:
            return self._rejected(MutationKind.SET, merchandise_id, Errors.line_not_found(merchandise_id))
        return self._apply_quantity(MutationKind.SET, line, quantity)

    def delete(self, merchandise_id: str, *, line_id: str | None = None) -> Mutation:
        """
        Remove a line by its last-known id, falling back to merchandise id.

        Not found by either key: an already-failed NOT_FOUND handle, no call.
        """
        self._cart, removed = remove_line(self._cart, line_id=line_id, merchandise_id=merchandise_id)
        if removed is None:
            logger.info("cart.line_not_found", merchandise_id=merchandise_id, line_id=line_id)
            return self._rejected(
                MutationKind.DELETE,
                merchandise_id,
                Errors.line_not_found(merchandise_id, line_id),
            )
        return self._schedule(
            MutationKind.DELETE,
            removed.merchandise_id,
            quantity=0,
            line_id=removed.id or line_id,
        )

    def _apply_quantity(self, kind: MutationKind, line: CartLine, target: int) -> Mutation:
        target = max(target, 0)
        self._cart = set_quantity(self._cart, line.merchandise_id, target)
        return self._schedule(kind, line.merchandise_id, quantity=target, line_id=line.id)

    def _schedule(
        self,
        kind: MutationKind,
        merchandise_id: str,
        *,
        quantity: int,
        line_id: str | None = None,
    ) -> Mutation:
        version = self._versions.get(merchandise_id, 0) + 1
        self._versions[merchandise_id] = version
        self._states[merchandise_id] = OptimisticApplied(merchandise_id, version, kind)
        logger.debug("cart.optimistic_applied", merchandise_id=merchandise_id, version=version, kind=kind.name)
        self._notify()

        intent = _Intent(kind, merchandise_id, version, quantity, line_id)
        previous = self._tails.get(merchandise_id)
        task = asyncio.get_running_loop().create_task(
            self._reconcile(intent, previous),
            name=f"reconcile:{merchandise_id}:v{version}",
        )
        self._tails[merchandise_id] = task
        self._inflight.add(task)

        def finished(t: asyncio.Task[Result[Cart, CommerceError]]) -> None:
            self._inflight.discard(t)
            if self._tails.get(merchandise_id) is t:
                del self._tails[merchandise_id]

        task.add_done_callback(finished)
        return Mutation(kind, merchandise_id, version, task)

    def _rejected(self, kind: MutationKind, merchandise_id: str, error: CommerceError) -> Mutation:
        future: asyncio.Future[Result[Cart, CommerceError]] = asyncio.get_running_loop().create_future()
        future.set_result(Error(error))
        return Mutation(kind, merchandise_id, self._versions.get(merchandise_id, 0), future)

    # Reconciliation (asynchronous part)

    async def _reconcile(
        self,
        intent: _Intent,
        previous: asyncio.Task[Result[Cart, CommerceError]] | None,
    ) -> Result[Cart, CommerceError]:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})

        if self._is_latest(intent):
            self._states[intent.merchandise_id] = Reconciling(intent.merchandise_id, intent.version, intent.kind)

        cart_id = await self._ensure_cart_id()
        if isinstance(cart_id, Error):
            return self._fail(intent, cart_id.error)

        result = await self._send(intent, cart_id.value)
        match result:
            case Ok(server_cart):
                return self._confirm(intent, server_cart)
            case Error(err):
                return self._fail(intent, err)

    async def _send(self, intent: _Intent, cart_id: str) -> Result[Cart, CommerceError]:
        platform = self._platform
        merchandise_id = intent.merchandise_id

        if intent.kind is MutationKind.ADD:
            lines = [LineInput(merchandise_id, intent.quantity)]
            return await self._call(lambda: platform.add_lines(cart_id, lines), "add_lines")

        resolved = await self._resolve_line(intent, cart_id)
        if isinstance(resolved, Error):
            return resolved
        line_id = resolved.value.line_id

        if line_id is None:
            if intent.quantity > 0:
                lines = [LineInput(merchandise_id, intent.quantity)]
                return await self._call(lambda: platform.add_lines(cart_id, lines), "add_lines")
            server_cart = resolved.value.server_cart
            if server_cart is None:
                return Error(Errors.line_not_found(merchandise_id))
            # Already gone on the server.
            return Ok(server_cart)

        if intent.quantity <= 0:
            return await self._call(lambda: platform.remove_lines(cart_id, [line_id]), "remove_lines")

        updates = [LineUpdate(line_id, merchandise_id, intent.quantity)]
        return await self._call(lambda: platform.update_lines(cart_id, updates), "update_lines")

    async def _resolve_line(self, intent: _Intent, cart_id: str) -> Result[_Resolved, CommerceError]:
        """
        Server line id for an update or removal.

        Earlier reconciliations for the same merchandise id have finished, so
        the last confirmed line is the freshest answer. Without one, the local
        id, then the id captured at issue time, then a server lookup.
        """
        merchandise_id = intent.merchandise_id
        if merchandise_id in self._confirmed:
            confirmed = self._confirmed[merchandise_id]
            if confirmed is not None:
                return Ok(_Resolved(confirmed.id))
        else:
            local = find_line(self._cart, merchandise_id=merchandise_id)
            for candidate in (local.id if local is not None else None, intent.line_id):
                if candidate is not None:
                    return Ok(_Resolved(candidate))

        fetched = await self._call(lambda: self._platform.get_cart(cart_id), "get_cart")
        if isinstance(fetched, Error):
            return fetched
        server_cart = fetched.value
        if server_cart is None:
            return Error(Errors.not_found("Cart", cart_id))
        server_line = find_line(server_cart, merchandise_id=intent.merchandise_id)
        return Ok(_Resolved(server_line.id if server_line is not None else None, server_cart))

    async def _call[T](self, operation: Callable[[], Awaitable[T]], name: str) -> Result[T, CommerceError]:
        return await self._resilience.execute(operation, name)

    async def _ensure_cart_id(self) -> Result[str, CommerceError]:
        """One shared creation task, however many mutations need a cart."""
        if self._cart.id is not None:
            return Ok(self._cart.id)
        if self._creating is None:
            self._creating = asyncio.get_running_loop().create_task(self._create_cart(), name="create_cart")
        return await self._creating

    async def _create_cart(self) -> Result[str, CommerceError]:
        result = await self._call(self._platform.create_cart, "create_cart")
        match result:
            case Ok(created):
                self._cart = Cart.from_lines(
                    self._cart.lines,
                    id=created.id,
                    currency=self._cart.currency,
                    checkout_url=created.checkout_url,
                )
                logger.info("cart.created", cart_id=created.id)
                self._notify()
                return Ok(created.id)
            case Error(err):
                # Next mutation tries again.
                self._creating = None
                return Error(err)

    def _is_latest(self, intent: _Intent) -> bool:
        return self._versions.get(intent.merchandise_id) == intent.version

    def _confirm(self, intent: _Intent, server_cart: Cart) -> Result[Cart, CommerceError]:
        merchandise_id = intent.merchandise_id
        server_line = find_line(server_cart, merchandise_id=merchandise_id)
        self._confirmed[merchandise_id] = server_line

        if self._is_latest(intent):
            self._cart = replace_line(self._cart, merchandise_id, server_line)
            self._states[merchandise_id] = Confirmed(
                merchandise_id,
                intent.version,
                server_line.id if server_line is not None else None,
            )
            logger.debug("cart.confirmed", merchandise_id=merchandise_id, version=intent.version)
        else:
            # A newer optimistic edit owns the line; only take the server id.
            if server_line is not None:
                self._cart = adopt_line_id(self._cart, merchandise_id, server_line.id)
            logger.debug(
                "cart.stale_confirmation",
                merchandise_id=merchandise_id,
                version=intent.version,
                latest=self._versions.get(merchandise_id),
            )
        self._notify()
        return Ok(self._cart)

    def _fail(self, intent: _Intent, error: CommerceError) -> Result[Cart, CommerceError]:
        merchandise_id = intent.merchandise_id
        logger.warning(
            "cart.reconcile_failed",
            merchandise_id=merchandise_id,
            version=intent.version,
            mutation=intent.kind.name,
            error_kind=error.kind.value,
            retryable=error.is_retryable,
            correlation_id=error.context.correlation_id,
        )
        if not self._is_latest(intent):
            return Error(error)

        reverted = False
        if self._rollback is RollbackPolicy.REVERT:
            self._cart = replace_line(self._cart, merchandise_id, self._confirmed.get(merchandise_id))
            reverted = True
            logger.info("cart.reverted", merchandise_id=merchandise_id, version=intent.version)
        self._states[merchandise_id] = RolledBack(merchandise_id, intent.version, error, reverted)
        self._notify()
        return Error(error)

    # Server sync

    async def load(self, cart_id: str) -> Result[Cart, CommerceError]:
        """Replace local state with the server's cart."""
        fetched = await self._call(lambda: self._platform.get_cart(cart_id), "get_cart")
        if isinstance(fetched, Error):
            return fetched
        server_cart = fetched.value
        if server_cart is None:
            return Error(Errors.not_found("Cart", cart_id))

        self._cart = server_cart
        self._confirmed = {line.merchandise_id: line for line in server_cart.lines}
        for line in server_cart.lines:
            self._states[line.merchandise_id] = Confirmed(
                line.merchandise_id,
                self._versions.get(line.merchandise_id, 0),
                line.id,
            )
        self._notify()
        return Ok(self._cart)

    async def refresh(self) -> Result[Cart, CommerceError]:
        """
        Pull the server cart and merge it in.

        Lines with a reconciliation in flight at any point during the read
        keep their local value, as do failed lines under RollbackPolicy.KEEP.
        """
        cart_id = self._cart.id
        if cart_id is None:
            return Ok(self._cart)
        versions = dict(self._versions)
        pinned = self._pinned()
        fetched = await self._call(lambda: self._platform.get_cart(cart_id), "get_cart")
        if isinstance(fetched, Error):
            return fetched
        server_cart = fetched.value
        if server_cart is None:
            return Error(Errors.not_found("Cart", cart_id))

        pinned |= self._pinned()
        pinned |= {m for m, v in self._versions.items() if versions.get(m) != v}
        server_by_merchandise = {line.merchandise_id: line for line in server_cart.lines}
        lines: list[CartLine] = []
        seen: set[str] = set()
        for line in self._cart.lines:
            seen.add(line.merchandise_id)
            if line.merchandise_id in pinned:
                lines.append(line)
            elif line.merchandise_id in server_by_merchandise:
                lines.append(server_by_merchandise[line.merchandise_id])
        for line in server_cart.lines:
            if line.merchandise_id not in seen and line.merchandise_id not in pinned:
                lines.append(line)
        for merchandise_id, line in server_by_merchandise.items():
            if merchandise_id not in pinned:
                self._confirmed[merchandise_id] = line

        self._cart = Cart.from_lines(
            lines,
            id=server_cart.id,
            currency=server_cart.currency,
            checkout_url=server_cart.checkout_url,
        )
        self._notify()
        return Ok(self._cart)

    def _pinned(self) -> set[str]:
        return {m for m, s in self._states.items() if self._is_pinned(s)}

    def _is_pinned(self, state: LineState) -> bool:
        if not is_terminal(state):
            return True
        return isinstance(state, RolledBack) and not state.reverted

    def _notify(self) -> None:
        cart = self._cart
        for listener in tuple(self._listeners):
            try:
                listener(cart)
            except Exception:
                logger.exception("cart.listener_failed", listener=repr(listener))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CartListener",
    "Unsubscribe",
    "Mutation",
    "OptimisticCart",
)
