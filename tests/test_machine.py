from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from cartsync import ErrorKind
from cartsync.cart import (
    Cart,
    CartLine,
    Confirmed,
    Idle,
    Mutation,
    MutationKind,
    OptimisticApplied,
    OptimisticCart,
    RollbackPolicy,
    RolledBack,
    find_line,
)
from cartsync.platform import CatalogueEntry, InMemoryCommercePlatform, LineUpdate
from cartsync.resilience import Resilience

from conftest import MASSAGE, PRICES, TOWEL, YOGA, catalogue_entries, products

P = products()


class SlowReadPlatform(InMemoryCommercePlatform):
    """Reads snapshot the server cart first and answer only once released."""

    def __init__(self, catalogue: dict[str, CatalogueEntry]) -> None:
        super().__init__(catalogue)
        self.snapshots: list[Cart | None] = []
        self._reads = asyncio.Event()
        self._reads.set()

    def hold_reads(self) -> None:
        self._reads.clear()

    def release_reads(self) -> None:
        self._reads.set()

    async def get_cart(self, cart_id: str) -> Cart | None:
        await self._enter("get_cart")
        snapshot = self.carts.get(cart_id)
        self.snapshots.append(snapshot)
        await self._reads.wait()
        return snapshot


async def until(predicate: Callable[[], bool], rounds: int = 100) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


def quantity(cart: Cart, merchandise_id: str) -> int | None:
    line = find_line(cart, merchandise_id=merchandise_id)
    return line.quantity if line is not None else None


@pytest.fixture
def cart(platform: InMemoryCommercePlatform, resilience: Resilience) -> OptimisticCart:
    return OptimisticCart(platform, resilience)


async def add(cart: OptimisticCart, merchandise_id: str, qty: int = 1) -> Cart:
    match await cart.add(merchandise_id, unit_price=PRICES[merchandise_id], product=P[merchandise_id], quantity=qty):
        case Ok(value):
            return value
        case Error(err):
            pytest.fail(f"add failed: {err}")


class TestOptimisticAdd:
    async def test_visible_before_reconciliation(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        mutation = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])

        assert cart.cart.total == PRICES[MASSAGE]
        assert cart.cart.lines[0].is_optimistic
        assert cart.state(MASSAGE) == OptimisticApplied(MASSAGE, 1, MutationKind.ADD)
        assert platform.calls() == []

        result = await mutation

        match result:
            case Ok(confirmed):
                assert confirmed.id == "cart_1"
                assert confirmed.lines[0].id == "line_1"
            case Error(err):
                pytest.fail(f"unexpected error: {err}")
        assert cart.state(MASSAGE) == Confirmed(MASSAGE, 1, "line_1")
        assert cart.pending == 0

    async def test_concurrent_first_mutations_share_one_cart(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        first = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        second = cart.add(YOGA, unit_price=PRICES[YOGA], product=P[YOGA])

        assert isinstance(await first, Ok)
        assert isinstance(await second, Ok)

        assert platform.calls("create_cart") == ["create_cart"]
        assert cart.cart.id == "cart_1"
        assert all(line.id is not None for line in cart.cart.lines)
        assert platform.carts["cart_1"].total == cart.cart.total

    async def test_repeated_adds_of_same_item_merge(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        first = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        second = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])

        assert quantity(cart.cart, MASSAGE) == 2
        await first
        await second

        assert len(cart.cart.lines) == 1
        assert quantity(cart.cart, MASSAGE) == 2
        assert quantity(platform.carts["cart_1"], MASSAGE) == 2

    async def test_rejects_non_positive_quantity(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        mutation = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE], quantity=0)

        assert mutation.done()
        match await mutation:
            case Error(err):
                assert err.kind is ErrorKind.VALIDATION_FAILED
            case Ok(_):
                pytest.fail("expected rejection")
        assert cart.cart.is_empty
        assert platform.calls() == []

    async def test_failed_cart_creation_is_retried_by_next_mutation(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        platform.fail_next("create_cart", times=3)

        assert isinstance(await cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE]), Error)
        assert cart.cart.id is None

        await add(cart, YOGA)

        assert cart.cart.id == "cart_1"
        assert len(platform.calls("create_cart")) == 4


class TestQuantityChanges:
    async def test_update_is_relative(self, cart: OptimisticCart, platform: InMemoryCommercePlatform) -> None:
        await add(cart, MASSAGE)

        mutation = cart.update(MASSAGE, 2)

        assert quantity(cart.cart, MASSAGE) == 3
        assert isinstance(await mutation, Ok)
        assert quantity(platform.carts["cart_1"], MASSAGE) == 3
        assert platform.calls("update_lines") == ["update_lines"]

    async def test_update_down_to_zero_removes(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE, 2)

        mutation = cart.update(MASSAGE, -2)

        assert cart.cart.is_empty
        assert isinstance(await mutation, Ok)
        assert platform.carts["cart_1"].is_empty
        assert platform.calls("remove_lines") == ["remove_lines"]

    async def test_set_quantity_is_absolute(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, YOGA, 3)

        assert isinstance(await cart.set_quantity(YOGA, 1), Ok)

        assert quantity(cart.cart, YOGA) == 1
        assert quantity(platform.carts["cart_1"], YOGA) == 1

    @pytest.mark.parametrize("op", ["update", "set_quantity"])
    async def test_unknown_line_is_rejected(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform, op: str
    ) -> None:
        mutation = getattr(cart, op)(TOWEL, 1)

        match await mutation:
            case Error(err):
                assert err.kind is ErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected rejection")
        assert platform.calls() == []

    async def test_same_item_reconciles_in_order_and_latest_wins(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE)
        seen: list[int | None] = []
        cart.subscribe(lambda c: seen.append(quantity(c, MASSAGE)))
        platform.pause("update_lines")

        first = cart.set_quantity(MASSAGE, 3)
        second = cart.set_quantity(MASSAGE, 5)
        await until(lambda: len(platform.calls("update_lines")) == 1)
        await asyncio.sleep(0)

        # Second waits for the first to finish.
        assert len(platform.calls("update_lines")) == 1
        assert quantity(cart.cart, MASSAGE) == 5

        platform.resume("update_lines")
        assert isinstance(await first, Ok)
        assert isinstance(await second, Ok)

        # The confirmation for quantity 3 arrived stale and was not installed.
        assert 3 not in seen[1:]
        assert quantity(cart.cart, MASSAGE) == 5
        assert quantity(platform.carts["cart_1"], MASSAGE) == 5
        assert cart.state(MASSAGE) == Confirmed(MASSAGE, 3, "line_1")

    async def test_different_items_reconcile_concurrently(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE)
        await add(cart, YOGA)
        gate = platform.pause("update_lines")

        first = cart.set_quantity(MASSAGE, 2)
        second = cart.set_quantity(YOGA, 2)
        await until(lambda: len(platform.calls("update_lines")) == 2)

        gate.set()
        assert isinstance(await first, Ok)
        assert isinstance(await second, Ok)


class TestDelete:
    async def test_not_found_fails_without_a_call(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        mutation = cart.delete(TOWEL)

        assert mutation.done()
        match await mutation:
            case Error(err):
                assert err.kind is ErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected NOT_FOUND")
        assert platform.calls() == []

    async def test_stale_line_id_falls_back_to_merchandise_id(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE)

        mutation = cart.delete(MASSAGE, line_id="line_gone")

        assert cart.cart.is_empty
        assert isinstance(await mutation, Ok)
        assert platform.carts["cart_1"].is_empty

    async def test_delete_after_readd_targets_the_current_server_line(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        first = cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        cart.delete(MASSAGE)
        cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        await first
        # The re-added line carries the first line's id until its own add confirms.
        assert cart.cart.lines[0].id == "line_1"

        last = cart.delete(MASSAGE)
        await cart.settle()

        assert isinstance(await last, Ok)
        assert cart.cart.is_empty
        assert platform.carts["cart_1"].is_empty
        assert platform.calls("remove_lines") == ["remove_lines", "remove_lines"]

    async def test_unsynced_line_already_absent_on_server_needs_no_removal(
        self, platform: InMemoryCommercePlatform, resilience: Resilience
    ) -> None:
        server = await platform.create_cart()
        local = CartLine.create(MASSAGE, quantity=1, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        cart = OptimisticCart(platform, resilience, cart=Cart.from_lines([local], id=server.id))

        assert isinstance(await cart.delete(MASSAGE), Ok)

        assert cart.cart.is_empty
        assert platform.calls("get_cart") == ["get_cart"]
        assert platform.calls("remove_lines") == []
        assert cart.state(MASSAGE) == Confirmed(MASSAGE, 1, None)

    async def test_removing_last_line_leaves_zero_total(self, cart: OptimisticCart) -> None:
        await add(cart, MASSAGE)

        assert isinstance(await cart.delete(MASSAGE), Ok)

        assert cart.cart.lines == ()
        assert cart.cart.total == 0
        assert str(cart.cart.total) == "0"

    async def test_failure_keeps_optimistic_removal_by_default(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE)
        platform.fail_next("remove_lines", times=3)

        result = await cart.delete(MASSAGE)

        match result:
            case Error(err):
                assert err.kind is ErrorKind.NETWORK_ERROR
            case Ok(_):
                pytest.fail("expected failure")
        assert len(platform.calls("remove_lines")) == 3
        assert cart.cart.is_empty
        state = cart.state(MASSAGE)
        assert isinstance(state, RolledBack)
        assert not state.reverted
        assert MASSAGE in cart.failures()
        # Server still has the line; a refresh does not resurrect it locally.
        assert not platform.carts["cart_1"].is_empty
        assert isinstance(await cart.refresh(), Ok)
        assert cart.cart.is_empty

    async def test_failure_reverts_under_revert_policy(
        self, platform: InMemoryCommercePlatform, resilience: Resilience
    ) -> None:
        cart = OptimisticCart(platform, resilience, rollback=RollbackPolicy.REVERT)
        await add(cart, MASSAGE)
        platform.fail_next("remove_lines", times=3)

        assert isinstance(await cart.delete(MASSAGE), Error)

        assert quantity(cart.cart, MASSAGE) == 1
        assert cart.cart.lines[0].id == "line_1"
        assert cart.cart.total == PRICES[MASSAGE]
        state = cart.state(MASSAGE)
        assert isinstance(state, RolledBack) and state.reverted


class TestServerSync:
    async def test_refresh_takes_server_changes(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        await add(cart, MASSAGE)
        await platform.update_lines("cart_1", [LineUpdate("line_1", MASSAGE, 4)])

        assert isinstance(await cart.refresh(), Ok)

        assert quantity(cart.cart, MASSAGE) == 4
        assert cart.cart.total == PRICES[MASSAGE] * 4

    async def test_stale_read_does_not_drop_line_confirmed_meanwhile(self, resilience: Resilience) -> None:
        platform = SlowReadPlatform(catalogue_entries())
        cart = OptimisticCart(platform, resilience)
        await add(cart, MASSAGE)
        platform.pause("add_lines")
        yoga = cart.add(YOGA, unit_price=PRICES[YOGA], product=P[YOGA])
        await until(lambda: len(platform.calls("add_lines")) == 2)

        platform.hold_reads()
        refresh = asyncio.ensure_future(cart.refresh())
        await until(lambda: len(platform.snapshots) == 1)
        assert find_line(platform.snapshots[0], merchandise_id=YOGA) is None

        platform.resume("add_lines")
        assert isinstance(await yoga, Ok)
        platform.release_reads()
        assert isinstance(await refresh, Ok)

        assert quantity(cart.cart, YOGA) == 1
        assert cart.cart.total == PRICES[MASSAGE] + PRICES[YOGA]
        assert isinstance(await cart.refresh(), Ok)
        assert cart.cart == platform.carts["cart_1"]

    async def test_refresh_without_cart_is_a_no_op(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform
    ) -> None:
        assert await cart.refresh() == Ok(cart.cart)
        assert platform.calls() == []

    async def test_load_replaces_local_state(
        self, platform: InMemoryCommercePlatform, resilience: Resilience
    ) -> None:
        original = OptimisticCart(platform, resilience)
        await add(original, MASSAGE)
        await add(original, YOGA, 2)

        restored = OptimisticCart(platform, resilience)
        assert isinstance(await restored.load("cart_1"), Ok)

        assert restored.cart == platform.carts["cart_1"]
        assert restored.state(YOGA) == Confirmed(YOGA, 0, "line_2")

    async def test_load_missing_cart(self, cart: OptimisticCart) -> None:
        match await cart.load("cart_404"):
            case Error(err):
                assert err.kind is ErrorKind.NOT_FOUND
            case Ok(_):
                pytest.fail("expected NOT_FOUND")


class TestObservers:
    async def test_listener_sees_every_change_until_unsubscribed(self, cart: OptimisticCart) -> None:
        seen: list[Cart] = []
        unsubscribe = cart.subscribe(seen.append)

        await add(cart, MASSAGE)
        count = len(seen)
        unsubscribe()
        await add(cart, YOGA)

        assert count >= 2
        assert len(seen) == count

    async def test_failing_listener_does_not_break_the_cart(self, cart: OptimisticCart) -> None:
        def explode(_: Cart) -> None:
            raise RuntimeError("listener bug")

        cart.subscribe(explode)

        await add(cart, MASSAGE)

        assert cart.cart.lines[0].id == "line_1"

    async def test_settle_waits_for_everything(self, cart: OptimisticCart) -> None:
        cart.add(MASSAGE, unit_price=PRICES[MASSAGE], product=P[MASSAGE])
        cart.add(YOGA, unit_price=PRICES[YOGA], product=P[YOGA])
        assert cart.pending == 2

        await cart.settle()

        assert cart.pending == 0
        assert all(line.id is not None for line in cart.cart.lines)

    def test_untouched_item_is_idle(self, cart: OptimisticCart) -> None:
        assert cart.state(TOWEL) == Idle(TOWEL, 0)


class TestMutationSequences:
    """Random add/update/set/delete runs; totals hold at every step and the cart converges."""

    @staticmethod
    def assert_totals(cart: Cart) -> None:
        assert cart.total == sum((line.cost for line in cart.lines), start=Decimal(0))

    @pytest.mark.parametrize("seed", range(8))
    async def test_random_sequence_converges_with_server(
        self, cart: OptimisticCart, platform: InMemoryCommercePlatform, seed: int
    ) -> None:
        rng = random.Random(seed)
        expected: dict[str, int] = {}
        pending: list[Mutation] = []

        for _ in range(25):
            merchandise_id = rng.choice([MASSAGE, YOGA, TOWEL])
            current = expected.get(merchandise_id)
            match rng.choice(["add", "update", "set", "delete"]):
                case "add":
                    qty = rng.randint(1, 3)
                    mutation = cart.add(
                        merchandise_id, unit_price=PRICES[merchandise_id], product=P[merchandise_id], quantity=qty
                    )
                    expected[merchandise_id] = (current or 0) + qty
                case "update":
                    delta = rng.randint(-2, 2)
                    mutation = cart.update(merchandise_id, delta)
                    if current is not None:
                        expected[merchandise_id] = current + delta
                case "set":
                    target = rng.randint(0, 4)
                    mutation = cart.set_quantity(merchandise_id, target)
                    if current is not None:
                        expected[merchandise_id] = target
                case _:
                    mutation = cart.delete(merchandise_id)
                    expected.pop(merchandise_id, None)
            expected = {m: q for m, q in expected.items() if q > 0}

            self.assert_totals(cart.cart)
            assert {line.merchandise_id: line.quantity for line in cart.cart.lines} == expected
            if current is None and mutation.kind is not MutationKind.ADD:
                assert mutation.done()
            else:
                pending.append(mutation)
            if rng.random() < 0.3:
                await asyncio.sleep(0)

        await cart.settle()

        results = [await m for m in pending]
        assert all(isinstance(r, Ok) for r in results)
        self.assert_totals(cart.cart)
        server = platform.carts.get("cart_1")
        server_lines = {line.merchandise_id: (line.quantity, line.id) for line in server.lines} if server else {}
        assert {line.merchandise_id: (line.quantity, line.id) for line in cart.cart.lines} == server_lines
        assert {m: q for m, (q, _) in server_lines.items()} == expected
        assert cart.failures() == {}
