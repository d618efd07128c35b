"""Tests for OrderLifecycleTracker.

Verifies:
- OrderPlaced creates an OPEN order with its full amount remaining
- Partial then complete fill
- Fill ledger keeps a redelivered trade from double-decrementing
- OrderRemoved classification (FILLED vs CANCELLED) and terminal stickiness
- Missing orders are skipped without error
"""

import pytest

from perp_indexer.events import OrderPlaced, OrderRemoved
from perp_indexer.handlers.orders import OrderLifecycleTracker
from perp_indexer.models import OrderStatus, Trade
from perp_indexer.store.memory import InMemoryEntityStore


def _placed(order_id: str = "1", amount: int = 10, price: int = 100, is_buy: bool = True) -> OrderPlaced:
    return OrderPlaced(
        block_timestamp=900,
        transaction_hash=f"0xplace{order_id}",
        log_index=0,
        order_id=order_id,
        trader="0xA",
        is_buy=is_buy,
        price=price,
        amount=amount,
    )


def _removed(order_id: str = "1") -> OrderRemoved:
    return OrderRemoved(
        block_timestamp=2000,
        transaction_hash=f"0xremove{order_id}",
        log_index=0,
        order_id=order_id,
    )


def _trade(
    trade_id: str,
    amount: int,
    buy_order_id: str = "1",
    sell_order_id: str = "99",
    price: int = 101,
) -> Trade:
    return Trade(
        id=trade_id,
        buyer="0xA",
        seller="0xB",
        price=price,
        amount=amount,
        timestamp=1000,
        tx_hash=trade_id.split("-")[0],
        buy_order_id=buy_order_id,
        sell_order_id=sell_order_id,
    )


@pytest.fixture
def tracker(store: InMemoryEntityStore) -> OrderLifecycleTracker:
    return OrderLifecycleTracker(store)


class TestPlace:
    @pytest.mark.asyncio
    async def test_place_creates_open_order(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        order = await tracker.place(_placed(amount=10))

        assert order.status is OrderStatus.OPEN
        assert order.amount == 10
        assert order.initial_amount == 10
        assert order.timestamp == 900
        assert await store.get_order("1") == order

    @pytest.mark.asyncio
    async def test_replayed_placement_does_not_reset_fills(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=10))
        await tracker.apply_trade(_trade("0xt1-0", amount=4))
        await tracker.place(_placed(amount=10))

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 6


class TestFills:
    @pytest.mark.asyncio
    async def test_partial_fill_stays_open(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        """OrderPlaced{amount=10} then a 4-unit trade leaves 6 OPEN."""
        await tracker.place(_placed(amount=10, price=100))
        await tracker.apply_trade(_trade("0xt1-0", amount=4, price=101))

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 6
        assert order.status is OrderStatus.OPEN

    @pytest.mark.asyncio
    async def test_complete_fill_marks_filled(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        """Continuing the partial fill, a 6-unit trade fills the order."""
        await tracker.place(_placed(amount=10, price=100))
        await tracker.apply_trade(_trade("0xt1-0", amount=4, price=101))
        await tracker.apply_trade(_trade("0xt2-0", amount=6, price=102))

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 0
        assert order.status is OrderStatus.FILLED

    @pytest.mark.asyncio
    async def test_redelivered_trade_does_not_double_decrement(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=10))
        trade = _trade("0xt1-0", amount=4)
        await tracker.apply_trade(trade)
        await tracker.apply_trade(trade)

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 6
        assert order.status is OrderStatus.OPEN
        assert await store.get_filled_amount("1") == 4

    @pytest.mark.asyncio
    async def test_both_sides_updated(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(order_id="1", amount=10, is_buy=True))
        await tracker.place(_placed(order_id="2", amount=4, is_buy=False))

        updated = await tracker.apply_trade(
            _trade("0xt1-0", amount=4, buy_order_id="1", sell_order_id="2")
        )

        assert [o.id for o in updated] == ["1", "2"]
        buy = await store.get_order("1")
        sell = await store.get_order("2")
        assert buy is not None and sell is not None
        assert buy.amount == 6 and buy.status is OrderStatus.OPEN
        assert sell.amount == 0 and sell.status is OrderStatus.FILLED

    @pytest.mark.asyncio
    async def test_missing_order_is_skipped(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        """Sell order 99 was never indexed; the buy side still updates."""
        await tracker.place(_placed(amount=10))

        updated = await tracker.apply_trade(_trade("0xt1-0", amount=3))

        assert [o.id for o in updated] == ["1"]
        assert await store.get_order("99") is None
        assert await store.get_order_fills("99") == []

    @pytest.mark.asyncio
    async def test_overfill_clamps_to_zero(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=5))
        await tracker.apply_trade(_trade("0xt1-0", amount=8))

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 0
        assert order.status is OrderStatus.FILLED

    @pytest.mark.asyncio
    async def test_self_matched_order_filled_once(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=10))

        await tracker.apply_trade(_trade("0xt1-0", amount=3, buy_order_id="1", sell_order_id="1"))

        order = await store.get_order("1")
        assert order is not None
        assert order.amount == 7

    @pytest.mark.asyncio
    async def test_amount_non_increasing_while_open(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=20))
        previous = 20
        for i, amount in enumerate((3, 1, 5, 2)):
            await tracker.apply_trade(_trade(f"0xt{i}-0", amount=amount))
            order = await store.get_order("1")
            assert order is not None
            assert order.status is OrderStatus.OPEN
            assert 0 <= order.amount <= previous
            previous = order.amount
        assert previous == 9


class TestRemove:
    @pytest.mark.asyncio
    async def test_remove_unfilled_order_cancels(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=10))
        await tracker.apply_trade(_trade("0xt1-0", amount=4))

        closed = await tracker.remove(_removed())

        assert closed is not None
        assert closed.status is OrderStatus.CANCELLED
        assert closed.amount == 0
        assert closed.initial_amount == 10

    @pytest.mark.asyncio
    async def test_remove_filled_order_stays_filled(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=4))
        await tracker.apply_trade(_trade("0xt1-0", amount=4))

        closed = await tracker.remove(_removed())

        assert closed is not None
        assert closed.status is OrderStatus.FILLED
        assert closed.amount == 0

    @pytest.mark.asyncio
    async def test_remove_twice_keeps_cancelled(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        """A replayed removal sees amount == 0 but must not flip CANCELLED to FILLED."""
        await tracker.place(_placed(amount=10))
        await tracker.remove(_removed())
        await tracker.remove(_removed())

        order = await store.get_order("1")
        assert order is not None
        assert order.status is OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_trade_after_cancel_does_not_reopen(
        self, tracker: OrderLifecycleTracker, store: InMemoryEntityStore
    ) -> None:
        await tracker.place(_placed(amount=10))
        await tracker.remove(_removed())

        await tracker.apply_trade(_trade("0xt1-0", amount=4))

        order = await store.get_order("1")
        assert order is not None
        assert order.status is OrderStatus.CANCELLED
        assert order.amount == 0

    @pytest.mark.asyncio
    async def test_remove_missing_order(self, tracker: OrderLifecycleTracker) -> None:
        assert await tracker.remove(_removed("404")) is None
