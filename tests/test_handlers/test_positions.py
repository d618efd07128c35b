"""Tests for PositionAdjuster and reduce_toward_zero."""

import pytest

from perp_indexer.config import ProjectionSettings
from perp_indexer.events import Liquidated, PositionUpdated
from perp_indexer.handlers.positions import PositionAdjuster, reduce_toward_zero
from perp_indexer.store.memory import InMemoryEntityStore


def _update(size: int, entry_price: int = 100, tx: str = "0xsnap", log_index: int = 0) -> PositionUpdated:
    return PositionUpdated(
        block_timestamp=1000,
        transaction_hash=tx,
        log_index=log_index,
        trader="0xA",
        size=size,
        entry_price=entry_price,
    )


def _liquidated(amount: int, tx: str = "0xliq", log_index: int = 0, trader: str = "0xA") -> Liquidated:
    return Liquidated(
        block_timestamp=1100,
        transaction_hash=tx,
        log_index=log_index,
        trader=trader,
        liquidator="0xL",
        amount=amount,
        reward=1,
        price=90,
    )


@pytest.fixture
def adjuster(store: InMemoryEntityStore) -> PositionAdjuster:
    return PositionAdjuster(store)


class TestReduceTowardZero:
    def test_long_reduced(self) -> None:
        assert reduce_toward_zero(5, 2) == 3

    def test_short_reduced(self) -> None:
        assert reduce_toward_zero(-5, 2) == -3

    def test_long_clamped(self) -> None:
        assert reduce_toward_zero(5, 8) == 0

    def test_short_clamped(self) -> None:
        assert reduce_toward_zero(-5, 8) == 0

    def test_unclamped_crosses_zero(self) -> None:
        assert reduce_toward_zero(5, 8, clamp=False) == -3
        assert reduce_toward_zero(-5, 8, clamp=False) == 3

    def test_flat_position(self) -> None:
        assert reduce_toward_zero(0, 3) == 0
        assert reduce_toward_zero(0, 3, clamp=False) == 3


class TestApplyUpdate:
    @pytest.mark.asyncio
    async def test_snapshot_overwrites(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=5, entry_price=100, tx="0x1"))
        await adjuster.apply_update(_update(size=-2, entry_price=120, tx="0x2"))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == -2
        assert position.entry_price == 120
        assert position.snapshot_tx_hash == "0x2"
        assert position.snapshot_event_id == "0x2-0"
        assert position.snapshot_size == -2


class TestApplyLiquidation:
    @pytest.mark.asyncio
    async def test_full_liquidation_of_long(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        """PositionUpdated{size=5} then Liquidated{amount=5} leaves a flat position."""
        await adjuster.apply_update(_update(size=5))
        result = await adjuster.apply_liquidation(_liquidated(amount=5))

        assert result is not None
        assert result.size == 0
        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 0
        assert position.entry_price == 100

    @pytest.mark.asyncio
    async def test_partial_liquidation_of_short(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=-5))
        await adjuster.apply_liquidation(_liquidated(amount=2))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == -3

    @pytest.mark.asyncio
    async def test_oversized_liquidation_clamps(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=5))
        await adjuster.apply_liquidation(_liquidated(amount=8))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 0

    @pytest.mark.asyncio
    async def test_oversized_liquidation_unclamped(self, store: InMemoryEntityStore) -> None:
        adjuster = PositionAdjuster(store, ProjectionSettings(clamp_liquidation_at_zero=False))
        await adjuster.apply_update(_update(size=5))
        await adjuster.apply_liquidation(_liquidated(amount=8))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == -3

    @pytest.mark.asyncio
    async def test_same_transaction_snapshot_not_double_counted(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        """A snapshot emitted in the liquidation's own transaction already reflects it."""
        await adjuster.apply_update(_update(size=3, tx="0xliq", log_index=1))
        await adjuster.apply_liquidation(_liquidated(amount=2, tx="0xliq", log_index=0))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 3

    @pytest.mark.asyncio
    async def test_redelivered_liquidation_applied_once(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=5))
        liquidation = _liquidated(amount=2)
        await adjuster.apply_liquidation(liquidation)
        await adjuster.apply_liquidation(liquidation)

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 3
        assert position.snapshot_size == 5
        assert len(await store.get_position_adjustments("0xA", "0xsnap-0")) == 1

    @pytest.mark.asyncio
    async def test_snapshot_only_policy_ignores_liquidation(self, store: InMemoryEntityStore) -> None:
        adjuster = PositionAdjuster(store, ProjectionSettings(liquidation_policy="snapshot_only"))
        await adjuster.apply_update(_update(size=5))

        result = await adjuster.apply_liquidation(_liquidated(amount=5))

        assert result is not None
        assert result.size == 5

    @pytest.mark.asyncio
    async def test_missing_position_is_skipped(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        result = await adjuster.apply_liquidation(_liquidated(amount=5, trader="0xNobody"))

        assert result is None
        assert await store.get_position("0xNobody") is None

    @pytest.mark.asyncio
    async def test_liquidated_position_leaves_open_list(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=5))
        assert [p.trader for p in await store.list_open_positions()] == ["0xA"]

        await adjuster.apply_liquidation(_liquidated(amount=5))

        assert await store.list_open_positions() == []


class TestReplayedRanges:
    @pytest.mark.asyncio
    async def test_replayed_liquidations_after_later_one(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        """Re-scanning [L1, L2] after L2 has written the row leaves the size alone."""
        await adjuster.apply_update(_update(size=10))
        first = _liquidated(amount=2, tx="0xl1")
        second = _liquidated(amount=3, tx="0xl2")
        for event in (first, second, first, second):
            await adjuster.apply_liquidation(event)

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 5

    @pytest.mark.asyncio
    async def test_replayed_snapshot_refolds_recorded_liquidations(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        snapshot = _update(size=10)
        first = _liquidated(amount=2, tx="0xl1")
        second = _liquidated(amount=3, tx="0xl2")
        for event in (snapshot, first, second):
            await _apply(adjuster, event)

        replayed = await adjuster.apply_update(snapshot)
        assert replayed.size == 5

        for event in (first, second):
            await adjuster.apply_liquidation(event)
        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 5

    @pytest.mark.asyncio
    async def test_new_snapshot_starts_a_fresh_fold(
        self, adjuster: PositionAdjuster, store: InMemoryEntityStore
    ) -> None:
        await adjuster.apply_update(_update(size=10, tx="0xs1"))
        await adjuster.apply_liquidation(_liquidated(amount=2, tx="0xl1"))
        await adjuster.apply_update(_update(size=8, tx="0xs2"))

        await adjuster.apply_liquidation(_liquidated(amount=2, tx="0xl1"))
        await adjuster.apply_liquidation(_liquidated(amount=1, tx="0xl2"))

        position = await store.get_position("0xA")
        assert position is not None
        assert position.size == 7
        assert position.snapshot_size == 8


async def _apply(adjuster: PositionAdjuster, event: PositionUpdated | Liquidated) -> None:
    if isinstance(event, PositionUpdated):
        await adjuster.apply_update(event)
    else:
        await adjuster.apply_liquidation(event)
