"""Position snapshots and liquidation-driven size adjustments.

PositionUpdated is the chain's authoritative snapshot. Each Liquidated event
is recorded once in the adjustment ledger under (trader, event_id), tagged
with the snapshot it landed on, and the position's size is always recomputed
as that snapshot folded with its recorded reductions. Replaying any range of
snapshots and liquidations therefore lands on the same size.

A liquidation is not recorded when:

- the liquidation policy is "snapshot_only" (snapshots are the sole truth),
- it is already in the ledger,
- the current snapshot came from the same transaction as the liquidation,
  since that snapshot already reflects the reduction.
"""

from dataclasses import replace

from perp_indexer.config import ProjectionSettings
from perp_indexer.events import Liquidated, PositionUpdated
from perp_indexer.logging import get_logger
from perp_indexer.models import Position, PositionAdjustment
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)


def reduce_toward_zero(size: int, amount: int, clamp: bool = True) -> int:
    """Shrink a signed size toward zero by ``amount``.

    Longs are reduced by subtracting, shorts by adding. With ``clamp`` the
    result never crosses zero.
    """
    if size > 0:
        reduced = size - amount
        return max(reduced, 0) if clamp else reduced
    if size < 0:
        reduced = size + amount
        return min(reduced, 0) if clamp else reduced
    return 0 if clamp else amount


class PositionAdjuster:
    """Maintains per-trader net positions.

    Args:
        store: Entity store holding Position and PositionAdjustment entities.
        settings: Liquidation policy; defaults to ProjectionSettings().
    """

    def __init__(
        self,
        store: EntityStore,
        settings: ProjectionSettings | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or ProjectionSettings()

    async def apply_update(self, event: PositionUpdated) -> Position:
        snapshot = Position(
            trader=event.trader,
            size=event.size,
            entry_price=event.entry_price,
            snapshot_tx_hash=event.transaction_hash,
            snapshot_event_id=event.event_id,
            snapshot_size=event.size,
        )
        # a replayed snapshot picks its recorded liquidations back up
        position = await self._fold(snapshot)
        await self._store.upsert_position(position)
        logger.debug(
            "position_updated",
            trader=position.trader,
            size=str(position.size),
            entry_price=str(position.entry_price),
        )
        return position

    async def apply_liquidation(self, event: Liquidated) -> Position | None:
        """Nudge the liquidated trader's size toward zero.

        Returns:
            The position as it stands after the event, or None if the trader
            has no indexed position.
        """
        if self._settings.liquidation_policy == "snapshot_only":
            logger.debug("liquidation_adjustment_disabled", trader=event.trader)
            return await self._store.get_position(event.trader)

        position = await self._store.get_position(event.trader)
        if position is None:
            logger.warning("position_not_found", trader=event.trader, action="liquidate")
            return None

        if await self._store.get_position_adjustment(event.trader, event.event_id) is not None:
            logger.debug("liquidation_already_applied", trader=event.trader)
            return position
        if position.snapshot_tx_hash == event.transaction_hash:
            logger.info(
                "liquidation_covered_by_snapshot",
                trader=event.trader,
                size=str(position.size),
            )
            return position

        if event.amount > abs(position.size):
            logger.warning(
                "liquidation_exceeds_position",
                trader=event.trader,
                size=str(position.size),
                amount=str(event.amount),
                clamped=self._settings.clamp_liquidation_at_zero,
            )

        await self._store.add_position_adjustment(
            PositionAdjustment(
                trader=event.trader,
                event_id=event.event_id,
                snapshot_event_id=position.snapshot_event_id,
                amount=event.amount,
            )
        )
        adjusted = await self._fold(position)
        await self._store.upsert_position(adjusted)
        logger.info(
            "position_liquidated",
            trader=event.trader,
            previous_size=str(position.size),
            size=str(adjusted.size),
        )
        return adjusted

    async def _fold(self, position: Position) -> Position:
        """Recompute size from the snapshot and its recorded liquidations."""
        size = position.snapshot_size if position.snapshot_size is not None else position.size
        adjustments = await self._store.get_position_adjustments(
            position.trader, position.snapshot_event_id
        )
        clamp = self._settings.clamp_liquidation_at_zero
        for adjustment in adjustments:
            size = reduce_toward_zero(size, adjustment.amount, clamp=clamp)
        return replace(position, size=size)
