"""Event dispatch: routes each typed event to its handlers, one at a time.

Events are applied strictly in the order they are handed in. Each event's
writes form one store transaction together with its applied-event ledger
entry: either all of them are committed or none are. A redelivered event id
is skipped, which makes every event kind safe under at-least-once delivery,
including the stateful candle and order folds.

The dispatcher never retries. A failed event is rolled back and its
exception re-raised for the caller to decide.
"""

from typing import assert_never

import structlog

from perp_indexer.config import ProjectionSettings
from perp_indexer.events import (
    FundingPaid,
    FundingUpdated,
    IndexerEvent,
    Liquidated,
    MarginDeposited,
    MarginWithdrawn,
    OrderPlaced,
    OrderRemoved,
    PositionUpdated,
    TradeExecuted,
)
from perp_indexer.exceptions import StoreUnavailableError
from perp_indexer.handlers import (
    AuditLogWriter,
    CandleAggregator,
    OrderLifecycleTracker,
    PositionAdjuster,
)
from perp_indexer.logging import get_logger
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)


class EventDispatcher:
    """Applies typed exchange events to the entity store.

    Args:
        store: The entity store all handlers share.
        projection_settings: Liquidation policy for the position adjuster.
        skip_applied_events: Skip events whose id is already in the
            applied-event ledger.
    """

    def __init__(
        self,
        store: EntityStore,
        projection_settings: ProjectionSettings | None = None,
        skip_applied_events: bool = True,
    ) -> None:
        self._store = store
        self._skip_applied_events = skip_applied_events
        self._audit = AuditLogWriter(store)
        self._candles = CandleAggregator(store)
        self._orders = OrderLifecycleTracker(store)
        self._positions = PositionAdjuster(store, projection_settings)

    async def apply(self, event: IndexerEvent) -> bool:
        """Apply one event and commit its mutations.

        Returns:
            True if the event was applied, False if it was skipped as already
            applied.

        Raises:
            StoreUnavailableError: If the store fails; nothing from this event
                is committed.
        """
        with structlog.contextvars.bound_contextvars(
            event_id=event.event_id,
            event_type=event.EVENT_TYPE,
        ):
            try:
                if self._skip_applied_events and await self._store.is_event_applied(
                    event.event_id
                ):
                    logger.debug("event_already_applied")
                    return False

                await self._route(event)
                await self._store.mark_event_applied(
                    event.event_id, event.EVENT_TYPE, event.block_timestamp
                )
                await self._store.commit()
            except Exception:
                logger.error("event_apply_failed", exc_info=True)
                await self._rollback()
                raise

            logger.debug("event_applied", block_timestamp=event.block_timestamp)
            return True

    async def _route(self, event: IndexerEvent) -> None:
        match event:
            case MarginDeposited() | MarginWithdrawn():
                await self._audit.record_margin(event)
            case OrderPlaced():
                await self._orders.place(event)
            case OrderRemoved():
                await self._orders.remove(event)
            case TradeExecuted():
                trade = await self._audit.record_trade(event)
                await self._candles.apply_trade(trade)
                await self._orders.apply_trade(trade)
            case PositionUpdated():
                await self._positions.apply_update(event)
            case FundingUpdated():
                await self._audit.record_funding_update(event)
            case FundingPaid():
                await self._audit.record_funding_payment(event)
            case Liquidated():
                await self._audit.record_liquidation(event)
                await self._positions.apply_liquidation(event)
            case _:
                assert_never(event)

    async def _rollback(self) -> None:
        try:
            await self._store.rollback()
        except StoreUnavailableError:
            logger.error("rollback_failed", exc_info=True)
