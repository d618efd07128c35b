"""Append-only audit log writers.

Margin movements, funding events, trades and liquidations are recorded by
pure upsert on their synthetic ``{txHash}-{logIndex}`` id. Nothing is read
first and nothing is aggregated, so every write here is safe to repeat.
"""

from perp_indexer.events import (
    FundingPaid,
    FundingUpdated,
    Liquidated,
    MarginDeposited,
    MarginWithdrawn,
    TradeExecuted,
)
from perp_indexer.logging import get_logger
from perp_indexer.models import (
    GlobalFundingUpdate,
    Liquidation,
    MarginEvent,
    MarginEventType,
    Trade,
    UserFundingPayment,
)
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)


class AuditLogWriter:
    """Writes immutable audit records for the event kinds that have one.

    Args:
        store: Entity store shared with the other handlers.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def record_margin(self, event: MarginDeposited | MarginWithdrawn) -> MarginEvent:
        event_type = (
            MarginEventType.DEPOSIT
            if isinstance(event, MarginDeposited)
            else MarginEventType.WITHDRAW
        )
        entity = MarginEvent(
            id=event.event_id,
            trader=event.trader,
            amount=event.amount,
            event_type=event_type,
            timestamp=event.block_timestamp,
            tx_hash=event.transaction_hash,
        )
        await self._store.upsert_margin_event(entity)
        logger.debug(
            "margin_event_recorded",
            trader=entity.trader,
            margin_event_type=event_type.value,
            amount=str(entity.amount),
        )
        return entity

    async def record_trade(self, event: TradeExecuted) -> Trade:
        trade = Trade(
            id=event.event_id,
            buyer=event.buyer,
            seller=event.seller,
            price=event.price,
            amount=event.amount,
            timestamp=event.block_timestamp,
            tx_hash=event.transaction_hash,
            buy_order_id=event.buy_order_id,
            sell_order_id=event.sell_order_id,
        )
        await self._store.upsert_trade(trade)
        logger.debug(
            "trade_recorded",
            price=str(trade.price),
            amount=str(trade.amount),
            buy_order_id=trade.buy_order_id,
            sell_order_id=trade.sell_order_id,
        )
        return trade

    async def record_funding_update(self, event: FundingUpdated) -> GlobalFundingUpdate:
        entity = GlobalFundingUpdate(
            id=event.event_id,
            cumulative_rate=event.cumulative_funding_rate,
            timestamp=event.block_timestamp,
        )
        await self._store.upsert_funding_event(entity)
        logger.debug("funding_update_recorded", cumulative_rate=str(entity.cumulative_rate))
        return entity

    async def record_funding_payment(self, event: FundingPaid) -> UserFundingPayment:
        entity = UserFundingPayment(
            id=event.event_id,
            trader=event.trader,
            payment=event.amount,
            timestamp=event.block_timestamp,
        )
        await self._store.upsert_funding_event(entity)
        logger.debug(
            "funding_payment_recorded",
            trader=entity.trader,
            payment=str(entity.payment),
        )
        return entity

    async def record_liquidation(self, event: Liquidated) -> Liquidation:
        liquidation = Liquidation(
            id=event.event_id,
            trader=event.trader,
            liquidator=event.liquidator,
            amount=event.amount,
            fee=event.reward,
            price=event.price,
            timestamp=event.block_timestamp,
            tx_hash=event.transaction_hash,
        )
        await self._store.upsert_liquidation(liquidation)
        logger.info(
            "liquidation_recorded",
            trader=liquidation.trader,
            liquidator=liquidation.liquidator,
            amount=str(liquidation.amount),
            price=str(liquidation.price),
        )
        return liquidation
