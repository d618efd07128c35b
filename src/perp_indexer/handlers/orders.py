"""Order lifecycle tracking: OPEN -> FILLED | CANCELLED.

An order's remaining amount is never decremented in place. Every trade that
touches an order is written to the fill ledger under (order_id, trade_id),
and the remaining amount is recomputed as initial_amount minus the sum of
all recorded fills. A redelivered trade overwrites its own fill row, so the
fold lands on the same value however many times the trade is applied.

Orders that reference entities the indexer never saw (it may start
mid-stream) are skipped with a warning rather than treated as errors.
"""

from dataclasses import replace

from perp_indexer.events import OrderPlaced, OrderRemoved
from perp_indexer.logging import get_logger
from perp_indexer.models import Order, OrderFill, OrderStatus, Trade
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)


class OrderLifecycleTracker:
    """Maintains per-order remaining amount and status.

    Args:
        store: Entity store holding Order and OrderFill records.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def place(self, event: OrderPlaced) -> Order:
        """Create an OPEN order with its full amount remaining.

        An order that already exists is left untouched, so a replayed
        placement cannot reopen a filled or cancelled order.
        """
        existing = await self._store.get_order(event.order_id)
        if existing is not None:
            logger.debug("order_already_indexed", order_id=event.order_id)
            return existing

        order = Order(
            id=event.order_id,
            trader=event.trader,
            is_buy=event.is_buy,
            price=event.price,
            initial_amount=event.amount,
            amount=event.amount,
            status=OrderStatus.OPEN,
            timestamp=event.block_timestamp,
        )
        await self._store.upsert_order(order)
        logger.debug(
            "order_placed",
            order_id=order.id,
            trader=order.trader,
            is_buy=order.is_buy,
            price=str(order.price),
            amount=str(order.amount),
        )
        return order

    async def apply_trade(self, trade: Trade) -> list[Order]:
        """Apply a trade's fill to both its buy and sell order.

        Returns:
            The orders that were found and updated.
        """
        updated = []
        # dict.fromkeys keeps order and collapses a self-matched order id
        for order_id in dict.fromkeys((trade.buy_order_id, trade.sell_order_id)):
            order = await self._apply_fill(order_id, trade)
            if order is not None:
                updated.append(order)
        return updated

    async def remove(self, event: OrderRemoved) -> Order | None:
        """Close an order: FILLED if nothing remains, otherwise CANCELLED.

        Terminal orders are never re-classified.
        """
        order = await self._store.get_order(event.order_id)
        if order is None:
            logger.warning("order_not_found", order_id=event.order_id, action="remove")
            return None
        if order.status.is_terminal:
            logger.debug(
                "order_already_closed",
                order_id=order.id,
                status=order.status.value,
            )
            return order

        status = OrderStatus.FILLED if order.amount == 0 else OrderStatus.CANCELLED
        closed = replace(order, amount=0, status=status)
        await self._store.upsert_order(closed)
        logger.debug(
            "order_removed",
            order_id=closed.id,
            status=status.value,
            unfilled_amount=str(order.amount),
        )
        return closed

    async def _apply_fill(self, order_id: str, trade: Trade) -> Order | None:
        order = await self._store.get_order(order_id)
        if order is None:
            logger.warning("order_not_found", order_id=order_id, trade_id=trade.id)
            return None

        await self._store.upsert_order_fill(
            OrderFill(order_id=order_id, trade_id=trade.id, amount=trade.amount)
        )

        if order.status.is_terminal:
            logger.warning(
                "fill_on_closed_order",
                order_id=order_id,
                trade_id=trade.id,
                status=order.status.value,
            )
            return order

        filled = await self._store.get_filled_amount(order_id)
        remaining = order.initial_amount - filled
        if remaining < 0:
            logger.warning(
                "order_overfilled",
                order_id=order_id,
                initial_amount=str(order.initial_amount),
                filled=str(filled),
            )
            remaining = 0

        status = OrderStatus.FILLED if remaining == 0 else OrderStatus.OPEN
        updated = replace(order, amount=remaining, status=status)
        await self._store.upsert_order(updated)
        logger.debug(
            "order_filled",
            order_id=order_id,
            trade_id=trade.id,
            remaining=str(remaining),
            status=status.value,
        )
        return updated
