"""OHLCV candle aggregation over executed trades.

Each trade lands in the 1-minute bucket containing its block timestamp. A
bucket's open is seeded from the previous close (the LatestCandle pointer)
rather than from its own first trade, so consecutive candles connect even
across minutes with no trades. The first trade ever seen opens at its own
price.
"""

from dataclasses import replace

from perp_indexer.logging import get_logger
from perp_indexer.models import (
    CANDLE_BUCKET_SECONDS,
    CANDLE_RESOLUTION,
    Candle,
    LatestCandle,
    Trade,
    bucket_start,
    candle_id,
)
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)


class CandleAggregator:
    """Maintains 1m candles and the LatestCandle price pointer.

    Args:
        store: Entity store holding Candle and LatestCandle entities.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    async def apply_trade(self, trade: Trade) -> Candle:
        """Fold one trade into its bucket's candle and move the latest-price pointer.

        Returns:
            The candle as written.
        """
        start = bucket_start(trade.timestamp, CANDLE_BUCKET_SECONDS)
        existing = await self._store.get_candle(candle_id(CANDLE_RESOLUTION, start))

        if existing is None:
            latest = await self._store.get_latest_candle()
            open_price = latest.close_price if latest is not None else trade.price
            candle = Candle(
                resolution=CANDLE_RESOLUTION,
                timestamp=start,
                open_price=open_price,
                high_price=max(open_price, trade.price),
                low_price=min(open_price, trade.price),
                close_price=trade.price,
                volume=trade.amount,
            )
            logger.debug(
                "candle_opened",
                candle_id=candle.id,
                open_price=str(open_price),
                seeded_from_latest=latest is not None,
            )
        else:
            candle = replace(
                existing,
                high_price=max(existing.high_price, trade.price),
                low_price=min(existing.low_price, trade.price),
                close_price=trade.price,
                volume=existing.volume + trade.amount,
            )

        await self._store.upsert_candle(candle)
        await self._store.upsert_latest_candle(
            LatestCandle(close_price=trade.price, timestamp=trade.timestamp)
        )
        return candle
