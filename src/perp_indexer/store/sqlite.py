"""Typed SQLite read/write abstraction for derived indexer entities.

Provides SqliteEntityStore with typed get/upsert methods per entity type. All
SQL is isolated behind this interface.

CRITICAL: All fixed-point values stored as TEXT in SQLite, restored as int on read.

Writes are left uncommitted until commit(), so each event's mutations land in
one SQLite transaction. sqlite errors surface as StoreUnavailableError.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import aiosqlite

from perp_indexer.exceptions import StoreUnavailableError
from perp_indexer.logging import get_logger
from perp_indexer.models import (
    LATEST_CANDLE_ID,
    Candle,
    FundingEvent,
    FundingEventType,
    GlobalFundingUpdate,
    LatestCandle,
    Liquidation,
    MarginEvent,
    MarginEventType,
    Order,
    OrderFill,
    OrderStatus,
    Position,
    PositionAdjustment,
    Trade,
    UserFundingPayment,
)
from perp_indexer.store.base import EntityStore
from perp_indexer.store.database import IndexerDatabase

logger = get_logger(__name__)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate sqlite failures into StoreUnavailableError."""
    try:
        yield
    except aiosqlite.Error as exc:
        logger.error("store_operation_failed", operation=operation, error=str(exc))
        raise StoreUnavailableError(f"{operation} failed: {exc}") from exc


class SqliteEntityStore(EntityStore):
    """Async SQLite EntityStore on top of IndexerDatabase.

    Usage:
        async with IndexerDatabase("data/indexer.db") as database:
            store = SqliteEntityStore(database)
            await store.upsert_trade(trade)
            await store.commit()
    """

    def __init__(self, database: IndexerDatabase) -> None:
        self._database = database

    async def _fetchone(self, operation: str, sql: str, params: tuple) -> Any:
        with _store_errors(operation):
            cursor = await self._database.db.execute(sql, params)
            return await cursor.fetchone()

    async def _fetchall(self, operation: str, sql: str, params: tuple = ()) -> list[Any]:
        with _store_errors(operation):
            cursor = await self._database.db.execute(sql, params)
            return list(await cursor.fetchall())

    async def _execute(self, operation: str, sql: str, params: tuple) -> None:
        with _store_errors(operation):
            await self._database.db.execute(sql, params)

    # ──────────────────────────────────────────────
    # Audit records
    # ──────────────────────────────────────────────

    async def get_margin_event(self, event_id: str) -> MarginEvent | None:
        row = await self._fetchone(
            "get_margin_event",
            "SELECT id, trader, amount, event_type, timestamp, tx_hash "
            "FROM margin_events WHERE id = ?",
            (event_id,),
        )
        if row is None:
            return None
        return MarginEvent(
            id=row[0],
            trader=row[1],
            amount=int(row[2]),
            event_type=MarginEventType(row[3]),
            timestamp=row[4],
            tx_hash=row[5],
        )

    async def upsert_margin_event(self, event: MarginEvent) -> None:
        await self._execute(
            "upsert_margin_event",
            "INSERT OR REPLACE INTO margin_events "
            "(id, trader, amount, event_type, timestamp, tx_hash) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                event.id,
                event.trader,
                str(event.amount),
                event.event_type.value,
                event.timestamp,
                event.tx_hash,
            ),
        )

    async def get_trade(self, trade_id: str) -> Trade | None:
        row = await self._fetchone(
            "get_trade",
            "SELECT id, buyer, seller, price, amount, timestamp, tx_hash, "
            "buy_order_id, sell_order_id FROM trades WHERE id = ?",
            (trade_id,),
        )
        if row is None:
            return None
        return Trade(
            id=row[0],
            buyer=row[1],
            seller=row[2],
            price=int(row[3]),
            amount=int(row[4]),
            timestamp=row[5],
            tx_hash=row[6],
            buy_order_id=row[7],
            sell_order_id=row[8],
        )

    async def upsert_trade(self, trade: Trade) -> None:
        await self._execute(
            "upsert_trade",
            "INSERT OR REPLACE INTO trades "
            "(id, buyer, seller, price, amount, timestamp, tx_hash, "
            "buy_order_id, sell_order_id) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                trade.id,
                trade.buyer,
                trade.seller,
                str(trade.price),
                str(trade.amount),
                trade.timestamp,
                trade.tx_hash,
                trade.buy_order_id,
                trade.sell_order_id,
            ),
        )

    async def get_funding_event(self, event_id: str) -> FundingEvent | None:
        row = await self._fetchone(
            "get_funding_event",
            "SELECT id, event_type, trader, cumulative_rate, payment, timestamp "
            "FROM funding_events WHERE id = ?",
            (event_id,),
        )
        if row is None:
            return None
        if FundingEventType(row[1]) is FundingEventType.GLOBAL_UPDATE:
            return GlobalFundingUpdate(
                id=row[0],
                cumulative_rate=int(row[3]),
                timestamp=row[5],
            )
        return UserFundingPayment(
            id=row[0],
            trader=row[2],
            payment=int(row[4]),
            timestamp=row[5],
        )

    async def upsert_funding_event(self, event: FundingEvent) -> None:
        if isinstance(event, GlobalFundingUpdate):
            trader, cumulative_rate, payment = None, str(event.cumulative_rate), None
        else:
            trader, cumulative_rate, payment = event.trader, None, str(event.payment)
        await self._execute(
            "upsert_funding_event",
            "INSERT OR REPLACE INTO funding_events "
            "(id, event_type, trader, cumulative_rate, payment, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                event.id,
                event.event_type.value,
                trader,
                cumulative_rate,
                payment,
                event.timestamp,
            ),
        )

    async def get_liquidation(self, liquidation_id: str) -> Liquidation | None:
        row = await self._fetchone(
            "get_liquidation",
            "SELECT id, trader, liquidator, amount, fee, price, timestamp, tx_hash "
            "FROM liquidations WHERE id = ?",
            (liquidation_id,),
        )
        if row is None:
            return None
        return Liquidation(
            id=row[0],
            trader=row[1],
            liquidator=row[2],
            amount=int(row[3]),
            fee=int(row[4]),
            price=int(row[5]),
            timestamp=row[6],
            tx_hash=row[7],
        )

    async def upsert_liquidation(self, liquidation: Liquidation) -> None:
        await self._execute(
            "upsert_liquidation",
            "INSERT OR REPLACE INTO liquidations "
            "(id, trader, liquidator, amount, fee, price, timestamp, tx_hash) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                liquidation.id,
                liquidation.trader,
                liquidation.liquidator,
                str(liquidation.amount),
                str(liquidation.fee),
                str(liquidation.price),
                liquidation.timestamp,
                liquidation.tx_hash,
            ),
        )

    # ──────────────────────────────────────────────
    # Orders and fills
    # ──────────────────────────────────────────────

    async def get_order(self, order_id: str) -> Order | None:
        row = await self._fetchone(
            "get_order",
            "SELECT id, trader, is_buy, price, initial_amount, amount, status, timestamp "
            "FROM orders WHERE id = ?",
            (order_id,),
        )
        if row is None:
            return None
        return Order(
            id=row[0],
            trader=row[1],
            is_buy=bool(row[2]),
            price=int(row[3]),
            initial_amount=int(row[4]),
            amount=int(row[5]),
            status=OrderStatus(row[6]),
            timestamp=row[7],
        )

    async def upsert_order(self, order: Order) -> None:
        await self._execute(
            "upsert_order",
            "INSERT OR REPLACE INTO orders "
            "(id, trader, is_buy, price, initial_amount, amount, status, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                order.id,
                order.trader,
                1 if order.is_buy else 0,
                str(order.price),
                str(order.initial_amount),
                str(order.amount),
                order.status.value,
                order.timestamp,
            ),
        )

    async def upsert_order_fill(self, fill: OrderFill) -> None:
        await self._execute(
            "upsert_order_fill",
            "INSERT OR REPLACE INTO order_fills (order_id, trade_id, amount) "
            "VALUES (?, ?, ?)",
            (fill.order_id, fill.trade_id, str(fill.amount)),
        )

    async def get_order_fills(self, order_id: str) -> list[OrderFill]:
        rows = await self._fetchall(
            "get_order_fills",
            "SELECT order_id, trade_id, amount FROM order_fills "
            "WHERE order_id = ? ORDER BY trade_id ASC",
            (order_id,),
        )
        return [
            OrderFill(order_id=row[0], trade_id=row[1], amount=int(row[2]))
            for row in rows
        ]

    # ──────────────────────────────────────────────
    # Candles
    # ──────────────────────────────────────────────

    @staticmethod
    def _candle_from_row(row: Any) -> Candle:
        return Candle(
            resolution=row[0],
            timestamp=row[1],
            open_price=int(row[2]),
            high_price=int(row[3]),
            low_price=int(row[4]),
            close_price=int(row[5]),
            volume=int(row[6]),
        )

    async def get_candle(self, candle_id: str) -> Candle | None:
        row = await self._fetchone(
            "get_candle",
            "SELECT resolution, timestamp, open_price, high_price, low_price, "
            "close_price, volume FROM candles WHERE id = ?",
            (candle_id,),
        )
        return self._candle_from_row(row) if row is not None else None

    async def upsert_candle(self, candle: Candle) -> None:
        await self._execute(
            "upsert_candle",
            "INSERT OR REPLACE INTO candles "
            "(id, resolution, timestamp, open_price, high_price, low_price, "
            "close_price, volume) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                candle.id,
                candle.resolution,
                candle.timestamp,
                str(candle.open_price),
                str(candle.high_price),
                str(candle.low_price),
                str(candle.close_price),
                str(candle.volume),
            ),
        )

    async def list_candles(self, resolution: str, limit: int) -> list[Candle]:
        rows = await self._fetchall(
            "list_candles",
            "SELECT resolution, timestamp, open_price, high_price, low_price, "
            "close_price, volume FROM candles WHERE resolution = ? "
            "ORDER BY timestamp DESC LIMIT ?",
            (resolution, max(limit, 0)),
        )
        return [self._candle_from_row(row) for row in rows]

    async def get_latest_candle(self) -> LatestCandle | None:
        row = await self._fetchone(
            "get_latest_candle",
            "SELECT id, close_price, timestamp FROM latest_candle WHERE id = ?",
            (LATEST_CANDLE_ID,),
        )
        if row is None:
            return None
        return LatestCandle(id=row[0], close_price=int(row[1]), timestamp=row[2])

    async def upsert_latest_candle(self, latest: LatestCandle) -> None:
        await self._execute(
            "upsert_latest_candle",
            "INSERT OR REPLACE INTO latest_candle (id, close_price, timestamp) "
            "VALUES (?, ?, ?)",
            (latest.id, str(latest.close_price), latest.timestamp),
        )

    # ──────────────────────────────────────────────
    # Positions
    # ──────────────────────────────────────────────

    _POSITION_COLUMNS = (
        "trader, size, entry_price, snapshot_tx_hash, snapshot_event_id, snapshot_size"
    )

    @staticmethod
    def _position_from_row(row: Any) -> Position:
        return Position(
            trader=row[0],
            size=int(row[1]),
            entry_price=int(row[2]),
            snapshot_tx_hash=row[3],
            snapshot_event_id=row[4],
            snapshot_size=int(row[5]) if row[5] is not None else None,
        )

    async def get_position(self, trader: str) -> Position | None:
        row = await self._fetchone(
            "get_position",
            f"SELECT {self._POSITION_COLUMNS} FROM positions WHERE trader = ?",
            (trader,),
        )
        return self._position_from_row(row) if row is not None else None

    async def upsert_position(self, position: Position) -> None:
        await self._execute(
            "upsert_position",
            f"INSERT OR REPLACE INTO positions ({self._POSITION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                position.trader,
                str(position.size),
                str(position.entry_price),
                position.snapshot_tx_hash,
                position.snapshot_event_id,
                str(position.snapshot_size) if position.snapshot_size is not None else None,
            ),
        )

    async def list_open_positions(self) -> list[Position]:
        # size is the canonical str(int), so zero is always exactly '0'
        rows = await self._fetchall(
            "list_open_positions",
            f"SELECT {self._POSITION_COLUMNS} FROM positions "
            "WHERE size != '0' ORDER BY trader ASC",
        )
        return [self._position_from_row(row) for row in rows]

    async def get_position_adjustment(
        self, trader: str, event_id: str
    ) -> PositionAdjustment | None:
        row = await self._fetchone(
            "get_position_adjustment",
            "SELECT trader, event_id, snapshot_event_id, amount "
            "FROM position_adjustments WHERE trader = ? AND event_id = ?",
            (trader, event_id),
        )
        if row is None:
            return None
        return PositionAdjustment(
            trader=row[0],
            event_id=row[1],
            snapshot_event_id=row[2],
            amount=int(row[3]),
        )

    async def add_position_adjustment(self, adjustment: PositionAdjustment) -> None:
        # seq is assigned on insert and never rewritten, so it keeps recording order
        await self._execute(
            "add_position_adjustment",
            "INSERT INTO position_adjustments "
            "(trader, event_id, snapshot_event_id, amount) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (trader, event_id) DO NOTHING",
            (
                adjustment.trader,
                adjustment.event_id,
                adjustment.snapshot_event_id,
                str(adjustment.amount),
            ),
        )

    async def get_position_adjustments(
        self, trader: str, snapshot_event_id: str | None
    ) -> list[PositionAdjustment]:
        rows = await self._fetchall(
            "get_position_adjustments",
            "SELECT trader, event_id, snapshot_event_id, amount FROM position_adjustments "
            "WHERE trader = ? AND snapshot_event_id IS ? ORDER BY seq ASC",
            (trader, snapshot_event_id),
        )
        return [
            PositionAdjustment(
                trader=row[0],
                event_id=row[1],
                snapshot_event_id=row[2],
                amount=int(row[3]),
            )
            for row in rows
        ]

    # ──────────────────────────────────────────────
    # Applied-event ledger and transaction control
    # ──────────────────────────────────────────────

    async def is_event_applied(self, event_id: str) -> bool:
        row = await self._fetchone(
            "is_event_applied",
            "SELECT 1 FROM applied_events WHERE event_id = ?",
            (event_id,),
        )
        return row is not None

    async def mark_event_applied(
        self, event_id: str, event_type: str, block_timestamp: int
    ) -> None:
        await self._execute(
            "mark_event_applied",
            "INSERT OR REPLACE INTO applied_events (event_id, event_type, block_timestamp) "
            "VALUES (?, ?, ?)",
            (event_id, event_type, block_timestamp),
        )

    async def commit(self) -> None:
        with _store_errors("commit"):
            await self._database.db.commit()

    async def rollback(self) -> None:
        with _store_errors("rollback"):
            await self._database.db.rollback()
