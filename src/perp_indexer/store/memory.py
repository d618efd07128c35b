"""In-memory entity store for tests and ephemeral runs.

Committed entities live in one dict per table; writes for the event in
progress go to a staging overlay that reads consult first. Entities are
copied on the way in and out so callers can never mutate stored state
without an upsert.
"""

from dataclasses import replace
from typing import Any

from perp_indexer.logging import get_logger
from perp_indexer.models import (
    LATEST_CANDLE_ID,
    Candle,
    FundingEvent,
    LatestCandle,
    Liquidation,
    MarginEvent,
    Order,
    OrderFill,
    Position,
    PositionAdjustment,
    Trade,
)
from perp_indexer.store.base import EntityStore

logger = get_logger(__name__)

_TABLES = (
    "margin_events",
    "orders",
    "order_fills",
    "trades",
    "candles",
    "latest_candle",
    "positions",
    "position_adjustments",
    "funding_events",
    "liquidations",
    "applied_events",
)


class InMemoryEntityStore(EntityStore):
    """Dict-backed EntityStore with commit/rollback staging."""

    def __init__(self) -> None:
        self._committed: dict[str, dict[str, Any]] = {table: {} for table in _TABLES}
        self._staged: dict[str, dict[str, Any]] = {table: {} for table in _TABLES}

    def _get(self, table: str, key: str) -> Any:
        if key in self._staged[table]:
            value = self._staged[table][key]
        else:
            value = self._committed[table].get(key)
        return replace(value) if value is not None else None

    def _put(self, table: str, key: str, value: Any) -> None:
        self._staged[table][key] = replace(value)

    def _rows(self, table: str) -> list[Any]:
        merged = {**self._committed[table], **self._staged[table]}
        return [replace(value) for value in merged.values()]

    # ──────────────────────────────────────────────
    # Audit records
    # ──────────────────────────────────────────────

    async def get_margin_event(self, event_id: str) -> MarginEvent | None:
        return self._get("margin_events", event_id)

    async def upsert_margin_event(self, event: MarginEvent) -> None:
        self._put("margin_events", event.id, event)

    async def get_trade(self, trade_id: str) -> Trade | None:
        return self._get("trades", trade_id)

    async def upsert_trade(self, trade: Trade) -> None:
        self._put("trades", trade.id, trade)

    async def get_funding_event(self, event_id: str) -> FundingEvent | None:
        return self._get("funding_events", event_id)

    async def upsert_funding_event(self, event: FundingEvent) -> None:
        self._put("funding_events", event.id, event)

    async def get_liquidation(self, liquidation_id: str) -> Liquidation | None:
        return self._get("liquidations", liquidation_id)

    async def upsert_liquidation(self, liquidation: Liquidation) -> None:
        self._put("liquidations", liquidation.id, liquidation)

    # ──────────────────────────────────────────────
    # Orders and fills
    # ──────────────────────────────────────────────

    async def get_order(self, order_id: str) -> Order | None:
        return self._get("orders", order_id)

    async def upsert_order(self, order: Order) -> None:
        self._put("orders", order.id, order)

    async def upsert_order_fill(self, fill: OrderFill) -> None:
        self._put("order_fills", fill.id, fill)

    async def get_order_fills(self, order_id: str) -> list[OrderFill]:
        fills = [f for f in self._rows("order_fills") if f.order_id == order_id]
        return sorted(fills, key=lambda f: f.trade_id)

    # ──────────────────────────────────────────────
    # Candles
    # ──────────────────────────────────────────────

    async def get_candle(self, candle_id: str) -> Candle | None:
        return self._get("candles", candle_id)

    async def upsert_candle(self, candle: Candle) -> None:
        self._put("candles", candle.id, candle)

    async def list_candles(self, resolution: str, limit: int) -> list[Candle]:
        candles = [c for c in self._rows("candles") if c.resolution == resolution]
        candles.sort(key=lambda c: c.timestamp, reverse=True)
        return candles[: max(limit, 0)]

    async def get_latest_candle(self) -> LatestCandle | None:
        return self._get("latest_candle", LATEST_CANDLE_ID)

    async def upsert_latest_candle(self, latest: LatestCandle) -> None:
        self._put("latest_candle", latest.id, latest)

    # ──────────────────────────────────────────────
    # Positions
    # ──────────────────────────────────────────────

    async def get_position(self, trader: str) -> Position | None:
        return self._get("positions", trader)

    async def upsert_position(self, position: Position) -> None:
        self._put("positions", position.trader, position)

    async def list_open_positions(self) -> list[Position]:
        positions = [p for p in self._rows("positions") if p.size != 0]
        return sorted(positions, key=lambda p: p.trader)

    async def get_position_adjustment(
        self, trader: str, event_id: str
    ) -> PositionAdjustment | None:
        return self._get("position_adjustments", f"{trader}:{event_id}")

    async def add_position_adjustment(self, adjustment: PositionAdjustment) -> None:
        self._put("position_adjustments", adjustment.id, adjustment)

    async def get_position_adjustments(
        self, trader: str, snapshot_event_id: str | None
    ) -> list[PositionAdjustment]:
        # dicts keep insertion order, so rows come back in recording order
        return [
            a
            for a in self._rows("position_adjustments")
            if a.trader == trader and a.snapshot_event_id == snapshot_event_id
        ]

    # ──────────────────────────────────────────────
    # Applied-event ledger and transaction control
    # ──────────────────────────────────────────────

    async def is_event_applied(self, event_id: str) -> bool:
        return (
            event_id in self._staged["applied_events"]
            or event_id in self._committed["applied_events"]
        )

    async def mark_event_applied(
        self, event_id: str, event_type: str, block_timestamp: int
    ) -> None:
        self._staged["applied_events"][event_id] = (event_type, block_timestamp)

    async def commit(self) -> None:
        for table in _TABLES:
            self._committed[table].update(self._staged[table])
            self._staged[table].clear()

    async def rollback(self) -> None:
        discarded = sum(len(rows) for rows in self._staged.values())
        for table in _TABLES:
            self._staged[table].clear()
        if discarded:
            logger.debug("memory_store_rollback", discarded_writes=discarded)
