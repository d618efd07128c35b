"""Abstract entity store interface.

Defines the contract every handler depends on. Both InMemoryEntityStore and
SqliteEntityStore implement this ABC, so handler and dispatcher code is
identical regardless of backend.

Writes made while applying one event are staged until commit(); rollback()
discards them. Reads always see staged writes (read-your-writes).
"""

from abc import ABC, abstractmethod

from perp_indexer.models import (
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


class EntityStore(ABC):
    """Keyed persistence for every derived entity type.

    Upserts are create-or-overwrite by the entity's id and are the only write
    primitive. Missing entities read back as None, never raise.
    """

    # ──────────────────────────────────────────────
    # Audit records
    # ──────────────────────────────────────────────

    @abstractmethod
    async def get_margin_event(self, event_id: str) -> MarginEvent | None: ...

    @abstractmethod
    async def upsert_margin_event(self, event: MarginEvent) -> None: ...

    @abstractmethod
    async def get_trade(self, trade_id: str) -> Trade | None: ...

    @abstractmethod
    async def upsert_trade(self, trade: Trade) -> None: ...

    @abstractmethod
    async def get_funding_event(self, event_id: str) -> FundingEvent | None: ...

    @abstractmethod
    async def upsert_funding_event(self, event: FundingEvent) -> None: ...

    @abstractmethod
    async def get_liquidation(self, liquidation_id: str) -> Liquidation | None: ...

    @abstractmethod
    async def upsert_liquidation(self, liquidation: Liquidation) -> None: ...

    # ──────────────────────────────────────────────
    # Orders and fills
    # ──────────────────────────────────────────────

    @abstractmethod
    async def get_order(self, order_id: str) -> Order | None: ...

    @abstractmethod
    async def upsert_order(self, order: Order) -> None: ...

    @abstractmethod
    async def upsert_order_fill(self, fill: OrderFill) -> None:
        """Record one trade's fill against one order, keyed by (order_id, trade_id)."""

    @abstractmethod
    async def get_order_fills(self, order_id: str) -> list[OrderFill]:
        """Return all fills recorded against an order, ordered by trade id."""

    async def get_filled_amount(self, order_id: str) -> int:
        """Sum of all fill amounts recorded against an order."""
        return sum(fill.amount for fill in await self.get_order_fills(order_id))

    # ──────────────────────────────────────────────
    # Candles
    # ──────────────────────────────────────────────

    @abstractmethod
    async def get_candle(self, candle_id: str) -> Candle | None: ...

    @abstractmethod
    async def upsert_candle(self, candle: Candle) -> None: ...

    @abstractmethod
    async def list_candles(self, resolution: str, limit: int) -> list[Candle]:
        """Return up to ``limit`` candles of a resolution, newest bucket first."""

    @abstractmethod
    async def get_latest_candle(self) -> LatestCandle | None: ...

    @abstractmethod
    async def upsert_latest_candle(self, latest: LatestCandle) -> None: ...

    # ──────────────────────────────────────────────
    # Positions
    # ──────────────────────────────────────────────

    @abstractmethod
    async def get_position(self, trader: str) -> Position | None: ...

    @abstractmethod
    async def upsert_position(self, position: Position) -> None: ...

    @abstractmethod
    async def list_open_positions(self) -> list[Position]:
        """Return every position with non-zero size, ordered by trader."""

    @abstractmethod
    async def get_position_adjustment(
        self, trader: str, event_id: str
    ) -> PositionAdjustment | None: ...

    @abstractmethod
    async def add_position_adjustment(self, adjustment: PositionAdjustment) -> None:
        """Record a liquidation's reduction. Callers check for an existing entry first."""

    @abstractmethod
    async def get_position_adjustments(
        self, trader: str, snapshot_event_id: str | None
    ) -> list[PositionAdjustment]:
        """Return the adjustments recorded against one snapshot, in recording order."""

    # ──────────────────────────────────────────────
    # Applied-event ledger and transaction control
    # ──────────────────────────────────────────────

    @abstractmethod
    async def is_event_applied(self, event_id: str) -> bool: ...

    @abstractmethod
    async def mark_event_applied(
        self, event_id: str, event_type: str, block_timestamp: int
    ) -> None: ...

    @abstractmethod
    async def commit(self) -> None:
        """Make all writes staged since the last commit durable."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all writes staged since the last commit."""
