"""Async SQLite database manager for derived indexer entities.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance. Fixed-point integers are stored as
TEXT since 18-decimal values overflow SQLite's 64-bit INTEGER.
"""

import os
from typing import Self

import aiosqlite

from perp_indexer.exceptions import StoreNotConnectedError
from perp_indexer.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS margin_events (
    id TEXT PRIMARY KEY,
    trader TEXT NOT NULL,
    amount TEXT NOT NULL,
    event_type TEXT NOT NULL CHECK (event_type IN ('DEPOSIT', 'WITHDRAW')),
    timestamp INTEGER NOT NULL,
    tx_hash TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    trader TEXT NOT NULL,
    is_buy INTEGER NOT NULL,
    price TEXT NOT NULL,
    initial_amount TEXT NOT NULL,
    amount TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('OPEN', 'FILLED', 'CANCELLED')),
    timestamp INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS order_fills (
    order_id TEXT NOT NULL,
    trade_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    PRIMARY KEY (order_id, trade_id)
);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    buyer TEXT NOT NULL,
    seller TEXT NOT NULL,
    price TEXT NOT NULL,
    amount TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    tx_hash TEXT NOT NULL,
    buy_order_id TEXT NOT NULL,
    sell_order_id TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS candles (
    id TEXT PRIMARY KEY,
    resolution TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    open_price TEXT NOT NULL,
    high_price TEXT NOT NULL,
    low_price TEXT NOT NULL,
    close_price TEXT NOT NULL,
    volume TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS latest_candle (
    id TEXT PRIMARY KEY,
    close_price TEXT NOT NULL,
    timestamp INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS positions (
    trader TEXT PRIMARY KEY,
    size TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    snapshot_tx_hash TEXT,
    snapshot_event_id TEXT,
    snapshot_size TEXT
);

CREATE TABLE IF NOT EXISTS position_adjustments (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    trader TEXT NOT NULL,
    event_id TEXT NOT NULL,
    snapshot_event_id TEXT,
    amount TEXT NOT NULL,
    UNIQUE (trader, event_id)
);

CREATE TABLE IF NOT EXISTS funding_events (
    id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    trader TEXT,
    cumulative_rate TEXT,
    payment TEXT,
    timestamp INTEGER NOT NULL,
    CHECK (
        (event_type = 'GLOBAL_UPDATE' AND cumulative_rate IS NOT NULL
            AND payment IS NULL AND trader IS NULL)
        OR (event_type = 'USER_PAID' AND payment IS NOT NULL
            AND trader IS NOT NULL AND cumulative_rate IS NULL)
    )
);

CREATE TABLE IF NOT EXISTS liquidations (
    id TEXT PRIMARY KEY,
    trader TEXT NOT NULL,
    liquidator TEXT NOT NULL,
    amount TEXT NOT NULL,
    fee TEXT NOT NULL,
    price TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    tx_hash TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS applied_events (
    event_id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    block_timestamp INTEGER NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_candles_resolution_ts
    ON candles(resolution, timestamp);

CREATE INDEX IF NOT EXISTS idx_trades_timestamp
    ON trades(timestamp);

CREATE INDEX IF NOT EXISTS idx_liquidations_trader
    ON liquidations(trader);

CREATE INDEX IF NOT EXISTS idx_position_adjustments_snapshot
    ON position_adjustments(trader, snapshot_event_id);
"""


class IndexerDatabase:
    """Async SQLite connection manager for the entity store.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with IndexerDatabase("data/indexer.db") as database:
            store = SqliteEntityStore(database)
    """

    def __init__(self, db_path: str = "data/indexer.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises StoreNotConnectedError if not connected.
        """
        if self._connection is None:
            raise StoreNotConnectedError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("indexer_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("indexer_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not exist."""
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()
