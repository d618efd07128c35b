"""Derived entity models materialized from the exchange event log.

CRITICAL: All monetary and size values are 18-decimal fixed-point integers held
as Python int. Never use float for prices, amounts, sizes, or rates.
"""

from dataclasses import dataclass
from enum import Enum

CANDLE_RESOLUTION = "1m"
CANDLE_BUCKET_SECONDS = 60
LATEST_CANDLE_ID = "1"


class MarginEventType(str, Enum):
    """Direction of a margin movement."""

    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"


class OrderStatus(str, Enum):
    """Order lifecycle state. FILLED and CANCELLED are terminal."""

    OPEN = "OPEN"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.OPEN


class FundingEventType(str, Enum):
    """Discriminator for the two funding event variants."""

    GLOBAL_UPDATE = "GLOBAL_UPDATE"
    USER_PAID = "USER_PAID"


def candle_id(resolution: str, bucket_start: int) -> str:
    """Build the candle key, e.g. ``"1m-960"``."""
    return f"{resolution}-{bucket_start}"


def bucket_start(timestamp: int, bucket_seconds: int = CANDLE_BUCKET_SECONDS) -> int:
    """Floor a unix timestamp (seconds) to the start of its bucket."""
    return timestamp - (timestamp % bucket_seconds)


@dataclass
class MarginEvent:
    """Append-only record of a margin deposit or withdrawal."""

    id: str
    trader: str
    amount: int
    event_type: MarginEventType
    timestamp: int
    tx_hash: str


@dataclass
class Order:
    """A resting limit order and its remaining (unfilled) amount."""

    id: str
    trader: str
    is_buy: bool
    price: int
    initial_amount: int
    amount: int
    status: OrderStatus
    timestamp: int


@dataclass
class OrderFill:
    """One trade's contribution to one order's filled amount.

    Keyed by (order_id, trade_id) so that a redelivered trade overwrites its
    own fill instead of adding a second one.
    """

    order_id: str
    trade_id: str
    amount: int

    @property
    def id(self) -> str:
        return f"{self.order_id}:{self.trade_id}"


@dataclass
class Trade:
    """Append-only record of a matched trade."""

    id: str
    buyer: str
    seller: str
    price: int
    amount: int
    timestamp: int
    tx_hash: str
    buy_order_id: str
    sell_order_id: str


@dataclass
class Candle:
    """OHLCV rollup of all trades in one time bucket.

    ``timestamp`` is the bucket start in unix seconds.
    """

    resolution: str
    timestamp: int
    open_price: int
    high_price: int
    low_price: int
    close_price: int
    volume: int

    @property
    def id(self) -> str:
        return candle_id(self.resolution, self.timestamp)


@dataclass
class LatestCandle:
    """Singleton pointer to the most recent trade price."""

    close_price: int
    timestamp: int
    id: str = LATEST_CANDLE_ID


@dataclass
class Position:
    """A trader's net position. Positive size is long, negative is short.

    ``size`` is derived: the last PositionUpdated snapshot (``snapshot_size``,
    from ``snapshot_event_id`` in ``snapshot_tx_hash``) with every liquidation
    recorded against that snapshot folded on top.
    """

    trader: str
    size: int
    entry_price: int
    snapshot_tx_hash: str | None = None
    snapshot_event_id: str | None = None
    snapshot_size: int | None = None

    @property
    def id(self) -> str:
        return self.trader


@dataclass
class PositionAdjustment:
    """One liquidation's reduction of a trader's position.

    Keyed by (trader, event_id) and recorded once; ``snapshot_event_id`` is
    the snapshot the reduction was applied on top of.
    """

    trader: str
    event_id: str
    snapshot_event_id: str | None
    amount: int

    @property
    def id(self) -> str:
        return f"{self.trader}:{self.event_id}"


@dataclass
class GlobalFundingUpdate:
    """Market-wide cumulative funding rate update."""

    id: str
    cumulative_rate: int
    timestamp: int

    @property
    def event_type(self) -> FundingEventType:
        return FundingEventType.GLOBAL_UPDATE


@dataclass
class UserFundingPayment:
    """Funding settled against a single trader. Signed: positive means paid."""

    id: str
    trader: str
    payment: int
    timestamp: int

    @property
    def event_type(self) -> FundingEventType:
        return FundingEventType.USER_PAID


FundingEvent = GlobalFundingUpdate | UserFundingPayment


@dataclass
class Liquidation:
    """Append-only record of a forced position reduction."""

    id: str
    trader: str
    liquidator: str
    amount: int
    fee: int
    price: int
    timestamp: int
    tx_hash: str
