"""Typed exchange events and the parser that builds them from raw log records.

Each raw record has the shape::

    {"eventType": "TradeExecuted", "blockTimestamp": 1000,
     "transactionHash": "0xabc...", "logIndex": 3, "params": {...}}

Integer params may be JSON numbers or decimal strings, since uint256 values
routinely exceed the range a JSON number can carry exactly. Floats are never
accepted for fixed-point fields.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from perp_indexer.exceptions import MalformedEventError, UnknownEventTypeError

_INTEGER_RE = re.compile(r"-?(?:0[xX][0-9a-fA-F]+|[0-9]+)")


@dataclass(frozen=True)
class ChainEvent:
    """Envelope fields shared by every exchange event."""

    EVENT_TYPE: ClassVar[str] = ""

    block_timestamp: int
    transaction_hash: str
    log_index: int

    @property
    def event_id(self) -> str:
        """Synthetic id ``{txHash}-{logIndex}``, unique per log entry."""
        return f"{self.transaction_hash}-{self.log_index}"


@dataclass(frozen=True)
class MarginDeposited(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "MarginDeposited"

    trader: str
    amount: int


@dataclass(frozen=True)
class MarginWithdrawn(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "MarginWithdrawn"

    trader: str
    amount: int


@dataclass(frozen=True)
class OrderPlaced(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "OrderPlaced"

    order_id: str
    trader: str
    is_buy: bool
    price: int
    amount: int


@dataclass(frozen=True)
class OrderRemoved(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "OrderRemoved"

    order_id: str


@dataclass(frozen=True)
class TradeExecuted(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "TradeExecuted"

    buy_order_id: str
    sell_order_id: str
    price: int
    amount: int
    buyer: str
    seller: str


@dataclass(frozen=True)
class PositionUpdated(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "PositionUpdated"

    trader: str
    size: int
    entry_price: int


@dataclass(frozen=True)
class FundingUpdated(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "FundingUpdated"

    cumulative_funding_rate: int


@dataclass(frozen=True)
class FundingPaid(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "FundingPaid"

    trader: str
    amount: int


@dataclass(frozen=True)
class Liquidated(ChainEvent):
    EVENT_TYPE: ClassVar[str] = "Liquidated"

    trader: str
    liquidator: str
    amount: int
    reward: int
    price: int


IndexerEvent = (
    MarginDeposited
    | MarginWithdrawn
    | OrderPlaced
    | OrderRemoved
    | TradeExecuted
    | PositionUpdated
    | FundingUpdated
    | FundingPaid
    | Liquidated
)


# ──────────────────────────────────────────────
# Field coercion
# ──────────────────────────────────────────────


def _to_int(value: Any, name: str) -> int:
    # bool is an int subclass; a flag in an amount slot is a malformed record
    if isinstance(value, bool):
        raise MalformedEventError(f"{name}: expected integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not _INTEGER_RE.fullmatch(text):
            raise MalformedEventError(f"{name}: not an integer: {value!r}")
        return int(text, 16) if text.lower().startswith(("0x", "-0x")) else int(text)
    raise MalformedEventError(f"{name}: expected integer, got {type(value).__name__}")


def _to_uint(value: Any, name: str) -> int:
    result = _to_int(value, name)
    if result < 0:
        raise MalformedEventError(f"{name}: expected unsigned integer, got {result}")
    return result


def _to_positive(value: Any, name: str) -> int:
    result = _to_uint(value, name)
    if result == 0:
        raise MalformedEventError(f"{name}: expected a positive integer, got 0")
    return result


def _to_id(value: Any, name: str) -> str:
    return str(_to_uint(value, name))


def _to_address(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedEventError(f"{name}: expected address string, got {value!r}")
    return value.strip()


def _to_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise MalformedEventError(f"{name}: expected boolean, got {value!r}")
    return value


Coercer = Callable[[Any, str], Any]

# event class -> [(dataclass field, params key, coercer)]
_PARAM_SPECS: dict[type[ChainEvent], list[tuple[str, str, Coercer]]] = {
    MarginDeposited: [
        ("trader", "trader", _to_address),
        ("amount", "amount", _to_uint),
    ],
    MarginWithdrawn: [
        ("trader", "trader", _to_address),
        ("amount", "amount", _to_uint),
    ],
    OrderPlaced: [
        ("order_id", "id", _to_id),
        ("trader", "trader", _to_address),
        ("is_buy", "isBuy", _to_bool),
        ("price", "price", _to_uint),
        ("amount", "amount", _to_uint),
    ],
    OrderRemoved: [
        ("order_id", "id", _to_id),
    ],
    TradeExecuted: [
        ("buy_order_id", "buyOrderId", _to_id),
        ("sell_order_id", "sellOrderId", _to_id),
        ("price", "price", _to_uint),
        ("amount", "amount", _to_positive),
        ("buyer", "buyer", _to_address),
        ("seller", "seller", _to_address),
    ],
    PositionUpdated: [
        ("trader", "trader", _to_address),
        ("size", "size", _to_int),
        ("entry_price", "entryPrice", _to_uint),
    ],
    FundingUpdated: [
        ("cumulative_funding_rate", "cumulativeFundingRate", _to_int),
    ],
    FundingPaid: [
        ("trader", "trader", _to_address),
        ("amount", "amount", _to_int),
    ],
    Liquidated: [
        ("trader", "trader", _to_address),
        ("liquidator", "liquidator", _to_address),
        ("amount", "amount", _to_uint),
        ("reward", "reward", _to_uint),
        ("price", "price", _to_uint),
    ],
}

EVENT_TYPES: dict[str, type[ChainEvent]] = {cls.EVENT_TYPE: cls for cls in _PARAM_SPECS}


def _require(record: Mapping[str, Any], key: str, where: str) -> Any:
    if key not in record or record[key] is None:
        raise MalformedEventError(f"{where}: missing required field {key!r}")
    return record[key]


def parse_event(record: Mapping[str, Any]) -> IndexerEvent:
    """Build a typed event from a raw log record.

    Raises:
        UnknownEventTypeError: If ``eventType`` is not one of the nine known kinds.
        MalformedEventError: If any envelope or param field is absent or mistyped.
    """
    if not isinstance(record, Mapping):
        raise MalformedEventError(f"event record must be an object, got {type(record).__name__}")

    event_type = _require(record, "eventType", "event")
    cls = EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
    if cls is None:
        raise UnknownEventTypeError(f"unknown event type: {event_type!r}")

    block_timestamp = _to_uint(_require(record, "blockTimestamp", event_type), "blockTimestamp")
    transaction_hash = _to_address(
        _require(record, "transactionHash", event_type), "transactionHash"
    )
    log_index = _to_uint(_require(record, "logIndex", event_type), "logIndex")

    params = _require(record, "params", event_type)
    if not isinstance(params, Mapping):
        raise MalformedEventError(f"{event_type}: params must be an object")

    fields = {
        field: coerce(_require(params, key, event_type), f"{event_type}.{key}")
        for field, key, coerce in _PARAM_SPECS[cls]
    }
    return cls(  # type: ignore[return-value]
        block_timestamp=block_timestamp,
        transaction_hash=transaction_hash,
        log_index=log_index,
        **fields,
    )
