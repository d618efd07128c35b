"""Read-only JSON query endpoints over the derived entities.

Fixed-point integers are rendered as decimal strings; JSON numbers cannot
carry 18-decimal values exactly.
"""

from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from perp_indexer.models import CANDLE_RESOLUTION, GlobalFundingUpdate, UserFundingPayment
from perp_indexer.store.base import EntityStore

log = structlog.get_logger(__name__)

router = APIRouter()

_FIXED_POINT_FIELDS = frozenset({
    "amount",
    "initial_amount",
    "price",
    "open_price",
    "high_price",
    "low_price",
    "close_price",
    "volume",
    "size",
    "entry_price",
    "snapshot_size",
    "cumulative_rate",
    "payment",
    "fee",
})

# collection path segment -> EntityStore getter
_ENTITY_GETTERS = {
    "margin-events": "get_margin_event",
    "orders": "get_order",
    "trades": "get_trade",
    "candles": "get_candle",
    "positions": "get_position",
    "funding-events": "get_funding_event",
    "liquidations": "get_liquidation",
}


def serialize_entity(entity: Any) -> dict[str, Any]:
    """Convert an entity dataclass to a JSON-safe dict, including its id."""
    data: dict[str, Any] = {"id": entity.id}
    for key, value in asdict(entity).items():
        if isinstance(value, Enum):
            value = value.value
        elif key in _FIXED_POINT_FIELDS and isinstance(value, int):
            value = str(value)
        data[key] = value
    if isinstance(entity, GlobalFundingUpdate | UserFundingPayment):
        data["event_type"] = entity.event_type.value
    return data


def _store(request: Request) -> EntityStore:
    return request.app.state.store


@router.get("/candles")
async def list_candles(
    request: Request,
    resolution: str = CANDLE_RESOLUTION,
    limit: int | None = Query(default=None, ge=1),
) -> JSONResponse:
    """Candles of one resolution, newest bucket first."""
    settings = request.app.state.api_settings
    effective = min(limit or settings.default_candle_limit, settings.max_candle_limit)
    candles = await _store(request).list_candles(resolution, effective)
    return JSONResponse(content=[serialize_entity(c) for c in candles])


@router.get("/candles/latest")
async def get_latest_candle(request: Request) -> JSONResponse:
    """The most recent trade price and its timestamp."""
    latest = await _store(request).get_latest_candle()
    if latest is None:
        raise HTTPException(status_code=404, detail="no trades indexed yet")
    return JSONResponse(content=serialize_entity(latest))


@router.get("/positions")
async def list_open_positions(request: Request) -> JSONResponse:
    """All positions with non-zero size."""
    positions = await _store(request).list_open_positions()
    return JSONResponse(content=[serialize_entity(p) for p in positions])


@router.get("/orders/{order_id}/fills")
async def list_order_fills(request: Request, order_id: str) -> JSONResponse:
    """Fill ledger for one order."""
    store = _store(request)
    if await store.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail=f"order {order_id} not found")
    fills = await store.get_order_fills(order_id)
    return JSONResponse(content=[serialize_entity(f) for f in fills])


@router.get("/{collection}/{entity_id}")
async def get_entity(request: Request, collection: str, entity_id: str) -> JSONResponse:
    """Look up any entity by collection name and id."""
    getter_name = _ENTITY_GETTERS.get(collection)
    if getter_name is None:
        raise HTTPException(status_code=404, detail=f"unknown collection {collection!r}")

    entity = await getattr(_store(request), getter_name)(entity_id)
    if entity is None:
        log.debug("entity_not_found", collection=collection, entity_id=entity_id)
        raise HTTPException(status_code=404, detail=f"{collection}/{entity_id} not found")
    return JSONResponse(content=serialize_entity(entity))
