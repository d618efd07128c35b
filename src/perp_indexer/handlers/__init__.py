"""Per-entity event handlers.

Each handler owns one slice of the derived state: audit records, candles,
order lifecycle, and positions. The dispatcher composes them per event kind.
"""

from perp_indexer.handlers.audit import AuditLogWriter
from perp_indexer.handlers.candles import CandleAggregator
from perp_indexer.handlers.orders import OrderLifecycleTracker
from perp_indexer.handlers.positions import PositionAdjuster, reduce_toward_zero

__all__ = [
    "AuditLogWriter",
    "CandleAggregator",
    "OrderLifecycleTracker",
    "PositionAdjuster",
    "reduce_toward_zero",
]
