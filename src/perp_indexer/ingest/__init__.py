"""Event log ingestion.

Reads raw event records from a JSON Lines log and feeds them, in order,
through the dispatcher with store-unavailable retry.
"""

from perp_indexer.ingest.runner import IngestRunner, IngestSummary
from perp_indexer.ingest.source import read_event_log

__all__ = [
    "IngestRunner",
    "IngestSummary",
    "read_event_log",
]
