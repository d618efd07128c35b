"""Custom exceptions for the perpetual exchange indexer.

All ingestion-layer and store-layer exceptions live here to avoid circular
imports between the event parser, the stores, and the dispatcher.
"""


class IndexerError(Exception):
    """Base exception for all indexer errors."""


class MalformedEventError(IndexerError):
    """Raised when an event record is missing a required field or has a bad type.

    Fatal for the event: nothing is written, and ingestion halts.
    """


class UnknownEventTypeError(MalformedEventError):
    """Raised when an event record names an event type the indexer does not handle."""


class StoreUnavailableError(IndexerError):
    """Raised when an entity read or write fails at the storage layer.

    The current event's writes are rolled back; the event may be retried
    from the same position once the store recovers.
    """


class StoreNotConnectedError(StoreUnavailableError):
    """Raised when a store is used before connect() or after close()."""
