"""Entity store layer.

Provides the EntityStore interface, an in-memory implementation, and the
aiosqlite-backed database manager and store used in production.
"""

from perp_indexer.store.base import EntityStore
from perp_indexer.store.database import IndexerDatabase
from perp_indexer.store.memory import InMemoryEntityStore
from perp_indexer.store.sqlite import SqliteEntityStore

__all__ = [
    "EntityStore",
    "InMemoryEntityStore",
    "IndexerDatabase",
    "SqliteEntityStore",
]
