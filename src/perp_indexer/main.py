"""Entry point for the perpetual exchange indexer.

Opens the entity store, ingests the configured event log (if any), and then
serves the read-only query API. When the API is disabled, the process exits
once ingestion completes.

Component wiring order:
1. AppSettings (configuration)
2. Logging setup
3. Entity store (SQLite via IndexerDatabase, or in-memory)
4. EventDispatcher (handlers share the store)
5. IngestRunner (ordered ingestion with retry)
6. Query API (FastAPI + uvicorn), when enabled
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn

from perp_indexer.config import AppSettings
from perp_indexer.dispatcher import EventDispatcher
from perp_indexer.ingest import IngestRunner, read_event_log
from perp_indexer.logging import get_logger, setup_logging
from perp_indexer.store import EntityStore, IndexerDatabase, InMemoryEntityStore, SqliteEntityStore


@asynccontextmanager
async def open_store(settings: AppSettings) -> AsyncIterator[EntityStore]:
    """Yield the configured entity store, closing its database on exit."""
    if settings.store.backend == "memory":
        yield InMemoryEntityStore()
        return

    async with IndexerDatabase(settings.store.db_path) as database:
        yield SqliteEntityStore(database)


async def run() -> None:
    """Run the indexer: ingest, then serve queries."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("perp_indexer.main")

    # 3. Open store
    async with open_store(settings) as store:
        # 4. Dispatcher
        dispatcher = EventDispatcher(
            store,
            projection_settings=settings.projection,
            skip_applied_events=settings.ingest.skip_applied_events,
        )

        # 5. Ingest
        if settings.ingest.source_path:
            logger.info(
                "ingest_starting",
                source_path=settings.ingest.source_path,
                store_backend=settings.store.backend,
                liquidation_policy=settings.projection.liquidation_policy,
            )
            runner = IngestRunner(dispatcher, settings.ingest)
            await runner.run(read_event_log(settings.ingest.source_path))
        else:
            logger.warning("no_event_source_configured", note="Set INGEST_SOURCE_PATH.")

        # 6. Serve
        if not settings.api.enabled:
            logger.info("indexer_stopped", reason="api_disabled")
            return

        from perp_indexer.api.app import create_api_app

        app = create_api_app(store, settings.api)
        logger.info("starting_query_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()

    logger.info("indexer_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
