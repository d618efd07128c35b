"""FastAPI application factory for the read-only query API."""

from __future__ import annotations

from fastapi import FastAPI

from perp_indexer.api import routes
from perp_indexer.config import ApiSettings
from perp_indexer.store.base import EntityStore


def create_api_app(
    store: EntityStore,
    settings: ApiSettings | None = None,
) -> FastAPI:
    """Create and configure the query API application.

    Args:
        store: Entity store the routes read from.
        settings: Candle limit defaults; ApiSettings() if omitted.

    Returns:
        Configured FastAPI application with all routes under /api.
    """
    app = FastAPI(
        title="Perp Exchange Indexer",
    )

    app.state.store = store
    app.state.api_settings = settings or ApiSettings()

    app.include_router(routes.router, prefix="/api")

    return app
