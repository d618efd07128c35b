"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Entity store backend selection."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    backend: Literal["sqlite", "memory"] = "sqlite"
    db_path: str = "data/indexer.db"


class IngestSettings(BaseSettings):
    """Event log ingestion parameters.

    Retries apply only to store-unavailable failures; malformed events halt
    ingestion immediately.
    """

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    source_path: str | None = None  # JSON Lines event log, one event per line
    max_retries: int = 5
    retry_base_delay: float = 1.0  # seconds, doubled per attempt
    skip_applied_events: bool = True  # when off, candle volume double-counts redelivered trades


class ProjectionSettings(BaseSettings):
    """How derived positions react to liquidation events.

    "adjust": a Liquidated event nudges the trader's size toward zero until the
    next PositionUpdated snapshot arrives.
    "snapshot_only": PositionUpdated is the sole source of truth for size;
    Liquidated only writes its audit row.
    """

    model_config = SettingsConfigDict(env_prefix="PROJECTION_")

    liquidation_policy: Literal["adjust", "snapshot_only"] = "adjust"
    clamp_liquidation_at_zero: bool = True  # never flip a position's sign


class ApiSettings(BaseSettings):
    """Read-only query API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    default_candle_limit: int = 100
    max_candle_limit: int = 1000


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    store: StoreSettings = StoreSettings()
    ingest: IngestSettings = IngestSettings()
    projection: ProjectionSettings = ProjectionSettings()
    api: ApiSettings = ApiSettings()
