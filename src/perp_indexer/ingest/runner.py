"""Sequential ingestion loop with store-unavailable retry.

Parses each raw record and applies it through the dispatcher before touching
the next one. Store failures are retried from the same event with
exponential backoff: the dispatcher rolled the failed attempt back, so the
retry starts from clean state. Malformed events are never retried; they halt
ingestion before anything is written for them.
"""

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from perp_indexer.config import IngestSettings
from perp_indexer.dispatcher import EventDispatcher
from perp_indexer.events import IndexerEvent, parse_event
from perp_indexer.exceptions import MalformedEventError, StoreUnavailableError
from perp_indexer.logging import get_logger

logger = get_logger(__name__)


@dataclass
class IngestSummary:
    """Counts from one ingestion run."""

    applied: int = 0
    skipped: int = 0
    last_event_id: str | None = None


class IngestRunner:
    """Feeds an ordered stream of raw event records into the dispatcher.

    Usage:
        runner = IngestRunner(dispatcher, settings.ingest)
        summary = await runner.run(read_event_log("events.jsonl"))
    """

    def __init__(self, dispatcher: EventDispatcher, settings: IngestSettings) -> None:
        self._dispatcher = dispatcher
        self._settings = settings

    async def run(self, records: Iterable[Mapping[str, Any]]) -> IngestSummary:
        """Apply every record in order.

        Raises:
            MalformedEventError: On the first record that fails to parse.
            StoreUnavailableError: If the store is still failing after
                ``max_retries`` attempts on one event.
        """
        summary = IngestSummary()
        start_time = time.monotonic()

        for position, record in enumerate(records):
            try:
                event = parse_event(record)
            except MalformedEventError as exc:
                logger.error(
                    "malformed_event_halt",
                    position=position,
                    error=str(exc),
                    applied=summary.applied,
                )
                raise

            if await self._apply_with_retry(event):
                summary.applied += 1
            else:
                summary.skipped += 1
            summary.last_event_id = event.event_id

        duration = time.monotonic() - start_time
        logger.info(
            "ingest_complete",
            applied=summary.applied,
            skipped=summary.skipped,
            last_event_id=summary.last_event_id,
            duration_seconds=round(duration, 2),
        )
        return summary

    async def _apply_with_retry(self, event: IndexerEvent) -> bool:
        """Apply an event, retrying store failures with exponential backoff.

        Retries up to max_retries times with delays: 1s, 2s, 4s, 8s, ...
        Re-raises on final failure.
        """
        max_retries = max(self._settings.max_retries, 1)
        base_delay = self._settings.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await self._dispatcher.apply(event)
            except StoreUnavailableError as e:
                if attempt == max_retries - 1:
                    logger.error(
                        "event_failed_permanently",
                        event_id=event.event_id,
                        error=str(e),
                        attempts=max_retries,
                    )
                    raise

                delay = base_delay * (2**attempt)
                logger.warning(
                    "event_retry",
                    event_id=event.event_id,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

        return False  # Unreachable, but satisfies type checker
