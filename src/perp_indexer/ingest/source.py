"""JSON Lines event log reader.

The upstream chain reader writes one event record per line, already in
block order then log-index order. Blank lines are ignored.
"""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from perp_indexer.exceptions import MalformedEventError


def read_event_log(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield raw event records from a JSON Lines file, in file order.

    Raises:
        MalformedEventError: If a line is not a JSON object.
    """
    with open(path, encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, 1):
            text = line.strip()
            if not text:
                continue
            try:
                record = json.loads(text)
            except json.JSONDecodeError as exc:
                raise MalformedEventError(f"{path}:{line_no}: invalid JSON: {exc.msg}") from exc
            if not isinstance(record, dict):
                raise MalformedEventError(f"{path}:{line_no}: event record must be an object")
            yield record
