"""Paginate-until-empty primitive shared by the housekeeping steps."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

from utils.errors import BatchStalledError

logger = logging.getLogger(__name__)

BATCH_SIZE = 100

FetchBatch = Callable[[int, Set[Any]], Awaitable[List[Any]]]
ProcessBatch = Callable[[List[Any]], Awaitable[Optional[int]]]


def _row_id(row: Any) -> Any:
    return row.id if hasattr(row, "id") else row


class BatchCursor:
    """
    Repeatedly fetch up to ``batch_size`` rows and process them until a fetch
    comes back empty.

    ``fetch(limit, seen_ids)`` receives the identities processed so far so
    steps whose processing does not remove rows from the eligible set can
    exclude them. Each batch must shrink the eligible set: a fetch that
    yields only already-processed rows raises BatchStalledError.
    """

    def __init__(self, fetch: FetchBatch, process: ProcessBatch, batch_size: int = BATCH_SIZE, name: str = "batch"):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.fetch = fetch
        self.process = process
        self.batch_size = batch_size
        self.name = name
        self.fetch_count = 0
        self.processed_count = 0
        self._seen: Set[Any] = set()

    async def run(self) -> int:
        """Process every matching row once; returns the sum of process() results."""
        total = 0
        while True:
            rows = await self.fetch(self.batch_size, set(self._seen))
            self.fetch_count += 1
            if not rows:
                break

            fresh = [row for row in rows if _row_id(row) not in self._seen]
            if not fresh:
                raise BatchStalledError(
                    f"{self.name}: fetch {self.fetch_count} returned {len(rows)} already processed row(s)"
                )
            if len(fresh) < len(rows):
                logger.warning(f"{self.name}: dropped {len(rows) - len(fresh)} re-fetched row(s)")

            self._seen.update(_row_id(row) for row in fresh)
            counted = await self.process(fresh)
            self.processed_count += len(fresh)
            total += len(fresh) if counted is None else counted
            logger.debug(f"{self.name}: batch {self.fetch_count} processed {len(fresh)} row(s)")

        return total
