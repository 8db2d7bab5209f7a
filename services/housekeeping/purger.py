"""Permanently removes polls that have been soft-deleted past the retention window."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Set

from models import Poll
from services.housekeeping.batch import BATCH_SIZE, BatchCursor

logger = logging.getLogger(__name__)

DELETED_POLL_RETENTION_DAYS = 7


class DeletedPollPurger:
    """Hard-deletes polls marked deleted at least ``retention_days`` ago."""

    name = "remove-deleted-polls"

    def __init__(self, repo, retention_days: int = DELETED_POLL_RETENTION_DAYS, batch_size: int = BATCH_SIZE):
        self.repo = repo
        self.retention_days = retention_days
        self.batch_size = batch_size

    async def run(self, now: datetime) -> Dict[str, Any]:
        cutoff = now - timedelta(days=self.retention_days)
        logger.info(f"Removing polls deleted before {cutoff.isoformat()}")

        def eligible(poll: Poll) -> bool:
            return poll.deleted and poll.deleted_at is not None and poll.deleted_at <= cutoff

        async def fetch(limit: int, seen: Set[str]) -> List[Poll]:
            return await self.repo.find_polls(eligible, limit=limit)

        async def process(batch: List[Poll]) -> int:
            return await self.repo.delete_polls([poll.id for poll in batch])

        cursor = BatchCursor(fetch, process, self.batch_size, name=self.name)
        deleted = await cursor.run()

        logger.info(f"Removed {deleted} deleted poll(s) in {cursor.fetch_count} fetch(es)")
        return {"deleted": {"polls": deleted}}
