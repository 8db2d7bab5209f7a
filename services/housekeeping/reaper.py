"""Marks abandoned polls as deleted."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict

from models import Poll

logger = logging.getLogger(__name__)

INACTIVE_POLL_DAYS = 30


class InactivePollReaper:
    """
    Soft-deletes polls that have been inactive for a while.

    A poll is inactive when all of its dates are in the past, it was neither
    touched nor viewed within the threshold, and it does not belong to a
    space on the paid tier.
    """

    name = "delete-inactive-polls"

    def __init__(self, repo, inactive_days: int = INACTIVE_POLL_DAYS):
        self.repo = repo
        self.inactive_days = inactive_days

    def is_inactive(self, poll: Poll, now: datetime) -> bool:
        cutoff = now - timedelta(days=self.inactive_days)
        if poll.deleted:
            return False
        if poll.has_future_options(now):
            return False
        if poll.has_paid_space:
            return False
        if poll.touched_at is None or poll.touched_at >= cutoff:
            return False
        return poll.last_viewed_at is None or poll.last_viewed_at < cutoff

    async def run(self, now: datetime) -> Dict[str, int]:
        logger.info(f"Marking polls inactive for {self.inactive_days} days as deleted")

        marked = await self.repo.update_polls_where(
            lambda poll: self.is_inactive(poll, now),
            {"deleted": True, "deleted_at": now},
        )

        logger.info(f"Marked {marked} inactive poll(s) as deleted")
        return {"markedDeleted": marked}
