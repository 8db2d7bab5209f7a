"""Poll deadline enforcement: pauses expired live polls and notifies their owners."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Set

from models import Poll, PollStatus
from services.housekeeping.batch import BATCH_SIZE, BatchCursor
from services.housekeeping.delivery import deliver
from utils.messages import DEADLINE_CLOSED_EMAIL

logger = logging.getLogger(__name__)


class DeadlineEnforcer:
    """Closes live polls whose deadline has passed."""

    name = "close-expired-polls"

    def __init__(self, repo, email_client, reporter, config, batch_size: int = BATCH_SIZE):
        self.repo = repo
        self.email_client = email_client
        self.reporter = reporter
        self.config = config
        self.batch_size = batch_size

    @staticmethod
    def is_expired(poll: Poll, now: datetime) -> bool:
        return (
            poll.is_live
            and not poll.deleted
            and poll.deadline is not None
            and poll.deadline <= now
        )

    async def run(self, now: datetime) -> Dict[str, int]:
        logger.info(f"Closing polls with a deadline at or before {now.isoformat()}")
        stats = {"notified": 0, "failed": 0}

        async def fetch(limit: int, seen: Set[str]) -> List[Poll]:
            return await self.repo.find_polls(lambda poll: self.is_expired(poll, now), limit=limit)

        async def process(batch: List[Poll]) -> int:
            await self.repo.update_polls([poll.id for poll in batch], {"status": PollStatus.PAUSED})
            for poll in batch:
                await self._notify_owner(poll, stats)
            return len(batch)

        cursor = BatchCursor(fetch, process, self.batch_size, name=self.name)
        closed = await cursor.run()

        logger.info(
            f"Closed {closed} expired poll(s); notified {stats['notified']} owner(s), {stats['failed']} failed"
        )
        return {"closedCount": closed}

    async def _notify_owner(self, poll: Poll, stats: Dict[str, int]) -> None:
        email = poll.owner_email
        if not email:
            return

        result = await deliver(
            self.email_client,
            self.reporter,
            DEADLINE_CLOSED_EMAIL,
            to=email,
            props={
                "title": poll.title,
                "deadline": poll.deadline,
                "timeZone": poll.time_zone,
                "pollUrl": self.config.absolute_url(f"/poll/{poll.id}"),
            },
            tags={"job": self.name, "pollId": poll.id},
            extra={"locale": poll.owner.locale if poll.owner else None},
        )
        if result:
            stats["notified"] += 1
        else:
            stats["failed"] += 1
