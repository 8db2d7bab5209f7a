"""Deadline reminder emails for participants who have not responded yet."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from models import Participant, Poll, Reminder, ReminderType
from services.housekeeping.batch import BATCH_SIZE, BatchCursor
from services.housekeeping.delivery import deliver
from utils.deadline import DeadlineStatus, classify_deadline, get_hours_remaining
from utils.messages import DEADLINE_REMINDER_EMAIL
from utils.time import TimeWindow, convert_with_fallback, format_remaining, format_long_datetime

logger = logging.getLogger(__name__)

# Evaluated in this order on every run
REMINDER_WINDOWS: List[Tuple[ReminderType, TimeWindow]] = [
    (ReminderType.TWENTY_FOUR_HOURS, TimeWindow(start_hours=24, end_hours=23)),
    (ReminderType.SIX_HOURS, TimeWindow(start_hours=6, end_hours=5)),
    (ReminderType.ONE_HOUR, TimeWindow(start_hours=1, end_hours=0)),
]


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


@dataclass
class RecipientGroup:
    """All participant records sharing one email address."""
    email: str
    participants: List[Participant] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.participants]


def group_by_email(participants: List[Participant]) -> Dict[str, RecipientGroup]:
    """Group participants by normalized address, keeping first-seen order."""
    groups: Dict[str, RecipientGroup] = {}
    for participant in participants:
        key = normalize_email(participant.email)
        if not key:
            continue
        if key not in groups:
            groups[key] = RecipientGroup(email=participant.email.strip())
        groups[key].participants.append(participant)
    return groups


def is_awaiting_response(participant: Participant) -> bool:
    return bool(normalize_email(participant.email)) and not participant.deleted and not participant.has_voted


class ReminderDispatcher:
    """
    Sends at most one reminder per participant per window.

    The stored Reminder rows are the dedup ledger: a participant holding a
    reminder of a window's type is never selected for that window again.
    """

    name = "send-deadline-reminders"

    def __init__(self, repo, email_client, reporter, config, batch_size: int = BATCH_SIZE):
        self.repo = repo
        self.email_client = email_client
        self.reporter = reporter
        self.config = config
        self.batch_size = batch_size

    async def run(self, now: datetime) -> Dict[str, int]:
        totals = {"remindersSent": 0, "pollsProcessed": 0}

        for reminder_type, window in REMINDER_WINDOWS:
            sent, processed = await self._run_window(reminder_type, window, now)
            totals["remindersSent"] += sent
            totals["pollsProcessed"] += processed

        logger.info(
            f"Sent {totals['remindersSent']} reminder(s) across {totals['pollsProcessed']} poll(s)"
        )
        return totals

    async def _run_window(self, reminder_type: ReminderType, window: TimeWindow, now: datetime) -> Tuple[int, int]:
        lower, upper = window.bounds(now)
        logger.info(f"Checking {reminder_type.value} reminders for deadlines {lower.isoformat()} - {upper.isoformat()}")
        sent = 0

        def in_window(poll: Poll) -> bool:
            return poll.is_live and not poll.deleted and window.contains(poll.deadline, now)

        async def fetch(limit: int, seen: Set[str]) -> List[Poll]:
            # Sending reminders does not change a poll's eligibility, so exclude what was already handled
            return await self.repo.find_polls(in_window, limit=limit, exclude_ids=seen)

        async def process(batch: List[Poll]) -> int:
            nonlocal sent
            for poll in batch:
                try:
                    sent += await self._remind_poll(poll, reminder_type, now)
                except Exception as e:
                    logger.error(f"Error sending {reminder_type.value} reminders for poll {poll.id}: {e}")
                    self.reporter.report_exception(
                        e,
                        tags={"job": self.name, "pollId": poll.id, "reminderType": reminder_type.value},
                    )
            return len(batch)

        cursor = BatchCursor(fetch, process, self.batch_size, name=f"{self.name}:{reminder_type.value}")
        processed = await cursor.run()
        return sent, processed

    async def _remind_poll(self, poll: Poll, reminder_type: ReminderType, now: datetime) -> int:
        """Send the window's reminders for one poll; returns the number of emails enqueued."""
        if classify_deadline(poll.deadline, now) in (None, DeadlineStatus.PASSED):
            logger.debug(f"Skipping poll {poll.id}: deadline no longer ahead")
            return 0

        participants = await self.repo.find_participants(
            poll.id, where=is_awaiting_response, without_reminder=reminder_type
        )
        if not participants:
            return 0

        groups = group_by_email(participants)
        first = next(iter(groups.values()))
        zone = poll.time_zone or first.participants[0].time_zone
        tags = {"job": self.name, "pollId": poll.id, "reminderType": reminder_type.value}

        local_deadline, label, _ = convert_with_fallback(
            poll.deadline, zone, self.reporter, {"tags": tags, "extra": {"pollId": poll.id}}
        )
        # Elapsed time comes from the UTC instants; the zone only affects display
        time_remaining = format_remaining(get_hours_remaining(poll.deadline, now))
        deadline_text = f"{format_long_datetime(local_deadline)} {label}"
        poll_url = self.config.absolute_url(f"/poll/{poll.id}")

        sent = 0
        staged: List[Reminder] = []
        for group in groups.values():
            result = await deliver(
                self.email_client,
                self.reporter,
                DEADLINE_REMINDER_EMAIL,
                to=group.email,
                props={
                    "title": poll.title,
                    "deadline": deadline_text,
                    "deadlineAt": poll.deadline.isoformat(),
                    "timeRemaining": time_remaining,
                    "participantNames": group.names,
                    "pollUrl": poll_url,
                },
                tags=tags,
                extra={"participantIds": [p.id for p in group.participants]},
            )
            if not result:
                continue
            sent += 1
            staged.extend(
                Reminder(poll_id=poll.id, participant_id=p.id, reminder_type=reminder_type, sent_at=now)
                for p in group.participants
            )

        if staged:
            inserted = await self.repo.insert_reminders(staged, skip_duplicates=True)
            if inserted < len(staged):
                logger.info(f"Skipped {len(staged) - inserted} duplicate reminder row(s) for poll {poll.id}")

        logger.info(f"Sent {sent} {reminder_type.value} reminder(s) for poll {poll.id}")
        return sent
