"""
Deadline status classification shared by display code and job eligibility checks.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from utils.time import hours_until

URGENT_HOURS = 6
WARNING_HOURS = 24


class DeadlineStatus(Enum):
    """Coarse urgency bands for a poll deadline."""
    UPCOMING = "upcoming"
    WARNING = "warning"
    URGENT = "urgent"
    PASSED = "passed"


def classify_deadline(deadline: Optional[datetime], now: datetime) -> Optional[DeadlineStatus]:
    """
    Map a deadline to its status band relative to *now*.

    - "passed": less than 0 hours remaining
    - "urgent": less than 6 hours remaining
    - "warning": less than 24 hours remaining
    - "upcoming": anything else
    """
    if deadline is None:
        return None

    hours_remaining = hours_until(deadline, now)

    if hours_remaining < 0:
        return DeadlineStatus.PASSED
    if hours_remaining < URGENT_HOURS:
        return DeadlineStatus.URGENT
    if hours_remaining < WARNING_HOURS:
        return DeadlineStatus.WARNING
    return DeadlineStatus.UPCOMING


def calculate_deadline_status(deadline: Optional[datetime]) -> Optional[DeadlineStatus]:
    """Classify against the current time."""
    return classify_deadline(deadline, datetime.now(timezone.utc))


def get_hours_remaining(deadline: Optional[datetime], now: datetime) -> Optional[float]:
    """Hours until the deadline, clamped at zero once it has passed."""
    if deadline is None:
        return None
    return max(hours_until(deadline, now), 0.0)
