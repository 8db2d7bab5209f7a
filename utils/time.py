"""
Time utilities for the housekeeping job.
Provides timezone-aware conversion, deadline arithmetic and display formatting.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from typing import Any, Dict, Optional, Tuple

from utils.errors import TimezoneConversionError

logger = logging.getLogger(__name__)

UTC_LABEL = "UTC"


@dataclass(frozen=True)
class TimeWindow:
    """A span of hours before a deadline, e.g. 24h down to 23h."""
    start_hours: float
    end_hours: float

    def bounds(self, now: datetime) -> Tuple[datetime, datetime]:
        """Return (lower, upper) instants: now+end_hours and now+start_hours."""
        return (now + timedelta(hours=self.end_hours), now + timedelta(hours=self.start_hours))

    def contains(self, deadline: Optional[datetime], now: datetime) -> bool:
        """Inclusive on both bounds."""
        if deadline is None:
            return False
        lower, upper = self.bounds(now)
        return lower <= deadline <= upper


def parse_time(time_str: str) -> Optional[Tuple[int, int]]:
    """
    Parse time string in HH:MM format.

    Args:
        time_str: Time in HH:MM format (e.g., "15:30")

    Returns:
        Tuple of (hour, minute) or None if invalid
    """
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return None

        hour = int(parts[0])
        minute = int(parts[1])

        if not (0 <= hour <= 23) or not (0 <= minute <= 59):
            return None

        return (hour, minute)
    except (ValueError, IndexError, AttributeError):
        return None


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is valid."""
    try:
        ZoneInfo(tz_name)
        return True
    except Exception as e:
        logger.warning(f"Invalid timezone '{tz_name}': {e}")
        return False


def to_zone(instant: datetime, zone_name: Optional[str]) -> datetime:
    """
    Convert an instant into the named zone.

    Args:
        instant: Aware datetime (naive values are treated as UTC)
        zone_name: IANA zone name; empty means UTC

    Returns:
        The same instant expressed in the zone

    Raises:
        TimezoneConversionError: unknown zone or the conversion overflowed
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    if not zone_name:
        return instant.astimezone(timezone.utc)
    try:
        return instant.astimezone(ZoneInfo(zone_name))
    except (ZoneInfoNotFoundError, ValueError, TypeError, OverflowError) as e:
        raise TimezoneConversionError(zone_name, str(e)) from e


def convert_with_fallback(
    instant: datetime,
    zone_name: Optional[str],
    reporter=None,
    context: Optional[Dict[str, Any]] = None,
) -> Tuple[datetime, str, bool]:
    """
    Convert into *zone_name*, falling back to UTC when the zone is unusable.

    Returns:
        Tuple of (converted datetime, zone label, fell_back)
    """
    try:
        local = to_zone(instant, zone_name)
    except TimezoneConversionError as e:
        logger.warning(f"Error converting to timezone '{zone_name}', falling back to UTC: {e}")
        if reporter is not None:
            tags = {"component": "time", "function": "convert_with_fallback", "errorType": "timezone-conversion"}
            tags.update((context or {}).get("tags", {}))
            extra = {"timeZone": zone_name, "instant": instant.isoformat()}
            extra.update((context or {}).get("extra", {}))
            reporter.report_exception(e, tags=tags, extra=extra)
        return to_zone(instant, None), UTC_LABEL, True
    label = (local.tzname() or zone_name) if zone_name else UTC_LABEL
    return local, label, False


def hours_until(deadline: datetime, reference: datetime) -> float:
    """Signed fractional hours from *reference* to *deadline* (negative once passed)."""
    return (deadline - reference).total_seconds() / 3600


def _unit(count: int, name: str) -> str:
    return f"{count} {name}{'s' if count != 1 else ''}"


def format_remaining(hours: float) -> str:
    """
    Human-readable remaining time using the two most significant units.

    Args:
        hours: Fractional hours remaining

    Returns:
        e.g. "2 days and 3 hours", "23 hours and 30 minutes", "45 minutes"
    """
    total_minutes = int(hours * 60) if hours > 0 else 0
    if total_minutes < 1:
        return "less than a minute"

    days, remainder = divmod(total_minutes, 24 * 60)
    hrs, minutes = divmod(remainder, 60)

    units = [(days, "day"), (hrs, "hour"), (minutes, "minute")]
    index = next(i for i, (count, _) in enumerate(units) if count)
    text = _unit(*units[index])
    if index + 1 < len(units) and units[index + 1][0]:
        text += f" and {_unit(*units[index + 1])}"
    return text


def format_long_datetime(dt: datetime) -> str:
    """'October 20, 2026 3:00 PM' without platform-specific strftime flags."""
    hour12 = dt.hour % 12 or 12
    return f"{dt:%B} {dt.day}, {dt.year} {hour12}:{dt:%M} {'AM' if dt.hour < 12 else 'PM'}"


def format_deadline_for_display(
    deadline: Optional[datetime], zone_name: Optional[str], reporter=None
) -> Optional[str]:
    """
    Format a UTC deadline in the given zone for display.

    Invalid zones fall back to a UTC-labelled string; this never raises.
    """
    if deadline is None:
        return None
    local, label, _ = convert_with_fallback(
        deadline,
        zone_name,
        reporter,
        {"tags": {"function": "format_deadline_for_display"}},
    )
    return f"{format_long_datetime(local)} {label}"
