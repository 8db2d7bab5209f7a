"""
Data models for the poll housekeeping service.
Defines the core entities: Poll, Participant, Reminder, etc.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Optional, Tuple

PAID_TIER = "pro"


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO timestamp into an aware UTC datetime (naive values are UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class PollStatus(Enum):
    """Lifecycle states of a poll."""
    LIVE = "live"
    PAUSED = "paused"
    FINALIZED = "finalized"


class ReminderType(Enum):
    """Reminder windows before a poll deadline."""
    TWENTY_FOUR_HOURS = "twentyFourHours"
    SIX_HOURS = "sixHours"
    ONE_HOUR = "oneHour"


@dataclass
class PollOwner:
    """The registered user who created a poll."""
    id: str
    email: Optional[str] = None
    locale: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"id": self.id, "email": self.email, "locale": self.locale}

    @classmethod
    def from_dict(cls, data: Dict) -> "PollOwner":
        return cls(id=data["id"], email=data.get("email"), locale=data.get("locale"))


@dataclass
class PollOption:
    """A candidate date/time offered by a poll."""
    id: str
    start_time: datetime

    def __post_init__(self):
        self.start_time = parse_datetime(self.start_time)


@dataclass
class Poll:
    """Represents a scheduling poll."""
    id: str
    title: str
    owner: Optional[PollOwner] = None
    deadline: Optional[datetime] = None
    time_zone: Optional[str] = None
    status: PollStatus = PollStatus.LIVE
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    touched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_viewed_at: Optional[datetime] = None
    space_id: Optional[str] = None
    space_tier: Optional[str] = None
    options: List[PollOption] = field(default_factory=list)

    def __post_init__(self):
        """Normalize timestamps and convert string status to PollStatus."""
        if isinstance(self.status, str):
            try:
                self.status = PollStatus(self.status)
            except ValueError:
                # Unknown states are never treated as live
                self.status = PollStatus.PAUSED
        self.deadline = parse_datetime(self.deadline)
        self.deleted_at = parse_datetime(self.deleted_at)
        self.touched_at = parse_datetime(self.touched_at)
        self.last_viewed_at = parse_datetime(self.last_viewed_at)

    @property
    def is_live(self) -> bool:
        return self.status == PollStatus.LIVE

    @property
    def owner_email(self) -> Optional[str]:
        return self.owner.email if self.owner and self.owner.email else None

    @property
    def has_paid_space(self) -> bool:
        """True when the poll belongs to a space on the paid tier."""
        return self.space_id is not None and self.space_tier == PAID_TIER

    def has_future_options(self, now: datetime) -> bool:
        """Check if any option starts after *now*."""
        return any(option.start_time > now for option in self.options)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "owner": self.owner.to_dict() if self.owner else None,
            "deadline": _iso(self.deadline),
            "time_zone": self.time_zone,
            "status": self.status.value,
            "deleted": self.deleted,
            "deleted_at": _iso(self.deleted_at),
            "touched_at": _iso(self.touched_at),
            "last_viewed_at": _iso(self.last_viewed_at),
            "space_id": self.space_id,
            "space_tier": self.space_tier,
            "options": [
                {"id": opt.id, "start_time": _iso(opt.start_time)}
                for opt in self.options
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Poll":
        """Create Poll from dictionary."""
        owner = data.get("owner")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            owner=PollOwner.from_dict(owner) if owner else None,
            deadline=data.get("deadline"),
            time_zone=data.get("time_zone"),
            status=data.get("status", PollStatus.LIVE.value),
            deleted=bool(data.get("deleted", False)),
            deleted_at=data.get("deleted_at"),
            touched_at=data.get("touched_at") or datetime.now(timezone.utc),
            last_viewed_at=data.get("last_viewed_at"),
            space_id=data.get("space_id"),
            space_tier=data.get("space_tier"),
            options=[
                PollOption(id=opt["id"], start_time=opt["start_time"])
                for opt in data.get("options", [])
            ],
        )


@dataclass
class Participant:
    """Someone who was invited to, or joined, a poll."""
    id: str
    poll_id: str
    name: str
    email: Optional[str] = None
    deleted: bool = False
    locale: Optional[str] = None
    time_zone: Optional[str] = None
    votes: List[str] = field(default_factory=list)  # Option IDs voted for

    @property
    def has_voted(self) -> bool:
        return len(self.votes) > 0

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "poll_id": self.poll_id,
            "name": self.name,
            "email": self.email,
            "deleted": self.deleted,
            "locale": self.locale,
            "time_zone": self.time_zone,
            "votes": self.votes,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Participant":
        return cls(
            id=data["id"],
            poll_id=data["poll_id"],
            name=data.get("name", ""),
            email=data.get("email"),
            deleted=bool(data.get("deleted", False)),
            locale=data.get("locale"),
            time_zone=data.get("time_zone"),
            votes=list(data.get("votes", [])),
        )


@dataclass
class Reminder:
    """Record that a reminder of a given type was sent to a participant."""
    poll_id: str
    participant_id: str
    reminder_type: ReminderType
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if isinstance(self.reminder_type, str):
            self.reminder_type = ReminderType(self.reminder_type)
        self.sent_at = parse_datetime(self.sent_at)

    @property
    def key(self) -> Tuple[str, str]:
        """Uniqueness key: one reminder per participant per type."""
        return (self.participant_id, self.reminder_type.value)

    def to_dict(self) -> Dict:
        return {
            "poll_id": self.poll_id,
            "participant_id": self.participant_id,
            "reminder_type": self.reminder_type.value,
            "sent_at": _iso(self.sent_at),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Reminder":
        return cls(
            poll_id=data["poll_id"],
            participant_id=data["participant_id"],
            reminder_type=data["reminder_type"],
            sent_at=data["sent_at"],
        )
