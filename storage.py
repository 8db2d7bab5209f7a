"""
Storage utilities for the poll housekeeping service.
Handles async JSON file operations with per-file locking and exposes the
repository operations used by the job steps.
"""

import json
import os
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from pathlib import Path

from config import get_config
from models import Poll, Participant, Reminder, ReminderType, parse_datetime
from utils.errors import PersistenceError

logger = logging.getLogger(__name__)

POLLS = "polls"
PARTICIPANTS = "participants"
REMINDERS = "reminders"

# Fields a bulk update may patch; anything else is a programming error
_PATCHABLE_FIELDS = {"status", "deleted", "deleted_at", "touched_at", "deadline"}

PollPredicate = Callable[[Poll], bool]
ParticipantPredicate = Callable[[Participant], bool]

# Global lock for file operations to prevent race conditions
_file_locks: Dict[str, asyncio.Lock] = {}

def _get_file_lock(path: Path) -> asyncio.Lock:
    """Get or create a lock for a specific file."""
    key = str(path.resolve())
    if key not in _file_locks:
        _file_locks[key] = asyncio.Lock()
    return _file_locks[key]


def _serialize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - _PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot patch poll fields: {sorted(unknown)}")
    serialized = {}
    for key, value in patch.items():
        if hasattr(value, "value"):  # Enum
            value = value.value
        elif hasattr(value, "isoformat"):
            value = parse_datetime(value).isoformat()
        serialized[key] = value
    return serialized


class JsonRepository:
    """Poll, participant and reminder tables stored as JSON files."""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or get_config().data_dir)

    def _path(self, table: str) -> Path:
        return self.data_dir / f"{table}.json"

    async def _read(self, table: str) -> List[Dict]:
        """
        Load a table from its JSON file. Caller must hold the table lock.

        Returns:
            List of row dictionaries (empty if the file does not exist)

        Raises:
            PersistenceError: the file exists but cannot be read or parsed
        """
        file_path = self._path(table)
        if not file_path.exists():
            return []
        try:
            loop = asyncio.get_running_loop()
            content = await loop.run_in_executor(None, file_path.read_text, 'utf-8')
            data = json.loads(content) if content.strip() else []
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(f"Error loading {file_path}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Error loading {file_path}: expected a list of rows")
        return data

    async def _write(self, table: str, rows: List[Dict]) -> None:
        """Save a table atomically. Caller must hold the table lock."""
        file_path = self._path(table)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(rows, indent=2, ensure_ascii=False, default=str)

            # Write atomically: write to a temp file then move in place
            tmp_path = file_path.with_suffix(".tmp")

            def _atomic_write():
                tmp_path.write_text(json_str, encoding="utf-8")
                os.replace(tmp_path, file_path)

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, _atomic_write)
        except (TypeError, ValueError, OSError) as e:
            raise PersistenceError(f"Error saving {file_path}: {e}") from e

    def _lock(self, table: str) -> asyncio.Lock:
        return _get_file_lock(self._path(table))

    # Poll operations

    async def find_polls(
        self,
        where: PollPredicate,
        limit: Optional[int] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> List[Poll]:
        """Return up to *limit* polls matching *where*, skipping *exclude_ids*."""
        excluded: Set[str] = set(exclude_ids or ())
        async with self._lock(POLLS):
            rows = await self._read(POLLS)

        matches: List[Poll] = []
        for row in rows:
            if row.get("id") in excluded:
                continue
            poll = Poll.from_dict(row)
            if where(poll):
                matches.append(poll)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    async def get_poll(self, poll_id: str) -> Optional[Poll]:
        """Get a specific poll by ID."""
        polls = await self.find_polls(lambda poll: poll.id == poll_id, limit=1)
        return polls[0] if polls else None

    async def save_poll(self, poll: Poll) -> None:
        """Save or update a single poll."""
        async with self._lock(POLLS):
            rows = await self._read(POLLS)
            rows = [row for row in rows if row.get("id") != poll.id]
            rows.append(poll.to_dict())
            await self._write(POLLS, rows)

    async def update_polls(self, poll_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        """Apply *patch* to every poll in *poll_ids*. Returns the number updated."""
        ids = set(poll_ids)
        if not ids:
            return 0
        return await self._update_where(lambda row: row.get("id") in ids, patch)

    async def update_polls_where(self, where: PollPredicate, patch: Dict[str, Any]) -> int:
        """Apply *patch* to every poll matching *where* in one locked write."""
        return await self._update_where(lambda row: where(Poll.from_dict(row)), patch)

    async def _update_where(self, match: Callable[[Dict], bool], patch: Dict[str, Any]) -> int:
        values = _serialize_patch(patch)
        async with self._lock(POLLS):
            rows = await self._read(POLLS)
            count = 0
            for row in rows:
                if match(row):
                    row.update(values)
                    count += 1
            if count:
                await self._write(POLLS, rows)
        return count

    async def delete_polls(self, poll_ids: Iterable[str]) -> int:
        """Hard-delete polls with their participants and reminders."""
        ids = set(poll_ids)
        if not ids:
            return 0

        # Locks are always taken in the same order: polls, participants, reminders
        async with self._lock(POLLS), self._lock(PARTICIPANTS), self._lock(REMINDERS):
            polls = await self._read(POLLS)
            kept_polls = [row for row in polls if row.get("id") not in ids]
            deleted = len(polls) - len(kept_polls)
            if not deleted:
                return 0

            participants = await self._read(PARTICIPANTS)
            reminders = await self._read(REMINDERS)
            await self._write(POLLS, kept_polls)
            await self._write(PARTICIPANTS, [row for row in participants if row.get("poll_id") not in ids])
            await self._write(REMINDERS, [row for row in reminders if row.get("poll_id") not in ids])

        logger.debug(f"Deleted {deleted} poll(s) with dependent rows")
        return deleted

    # Participant operations

    async def save_participant(self, participant: Participant) -> None:
        """Save or update a single participant."""
        async with self._lock(PARTICIPANTS):
            rows = await self._read(PARTICIPANTS)
            rows = [row for row in rows if row.get("id") != participant.id]
            rows.append(participant.to_dict())
            await self._write(PARTICIPANTS, rows)

    async def find_participants(
        self,
        poll_id: str,
        where: Optional[ParticipantPredicate] = None,
        without_reminder: Optional[ReminderType] = None,
    ) -> List[Participant]:
        """
        Get participants of a poll.

        Args:
            poll_id: Poll the participants belong to
            where: Optional extra filter
            without_reminder: Exclude participants already holding a reminder of this type

        Returns:
            Matching participants in storage order
        """
        async with self._lock(PARTICIPANTS):
            rows = await self._read(PARTICIPANTS)

        reminded: Set[str] = set()
        if without_reminder is not None:
            async with self._lock(REMINDERS):
                reminder_rows = await self._read(REMINDERS)
            reminded = {
                row["participant_id"]
                for row in reminder_rows
                if row.get("reminder_type") == without_reminder.value
            }

        participants = []
        for row in rows:
            if row.get("poll_id") != poll_id or row.get("id") in reminded:
                continue
            participant = Participant.from_dict(row)
            if where is None or where(participant):
                participants.append(participant)
        return participants

    # Reminder operations

    async def insert_reminders(self, reminders: Iterable[Reminder], skip_duplicates: bool = True) -> int:
        """
        Insert reminder rows in one write.

        Rows whose (participant, type) already exists are silently skipped when
        *skip_duplicates* is set, otherwise a PersistenceError is raised.

        Returns:
            Number of rows actually inserted
        """
        reminders = list(reminders)
        if not reminders:
            return 0

        async with self._lock(REMINDERS):
            rows = await self._read(REMINDERS)
            existing = {(row["participant_id"], row["reminder_type"]) for row in rows}
            inserted = 0
            for reminder in reminders:
                if reminder.key in existing:
                    if skip_duplicates:
                        continue
                    raise PersistenceError(
                        f"Duplicate reminder {reminder.reminder_type.value} for participant {reminder.participant_id}"
                    )
                existing.add(reminder.key)
                rows.append(reminder.to_dict())
                inserted += 1
            if inserted:
                await self._write(REMINDERS, rows)
        return inserted

    async def list_reminders(self, poll_id: Optional[str] = None) -> List[Reminder]:
        """Get stored reminders, optionally for one poll."""
        async with self._lock(REMINDERS):
            rows = await self._read(REMINDERS)
        return [
            Reminder.from_dict(row)
            for row in rows
            if poll_id is None or row.get("poll_id") == poll_id
        ]

    # Utility functions

    async def get_storage_stats(self) -> Dict[str, Any]:
        """Get statistics about storage usage."""
        stats: Dict[str, Any] = {}
        total_size = 0
        for table in (POLLS, PARTICIPANTS, REMINDERS):
            async with self._lock(table):
                rows = await self._read(table)
            file_path = self._path(table)
            size = file_path.stat().st_size if file_path.exists() else 0
            stats[f"{table}_count"] = len(rows)
            stats[f"{table}_size_bytes"] = size
            total_size += size
        stats["total_size_bytes"] = total_size
        stats["total_size_kb"] = total_size / 1024
        return stats
