"""
Validation utilities for the poll housekeeping service.
Provides deadline rules, timezone checks and configuration validation.

The deadline rules are the poll editing and voting API used by the web
layer; the housekeeping job itself only calls validate_config.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from config import HousekeepingConfig
from models import Poll
from utils.time import parse_time, is_valid_timezone

logger = logging.getLogger(__name__)

# Error codes understood by the poll editing and voting clients
DEADLINE_MUST_BE_IN_FUTURE = "deadlineMustBeInFuture"
DEADLINE_CANNOT_EDIT_PASSED = "deadlineCannotEditPassed"
DEADLINE_PASSED_PREFIX = "deadlinePassed"


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


class DeadlinePassedError(ValidationError):
    """Raised when a vote arrives after the poll deadline."""

    def __init__(self, deadline: datetime):
        super().__init__(f"{DEADLINE_PASSED_PREFIX}:{deadline.isoformat()}")
        self.deadline = deadline


class ValidationResult:
    """Result of a validation operation."""

    def __init__(self, is_valid: bool, error_message: str = None, cleaned_value: Any = None):
        self.is_valid = is_valid
        self.error_message = error_message
        self.cleaned_value = cleaned_value

    def __bool__(self) -> bool:
        return self.is_valid

    def __str__(self) -> str:
        if self.is_valid:
            return "Valid"
        return f"Invalid: {self.error_message}"


def validate_timezone(timezone_str: str) -> ValidationResult:
    """
    Validate timezone string.

    Args:
        timezone_str: Timezone string to validate

    Returns:
        ValidationResult with validation status
    """
    if not timezone_str or not isinstance(timezone_str, str):
        return ValidationResult(False, "Timezone string is required")

    timezone_str = timezone_str.strip()

    if not is_valid_timezone(timezone_str):
        return ValidationResult(
            False,
            f"Invalid timezone: '{timezone_str}'. Use IANA timezone names (e.g., Europe/Helsinki, America/New_York)"
        )

    return ValidationResult(True, cleaned_value=timezone_str)


def validate_deadline(deadline: Optional[datetime], now: datetime) -> ValidationResult:
    """
    Validate a newly chosen deadline.

    A missing deadline is valid (the poll simply has none); otherwise it
    must lie strictly in the future.
    """
    if deadline is None:
        return ValidationResult(True)
    if deadline <= now:
        return ValidationResult(False, DEADLINE_MUST_BE_IN_FUTURE)
    return ValidationResult(True, cleaned_value=deadline)


def validate_deadline_change(
    existing: Optional[datetime], new: Optional[datetime], now: datetime
) -> ValidationResult:
    """
    Validate editing a poll's deadline.

    Args:
        existing: Deadline currently stored on the poll
        new: Requested deadline (None clears it)
        now: Reference time

    Returns:
        ValidationResult carrying the accepted deadline
    """
    if existing is not None and existing < now and new != existing:
        return ValidationResult(False, DEADLINE_CANNOT_EDIT_PASSED)
    if new == existing:
        return ValidationResult(True, cleaned_value=new)
    return validate_deadline(new, now)


def ensure_voting_open(poll: Poll, now: datetime) -> None:
    """Raise DeadlinePassedError if the poll no longer accepts votes."""
    if poll.deadline is not None and poll.deadline <= now:
        raise DeadlinePassedError(poll.deadline)


def validate_config(config: HousekeepingConfig) -> ValidationResult:
    """
    Validate a complete housekeeping configuration.

    Args:
        config: Configuration to validate

    Returns:
        ValidationResult with validation status and list of errors
    """
    errors = []

    tz_result = validate_timezone(config.timezone)
    if not tz_result:
        errors.append(f"Timezone validation failed: {tz_result.error_message}")

    if not parse_time(config.cleanup_time):
        errors.append(f"cleanup_time validation failed: '{config.cleanup_time}' is not HH:MM")

    positive_fields = [
        'inactive_poll_days', 'deleted_poll_retention_days',
        'close_expired_interval_minutes', 'reminder_interval_minutes'
    ]
    for field in positive_fields:
        if getattr(config, field) <= 0:
            errors.append(f"{field} must be positive")

    if config.enabled and not config.secret_configured:
        errors.append("CRON_SECRET is not set in environment variables")

    if errors:
        return ValidationResult(False, "; ".join(errors))

    return ValidationResult(True)
