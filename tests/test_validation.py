"""Tests for deadline rules, timezone checks and configuration validation."""

from datetime import datetime, timedelta, timezone

import pytest

from config import HousekeepingConfig
from models import Poll
from utils.validation import (
    DEADLINE_CANNOT_EDIT_PASSED,
    DEADLINE_MUST_BE_IN_FUTURE,
    DeadlinePassedError,
    ValidationError,
    ensure_voting_open,
    validate_config,
    validate_deadline,
    validate_deadline_change,
    validate_timezone,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestTimezoneValidation:
    def test_valid_timezone(self):
        result = validate_timezone(" Europe/Helsinki ")
        assert result.is_valid
        assert result.cleaned_value == "Europe/Helsinki"

    @pytest.mark.parametrize("value", ["", None, "Invalid/Zone"])
    def test_invalid_timezone(self, value):
        result = validate_timezone(value)
        assert not result
        assert result.error_message
        assert str(result).startswith("Invalid:")


class TestDeadlineRules:
    def test_future_deadline_is_valid(self):
        result = validate_deadline(NOW + timedelta(minutes=1), NOW)
        assert result
        assert result.cleaned_value == NOW + timedelta(minutes=1)

    def test_missing_deadline_is_valid(self):
        assert validate_deadline(None, NOW)

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(hours=-1)])
    def test_deadline_must_be_in_future(self, offset):
        result = validate_deadline(NOW + offset, NOW)
        assert not result
        assert result.error_message == DEADLINE_MUST_BE_IN_FUTURE

    def test_passed_deadline_cannot_be_edited(self):
        result = validate_deadline_change(NOW - timedelta(hours=1), NOW + timedelta(days=1), NOW)
        assert result.error_message == DEADLINE_CANNOT_EDIT_PASSED

        cleared = validate_deadline_change(NOW - timedelta(hours=1), None, NOW)
        assert cleared.error_message == DEADLINE_CANNOT_EDIT_PASSED

    def test_unchanged_passed_deadline_is_accepted(self):
        passed = NOW - timedelta(hours=1)
        assert validate_deadline_change(passed, passed, NOW)

    def test_upcoming_deadline_can_be_moved_or_cleared(self):
        upcoming = NOW + timedelta(hours=2)
        assert validate_deadline_change(upcoming, NOW + timedelta(days=2), NOW)
        assert validate_deadline_change(upcoming, None, NOW)
        moved_back = validate_deadline_change(upcoming, NOW - timedelta(minutes=5), NOW)
        assert moved_back.error_message == DEADLINE_MUST_BE_IN_FUTURE

    def test_ensure_voting_open(self):
        ensure_voting_open(Poll(id="p1", title="open", deadline=NOW + timedelta(seconds=1)), NOW)
        ensure_voting_open(Poll(id="p2", title="no deadline"), NOW)

        deadline = NOW - timedelta(seconds=1)
        with pytest.raises(DeadlinePassedError) as exc_info:
            ensure_voting_open(Poll(id="p3", title="closed", deadline=deadline), NOW)
        assert str(exc_info.value) == f"deadlinePassed:{deadline.isoformat()}"
        assert isinstance(exc_info.value, ValidationError)


class TestConfigValidation:
    def test_defaults_are_valid(self):
        assert validate_config(HousekeepingConfig())

    def test_enabled_without_secret(self):
        result = validate_config(HousekeepingConfig(enabled=True))
        assert not result
        assert "CRON_SECRET" in result.error_message

    def test_collects_every_problem(self):
        config = HousekeepingConfig(
            timezone="Nowhere/City",
            cleanup_time="3am",
            inactive_poll_days=0,
            reminder_interval_minutes=-5,
        )

        result = validate_config(config)

        assert not result
        for fragment in ("Timezone", "cleanup_time", "inactive_poll_days", "reminder_interval_minutes"):
            assert fragment in result.error_message
