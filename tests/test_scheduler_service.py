"""
Tests for scheduler service.
"""

import pytest
from datetime import timedelta
from unittest.mock import Mock, AsyncMock

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import HousekeepingConfig
from services.scheduler_service import SchedulerService


def cron_fields(trigger):
    return {field.name: str(field) for field in trigger.fields}


class TestSchedulerService:
    """Test SchedulerService functionality."""

    @pytest.fixture
    def mock_runner(self):
        """Create a mock job runner for testing."""
        runner = Mock()
        runner.enabled = True
        runner.run_step = AsyncMock()
        runner.reporter = Mock()
        return runner

    @pytest.fixture
    def config(self):
        return HousekeepingConfig(
            enabled=True,
            cron_secret="s3cret",
            timezone="Europe/Helsinki",
            cleanup_time="03:00",
            close_expired_interval_minutes=5,
            reminder_interval_minutes=15,
        )

    @pytest.fixture
    def scheduler_service(self, mock_runner, config):
        """Create a SchedulerService instance for testing."""
        return SchedulerService(mock_runner, config)

    def test_scheduler_initialization(self, mock_runner, config):
        """Test that scheduler service initializes correctly."""
        service = SchedulerService(mock_runner, config)

        assert service.runner == mock_runner
        assert service.scheduler is not None
        assert service._job_registry == {}

    def test_start_scheduler(self, scheduler_service):
        """Test starting the scheduler."""
        mock_scheduler = Mock()
        mock_scheduler.running = False
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.start()

        mock_scheduler.start.assert_called_once()

    def test_start_scheduler_already_running(self, scheduler_service):
        """Test starting scheduler when already running."""
        mock_scheduler = Mock()
        mock_scheduler.running = True
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.start()

        mock_scheduler.start.assert_not_called()

    def test_shutdown_scheduler(self, scheduler_service):
        """Test shutting down the scheduler."""
        mock_scheduler = Mock()
        mock_scheduler.running = True
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.shutdown()

        mock_scheduler.shutdown.assert_called_once()

    def test_build_job_configs(self, scheduler_service):
        """Cleanup steps are daily cron jobs; the others run on intervals."""
        configs = {c['id']: c for c in scheduler_service._build_job_configs("Europe/Helsinki")}

        assert list(configs) == [
            "housekeeping_delete-inactive-polls",
            "housekeeping_remove-deleted-polls",
            "housekeeping_close-expired-polls",
            "housekeeping_send-deadline-reminders",
        ]

        reaper = configs["housekeeping_delete-inactive-polls"]["trigger"]
        purger = configs["housekeeping_remove-deleted-polls"]["trigger"]
        assert isinstance(reaper, CronTrigger)
        assert cron_fields(reaper)["hour"] == "3" and cron_fields(reaper)["minute"] == "0"
        assert cron_fields(purger)["hour"] == "3" and cron_fields(purger)["minute"] == "10"
        assert str(reaper.timezone) == "Europe/Helsinki"

        closer = configs["housekeeping_close-expired-polls"]["trigger"]
        reminders = configs["housekeeping_send-deadline-reminders"]["trigger"]
        assert isinstance(closer, IntervalTrigger)
        assert closer.interval == timedelta(minutes=5)
        assert reminders.interval == timedelta(minutes=15)

        for job_config in configs.values():
            assert job_config['max_instances'] == 1
            assert job_config['coalesce'] is True
            assert job_config['replace_existing'] is True

    def test_purge_time_wraps_past_midnight(self, mock_runner, config):
        config.cleanup_time = "23:55"
        service = SchedulerService(mock_runner, config)

        configs = {c['id']: c for c in service._build_job_configs("UTC")}
        fields = cron_fields(configs["housekeeping_remove-deleted-polls"]["trigger"])

        assert fields["hour"] == "0" and fields["minute"] == "5"

    def test_invalid_cleanup_time_uses_default(self, mock_runner, config):
        config.cleanup_time = "25:99"
        service = SchedulerService(mock_runner, config)

        configs = {c['id']: c for c in service._build_job_configs("UTC")}
        fields = cron_fields(configs["housekeeping_delete-inactive-polls"]["trigger"])

        assert fields["hour"] == "3" and fields["minute"] == "0"

    def test_setup_jobs_registers_every_step(self, scheduler_service):
        scheduler_service.setup_jobs()

        stats = scheduler_service.get_scheduler_stats()
        assert stats['total_jobs'] == 4
        assert stats['running'] is False
        assert stats['steps'] == sorted([
            "close-expired-polls",
            "delete-inactive-polls",
            "remove-deleted-polls",
            "send-deadline-reminders",
        ])
        assert {job['step'] for job in scheduler_service.get_jobs()} == set(stats['steps'])

    def test_setup_jobs_invalid_timezone(self, mock_runner, config):
        config.timezone = "Invalid/Zone"
        service = SchedulerService(mock_runner, config)

        service.setup_jobs()

        assert service._job_registry == {}

    @pytest.mark.asyncio
    async def test_run_step_delegates_to_runner(self, scheduler_service, mock_runner):
        await scheduler_service._run_step("close-expired-polls")

        mock_runner.run_step.assert_awaited_once_with("close-expired-polls")

    @pytest.mark.asyncio
    async def test_run_step_skipped_when_disabled(self, scheduler_service, mock_runner):
        mock_runner.enabled = False

        await scheduler_service._run_step("close-expired-polls")

        mock_runner.run_step.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_step_error_is_reported_not_raised(self, scheduler_service, mock_runner):
        mock_runner.run_step.side_effect = RuntimeError("boom")

        await scheduler_service._run_step("send-deadline-reminders")

        mock_runner.reporter.report_exception.assert_called_once()
        _, kwargs = mock_runner.reporter.report_exception.call_args
        assert kwargs['tags'] == {"job": "send-deadline-reminders", "trigger": "scheduler"}
