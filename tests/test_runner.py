"""Tests for the job runner: authorization gate, step dispatch and isolation."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from config import HousekeepingConfig
from services.housekeeping.runner import JobRunner
from utils.errors import AuthorizationError, UnknownStepError

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_step(name, summary=None, error=None):
    step = Mock()
    step.name = name
    step.run = AsyncMock(return_value=summary or {}, side_effect=error)
    return step


@pytest.fixture
def config():
    return HousekeepingConfig(enabled=True, cron_secret="s3cret")


@pytest.fixture
def reporter():
    return Mock()


class TestAuthorize:
    """Authorization outcomes in precedence order."""

    def test_disabled_wins_over_everything(self, reporter):
        runner = JobRunner(HousekeepingConfig(enabled=False, cron_secret=""), [], reporter)

        with pytest.raises(AuthorizationError) as exc_info:
            runner.authorize("anything")
        assert exc_info.value.status_code == 503

    def test_missing_secret_is_a_server_error(self, reporter):
        runner = JobRunner(HousekeepingConfig(enabled=True, cron_secret=""), [], reporter)

        with pytest.raises(AuthorizationError) as exc_info:
            runner.authorize("anything")
        assert exc_info.value.status_code == 500

    @pytest.mark.parametrize("credential", [None, "", "wrong", "s3cret "])
    def test_bad_credential_is_unauthorized(self, config, reporter, credential):
        runner = JobRunner(config, [], reporter)

        with pytest.raises(AuthorizationError) as exc_info:
            runner.authorize(credential)
        assert exc_info.value.status_code == 401

    def test_matching_credential_passes(self, config, reporter):
        JobRunner(config, [], reporter).authorize("s3cret")


@pytest.mark.asyncio
async def test_run_step_returns_summary(config, reporter):
    step = make_step("close-expired-polls", {"closedCount": 2})
    runner = JobRunner(config, [step], reporter)

    result = await runner.run_step("close-expired-polls", NOW)

    assert result == {"success": True, "summary": {"closedCount": 2}}
    step.run.assert_awaited_once_with(NOW)


@pytest.mark.asyncio
async def test_run_step_unknown_name(config, reporter):
    runner = JobRunner(config, [make_step("a")], reporter)

    with pytest.raises(UnknownStepError):
        await runner.run_step("nope", NOW)


@pytest.mark.asyncio
async def test_run_step_propagates_step_errors(config, reporter):
    runner = JobRunner(config, [make_step("a", error=RuntimeError("boom"))], reporter)

    with pytest.raises(RuntimeError, match="boom"):
        await runner.run_step("a", NOW)


@pytest.mark.asyncio
async def test_run_all_isolates_failures(config, reporter):
    first = make_step("a", {"markedDeleted": 1})
    broken = make_step("b", error=RuntimeError("storage offline"))
    last = make_step("c", {"closedCount": 0})
    runner = JobRunner(config, [first, broken, last], reporter)

    result = await runner.run_all(NOW)

    assert result["success"] is False
    assert list(result["steps"]) == ["a", "b", "c"]
    assert result["steps"]["a"] == {"success": True, "summary": {"markedDeleted": 1}}
    assert result["steps"]["b"] == {"success": False, "error": "storage offline"}
    assert result["steps"]["c"]["success"] is True
    last.run.assert_awaited_once_with(NOW)
    reporter.report_exception.assert_called_once()
    assert reporter.report_exception.call_args.kwargs["tags"] == {"job": "b"}


@pytest.mark.asyncio
async def test_handle_authorizes_before_running(config, reporter):
    step = make_step("a")
    runner = JobRunner(config, [step], reporter)

    with pytest.raises(AuthorizationError):
        await runner.handle("a", "wrong", NOW)
    step.run.assert_not_awaited()

    result = await runner.handle("all", "s3cret", NOW)
    assert result["success"] is True
    step.run.assert_awaited_once()


def test_create_registers_steps_in_run_order(config, reporter):
    runner = JobRunner.create(config, repo=Mock(), email_client=Mock(), reporter=reporter)

    assert runner.step_names == [
        "delete-inactive-polls",
        "remove-deleted-polls",
        "close-expired-polls",
        "send-deadline-reminders",
    ]
    assert runner.enabled is True
