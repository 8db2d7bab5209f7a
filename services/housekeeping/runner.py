"""Composition of the housekeeping steps behind one authorization gate."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.housekeeping.deadlines import DeadlineEnforcer
from services.housekeeping.purger import DeletedPollPurger
from services.housekeeping.reaper import InactivePollReaper
from services.housekeeping.reminders import ReminderDispatcher
from utils.errors import AuthorizationError, UnknownStepError
from utils.messages import format_step_summary

logger = logging.getLogger(__name__)

RUN_ALL = "all"


class JobRunner:
    """Runs housekeeping steps by name and aggregates their summaries."""

    def __init__(self, config, steps: List[Any], reporter):
        self.config = config
        self.reporter = reporter
        self.steps: Dict[str, Any] = {step.name: step for step in steps}

    @classmethod
    def create(cls, config, repo, email_client, reporter) -> "JobRunner":
        """Build a runner with the standard steps in run order."""
        steps = [
            InactivePollReaper(repo, inactive_days=config.inactive_poll_days),
            DeletedPollPurger(repo, retention_days=config.deleted_poll_retention_days),
            DeadlineEnforcer(repo, email_client, reporter, config),
            ReminderDispatcher(repo, email_client, reporter, config),
        ]
        return cls(config, steps, reporter)

    @property
    def step_names(self) -> List[str]:
        return list(self.steps)

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    def authorize(self, credential: Optional[str]) -> None:
        """
        Gate job execution.

        Raises:
            AuthorizationError: 503 when disabled, 500 when no secret is
                configured, 401 when the bearer credential is missing or wrong
        """
        if not self.enabled:
            raise AuthorizationError("Housekeeping is disabled", status_code=503)
        if not self.config.secret_configured:
            raise AuthorizationError("CRON_SECRET is not set in environment variables", status_code=500)
        if not credential or not hmac.compare_digest(
            credential.encode("utf-8"), self.config.cron_secret.encode("utf-8")
        ):
            raise AuthorizationError("Unauthorized", status_code=401)

    async def run_step(self, name: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run one step; exceptions from the step propagate."""
        step = self.steps.get(name)
        if step is None:
            raise UnknownStepError(name)

        now = now or datetime.now(timezone.utc)
        logger.info(f"Running housekeeping step {name}")
        summary = await step.run(now)
        logger.info(format_step_summary(name, summary))
        return {"success": True, "summary": summary}

    async def run_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run every step in order; one failing step does not stop the others."""
        now = now or datetime.now(timezone.utc)
        results: Dict[str, Any] = {}
        for name in self.steps:
            try:
                results[name] = await self.run_step(name, now)
            except Exception as e:
                logger.error(f"Housekeeping step {name} failed: {e}", exc_info=True)
                self.reporter.report_exception(e, tags={"job": name})
                results[name] = {"success": False, "error": str(e)}
        return {
            "success": all(result["success"] for result in results.values()),
            "steps": results,
        }

    async def handle(self, name: str, credential: Optional[str], now: Optional[datetime] = None) -> Dict[str, Any]:
        """Authorize a trigger request, then run the named step (or all)."""
        self.authorize(credential)
        if name == RUN_ALL:
            return await self.run_all(now)
        return await self.run_step(name, now)
