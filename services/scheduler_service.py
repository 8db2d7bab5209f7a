"""
Scheduler Service for the poll housekeeping job.
Runs the housekeeping steps on their own cadences inside the event loop.
"""

import logging
from datetime import datetime
from typing import Dict, Any, List
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from utils.time import is_valid_timezone, parse_time

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_TIME = (3, 0)


class SchedulerService:
    """Service for managing the scheduled housekeeping jobs."""

    def __init__(self, runner, config):
        self.runner = runner
        self.config = config
        self.scheduler = AsyncIOScheduler()
        self._job_registry: Dict[str, Dict[str, Any]] = {}

    def start(self):
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    def setup_jobs(self):
        """Register one job per housekeeping step."""
        timezone = self.config.timezone

        if not is_valid_timezone(timezone):
            logger.error(f"Invalid timezone {timezone}; housekeeping jobs not scheduled")
            return

        for job_config in self._build_job_configs(timezone):
            try:
                self.scheduler.add_job(**job_config)
                self._job_registry[job_config['id']] = {
                    'step': job_config['args'][0],
                    'job_type': job_config.get('name', ''),
                    'created_at': datetime.now()
                }
            except Exception as e:
                logger.error(f"Failed to add job {job_config['id']}: {e}")

        logger.info(f"Setup {len(self._job_registry)} scheduled housekeeping jobs (timezone: {timezone})")

    def _build_job_configs(self, timezone: str) -> List[Dict]:
        """Build job configuration list for the housekeeping steps."""
        cleanup_time = parse_time(self.config.cleanup_time)
        if not cleanup_time:
            logger.warning(f"Invalid cleanup time '{self.config.cleanup_time}', using 03:00")
            cleanup_time = DEFAULT_CLEANUP_TIME

        common = {
            'replace_existing': True,
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 300,
        }

        job_configs = []
        for offset, step in enumerate(("delete-inactive-polls", "remove-deleted-polls")):
            # Purge runs ten minutes after the reaper
            hour, minute = cleanup_time
            minute += offset * 10
            hour, minute = (hour + minute // 60) % 24, minute % 60
            job_configs.append({
                'func': self._run_step,
                'args': [step],
                'trigger': CronTrigger(hour=hour, minute=minute, timezone=ZoneInfo(timezone)),
                'id': f"housekeeping_{step}",
                'name': f"Housekeeping - {step}",
                **common,
            })

        intervals = {
            "close-expired-polls": self.config.close_expired_interval_minutes,
            "send-deadline-reminders": self.config.reminder_interval_minutes,
        }
        for step, minutes in intervals.items():
            job_configs.append({
                'func': self._run_step,
                'args': [step],
                'trigger': IntervalTrigger(minutes=max(int(minutes), 1), timezone=ZoneInfo(timezone)),
                'id': f"housekeeping_{step}",
                'name': f"Housekeeping - {step}",
                **common,
            })

        return job_configs

    async def _run_step(self, step: str):
        """Execute one housekeeping step."""
        if not self.runner.enabled:
            logger.debug(f"Housekeeping disabled; skipping {step}")
            return
        try:
            await self.runner.run_step(step)
        except Exception as e:
            logger.error(f"Error in housekeeping step {step}: {e}", exc_info=True)
            self.runner.reporter.report_exception(e, tags={"job": step, "trigger": "scheduler"})

    def get_jobs(self) -> List[Dict]:
        """Get information about the scheduled jobs."""
        jobs = []
        for job_id, job_info in self._job_registry.items():
            job = self.scheduler.get_job(job_id)
            if job:
                jobs.append({
                    'id': job_id,
                    'name': job.name,
                    'next_run': getattr(job, 'next_run_time', None),
                    'step': job_info['step'],
                    'created_at': job_info['created_at']
                })
        return jobs

    def get_scheduler_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        return {
            'total_jobs': len(self.scheduler.get_jobs()),
            'running': self.scheduler.running,
            'steps': sorted(info['step'] for info in self._job_registry.values())
        }
