"""
Poll Housekeeping - Main Entry Point

Serves the authenticated trigger endpoint (optionally with the in-process
scheduler) or runs the housekeeping steps once from the command line.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import uvicorn

from api import create_app
from config import get_config
from services.email_service import EmailClient, build_transport
from services.housekeeping.runner import RUN_ALL, JobRunner
from storage import JsonRepository
from utils.errors import AuthorizationError
from utils.reporting import ErrorReporter
from utils.validation import validate_config

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


async def run_once(step: str) -> dict:
    """Run one step (or all of them) and deliver the queued email before returning."""
    config = get_config()
    reporter = ErrorReporter()
    email_client = EmailClient(build_transport(config))
    runner = JobRunner.create(config, JsonRepository(config.data_dir), email_client, reporter)
    if not runner.enabled:
        raise AuthorizationError("Housekeeping is disabled", status_code=503)

    try:
        if step == RUN_ALL:
            return await runner.run_all()
        return await runner.run_step(step)
    finally:
        delivered = await email_client.flush()
        logger.info(f"Delivered {delivered} email(s); stats: {email_client.get_stats()}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Poll deadline and retention housekeeping")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve the trigger endpoint")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    run = sub.add_parser("run", help="Run housekeeping once and print the summary")
    run.add_argument("step", nargs="?", default=RUN_ALL,
                     help="Step name (delete-inactive-polls, remove-deleted-polls, "
                          "close-expired-polls, send-deadline-reminders) or 'all'")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logging(config.log_level)

    result = validate_config(config)
    if not result:
        logger.warning(f"Configuration problems: {result.error_message}")

    Path(config.data_dir).mkdir(parents=True, exist_ok=True)

    if args.command == "serve":
        uvicorn.run(
            create_app(config=config),
            host=args.host or config.host,
            port=args.port or config.port,
            log_level=config.log_level.lower(),
        )
        return 0

    try:
        summary = asyncio.run(run_once(args.step))
    except Exception as e:
        logger.error(f"Housekeeping run failed: {e}", exc_info=True)
        print(json.dumps({"success": False, "error": str(e)}, indent=2))
        return 1

    print(json.dumps(summary, indent=2, default=str))
    return 0 if summary.get("success") else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Process interrupted")
