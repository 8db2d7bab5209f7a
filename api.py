"""
HTTP trigger surface for the housekeeping job.
Exposes one authenticated route per step plus a health endpoint.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from config import HousekeepingConfig, get_config
from services.email_service import EmailClient, build_transport
from services.housekeeping.runner import JobRunner
from services.scheduler_service import SchedulerService
from storage import JsonRepository
from utils.errors import AuthorizationError, UnknownStepError
from utils.reporting import ErrorReporter

logger = logging.getLogger(__name__)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(
    config: Optional[HousekeepingConfig] = None,
    runner: Optional[JobRunner] = None,
    email_client: Optional[EmailClient] = None,
    scheduler: Optional[SchedulerService] = None,
) -> FastAPI:
    config = config or get_config()
    reporter = runner.reporter if runner else ErrorReporter()
    if runner is None:
        email_client = email_client or EmailClient(build_transport(config))
        runner = JobRunner.create(config, JsonRepository(config.data_dir), email_client, reporter)
    if scheduler is None and config.scheduler_enabled:
        scheduler = SchedulerService(runner, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if email_client is not None:
            email_client.start()
        if scheduler is not None:
            scheduler.setup_jobs()
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            if email_client is not None:
                await email_client.stop()

    app = FastAPI(title="Poll Housekeeping API", lifespan=lifespan)
    app.state.runner = runner
    app.state.scheduler = scheduler

    # --- Friendly error envelope (scheduler callers) ---
    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(request: Request, exc: AuthorizationError):
        logger.warning(f"Rejected housekeeping request to {request.url.path}: {exc.message}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(UnknownStepError)
    async def unknown_step_handler(request: Request, exc: UnknownStepError):
        return _error(404, str(exc))

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "enabled": runner.enabled,
            "steps": runner.step_names,
            "scheduler": scheduler.get_scheduler_stats() if scheduler else None,
            "errors": reporter.get_stats(),
        }

    # --- Housekeeping trigger ---
    @app.get("/api/house-keeping/{method}", tags=["house-keeping"])
    async def house_keeping(method: str, authorization: Optional[str] = Header(default=None)):
        try:
            return await runner.handle(method, _bearer_token(authorization))
        except (AuthorizationError, UnknownStepError):
            raise
        except Exception as e:
            logger.error(f"Housekeeping step {method} failed: {e}", exc_info=True)
            reporter.report_exception(e, tags={"job": method, "trigger": "http"})
            return _error(500, str(e))

    return app
