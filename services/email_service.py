"""
Email Service for the housekeeping job.
Renders templates, queues messages and delivers them through a transport.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from config import HousekeepingConfig
from utils.messages import OutgoingEmail, render_email

logger = logging.getLogger(__name__)


class LogTransport:
    """Transport used when no SMTP server is configured: logs each message."""

    def __init__(self):
        self.sent: List[OutgoingEmail] = []

    def send(self, message: OutgoingEmail) -> None:
        self.sent.append(message)
        logger.info(f"[email] to={message.to} subject={message.subject!r}")


class SmtpTransport:
    """Blocking SMTP delivery; run through an executor by EmailClient."""

    def __init__(self, host: str, port: int, username: str = "", password: str = "",
                 use_tls: bool = True, sender: str = "noreply@localhost", timeout: float = 30.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def send(self, message: OutgoingEmail) -> None:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = self.sender
        msg["To"] = message.to
        msg.set_content(message.text)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(msg)


def build_transport(config: HousekeepingConfig):
    """Pick the SMTP transport when a host is configured, else log only."""
    if config.smtp_host:
        return SmtpTransport(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            sender=config.email_from,
        )
    logger.warning("SMTP_HOST is not set; emails will only be logged")
    return LogTransport()


class EmailClient:
    """Queue of templated emails with a background delivery worker."""

    def __init__(self, transport):
        self.transport = transport
        self._queue: "asyncio.Queue[OutgoingEmail]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failed = 0

    async def enqueue_template(self, template_name: str, to: str, props: Dict[str, Any]) -> None:
        """
        Render *template_name* for *to* and queue it for delivery.

        Raises:
            NotificationDispatchError: the template could not be rendered
        """
        message = render_email(template_name, to, props)
        await self._queue.put(message)
        logger.debug(f"Queued {template_name} for {to}")

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _deliver(self, message: OutgoingEmail) -> bool:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.transport.send, message)
            self.delivered += 1
            return True
        except (smtplib.SMTPException, OSError) as e:
            self.failed += 1
            logger.error(f"Failed to deliver {message.template} to {message.to}: {e}")
            return False
        except Exception as e:
            # The worker must outlive any single bad message
            self.failed += 1
            logger.error(f"Unexpected error delivering {message.template} to {message.to}: {e}", exc_info=True)
            return False

    async def flush(self) -> int:
        """Deliver everything currently queued. Returns the number delivered."""
        delivered = 0
        while not self._queue.empty():
            message = self._queue.get_nowait()
            try:
                if await self._deliver(message):
                    delivered += 1
            finally:
                self._queue.task_done()
        return delivered

    async def _run_worker(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._deliver(message)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start the background delivery worker."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker())
            logger.info("Email worker started")

    async def stop(self) -> None:
        """Stop the worker after delivering what is still queued."""
        if self._worker is not None:
            if not self._worker.done():
                await self._queue.join()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self.flush()
        logger.info("Email worker stopped")

    def get_stats(self) -> Dict[str, int]:
        return {"pending": self.pending, "delivered": self.delivered, "failed": self.failed}
