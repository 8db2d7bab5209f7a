"""Per-recipient email dispatch with failure isolation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from utils.errors import NotificationDispatchError

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of one dispatch attempt."""
    recipient: str
    ok: bool
    error: Optional[BaseException] = None
    tags: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.ok


async def deliver(
    email_client,
    reporter,
    template_name: str,
    to: str,
    props: Dict[str, Any],
    tags: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
) -> DeliveryResult:
    """
    Enqueue one templated email, turning any failure into a reported result.

    Never raises for dispatch failures; the caller decides what a failed
    result means for its own bookkeeping.
    """
    try:
        await email_client.enqueue_template(template_name, to=to, props=props)
        return DeliveryResult(recipient=to, ok=True, tags=tags)
    except Exception as e:
        error = e if isinstance(e, NotificationDispatchError) else NotificationDispatchError(template_name, to, str(e))
        if error is not e:
            error.__cause__ = e
        logger.error(f"Failed to send {template_name} to {to} ({tags}): {e}")
        reporter.report_exception(error, tags=tags, extra={"template": template_name, **(extra or {})})
        return DeliveryResult(recipient=to, ok=False, error=error, tags=tags)
