"""
Error reporting sink for the housekeeping job.

Operators see isolated failures through the log stream; the most recent
reports are also kept in memory so the health endpoint can surface them.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorReporter:
    """Collects exceptions that were recovered from."""

    def __init__(self, max_recent: int = 50):
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=max_recent)
        self.total_reported = 0

    def report_exception(
        self,
        error: BaseException,
        tags: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an exception with contextual tags. Never raises."""
        try:
            tags = dict(tags or {})
            extra = dict(extra or {})
            self.total_reported += 1
            self._recent.append({
                "error": f"{type(error).__name__}: {error}",
                "tags": tags,
                "extra": extra,
                "reported_at": datetime.now(timezone.utc).isoformat(),
            })
            tag_text = " ".join(f"{k}={v}" for k, v in tags.items())
            logger.error(
                f"Reported {type(error).__name__} [{tag_text}]: {error}",
                exc_info=(type(error), error, error.__traceback__),
                extra={"report_tags": tags, "report_extra": extra},
            )
        except Exception as e:  # pragma: no cover - reporting must not fail the caller
            logger.debug(f"Error reporter failed: {e}")

    def recent(self) -> List[Dict[str, Any]]:
        """Most recent reports, oldest first."""
        return list(self._recent)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_reported": self.total_reported,
            "recent": len(self._recent),
        }
