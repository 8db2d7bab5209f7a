"""
Configuration management for the poll housekeeping service.
Handles environment variables and job settings.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "yes", "y", "on")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: '{raw}', using {default}")
        return default


@dataclass
class HousekeepingConfig:
    """Housekeeping configuration from environment variables."""
    enabled: bool = False
    cron_secret: str = ""
    base_url: str = "http://localhost:3000"
    timezone: str = "UTC"

    # Data paths
    data_dir: str = "data"

    # Retention thresholds
    inactive_poll_days: int = 30
    deleted_poll_retention_days: int = 7

    # Schedule
    scheduler_enabled: bool = False
    cleanup_time: str = "03:00"
    close_expired_interval_minutes: int = 5
    reminder_interval_minutes: int = 15

    # Email transport
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = "noreply@localhost"

    # Server
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def secret_configured(self) -> bool:
        return bool(self.cron_secret)

    def absolute_url(self, path: str) -> str:
        """Join a path onto the public base URL."""
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    @classmethod
    def from_env(cls) -> "HousekeepingConfig":
        """Create config from environment variables."""
        return cls(
            enabled=_env_bool("HOUSEKEEPING_ENABLED", False),
            cron_secret=(os.getenv("CRON_SECRET") or "").strip(),
            base_url=(os.getenv("BASE_URL") or "http://localhost:3000").strip().rstrip("/"),
            timezone=os.getenv("TIMEZONE", "UTC"),
            data_dir=os.getenv("DATA_DIR", "data"),
            inactive_poll_days=_env_int("INACTIVE_POLL_DAYS", 30),
            deleted_poll_retention_days=_env_int("DELETED_POLL_RETENTION_DAYS", 7),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", False),
            cleanup_time=os.getenv("CLEANUP_TIME", "03:00"),
            close_expired_interval_minutes=_env_int("CLOSE_EXPIRED_INTERVAL_MINUTES", 5),
            reminder_interval_minutes=_env_int("REMINDER_INTERVAL_MINUTES", 15),
            smtp_host=(os.getenv("SMTP_HOST") or "").strip(),
            smtp_port=_env_int("SMTP_PORT", 587),
            smtp_username=os.getenv("SMTP_USERNAME", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_use_tls=_env_bool("SMTP_USE_TLS", True),
            email_from=os.getenv("EMAIL_FROM", "noreply@localhost"),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
            host=os.getenv("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8000),
        )

# Global config instance
config: Optional[HousekeepingConfig] = None

def get_config() -> HousekeepingConfig:
    """Get the global configuration instance."""
    global config
    if config is None:
        config = HousekeepingConfig.from_env()
    return config
