"""
Error taxonomy for the housekeeping job.
"""

from typing import Optional


class HousekeepingError(Exception):
    """Base class for housekeeping errors."""
    pass


class AuthorizationError(HousekeepingError):
    """The trigger is disabled, unconfigured, or the credential is wrong."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TimezoneConversionError(HousekeepingError):
    """A UTC instant could not be converted into the requested zone."""

    def __init__(self, zone: Optional[str], reason: str = ""):
        super().__init__(f"Cannot convert to timezone '{zone}': {reason}" if reason else f"Cannot convert to timezone '{zone}'")
        self.zone = zone


class NotificationDispatchError(HousekeepingError):
    """Rendering or queueing an email for one recipient failed."""

    def __init__(self, template: str, recipient: Optional[str], reason: str = ""):
        super().__init__(f"Failed to dispatch {template} to {recipient}: {reason}")
        self.template = template
        self.recipient = recipient


class PersistenceError(HousekeepingError):
    """A repository read or write failed."""
    pass


class BatchStalledError(HousekeepingError):
    """A batch fetch returned only rows that were already processed."""
    pass


class UnknownStepError(HousekeepingError):
    """No job step is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(f"Unknown housekeeping step '{name}'")
        self.name = name
