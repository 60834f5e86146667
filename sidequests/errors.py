"""
Error types for the SideQuests engine.

Location errors carry a human-readable ``message`` meant to be shown in a
dismissible alert. Running out of prompts is not an error: the selector
returns ``None`` for that case.
"""
from pathlib import Path
from typing import Optional


class SideQuestsError(Exception):
    """Base class for every error raised by this package."""


class LocationError(SideQuestsError):
    message = "A location error occurred"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.cause = cause
        if message:
            self.message = message
        elif cause is not None:
            self.message = f"{self.message}: {cause}"
        super().__init__(self.message)


class PermissionDenied(LocationError):
    message = "Location permission is required to use this feature"


class LocationUnavailable(LocationError):
    message = "Failed to get location"


class LocationTimeout(LocationError):
    message = "Failed to get location: Location request timed out"


class MonitoringFailed(LocationError):
    message = "Failed to monitor location"


class LocationRequestInProgress(LocationError):
    message = "A location request is already in progress"


class PackDecodeError(SideQuestsError):
    """A pack file that could not be decoded. Logged and skipped by the catalog."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Error decoding pack from {path.name}: {reason}")
