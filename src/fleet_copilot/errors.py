"""Exception hierarchy for fleet copilot.

Tools convert every exception into a ``{"error": true, "message": ...}``
result, so these types mostly decide *which* message the agent sees and
whether a failure is worth a warning in the logs.
"""

from __future__ import annotations


class FleetCopilotError(Exception):
    """Base class for all domain errors."""


class VehicleNotFoundError(FleetCopilotError):
    """No vehicle in the directory matches the given search input."""

    def __init__(self, search_input: str) -> None:
        super().__init__(f"No vehicles found matching: {search_input}")
        self.search_input = search_input


class TelematicsError(FleetCopilotError):
    """The telematics API could not be reached or returned an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MediaDownloadError(FleetCopilotError):
    """A media file could not be downloaded or written to the blob store."""


class ThreadNotFoundError(FleetCopilotError):
    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread not found: {thread_id}")
        self.thread_id = thread_id
