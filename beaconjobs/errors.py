"""Error taxonomy for job dispatch and scheduling.

Only :class:`ExecutionError` is allowed to reach an HTTP caller. The others
are absorbed by the component that owns them and surface through logs and
the persisted run log instead.
"""

from __future__ import annotations


class JobError(Exception):
    """Base exception for the job layer."""


class AuthorizationError(JobError):
    """Bearer credential missing, wrong, or no secret configured (fail closed)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"unauthorized: {reason}")


class DispatchError(JobError):
    """The durable event bus refused or could not accept an event."""

    def __init__(self, event_name: str, message: str) -> None:
        self.event_name = event_name
        super().__init__(f"dispatch of '{event_name}' failed: {message}")


class ExecutionError(JobError):
    """A job body raised while running inline."""

    def __init__(self, job_name: str, message: str) -> None:
        self.job_name = job_name
        self.message = message
        super().__init__(message)


class LoggingError(JobError):
    """The run-record store rejected a write."""


class SchedulingStoreUnavailable(JobError):
    """The keyed scheduling store could not be reached."""


class ConfigurationError(JobError):
    """Required configuration is missing or invalid. Messages never carry credentials."""
