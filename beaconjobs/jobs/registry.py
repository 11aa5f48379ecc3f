"""Static catalog of scheduled jobs.

The registry is plain configuration. Pass it explicitly to the components
that need it; nothing here holds runtime state.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

# Bodies receive the merged event payload (Job.payload plus per-call fields).
JobBody = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

# cron/<job>.<cadence>
_EVENT_NAME = re.compile(r"^cron/[a-z0-9][a-z0-9-]*\.[a-z]+$")
_JOB_NAME = re.compile(r"^[a-z0-9][a-z0-9-]*$")


@dataclass(frozen=True, slots=True)
class JobRegistryEntry:
    """One known job: name, human label, schedule description, bus event."""

    job_name: str
    label: str
    schedule: str
    event_name: str
    retries: int = 3

    def __post_init__(self) -> None:
        if not _JOB_NAME.match(self.job_name):
            raise ValueError(f"invalid job_name: {self.job_name!r}")
        if not _EVENT_NAME.match(self.event_name):
            raise ValueError(
                f"event_name must look like cron/<job>.<cadence>: {self.event_name!r}"
            )
        if self.retries < 0:
            raise ValueError("retries must be >= 0")


@dataclass(slots=True)
class Job:
    """A registry entry bound to the coroutine that performs its work."""

    entry: JobRegistryEntry
    body: JobBody
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.entry.job_name

    @property
    def event_name(self) -> str:
        return self.entry.event_name


DEFAULT_JOB_REGISTRY: tuple[JobRegistryEntry, ...] = (
    JobRegistryEntry("audit", "AI Audit", "Daily at 3 AM EST", "cron/audit.daily"),
    JobRegistryEntry("sov", "SOV Engine", "Weekly, Sunday at 2 AM EST", "cron/sov.weekly"),
    JobRegistryEntry("citation", "Citation Scan", "Daily at 4 AM EST", "cron/citation.daily"),
    JobRegistryEntry(
        "content-audit",
        "Content Audit",
        "Monthly, 1st at 5 AM EST",
        "cron/content-audit.monthly",
        retries=2,
    ),
    JobRegistryEntry(
        "correction-follow-up",
        "Correction Follow-up",
        "Daily at 10:00 UTC",
        "cron/correction-follow-up.daily",
    ),
    JobRegistryEntry(
        "post-publish-recheck",
        "Post-publish Recheck",
        "Daily at 6 AM EST",
        "cron/post-publish-recheck.daily",
    ),
)


def registry_index(entries: Iterable[JobRegistryEntry]) -> dict[str, JobRegistryEntry]:
    """Map job_name to entry, rejecting duplicates."""
    index: dict[str, JobRegistryEntry] = {}
    for entry in entries:
        if entry.job_name in index:
            raise ValueError(f"duplicate job_name in registry: {entry.job_name}")
        index[entry.job_name] = entry
    return index
