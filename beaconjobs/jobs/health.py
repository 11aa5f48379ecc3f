"""Job health summary derived from recent run records and the job registry."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from beaconjobs.jobs.registry import JobRegistryEntry
from beaconjobs.runs.models import RunRecord, RunStatus
from beaconjobs.runs.store import RunStore

logger = logging.getLogger(__name__)

FAILING_JOB_COUNT = 2
FAILING_FAILURE_SUM = 3


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


@dataclass
class JobHealth:
    """Health of one registered job."""

    job_name: str
    label: str
    schedule: str
    last_run_at: datetime | None = None
    last_status: RunStatus | None = None
    last_duration_ms: int | None = None
    recent_failure_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "label": self.label,
            "schedule": self.schedule,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_status": self.last_status.value if self.last_status else None,
            "last_duration_ms": self.last_duration_ms,
            "recent_failure_count": self.recent_failure_count,
        }


@dataclass
class HealthSummary:
    """Dashboard-ready health report."""

    jobs: list[JobHealth]
    recent_runs: list[RunRecord] = field(default_factory=list)
    has_recent_failures: bool = False
    overall_status: HealthStatus = HealthStatus.HEALTHY

    @property
    def total_recent_failures(self) -> int:
        return sum(job.recent_failure_count for job in self.jobs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "recent_runs": [run.to_dict() for run in self.recent_runs],
            "has_recent_failures": self.has_recent_failures,
            "overall_status": self.overall_status.value,
        }


def classify(failure_counts: Sequence[int]) -> HealthStatus:
    """Overall status from per-job recent failure counts.

    One flaky job is ``degraded``; two failing jobs, or three failures in
    total, is ``failing``.
    """
    failing_jobs = sum(1 for count in failure_counts if count > 0)
    total = sum(failure_counts)
    if failing_jobs >= FAILING_JOB_COUNT or total >= FAILING_FAILURE_SUM:
        return HealthStatus.FAILING
    if total > 0:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthAggregator:
    """Builds a :class:`HealthSummary` from run records.

    Args:
        registry: Jobs to report on. Each appears in the output even with no runs.
        window_size: How many most-recent records to read from the store.
        recent_runs_limit: How many raw records to include in the summary.
        failure_window: Rolling window for counting recent failures.
        clock: Source of "now" for the failure window.
    """

    def __init__(
        self,
        registry: Sequence[JobRegistryEntry],
        *,
        window_size: int = 100,
        recent_runs_limit: int = 20,
        failure_window: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be a positive integer")
        if recent_runs_limit < 0:
            raise ValueError("recent_runs_limit must be >= 0")
        self._registry = list(registry)
        self._window_size = window_size
        self._recent_runs_limit = recent_runs_limit
        self._failure_window = failure_window
        self._clock = clock

    @property
    def registry(self) -> list[JobRegistryEntry]:
        return list(self._registry)

    async def collect(self, store: RunStore) -> HealthSummary:
        """Read the recent window from the store and summarize it.

        A store failure yields the empty summary rather than an error.
        """
        try:
            records = await store.list_recent(self._window_size)
        except Exception as exc:
            logger.exception("job_health_read_failed error=%s", exc)
            records = []
        return self.summarize(records)

    def summarize(self, records: Sequence[RunRecord]) -> HealthSummary:
        """Summarize records ordered most-recent-first."""
        records = list(records)[: self._window_size]
        cutoff = self._clock() - self._failure_window
        grouped: dict[str, list[RunRecord]] = defaultdict(list)
        for record in records:
            grouped[record.job_name].append(record)

        jobs: list[JobHealth] = []
        for entry in self._registry:
            runs = grouped.get(entry.job_name, [])
            health = JobHealth(job_name=entry.job_name, label=entry.label, schedule=entry.schedule)
            if runs:
                latest = runs[0]
                health.last_run_at = latest.started_at
                health.last_status = latest.status
                health.last_duration_ms = latest.duration_ms
            health.recent_failure_count = sum(
                1 for run in runs if run.status.is_failure and run.started_at >= cutoff
            )
            jobs.append(health)

        counts = [job.recent_failure_count for job in jobs]
        return HealthSummary(
            jobs=jobs,
            recent_runs=records[: self._recent_runs_limit],
            has_recent_failures=any(count > 0 for count in counts),
            overall_status=classify(counts),
        )
