"""Unit tests for HealthAggregator and overall status classification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from beaconjobs.jobs import DEFAULT_JOB_REGISTRY, HealthAggregator, HealthStatus, classify
from beaconjobs.runs import RunRecord, RunStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(job_name: str, status: RunStatus, *, days_ago: float = 0, duration_ms: int | None = 100) -> RunRecord:
    return RunRecord(
        id=f"{job_name}-{status.value}-{days_ago}",
        job_name=job_name,
        started_at=NOW - timedelta(days=days_ago),
        status=status,
        duration_ms=duration_ms,
    )


def _aggregator(**kwargs) -> HealthAggregator:
    return HealthAggregator(DEFAULT_JOB_REGISTRY, clock=lambda: NOW, **kwargs)


def test_empty_records_report_every_job_healthy() -> None:
    summary = _aggregator().summarize([])

    assert [job.job_name for job in summary.jobs] == [e.job_name for e in DEFAULT_JOB_REGISTRY]
    assert all(job.last_run_at is None and job.last_status is None for job in summary.jobs)
    assert summary.overall_status is HealthStatus.HEALTHY
    assert summary.has_recent_failures is False


def test_single_failure_is_degraded() -> None:
    records = [
        _record("sov", RunStatus.FAILED, days_ago=1),
        _record("audit", RunStatus.SUCCESS, days_ago=1),
    ]
    summary = _aggregator().summarize(records)

    assert summary.overall_status is HealthStatus.DEGRADED
    assert summary.has_recent_failures is True
    sov = next(job for job in summary.jobs if job.job_name == "sov")
    assert sov.recent_failure_count == 1
    assert sov.last_status is RunStatus.FAILED


def test_two_failing_jobs_is_failing() -> None:
    records = [
        _record("sov", RunStatus.FAILED, days_ago=1),
        _record("citation", RunStatus.TIMEOUT, days_ago=2),
    ]
    assert _aggregator().summarize(records).overall_status is HealthStatus.FAILING


def test_three_failures_in_one_job_is_failing() -> None:
    records = [_record("sov", RunStatus.FAILED, days_ago=d) for d in (1, 2, 3)]
    summary = _aggregator().summarize(records)
    assert summary.overall_status is HealthStatus.FAILING
    assert summary.total_recent_failures == 3


def test_failures_older_than_window_are_ignored() -> None:
    records = [
        _record("sov", RunStatus.SUCCESS, days_ago=0.5),
        _record("sov", RunStatus.FAILED, days_ago=8),
    ]
    summary = _aggregator().summarize(records)

    sov = next(job for job in summary.jobs if job.job_name == "sov")
    assert sov.recent_failure_count == 0
    assert sov.last_status is RunStatus.SUCCESS
    assert summary.overall_status is HealthStatus.HEALTHY


def test_last_run_uses_most_recent_record() -> None:
    records = [
        _record("audit", RunStatus.RUNNING, days_ago=0, duration_ms=None),
        _record("audit", RunStatus.SUCCESS, days_ago=1, duration_ms=900),
    ]
    audit = next(job for job in _aggregator().summarize(records).jobs if job.job_name == "audit")

    assert audit.last_status is RunStatus.RUNNING
    assert audit.last_run_at == NOW
    assert audit.last_duration_ms is None


def test_unregistered_jobs_appear_only_in_recent_runs() -> None:
    records = [_record("legacy-job", RunStatus.FAILED)]
    summary = _aggregator().summarize(records)

    assert "legacy-job" not in {job.job_name for job in summary.jobs}
    assert summary.recent_runs[0].job_name == "legacy-job"
    assert summary.overall_status is HealthStatus.HEALTHY


def test_recent_runs_and_window_limits() -> None:
    records = [_record("sov", RunStatus.SUCCESS, days_ago=i / 100) for i in range(30)]
    summary = _aggregator(window_size=25, recent_runs_limit=5).summarize(records)
    assert len(summary.recent_runs) == 5


def test_to_dict_shape() -> None:
    payload = _aggregator().summarize([_record("sov", RunStatus.FAILED)]).to_dict()
    assert payload["overall_status"] == "degraded"
    assert payload["has_recent_failures"] is True
    assert payload["jobs"][1]["job_name"] == "sov"
    assert payload["recent_runs"][0]["status"] == "failed"


@pytest.mark.asyncio
async def test_collect_degrades_to_empty_summary_on_store_error() -> None:
    store = AsyncMock()
    store.list_recent.side_effect = RuntimeError("database down")

    summary = await _aggregator().collect(store)

    assert summary.overall_status is HealthStatus.HEALTHY
    assert summary.recent_runs == []
    assert len(summary.jobs) == len(DEFAULT_JOB_REGISTRY)


@pytest.mark.asyncio
async def test_collect_reads_window_size(run_store) -> None:
    await run_store.insert_running("sov", NOW)
    summary = await _aggregator(window_size=10).collect(run_store)
    assert summary.recent_runs[0].status is RunStatus.RUNNING


def test_aggregator_rejects_bad_window() -> None:
    with pytest.raises(ValueError):
        _aggregator(window_size=0)


@given(st.lists(st.integers(min_value=0, max_value=10), min_size=0, max_size=8))
def test_property_classify_thresholds(counts: list[int]) -> None:
    """Property: failing iff >=2 jobs failing or >=3 failures; degraded iff any failure otherwise."""
    status = classify(counts)
    failing_jobs = sum(1 for c in counts if c > 0)
    total = sum(counts)
    if failing_jobs >= 2 or total >= 3:
        assert status is HealthStatus.FAILING
    elif total > 0:
        assert status is HealthStatus.DEGRADED
    else:
        assert status is HealthStatus.HEALTHY
