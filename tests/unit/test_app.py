"""Unit tests for BeaconJobs wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from beaconjobs.app import RECHECK_JOB_NAME, BeaconJobs
from beaconjobs.config import BeaconJobsConfig
from beaconjobs.jobs import DispatchOutcome, RecheckSweep
from beaconjobs.runs import InMemoryRunStore
from beaconjobs.scheduling import InMemoryKeyedStore


def test_defaults_to_in_memory_run_store(test_config: BeaconJobsConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("BEACONJOBS_DATABASE_URL", raising=False)
    jobs_app = BeaconJobs(test_config, keyed_store=InMemoryKeyedStore(), environ={})
    assert isinstance(jobs_app.run_store, InMemoryRunStore)


def test_job_decorator_binds_body(jobs_app: BeaconJobs) -> None:
    @jobs_app.job("sov")
    async def run_sov(payload: dict) -> dict:
        return {"orgs_processed": 1}

    assert jobs_app.jobs["sov"].body is run_sov
    assert jobs_app.jobs["sov"].event_name == "cron/sov.weekly"


def test_add_job_rejects_unknown_and_duplicate(jobs_app: BeaconJobs) -> None:
    with pytest.raises(ValueError, match="not in the registry"):
        jobs_app.add_job("unknown-job", AsyncMock())
    jobs_app.add_job("audit", AsyncMock())
    with pytest.raises(ValueError, match="already has a body"):
        jobs_app.add_job("audit", AsyncMock())


@pytest.mark.asyncio
async def test_trigger_unknown_job_raises_key_error(jobs_app: BeaconJobs, auth_header: str) -> None:
    with pytest.raises(KeyError):
        await jobs_app.trigger("sov", auth_header)


@pytest.mark.asyncio
async def test_trigger_uses_event_bus_when_present(
    test_config: BeaconJobsConfig, mock_event_bus: AsyncMock, auth_header: str
) -> None:
    jobs_app = BeaconJobs(
        test_config,
        run_store=InMemoryRunStore(),
        keyed_store=InMemoryKeyedStore(),
        event_bus=mock_event_bus,
        environ={},
    )
    jobs_app.add_job("audit", AsyncMock())

    result = await jobs_app.trigger("audit", auth_header)

    assert result.outcome is DispatchOutcome.DISPATCHED
    mock_event_bus.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_enable_recheck_sweep_registers_job(jobs_app: BeaconJobs, auth_header: str, clock) -> None:
    recheck = AsyncMock()
    job = jobs_app.enable_recheck_sweep(recheck)
    assert job.name == RECHECK_JOB_NAME
    assert isinstance(job.body, RecheckSweep)

    await jobs_app.schedule_recheck("draft-1", "loc-1", "pizza near me")
    clock.advance(days=14)
    result = await jobs_app.trigger(RECHECK_JOB_NAME, auth_header)

    assert result.body == {"rechecks_due": 1, "rechecks_completed": 1, "rechecks_failed": 0, "ok": True}


@pytest.mark.asyncio
async def test_health_includes_every_registered_job(jobs_app: BeaconJobs) -> None:
    summary = await jobs_app.health()
    assert {job.job_name for job in summary.jobs} == {entry.job_name for entry in jobs_app.registry}


def test_run_worker_requires_hatchet_bus(jobs_app: BeaconJobs) -> None:
    with pytest.raises(RuntimeError, match="Hatchet event bus"):
        jobs_app.run_worker()


@pytest.mark.asyncio
async def test_schedule_recheck_honours_configured_delay(
    test_config: BeaconJobsConfig, clock
) -> None:
    test_config.recheck.delay_days = 3
    jobs_app = BeaconJobs(
        test_config,
        run_store=InMemoryRunStore(),
        keyed_store=InMemoryKeyedStore(clock=clock),
        environ={},
        clock=clock,
    )

    task = await jobs_app.schedule_recheck("draft-7", None, "tacos austin")

    assert task is not None
    assert (task.target_date - clock.now).days == 3
    assert await jobs_app.schedule_recheck("draft-8", None, "") is None


def test_injected_empty_stores_are_kept(test_config: BeaconJobsConfig) -> None:
    run_store = InMemoryRunStore()
    keyed_store = InMemoryKeyedStore()

    jobs_app = BeaconJobs(test_config, run_store=run_store, keyed_store=keyed_store, environ={})

    assert jobs_app.run_store is run_store
    assert jobs_app.keyed_store is keyed_store
