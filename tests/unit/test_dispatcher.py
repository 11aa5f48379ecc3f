"""Unit tests for DualPathDispatcher and its strategies."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from beaconjobs.errors import DispatchError, ExecutionError
from beaconjobs.jobs import (
    DEFAULT_JOB_REGISTRY,
    DispatchOutcome,
    DualPathDispatcher,
    DurableDispatchStrategy,
    EnvKillSwitch,
    InlineStrategy,
    Job,
    registry_index,
)
from beaconjobs.runs import InMemoryRunStore, RunLogger, RunStatus

SECRET = "s3cret"
AUTH = f"Bearer {SECRET}"
ENTRIES = registry_index(DEFAULT_JOB_REGISTRY)


def _job(body: AsyncMock | None = None, payload: dict | None = None) -> Job:
    body = body or AsyncMock(return_value={"orgs_processed": 3})
    return Job(entry=ENTRIES["sov"], body=body, payload=payload or {})


def _dispatcher(
    run_store: InMemoryRunStore,
    bus: AsyncMock | None,
    *,
    environ: dict[str, str] | None = None,
    secret: str | None = SECRET,
) -> DualPathDispatcher:
    return DualPathDispatcher.build(
        RunLogger(run_store),
        bus,
        secret=secret,
        kill_switch=EnvKillSwitch(environ or {}),
    )


@pytest.mark.asyncio
async def test_dispatched_path_completes_run_without_running_body(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock
) -> None:
    job = _job(payload={"source": "cron"})
    result = await _dispatcher(run_store, mock_event_bus).dispatch(job, AUTH, {"force": True})

    assert result.outcome is DispatchOutcome.DISPATCHED
    assert result.status_code == 200
    assert result.body == {"ok": True, "dispatched": True}
    mock_event_bus.send.assert_awaited_once_with("cron/sov.weekly", {"source": "cron", "force": True})
    job.body.assert_not_awaited()
    record = run_store.get(result.log_id)
    assert record.status is RunStatus.SUCCESS
    assert record.summary == {"dispatched": True}


@pytest.mark.asyncio
async def test_bus_failure_falls_back_to_inline(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock
) -> None:
    mock_event_bus.send.side_effect = DispatchError("cron/sov.weekly", "connection refused")
    job = _job()

    result = await _dispatcher(run_store, mock_event_bus).dispatch(job, AUTH)

    assert result.outcome is DispatchOutcome.INLINE
    assert result.status_code == 200
    assert result.body == {"orgs_processed": 3, "ok": True}
    job.body.assert_awaited_once()
    record = run_store.get(result.log_id)
    assert record.status is RunStatus.SUCCESS
    assert record.summary == {"orgs_processed": 3}
    assert len(run_store) == 1


@pytest.mark.asyncio
async def test_missing_bus_goes_straight_to_inline(run_store: InMemoryRunStore) -> None:
    result = await _dispatcher(run_store, None).dispatch(_job(), AUTH)
    assert result.outcome is DispatchOutcome.INLINE


@pytest.mark.asyncio
async def test_inline_failure_returns_500_and_logs_failed(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock
) -> None:
    mock_event_bus.send.side_effect = RuntimeError("bus down")
    job = _job(AsyncMock(side_effect=RuntimeError("provider quota exceeded")))

    result = await _dispatcher(run_store, mock_event_bus).dispatch(job, AUTH)

    assert result.outcome is DispatchOutcome.FAILED
    assert result.status_code == 500
    assert result.body == {"error": "provider quota exceeded"}
    record = run_store.get(result.log_id)
    assert record.status is RunStatus.FAILED
    assert record.error_message == "provider quota exceeded"


@pytest.mark.asyncio
@pytest.mark.parametrize("header", [None, "Bearer wrong", "s3cret"])
async def test_unauthorized_writes_no_run_record(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock, header: str | None
) -> None:
    job = _job()
    result = await _dispatcher(run_store, mock_event_bus).dispatch(job, header)

    assert result.outcome is DispatchOutcome.UNAUTHORIZED
    assert result.status_code == 401
    assert result.body == {"error": "Unauthorized"}
    assert len(run_store) == 0
    mock_event_bus.send.assert_not_awaited()
    job.body.assert_not_awaited()


@pytest.mark.asyncio
async def test_unconfigured_secret_fails_closed(run_store: InMemoryRunStore, mock_event_bus: AsyncMock) -> None:
    result = await _dispatcher(run_store, mock_event_bus, secret=None).dispatch(_job(), "Bearer ")
    assert result.status_code == 401


@pytest.mark.asyncio
async def test_kill_switch_skips_without_side_effects(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock
) -> None:
    job = _job()
    dispatcher = _dispatcher(run_store, mock_event_bus, environ={"STOP_SOV_CRON": "true"})

    result = await dispatcher.dispatch(job, AUTH)

    assert result.outcome is DispatchOutcome.SKIPPED
    assert result.status_code == 200
    assert result.body["ok"] is True
    assert result.body["skipped"] is True
    assert "STOP_SOV_CRON" in result.body["reason"]
    assert len(run_store) == 0
    mock_event_bus.send.assert_not_awaited()
    job.body.assert_not_awaited()


@pytest.mark.asyncio
async def test_auth_is_checked_before_kill_switch(run_store: InMemoryRunStore, mock_event_bus: AsyncMock) -> None:
    dispatcher = _dispatcher(run_store, mock_event_bus, environ={"STOP_SOV_CRON": "true"})
    result = await dispatcher.dispatch(_job(), None)
    assert result.outcome is DispatchOutcome.UNAUTHORIZED


@pytest.mark.asyncio
async def test_run_log_outage_does_not_block_job(mock_event_bus: AsyncMock) -> None:
    store = AsyncMock()
    store.insert_running.side_effect = RuntimeError("database down")
    mock_event_bus.send.side_effect = DispatchError("cron/sov.weekly", "down")
    dispatcher = DualPathDispatcher.build(
        RunLogger(store), mock_event_bus, secret=SECRET, kill_switch=EnvKillSwitch({})
    )

    result = await dispatcher.dispatch(_job(), AUTH)

    assert result.status_code == 200
    assert result.log_id is None
    store.mark_terminal.assert_not_awaited()


@pytest.mark.asyncio
async def test_durable_strategy_wraps_bus_errors(mock_event_bus: AsyncMock) -> None:
    mock_event_bus.send.side_effect = TimeoutError("slow")
    with pytest.raises(DispatchError, match="cron/sov.weekly"):
        await DurableDispatchStrategy(mock_event_bus).run(_job(), {})


@pytest.mark.asyncio
async def test_durable_strategy_without_bus_raises() -> None:
    with pytest.raises(DispatchError, match="not configured"):
        await DurableDispatchStrategy(None).run(_job(), {})


@pytest.mark.asyncio
async def test_inline_strategy_wraps_body_errors() -> None:
    job = _job(AsyncMock(side_effect=KeyError("org")))
    with pytest.raises(ExecutionError) as exc_info:
        await InlineStrategy().run(job, {})
    assert exc_info.value.job_name == "sov"


@pytest.mark.asyncio
async def test_inline_summary_dispatched_key_is_dropped(run_store: InMemoryRunStore) -> None:
    job = _job(AsyncMock(return_value={"dispatched": True, "rows": 1}))
    result = await _dispatcher(run_store, None).dispatch(job, AUTH)
    assert result.body == {"rows": 1, "ok": True}


@pytest.mark.asyncio
async def test_both_paths_see_the_same_merged_payload(
    run_store: InMemoryRunStore, mock_event_bus: AsyncMock
) -> None:
    job = _job(payload={"source": "cron", "org_id": "default"})
    dispatcher = _dispatcher(run_store, mock_event_bus)

    await dispatcher.dispatch(job, AUTH, {"org_id": "o1"})
    mock_event_bus.send.side_effect = DispatchError("cron/sov.weekly", "connection refused")
    await dispatcher.dispatch(job, AUTH, {"org_id": "o1"})

    expected = {"source": "cron", "org_id": "o1"}
    mock_event_bus.send.assert_any_await("cron/sov.weekly", expected)
    job.body.assert_awaited_once_with(expected)
    assert job.payload == {"source": "cron", "org_id": "default"}
