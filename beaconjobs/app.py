"""beaconjobs application: wires stores, logger, dispatcher and jobs together."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from fastapi import FastAPI

from beaconjobs.config import BeaconJobsConfig, load_config
from beaconjobs.db import DATABASE_URL_ENV, create_session_factory, get_engine
from beaconjobs.http import create_jobs_app
from beaconjobs.integrations.hatchet import HatchetEventBus, connect_event_bus
from beaconjobs.jobs import (
    DEFAULT_JOB_REGISTRY,
    DispatchResult,
    DualPathDispatcher,
    EnvKillSwitch,
    EventBus,
    HealthAggregator,
    HealthSummary,
    Job,
    JobRegistryEntry,
    RecheckSweep,
    recheck_task_store,
    registry_index,
    schedule_post_publish_recheck,
)
from beaconjobs.jobs.recheck import RecheckFn
from beaconjobs.jobs.registry import JobBody
from beaconjobs.runs import InMemoryRunStore, RunLogger, RunStore, SqlRunStore
from beaconjobs.scheduling import DelayedTask, DelayedTaskStore, KeyedStore, RedisKeyedStore

logger = logging.getLogger(__name__)

RECHECK_JOB_NAME = "post-publish-recheck"


class BeaconJobs:
    """Entry point for services that run scheduled jobs.

    Usage::

        jobs = BeaconJobs()

        @jobs.job("sov")
        async def run_sov(payload: dict) -> dict:
            ...
            return {"orgs_processed": 12}

        app = jobs.http_app()
    """

    def __init__(
        self,
        config: BeaconJobsConfig | None = None,
        *,
        registry: Sequence[JobRegistryEntry] = DEFAULT_JOB_REGISTRY,
        run_store: RunStore | None = None,
        keyed_store: KeyedStore | None = None,
        event_bus: EventBus | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or load_config()
        self._registry = registry_index(registry)
        self._jobs: dict[str, Job] = {}
        self._event_bus = event_bus
        clock_kwargs: dict[str, Any] = {} if clock is None else {"clock": clock}

        self.run_store = run_store if run_store is not None else self._default_run_store()
        self.keyed_store = (
            keyed_store if keyed_store is not None else RedisKeyedStore.from_url(self.config.redis.url)
        )
        self.run_logger = RunLogger(self.run_store, **clock_kwargs)
        self.kill_switch = EnvKillSwitch(
            environ,
            prefix=self.config.cron.kill_switch_prefix,
            suffix=self.config.cron.kill_switch_suffix,
        )
        self.dispatcher = DualPathDispatcher.build(
            self.run_logger,
            event_bus,
            secret=self.config.cron.secret,
            kill_switch=self.kill_switch,
        )
        self.aggregator = HealthAggregator(
            list(self._registry.values()),
            window_size=self.config.health.window_size,
            recent_runs_limit=self.config.health.recent_runs_limit,
            failure_window=timedelta(days=self.config.health.failure_window_days),
            **clock_kwargs,
        )
        self.recheck_tasks: DelayedTaskStore = recheck_task_store(
            self.keyed_store,
            key_prefix=self.config.recheck.key_prefix,
            set_key=self.config.recheck.set_key,
            ttl_buffer=timedelta(days=self.config.recheck.ttl_buffer_days),
            clock=clock,
        )

    def _default_run_store(self) -> RunStore:
        url = self.config.database.url or os.environ.get(DATABASE_URL_ENV, "").strip()
        if not url:
            logger.warning("No run-log database configured; run records are kept in memory")
            return InMemoryRunStore()
        return SqlRunStore(create_session_factory(get_engine(url)))

    @property
    def registry(self) -> list[JobRegistryEntry]:
        return list(self._registry.values())

    @property
    def jobs(self) -> dict[str, Job]:
        return dict(self._jobs)

    def add_job(self, name: str, body: JobBody, payload: dict[str, Any] | None = None) -> Job:
        entry = self._registry.get(name)
        if entry is None:
            raise ValueError(f"job '{name}' is not in the registry")
        if name in self._jobs:
            raise ValueError(f"job '{name}' already has a body")
        job = Job(entry=entry, body=body, payload=dict(payload or {}))
        self._jobs[name] = job
        return job

    def job(self, name: str, payload: dict[str, Any] | None = None) -> Callable[[JobBody], JobBody]:
        """Decorator binding a coroutine function as the body of a registered job."""

        def decorator(func: JobBody) -> JobBody:
            self.add_job(name, func, payload)
            return func

        return decorator

    def enable_recheck_sweep(self, recheck: RecheckFn) -> Job:
        """Register the post-publish recheck sweep with the given per-task recheck."""
        return self.add_job(RECHECK_JOB_NAME, RecheckSweep(self.recheck_tasks, recheck))

    async def schedule_recheck(
        self,
        draft_id: str,
        location_id: str | None,
        target_query: str | None,
    ) -> DelayedTask | None:
        """Schedule the post-publish recheck for a draft using the configured delay."""
        return await schedule_post_publish_recheck(
            self.recheck_tasks,
            draft_id,
            location_id,
            target_query,
            delay_days=self.config.recheck.delay_days,
        )

    async def trigger(
        self,
        name: str,
        authorization: str | None,
        payload: dict[str, Any] | None = None,
    ) -> DispatchResult:
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(name)
        return await self.dispatcher.dispatch(job, authorization, payload)

    async def health(self) -> HealthSummary:
        return await self.aggregator.collect(self.run_store)

    def http_app(self) -> FastAPI:
        return create_jobs_app(
            dispatcher=self.dispatcher,
            jobs=self._jobs,
            aggregator=self.aggregator,
            run_store=self.run_store,
        )

    @classmethod
    def with_hatchet(cls, config: BeaconJobsConfig | None = None, **kwargs: Any) -> BeaconJobs:
        """Build an app whose primary path is Hatchet, if Hatchet is reachable."""
        config = config or load_config()
        return cls(config, event_bus=connect_event_bus(config.hatchet), **kwargs)

    def run_worker(self) -> None:
        """Register every job with Hatchet and start the worker (blocking)."""
        if not isinstance(self._event_bus, HatchetEventBus):
            raise RuntimeError("run_worker() requires a Hatchet event bus; use BeaconJobs.with_hatchet()")
        for job in self._jobs.values():
            self._event_bus.register_job(job)
        self._event_bus.client.start_worker()
