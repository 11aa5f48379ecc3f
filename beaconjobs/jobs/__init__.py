"""Job registry, dispatch, health and the recheck consumer."""

from beaconjobs.jobs.auth import BearerSecretGuard
from beaconjobs.jobs.dispatcher import (
    DispatchOutcome,
    DispatchResult,
    DualPathDispatcher,
    DurableDispatchStrategy,
    EventBus,
    ExecutionStrategy,
    InlineStrategy,
)
from beaconjobs.jobs.health import HealthAggregator, HealthStatus, HealthSummary, JobHealth, classify
from beaconjobs.jobs.killswitch import EnvKillSwitch
from beaconjobs.jobs.recheck import RecheckSweep, recheck_job, recheck_task_store, schedule_post_publish_recheck
from beaconjobs.jobs.registry import DEFAULT_JOB_REGISTRY, Job, JobRegistryEntry, registry_index

__all__ = [
    "BearerSecretGuard",
    "DEFAULT_JOB_REGISTRY",
    "DispatchOutcome",
    "DispatchResult",
    "DualPathDispatcher",
    "DurableDispatchStrategy",
    "EnvKillSwitch",
    "EventBus",
    "ExecutionStrategy",
    "HealthAggregator",
    "HealthStatus",
    "HealthSummary",
    "InlineStrategy",
    "Job",
    "JobHealth",
    "JobRegistryEntry",
    "RecheckSweep",
    "classify",
    "recheck_job",
    "recheck_task_store",
    "registry_index",
    "schedule_post_publish_recheck",
]
