"""beaconjobs: resilient background job dispatch, run logging, health and delayed tasks."""

from beaconjobs.jobs import (
    DEFAULT_JOB_REGISTRY,
    DispatchResult,
    DualPathDispatcher,
    HealthAggregator,
    Job,
    JobRegistryEntry,
)
from beaconjobs.runs import RunHandle, RunLogger, RunRecord, RunStatus
from beaconjobs.scheduling import DelayedTask, DelayedTaskStore

__version__ = "0.3.0"

__all__ = [
    "DEFAULT_JOB_REGISTRY",
    "DelayedTask",
    "DelayedTaskStore",
    "DispatchResult",
    "DualPathDispatcher",
    "HealthAggregator",
    "Job",
    "JobRegistryEntry",
    "RunHandle",
    "RunLogger",
    "RunRecord",
    "RunStatus",
]
