"""Run records and the fail-open run logger."""

from beaconjobs.runs.logger import RunHandle, RunLogger
from beaconjobs.runs.models import JobRunLogORM, RunRecord, RunStatus
from beaconjobs.runs.store import InMemoryRunStore, RunStore, SqlRunStore

__all__ = [
    "InMemoryRunStore",
    "JobRunLogORM",
    "RunHandle",
    "RunLogger",
    "RunRecord",
    "RunStatus",
    "RunStore",
    "SqlRunStore",
]
