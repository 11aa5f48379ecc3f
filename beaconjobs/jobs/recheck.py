"""Post-publish visibility rechecks.

Publishing a content draft schedules a recheck 14 days out. The daily
``post-publish-recheck`` job sweeps due rechecks and completes each one,
whether or not the recheck itself succeeded, so a permanently failing
task cannot be retried forever.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from beaconjobs.jobs.registry import Job, JobRegistryEntry
from beaconjobs.scheduling.delayed import DelayedTask, DelayedTaskStore
from beaconjobs.scheduling.stores import KeyedStore

logger = logging.getLogger(__name__)

RECHECK_DELAY_DAYS = 14
RECHECK_TTL = 15 * 86400
RECHECK_KEY_PREFIX = "recheck:"
RECHECK_SET_KEY = "recheck:pending"
RECHECK_TASK_TYPE = "sov_recheck"

RecheckFn = Callable[[DelayedTask], Awaitable[Any]]


def recheck_task_store(
    store: KeyedStore,
    *,
    key_prefix: str = RECHECK_KEY_PREFIX,
    set_key: str = RECHECK_SET_KEY,
    ttl_buffer: timedelta = timedelta(seconds=RECHECK_TTL) - timedelta(days=RECHECK_DELAY_DAYS),
    clock: Callable[[], datetime] | None = None,
) -> DelayedTaskStore:
    """DelayedTaskStore namespaced for post-publish rechecks."""
    kwargs: dict[str, Any] = {} if clock is None else {"clock": clock}
    return DelayedTaskStore(
        store,
        key_prefix=key_prefix,
        set_key=set_key,
        task_type=RECHECK_TASK_TYPE,
        ttl_buffer=ttl_buffer,
        **kwargs,
    )


async def schedule_post_publish_recheck(
    tasks: DelayedTaskStore,
    draft_id: str,
    location_id: str | None,
    target_query: str | None,
    *,
    delay_days: int = RECHECK_DELAY_DAYS,
) -> DelayedTask | None:
    """Schedule a recheck for a published draft; best-effort, never raises on store errors."""
    if not target_query or not target_query.strip():
        logger.debug("recheck_not_scheduled draft_id=%s reason=no_target_query", draft_id)
        return None
    return await tasks.schedule(
        draft_id,
        delay_days,
        {"draftId": draft_id, "locationId": location_id, "targetQuery": target_query},
    )


class RecheckSweep:
    """Body of the post-publish-recheck job."""

    def __init__(self, tasks: DelayedTaskStore, recheck: RecheckFn) -> None:
        self._tasks = tasks
        self._recheck = recheck

    async def __call__(self, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        due = await self._tasks.list_due()
        completed = 0
        failed = 0
        for task in due:
            try:
                await self._recheck(task)
                completed += 1
            except Exception as exc:
                failed += 1
                logger.exception("recheck_failed task_key=%s error=%s", task.task_key, exc)
            finally:
                await self._tasks.complete(task.task_key)
        return {
            "rechecks_due": len(due),
            "rechecks_completed": completed,
            "rechecks_failed": failed,
        }


def recheck_job(entry: JobRegistryEntry, tasks: DelayedTaskStore, recheck: RecheckFn) -> Job:
    return Job(entry=entry, body=RecheckSweep(tasks, recheck))
