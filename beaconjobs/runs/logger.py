"""Fail-open run logging: one run record per job invocation.

Every store interaction is wrapped. A run-log outage is reported through
the module logger and never changes the caller's control flow.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from beaconjobs.runs.models import RunStatus
from beaconjobs.runs.store import RunStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RunHandle:
    """Opaque handle returned by :meth:`RunLogger.start`.

    ``log_id`` is None when the start write failed; completion calls on such a
    handle are no-ops.
    """

    log_id: str | None
    started_at: datetime


class RunLogger:
    """Writes and finalizes run records without ever raising."""

    def __init__(self, store: RunStore, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = store
        self._clock = clock

    async def start(self, job_name: str) -> RunHandle:
        started_at = self._clock()
        try:
            log_id = await self._store.insert_running(job_name, started_at)
        except Exception as exc:
            logger.exception("run_log_start_failed job_name=%s error=%s", job_name, exc)
            return RunHandle(log_id=None, started_at=started_at)
        logger.debug("run_log_start job_name=%s log_id=%s", job_name, log_id)
        return RunHandle(log_id=log_id, started_at=started_at)

    async def complete(self, handle: RunHandle, summary: dict[str, Any] | None = None) -> None:
        await self._finish(handle, RunStatus.SUCCESS, summary=summary or {})

    async def failed(self, handle: RunHandle, error_message: str) -> None:
        await self._finish(handle, RunStatus.FAILED, error_message=error_message)

    async def _finish(
        self,
        handle: RunHandle,
        status: RunStatus,
        *,
        summary: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> None:
        if handle.log_id is None:
            return
        completed_at = self._clock()
        duration_ms = max(0, int((completed_at - handle.started_at).total_seconds() * 1000))
        try:
            updated = await self._store.mark_terminal(
                handle.log_id,
                status=status,
                completed_at=completed_at,
                duration_ms=duration_ms,
                summary=summary,
                error_message=error_message,
            )
        except Exception as exc:
            logger.exception(
                "run_log_finish_failed log_id=%s status=%s error=%s",
                handle.log_id,
                status.value,
                exc,
            )
            return
        if not updated:
            logger.warning(
                "run_log_already_terminal log_id=%s status=%s", handle.log_id, status.value
            )
