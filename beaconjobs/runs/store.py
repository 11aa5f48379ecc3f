"""Run-record stores: PostgreSQL via SQLAlchemy, and an in-memory twin.

Both stores key every write by run id, so concurrent invocations of the
same job never contend for a row.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beaconjobs.errors import LoggingError
from beaconjobs.runs.models import JobRunLogORM, RunRecord, RunStatus

logger = logging.getLogger(__name__)


class RunStore(Protocol):
    """Persistence contract used by RunLogger and HealthAggregator."""

    async def insert_running(self, job_name: str, started_at: datetime) -> str: ...

    async def mark_terminal(
        self,
        log_id: str,
        *,
        status: RunStatus,
        completed_at: datetime,
        duration_ms: int,
        summary: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool: ...

    async def list_recent(self, limit: int) -> list[RunRecord]: ...


def _check_terminal(status: RunStatus) -> None:
    if not status.is_terminal:
        raise ValueError("status must be terminal")


class SqlRunStore:
    """Run records in the ``job_run_log`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_running(self, job_name: str, started_at: datetime) -> str:
        row = JobRunLogORM(
            job_name=job_name,
            started_at=started_at,
            status=RunStatus.RUNNING.value,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                return str(row.id)
        except SQLAlchemyError as exc:
            raise LoggingError(f"insert into job_run_log failed: {exc}") from exc

    async def mark_terminal(
        self,
        log_id: str,
        *,
        status: RunStatus,
        completed_at: datetime,
        duration_ms: int,
        summary: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Move a running row to a terminal status. Returns False if it was not running."""
        _check_terminal(status)
        stmt = (
            update(JobRunLogORM)
            .where(JobRunLogORM.id == uuid.UUID(log_id))
            .where(JobRunLogORM.status == RunStatus.RUNNING.value)
            .values(
                status=status.value,
                completed_at=completed_at,
                duration_ms=duration_ms,
                summary=summary,
                error_message=error_message,
            )
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as exc:
            raise LoggingError(f"update of job_run_log {log_id} failed: {exc}") from exc

    async def list_recent(self, limit: int) -> list[RunRecord]:
        """Most recent runs first."""
        stmt = select(JobRunLogORM).order_by(JobRunLogORM.started_at.desc()).limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [row.to_record() for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise LoggingError(f"read of job_run_log failed: {exc}") from exc


class InMemoryRunStore:
    """List-backed run store for lite mode and tests. Records are lost on exit."""

    def __init__(self, *, max_records: int = 10_000) -> None:
        self._records: dict[str, RunRecord] = {}
        self._max_records = max_records

    async def insert_running(self, job_name: str, started_at: datetime) -> str:
        log_id = str(uuid.uuid4())
        self._records[log_id] = RunRecord(
            id=log_id,
            job_name=job_name,
            started_at=started_at,
            status=RunStatus.RUNNING,
            created_at=datetime.now(timezone.utc),
        )
        if len(self._records) > self._max_records:
            oldest = min(self._records.values(), key=lambda r: r.started_at)
            del self._records[oldest.id]
            logger.debug("InMemoryRunStore evicted run %s", oldest.id)
        return log_id

    async def mark_terminal(
        self,
        log_id: str,
        *,
        status: RunStatus,
        completed_at: datetime,
        duration_ms: int,
        summary: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> bool:
        _check_terminal(status)
        record = self._records.get(log_id)
        if record is None or record.status is not RunStatus.RUNNING:
            return False
        record.status = status
        record.completed_at = completed_at
        record.duration_ms = duration_ms
        record.summary = dict(summary or {})
        record.error_message = error_message
        return True

    async def list_recent(self, limit: int) -> list[RunRecord]:
        ordered = sorted(self._records.values(), key=lambda r: r.started_at, reverse=True)
        return [replace(record, summary=dict(record.summary)) for record in ordered[:limit]]

    def get(self, log_id: str) -> RunRecord | None:
        return self._records.get(log_id)

    def __len__(self) -> int:
        return len(self._records)
