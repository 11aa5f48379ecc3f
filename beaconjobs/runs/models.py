"""Run record model: one execution attempt of one job."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from beaconjobs.db import Base


class RunStatus(str, Enum):
    """Lifecycle status of a run record.

    ``TIMEOUT`` is part of the persisted vocabulary but nothing in this
    package writes it; a run killed by its host stays ``RUNNING``.
    """

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING

    @property
    def is_failure(self) -> bool:
        return self in (RunStatus.FAILED, RunStatus.TIMEOUT)


@dataclass
class RunRecord:
    """Read model for a run record, independent of the storage backend."""

    id: str
    job_name: str
    started_at: datetime
    status: RunStatus
    completed_at: datetime | None = None
    duration_ms: int | None = None
    summary: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_name": self.job_name,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "summary": dict(self.summary),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class JobRunLogORM(Base):
    """Persisted run record (append-mostly job execution log)."""

    __tablename__ = "job_run_log"
    __table_args__ = (
        Index("idx_job_run_log_job_started", "job_name", "started_at"),
        {"comment": "One row per job invocation; mutated once on completion"},
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        default=uuid.uuid4,
        primary_key=True,
    )
    job_name: Mapped[str] = mapped_column(String(128), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=RunStatus.RUNNING.value)
    summary: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def to_record(self) -> RunRecord:
        return RunRecord(
            id=str(self.id),
            job_name=self.job_name,
            started_at=self.started_at,
            status=RunStatus(self.status),
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            summary=dict(self.summary or {}),
            error_message=self.error_message,
            created_at=self.created_at,
        )
