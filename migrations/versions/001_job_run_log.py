"""Add job_run_log table for job execution records.

Revision ID: 001_job_run_log
Revises:
Create Date: 2026-10-02

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001_job_run_log"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "job_run_log",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("job_name", sa.String(128), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="running"),
        sa.Column("summary", JSONB, nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'failed', 'timeout')",
            name="ck_job_run_log_status",
        ),
        comment="One row per job invocation; mutated once on completion",
    )
    op.create_index("idx_job_run_log_job_started", "job_run_log", ["job_name", "started_at"])
    op.create_index("ix_job_run_log_started_at", "job_run_log", ["started_at"])


def downgrade() -> None:
    op.drop_index("ix_job_run_log_started_at", table_name="job_run_log")
    op.drop_index("idx_job_run_log_job_started", table_name="job_run_log")
    op.drop_table("job_run_log")
