"""add job_queue and webhook_events tables

Revision ID: 3b1f0c2a9d10
Revises:
Create Date: 2025-11-04 09:12:40.118302

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b1f0c2a9d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "job_queue",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "job_type", sa.Text, nullable=False, comment="Tag selecting the job handler"
        ),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            comment="Handler-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="PENDING",
            comment="Job status: PENDING|COMPLETED|FAILED",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of failed attempts",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempt budget",
        ),
        sa.Column(
            "run_after",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Job is not eligible before this time",
        ),
        # Worker coordination fields
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When job was claimed",
        ),
        sa.Column(
            "locked_by", sa.Text, nullable=True, comment="Worker ID that claimed the job"
        ),
        # Results and errors
        sa.Column("result", sa.JSON, nullable=True, comment="Handler result data"),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        sa.Column(
            "dedupe_key",
            sa.Text,
            nullable=True,
            comment="Deduplication key for pending jobs",
        ),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # Constraints
        sa.CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED')",
            name="job_queue_status_check",
        ),
        sa.CheckConstraint("max_attempts >= 1", name="job_queue_max_attempts_check"),
    )

    # Poll query: PENDING, unlocked, due
    op.create_index(
        "ix_job_queue_eligible", "job_queue", ["status", "locked_at", "run_after"]
    )
    op.create_index("ix_job_queue_type_status", "job_queue", ["job_type", "status"])
    op.create_index("ix_job_queue_created_at", "job_queue", ["created_at"])

    # At most one pending job per dedupe key; finished jobs free the key
    op.create_index(
        "ix_job_queue_dedupe_key_pending",
        "job_queue",
        ["dedupe_key"],
        unique=True,
        postgresql_where=sa.text("dedupe_key IS NOT NULL AND status = 'PENDING'"),
        sqlite_where=sa.text("dedupe_key IS NOT NULL AND status = 'PENDING'"),
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("source", sa.Text, nullable=False, comment="Lower-cased provider tag"),
        sa.Column("event_type", sa.Text, nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="PENDING"),
        sa.Column("idempotency_key", sa.Text, nullable=False),
        sa.Column(
            "realm_id",
            sa.Text,
            nullable=True,
            comment="Accounting company the event belongs to",
        ),
        sa.Column("processed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("idempotency_key", name="uq_webhook_events_idempotency_key"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'PROCESSED', 'FAILED')",
            name="webhook_events_status_check",
        ),
    )
    op.create_index(
        "ix_webhook_events_source_status", "webhook_events", ["source", "status"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("webhook_events")
    op.drop_table("job_queue")
