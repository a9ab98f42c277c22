"""add field service business tables and number sequences

Revision ID: 7c4e2d91b5a3
Revises: 3b1f0c2a9d10
Create Date: 2025-11-04 09:31:02.547719

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7c4e2d91b5a3"
down_revision: Union[str, Sequence[str], None] = "3b1f0c2a9d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
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
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("display_name", sa.Text, nullable=False),
        sa.Column(
            "labor_rate",
            sa.Numeric(12, 2),
            nullable=True,
            comment="Hourly cost override",
        ),
    )

    op.create_table(
        "cost_types",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
    )

    op.create_table(
        "cost_codes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("code", sa.Text, nullable=False),
        sa.Column(
            "cost_type_id", sa.Uuid(), sa.ForeignKey("cost_types.id"), nullable=False
        ),
    )
    op.create_index("ix_cost_codes_cost_type_id", "cost_codes", ["cost_type_id"])

    op.create_table(
        "settings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("default_labor_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "labor_cost_type_id",
            sa.Uuid(),
            sa.ForeignKey("cost_types.id"),
            nullable=True,
        ),
        sa.Column(
            "labor_cost_code_id",
            sa.Uuid(),
            sa.ForeignKey("cost_codes.id"),
            nullable=True,
        ),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("customer_no", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("contact_name", sa.Text, nullable=True),
        sa.Column("email", sa.Text, nullable=True),
        sa.Column("phone", sa.Text, nullable=True),
        sa.Column("billing_street", sa.Text, nullable=True),
        sa.Column("billing_city", sa.Text, nullable=True),
        sa.Column("billing_state", sa.Text, nullable=True),
        sa.Column("billing_zip", sa.Text, nullable=True),
        sa.Column("service_street", sa.Text, nullable=True),
        sa.Column("service_city", sa.Text, nullable=True),
        sa.Column("service_state", sa.Text, nullable=True),
        sa.Column("service_zip", sa.Text, nullable=True),
        sa.Column("qbo_customer_ref", sa.Text, nullable=True),
        sa.Column("qbo_last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_customers_qbo_customer_ref", "customers", ["qbo_customer_ref"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_no", sa.Text, nullable=False, unique=True),
        sa.Column(
            "customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("job_street", sa.Text, nullable=True),
        sa.Column("job_city", sa.Text, nullable=True),
        sa.Column("job_state", sa.Text, nullable=True),
        sa.Column("job_zip", sa.Text, nullable=True),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("qbo_job_ref", sa.Text, nullable=True),
        sa.Column("qbo_last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_projects_customer_id", "projects", ["customer_id"])
    op.create_index("ix_projects_qbo_job_ref", "projects", ["qbo_job_ref"])

    op.create_table(
        "work_orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
    )

    op.create_table(
        "work_order_time_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "work_order_id", sa.Uuid(), sa.ForeignKey("work_orders.id"), nullable=False
        ),
        sa.Column(
            "tech_user_id", sa.Uuid(), sa.ForeignKey("employees.id"), nullable=False
        ),
        sa.Column("clock_in_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("clock_out_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("break_minutes", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_work_order_time_entries_work_order_id",
        "work_order_time_entries",
        ["work_order_id"],
    )

    op.create_table(
        "job_cost_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column(
            "work_order_id", sa.Uuid(), sa.ForeignKey("work_orders.id"), nullable=True
        ),
        sa.Column(
            "cost_type_id", sa.Uuid(), sa.ForeignKey("cost_types.id"), nullable=False
        ),
        sa.Column(
            "cost_code_id", sa.Uuid(), sa.ForeignKey("cost_codes.id"), nullable=False
        ),
        sa.Column("txn_date", sa.Date, nullable=False),
        sa.Column("qty", sa.Numeric(12, 4), nullable=False),
        sa.Column("unit_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "source_type",
            sa.String(32),
            nullable=False,
            comment="Origin of the cost (TIME_ENTRY, ...)",
        ),
        sa.Column("source_id", sa.Uuid(), nullable=True),
        sa.Column(
            "idempotency_key",
            sa.Text,
            nullable=True,
            comment="Posting key; a repeated post is a no-op",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "idempotency_key", name="uq_job_cost_entries_idempotency_key"
        ),
    )
    op.create_index(
        "ix_job_cost_entries_work_order_id", "job_cost_entries", ["work_order_id"]
    )

    op.create_table(
        "number_sequences",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kind", sa.Text, nullable=False, comment="customer, project, ..."),
        sa.Column("prefix", sa.Text, nullable=False),
        sa.Column("next_value", sa.Integer, nullable=False, server_default="1"),
        sa.UniqueConstraint("kind", name="uq_number_sequences_kind"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("number_sequences")
    op.drop_table("job_cost_entries")
    op.drop_table("work_order_time_entries")
    op.drop_table("work_orders")
    op.drop_table("projects")
    op.drop_table("customers")
    op.drop_table("settings")
    op.drop_table("cost_codes")
    op.drop_table("cost_types")
    op.drop_table("employees")
