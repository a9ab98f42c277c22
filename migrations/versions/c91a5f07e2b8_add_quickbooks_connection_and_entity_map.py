"""add quickbooks connection and entity map tables

Revision ID: c91a5f07e2b8
Revises: 7c4e2d91b5a3
Create Date: 2025-11-06 14:05:37.902114

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "c91a5f07e2b8"
down_revision: Union[str, Sequence[str], None] = "7c4e2d91b5a3"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "qbo_connections",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "realm_id",
            sa.Text,
            nullable=False,
            unique=True,
            comment="QuickBooks company id",
        ),
        sa.Column("access_token", sa.Text, nullable=False),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
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
    )

    op.create_table(
        "qbo_entity_map",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "entity_type",
            sa.Text,
            nullable=False,
            comment="QuickBooks entity name (Customer, Job)",
        ),
        sa.Column("local_table", sa.Text, nullable=False),
        sa.Column("local_id", sa.Uuid(), nullable=False),
        sa.Column("remote_id", sa.Text, nullable=False),
        sa.Column("remote_sync_token", sa.Text, nullable=True),
        sa.Column("last_synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "entity_type", "remote_id", name="uq_qbo_entity_map_type_remote"
        ),
        sa.UniqueConstraint(
            "entity_type", "local_id", name="uq_qbo_entity_map_type_local"
        ),
    )
    op.create_index(
        "ix_qbo_entity_map_local", "qbo_entity_map", ["local_table", "local_id"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_qbo_entity_map_local", table_name="qbo_entity_map")
    op.drop_table("qbo_entity_map")
    op.drop_table("qbo_connections")
