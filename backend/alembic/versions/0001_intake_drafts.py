"""Create intake_drafts.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

One row per intake record id: the record in its JSON draft form, the
derived project projection, and the stage the user was on.
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

import sqlalchemy as sa
from alembic import op


def upgrade() -> None:
    op.create_table(
        "intake_drafts",
        sa.Column("record_id", sa.String(64), primary_key=True),
        sa.Column("record", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("derived_projection", sa.JSON(), nullable=True),
        sa.Column("stage", sa.String(50), nullable=False, server_default="intake"),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("valid_steps", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_intake_drafts_completed", "intake_drafts", ["completed"])


def downgrade() -> None:
    op.drop_index("ix_intake_drafts_completed", table_name="intake_drafts")
    op.drop_table("intake_drafts")
