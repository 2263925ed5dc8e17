"""Study profile document and audit event tables."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_study_profile_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "study_profile_documents",
        sa.Column("user_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("document", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )

    op.create_table(
        "profile_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index(
        "ix_profile_audit_events_user_created",
        "profile_audit_events",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_profile_audit_events_user_created", table_name="profile_audit_events")
    op.drop_table("profile_audit_events")
    op.drop_table("study_profile_documents")
