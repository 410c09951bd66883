"""Create transcription table

Revision ID: 002
Revises: 001
Create Date: 2026-10-12

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "transcription",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=30), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("original_filename", sa.String(length=512), nullable=False),
        sa.Column("stored_filename", sa.String(length=512), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False, server_default="0"),
        sa.Column("transcription", sa.Text(), nullable=False, server_default=""),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("language", sa.String(length=16), nullable=False, server_default="en"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="processing"),
        sa.Column("source", sa.String(length=16), nullable=False, server_default="upload"),
        sa.Column("provider_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stored_filename"),
    )
    op.create_index(op.f("ix_transcription_user_id"), "transcription", ["user_id"])
    op.create_index("ix_transcription_user_created", "transcription", ["user_id", "created_at"])
    op.create_index("ix_transcription_user_status", "transcription", ["user_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_transcription_user_status", table_name="transcription")
    op.drop_index("ix_transcription_user_created", table_name="transcription")
    op.drop_index(op.f("ix_transcription_user_id"), table_name="transcription")
    op.drop_table("transcription")
