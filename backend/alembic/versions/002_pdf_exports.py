"""PDF exports — rendered worksheets kept in object storage.

Revision ID: 002_pdf_exports
Revises: 001_initial
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "002_pdf_exports"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pdf_exports",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "workspace_id", UUID(as_uuid=True),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "created_by", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "assignment_id", UUID(as_uuid=True),
            sa.ForeignKey("assignments.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("question_ids", sa.JSON, nullable=False),
        sa.Column("include_answers", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("include_hints", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        sa.Column("storage_key", sa.String(500), nullable=True),
        sa.Column("file_size", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_pdf_exports_workspace_id", "pdf_exports", ["workspace_id"])


def downgrade() -> None:
    op.drop_index("ix_pdf_exports_workspace_id", table_name="pdf_exports")
    op.drop_table("pdf_exports")
