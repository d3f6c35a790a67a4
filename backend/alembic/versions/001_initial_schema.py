"""Initial schema — tenants, question bank, practice, scheduling, jobs, AI usage.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from pgvector.sqlalchemy import Vector

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
    )


def _fk(name: str, target: str, ondelete: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        name, UUID(as_uuid=True), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable,
    )


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(100), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=True),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "workspaces",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(80), nullable=False, unique=True),
        sa.Column("settings", sa.JSON, nullable=False),
        _created_at(),
    )

    op.create_table(
        "workspace_members",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("user_id", "users.id", "CASCADE", nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        _created_at(),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )
    op.create_index("ix_workspace_members_workspace_id", "workspace_members", ["workspace_id"])
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    op.create_table(
        "student_profiles",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("user_id", "users.id", "SET NULL"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("age", sa.Integer, nullable=True),
        sa.Column("school", sa.String(200), nullable=True),
        sa.Column("grade_current", sa.String(50), nullable=True),
        sa.Column("private_notes", sa.Text, nullable=True),
        sa.Column("tags", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_student_profiles_workspace_id", "student_profiles", ["workspace_id"])
    op.create_index("ix_student_profiles_user_id", "student_profiles", ["user_id"])

    op.create_table(
        "workspace_invites",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        _fk("student_profile_id", "student_profiles.id", "CASCADE"),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _fk("used_by", "users.id", "SET NULL"),
        _fk("created_by", "users.id", "SET NULL"),
        _created_at(),
    )
    op.create_index("ix_workspace_invites_workspace_id", "workspace_invites", ["workspace_id"])

    op.create_table(
        "topics",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        _created_at(),
        sa.UniqueConstraint("workspace_id", "name", name="uq_topic_name"),
    )
    op.create_index("ix_topics_workspace_id", "topics", ["workspace_id"])

    op.create_table(
        "source_materials",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("uploaded_by", "users.id", "SET NULL"),
        sa.Column("r2_key", sa.String(500), nullable=False),
        sa.Column("original_filename", sa.String(500), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("size_bytes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("extracted_text", sa.Text, nullable=True),
        sa.Column("extraction_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("metadata_json", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_source_materials_workspace_id", "source_materials", ["workspace_id"])

    op.create_table(
        "questions",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("topic_id", "topics.id", "SET NULL"),
        sa.Column("origin", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("prompt_text", sa.Text, nullable=False),
        sa.Column("prompt_latex", sa.Text, nullable=True),
        sa.Column("answer_type", sa.String(20), nullable=False, server_default="short_answer"),
        sa.Column("correct_answer_json", sa.JSON, nullable=False),
        sa.Column("tolerance", sa.Float, nullable=True),
        sa.Column("difficulty", sa.Integer, nullable=False, server_default="3"),
        sa.Column("grade_level", sa.String(50), nullable=True),
        sa.Column("hints", sa.JSON, nullable=False),
        sa.Column("solution_steps", sa.JSON, nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("quality_score", sa.Float, nullable=True),
        sa.Column("times_attempted", sa.Integer, nullable=False, server_default="0"),
        sa.Column("times_correct", sa.Integer, nullable=False, server_default="0"),
        _fk("parent_question_id", "questions.id", "SET NULL"),
        _fk("source_material_id", "source_materials.id", "SET NULL"),
        sa.Column("generation_metadata", sa.JSON, nullable=True),
        _fk("created_by", "users.id", "SET NULL"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("difficulty BETWEEN 1 AND 5", name="ck_question_difficulty"),
    )
    op.create_index("ix_questions_workspace_id", "questions", ["workspace_id"])
    op.create_index("ix_questions_topic_id", "questions", ["topic_id"])

    op.create_table(
        "question_embeddings",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        sa.Column(
            "question_id", UUID(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("embedding", Vector(1536), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("text_hash", sa.String(32), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_question_embeddings_workspace_id", "question_embeddings", ["workspace_id"])
    op.execute(
        "CREATE INDEX ix_question_embeddings_embedding ON question_embeddings "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    op.create_table(
        "assignments",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("created_by", "users.id", "SET NULL"),
        _fk("student_profile_id", "student_profiles.id", "SET NULL"),
        _fk("assigned_student_user_id", "users.id", "SET NULL"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("settings", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_assignments_workspace_id", "assignments", ["workspace_id"])
    op.create_index(
        "ix_assignments_assigned_student_user_id", "assignments", ["assigned_student_user_id"],
    )

    op.create_table(
        "assignment_items",
        _id(),
        _fk("assignment_id", "assignments.id", "CASCADE", nullable=False),
        _fk("question_id", "questions.id", "CASCADE", nullable=False),
        sa.Column("order_index", sa.Integer, nullable=False, server_default="0"),
        sa.Column("points", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("ix_assignment_items_assignment_id", "assignment_items", ["assignment_id"])

    op.create_table(
        "attempts",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("student_user_id", "users.id", "CASCADE", nullable=False),
        _fk("question_id", "questions.id", "CASCADE", nullable=False),
        _fk("assignment_id", "assignments.id", "SET NULL"),
        sa.Column("answer_raw", sa.Text, nullable=False, server_default=""),
        sa.Column("is_correct", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("time_spent_seconds", sa.Integer, nullable=True),
        sa.Column("hints_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("context_json", sa.JSON, nullable=False),
        sa.Column("override_correct", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("override_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("original_is_correct", sa.Boolean, nullable=True),
        _created_at(),
    )
    for column in ("workspace_id", "student_user_id", "question_id", "assignment_id"):
        op.create_index(f"ix_attempts_{column}", "attempts", [column])

    op.create_table(
        "spaced_repetition",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("student_user_id", "users.id", "CASCADE", nullable=False),
        _fk("question_id", "questions.id", "CASCADE", nullable=False),
        sa.Column("ease", sa.Float, nullable=False, server_default="2.5"),
        sa.Column("interval_days", sa.Integer, nullable=False, server_default="1"),
        sa.Column("streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_reviews", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_correct", sa.Integer, nullable=False, server_default="0"),
        sa.Column("next_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_outcome", sa.String(10), nullable=True),
        sa.UniqueConstraint(
            "workspace_id", "student_user_id", "question_id", name="uq_spaced_repetition",
        ),
    )
    op.create_index("ix_spaced_repetition_student_user_id", "spaced_repetition", ["student_user_id"])
    op.create_index("ix_spaced_repetition_next_due", "spaced_repetition", ["next_due"])

    op.create_table(
        "question_flags",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("question_id", "questions.id", "CASCADE", nullable=False),
        _fk("student_user_id", "users.id", "CASCADE", nullable=False),
        _fk("attempt_id", "attempts.id", "SET NULL"),
        sa.Column("flag_type", sa.String(30), nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("student_answer", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("review_notes", sa.Text, nullable=True),
        _fk("reviewed_by", "users.id", "SET NULL"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_question_flags_workspace_id", "question_flags", ["workspace_id"])
    op.create_index("ix_question_flags_question_id", "question_flags", ["question_id"])

    op.create_table(
        "tutoring_sessions",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("tutor_user_id", "users.id", "CASCADE", nullable=False),
        _fk("student_user_id", "users.id", "SET NULL"),
        _fk("student_profile_id", "student_profiles.id", "SET NULL"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("google_event_id", sa.String(200), nullable=True),
        sa.Column("meet_link", sa.String(500), nullable=True),
        sa.Column("calendar_html_link", sa.String(1000), nullable=True),
        sa.Column("change_request_text", sa.Text, nullable=True),
        sa.Column("change_request_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_tutoring_sessions_workspace_id", "tutoring_sessions", ["workspace_id"])
    op.create_index("ix_tutoring_sessions_student_user_id", "tutoring_sessions", ["student_user_id"])
    op.create_index("ix_tutoring_sessions_starts_at", "tutoring_sessions", ["starts_at"])

    op.create_table(
        "oauth_connections",
        _id(),
        _fk("user_id", "users.id", "CASCADE", nullable=False),
        sa.Column("provider", sa.String(20), nullable=False, server_default="google"),
        sa.Column("provider_email", sa.String(320), nullable=True),
        sa.Column("access_token", sa.Text, nullable=False),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scopes", sa.Text, nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "provider", name="uq_oauth_user_provider"),
    )

    op.create_table(
        "jobs",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE", nullable=False),
        _fk("created_by_user_id", "users.id", "SET NULL"),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("payload_json", sa.JSON, nullable=False),
        sa.Column("result_json", sa.JSON, nullable=True),
        sa.Column("error_text", sa.Text, nullable=True),
        sa.Column(
            "run_after", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(100), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_jobs_workspace_id", "jobs", ["workspace_id"])
    op.create_index("ix_jobs_status_run_after", "jobs", ["status", "run_after"])

    op.create_table(
        "ai_usage_log",
        _id(),
        _fk("workspace_id", "workspaces.id", "CASCADE"),
        _fk("user_id", "users.id", "SET NULL"),
        sa.Column("operation_type", sa.String(40), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("tokens_input", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tokens_output", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tokens_total", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cost_usd", sa.Float, nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("error_message", sa.Text, nullable=True),
        _fk("job_id", "jobs.id", "SET NULL"),
        sa.Column("metadata_json", sa.JSON, nullable=False),
        _created_at(),
    )
    op.create_index("ix_ai_usage_log_workspace_id", "ai_usage_log", ["workspace_id"])
    op.create_index("ix_ai_usage_log_created_at", "ai_usage_log", ["created_at"])


def downgrade() -> None:
    for table in (
        "ai_usage_log",
        "jobs",
        "oauth_connections",
        "tutoring_sessions",
        "question_flags",
        "spaced_repetition",
        "attempts",
        "assignment_items",
        "assignments",
        "question_embeddings",
        "questions",
        "source_materials",
        "topics",
        "workspace_invites",
        "student_profiles",
        "workspace_members",
        "workspaces",
        "users",
    ):
        op.drop_table(table)
