"""Create student applications, workflow history and notification outbox

Revision ID: a7c3e9f1b2d4
Revises:
Create Date: 2026-10-19

This migration creates the verification workflow tables:
- student_applications: one row per application, detail blocks as JSON
- application_workflow_history: append-only status-changing actions
- application_notification_events: outbox consumed by the dispatch job
"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "a7c3e9f1b2d4"
down_revision = None
branch_labels = None
depends_on = None


APPLICATION_STATUSES = ("DRAFT", "SUBMITTED", "UNDER_REVIEW", "APPROVED", "REJECTED")
# Enum member names are stored; the role values are lowercase in the API only
SUBMITTER_ROLES = ("STUDENT", "AGENT", "STAFF", "SUPER_ADMIN")
WORKFLOW_ACTIONS = ("SAVE_DRAFT", "SUBMIT", "BEGIN_REVIEW", "APPROVE", "REJECT", "RESUBMIT")
NOTIFICATION_EVENT_TYPES = ("APPROVED", "REJECTED")


def upgrade() -> None:
    status_enum = postgresql.ENUM(*APPLICATION_STATUSES, name="student_application_status")
    submitter_role_enum = postgresql.ENUM(*SUBMITTER_ROLES, name="submitter_role")
    workflow_action_enum = postgresql.ENUM(*WORKFLOW_ACTIONS, name="workflow_action")
    event_type_enum = postgresql.ENUM(*NOTIFICATION_EVENT_TYPES, name="notification_event_type")

    op.create_table(
        "student_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", sa.String(length=20), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("submitter_role", submitter_role_enum, nullable=False),
        sa.Column("submitted_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", status_enum, nullable=False),
        sa.Column("personal_details", postgresql.JSON(), nullable=False),
        sa.Column("contact_details", postgresql.JSON(), nullable=False),
        sa.Column("course_details", postgresql.JSON(), nullable=False),
        sa.Column("guardian_details", postgresql.JSON(), nullable=False),
        sa.Column("financial_details", postgresql.JSON(), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("aadhar_number", sa.String(length=12), nullable=False),
        sa.Column("primary_phone", sa.String(length=10), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("selected_course", sa.String(length=200), nullable=False),
        sa.Column("registration_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_remarks", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(length=200), nullable=True),
        sa.Column("rejection_message", sa.Text(), nullable=True),
        sa.Column("rejection_details", postgresql.JSON(), nullable=True),
        sa.Column("is_resubmission", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resubmission_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resubmission_reason", sa.Text(), nullable=True),
        sa.Column("resubmitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resubmitted_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index("ix_student_applications_status", "student_applications", ["status"])
    op.create_index(
        "ix_student_applications_submitted_by", "student_applications", ["submitted_by"]
    )
    op.create_index("ix_student_applications_user_id", "student_applications", ["user_id"])
    op.create_index(
        "ix_student_applications_submitted_at", "student_applications", ["submitted_at"]
    )
    op.create_index(
        "ix_student_applications_registration_date",
        "student_applications",
        ["registration_date"],
    )
    op.create_index("ix_student_applications_created_at", "student_applications", ["created_at"])

    op.create_table(
        "application_workflow_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", workflow_action_enum, nullable=False),
        sa.Column("stage", sa.String(length=30), nullable=False),
        # Type already created with student_applications.status
        sa.Column(
            "status",
            postgresql.ENUM(
                *APPLICATION_STATUSES, name="student_application_status", create_type=False
            ),
            nullable=False,
        ),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["application_id"], ["student_applications.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_application_workflow_history_application_id",
        "application_workflow_history",
        ["application_id"],
    )
    op.create_index(
        "ix_application_workflow_history_action", "application_workflow_history", ["action"]
    )

    op.create_table(
        "application_notification_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", event_type_enum, nullable=False),
        sa.Column("payload", postgresql.JSON(), nullable=False),
        sa.Column("recipient_email", sa.String(length=255), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["application_id"], ["student_applications.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_application_notification_events_pending",
        "application_notification_events",
        ["dispatched_at", "created_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_application_notification_events_pending",
        table_name="application_notification_events",
    )
    op.drop_table("application_notification_events")

    op.drop_index(
        "ix_application_workflow_history_action", table_name="application_workflow_history"
    )
    op.drop_index(
        "ix_application_workflow_history_application_id",
        table_name="application_workflow_history",
    )
    op.drop_table("application_workflow_history")

    op.drop_index("ix_student_applications_created_at", table_name="student_applications")
    op.drop_index("ix_student_applications_registration_date", table_name="student_applications")
    op.drop_index("ix_student_applications_submitted_at", table_name="student_applications")
    op.drop_index("ix_student_applications_user_id", table_name="student_applications")
    op.drop_index("ix_student_applications_submitted_by", table_name="student_applications")
    op.drop_index("ix_student_applications_status", table_name="student_applications")
    op.drop_table("student_applications")

    sa.Enum(name="notification_event_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="workflow_action").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="student_application_status").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="submitter_role").drop(op.get_bind(), checkfirst=True)
