"""
Student Applications Models

Database models for student admission applications, their append-only
workflow history, and the notification outbox written by workflow
transitions.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ApplicationStatus(str, enum.Enum):
    """Status of a student application."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SubmitterRole(str, enum.Enum):
    """Role of the actor that created the application."""

    STUDENT = "student"
    AGENT = "agent"
    STAFF = "staff"
    SUPER_ADMIN = "super_admin"


class WorkflowAction(str, enum.Enum):
    """Actions recorded in the workflow history."""

    SAVE_DRAFT = "SAVE_DRAFT"
    SUBMIT = "SUBMIT"
    BEGIN_REVIEW = "BEGIN_REVIEW"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RESUBMIT = "RESUBMIT"


class NotificationEventType(str, enum.Enum):
    """Outbox event types emitted by workflow decisions."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"
    PREFER_NOT_TO_SAY = "Prefer not to say"


class Campus(str, enum.Enum):
    SARGIGUDA = "Sargiguda"
    GHANTIGUDA = "Ghantiguda"
    ONLINE = "Online"


class GuardianRelationship(str, enum.Enum):
    FATHER = "Father"
    MOTHER = "Mother"
    BROTHER = "Brother"
    SISTER = "Sister"
    UNCLE = "Uncle"
    AUNT = "Aunt"
    GRANDFATHER = "Grandfather"
    GRANDMOTHER = "Grandmother"
    OTHER = "Other"


# Display label for applications that have not been submitted yet
DRAFT_STAGE = "REGISTRATION"

DECIDED_STATUSES = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED})


def stage_for_status(status: ApplicationStatus) -> str:
    """Workflow stage label derived from a status."""
    if status == ApplicationStatus.DRAFT:
        return DRAFT_STAGE
    return status.value


class StudentApplication(Base):
    """
    Student admission application.

    `status` is the single source of truth for which actions are legal;
    `current_stage` is derived from it. Review and resubmission info are
    stored as flat columns.
    """

    __tablename__ = "student_applications"

    # Primary key
    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Human-visible identifier, e.g. APP25123456
    application_id: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # Owning student
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Submission metadata
    submitter_role: Mapped[SubmitterRole] = mapped_column(
        Enum(SubmitterRole, name="submitter_role"), nullable=False
    )
    submitted_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="student_application_status"),
        nullable=False,
        default=ApplicationStatus.DRAFT,
    )

    # Detail blocks (camelCase keys, as submitted)
    personal_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    contact_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    course_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    guardian_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    financial_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Promoted for search and filtering
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    aadhar_number: Mapped[str] = mapped_column(String(12), nullable=False)
    primary_phone: Mapped[str] = mapped_column(String(10), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    selected_course: Mapped[str] = mapped_column(String(200), nullable=False)
    # Older records have no registration date; session filters fall back to created_at
    registration_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Review info (set only when approved or rejected)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    rejection_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{section, issue, message, requiresResubmission}, ...]
    rejection_details: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Resubmission info
    is_resubmission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resubmission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resubmission_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    resubmitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resubmitted_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    workflow_history: Mapped[list["WorkflowHistoryEntry"]] = relationship(
        "WorkflowHistoryEntry",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="WorkflowHistoryEntry.timestamp",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_student_applications_status", "status"),
        Index("ix_student_applications_submitted_by", "submitted_by"),
        Index("ix_student_applications_user_id", "user_id"),
        Index("ix_student_applications_submitted_at", "submitted_at"),
        Index("ix_student_applications_registration_date", "registration_date"),
        Index("ix_student_applications_created_at", "created_at"),
    )

    @property
    def current_stage(self) -> str:
        return stage_for_status(self.status)

    @property
    def review_info(self) -> dict | None:
        if self.reviewed_at is None:
            return None
        info = {
            "reviewedBy": self.reviewed_by,
            "reviewedAt": self.reviewed_at,
            "remarks": self.review_remarks,
        }
        if self.status == ApplicationStatus.REJECTED:
            info["rejectionReason"] = self.rejection_reason
            info["rejectionMessage"] = self.rejection_message
            info["rejectionDetails"] = self.rejection_details or []
        return info

    @property
    def resubmission_info(self) -> dict:
        return {
            "isResubmission": self.is_resubmission,
            "resubmissionCount": self.resubmission_count,
            "resubmittedAt": self.resubmitted_at,
            "resubmissionReason": self.resubmission_reason,
        }


class WorkflowHistoryEntry(Base):
    """
    One status-changing action on an application.

    Rows are only ever inserted.
    """

    __tablename__ = "application_workflow_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("student_applications.id", ondelete="CASCADE"),
        nullable=False,
    )

    action: Mapped[WorkflowAction] = mapped_column(
        Enum(WorkflowAction, name="workflow_action"), nullable=False
    )
    stage: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="student_application_status"), nullable=False
    )
    actor_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    application: Mapped["StudentApplication"] = relationship(
        "StudentApplication", back_populates="workflow_history"
    )

    __table_args__ = (
        Index("ix_application_workflow_history_application_id", "application_id"),
        Index("ix_application_workflow_history_action", "action"),
    )


class NotificationEvent(Base):
    """
    Transactional outbox row for a workflow decision.

    Written in the same transaction as the status change and consumed by
    the notification dispatch job.
    """

    __tablename__ = "application_notification_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("student_applications.id", ondelete="CASCADE"),
        nullable=False,
    )

    event_type: Mapped[NotificationEventType] = mapped_column(
        Enum(NotificationEventType, name="notification_event_type"), nullable=False
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Delivery tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_application_notification_events_pending", "dispatched_at", "created_at"),
    )
