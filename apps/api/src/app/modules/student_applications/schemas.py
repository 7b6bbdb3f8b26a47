"""
Student Applications Schemas

Pydantic schemas for request validation and response serialization.
Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import date, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

# Re-use enums from models (they work with Pydantic too!)
from app.modules.student_applications.models import (
    ApplicationStatus,
    Campus,
    Gender,
    GuardianRelationship,
    SubmitterRole,
    WorkflowAction,
)

T = TypeVar("T")

AADHAR_PATTERN = r"^\d{12}$"
MOBILE_PATTERN = r"^[6-9]\d{9}$"
PINCODE_PATTERN = r"^\d{6}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================
# Submission
# ============================================


class PersonalDetails(CamelModel):
    """Personal information section."""

    full_name: str = Field(..., min_length=1, max_length=200)
    fathers_name: str = Field(..., min_length=1, max_length=200)
    mothers_name: str = Field(..., min_length=1, max_length=200)
    date_of_birth: date
    gender: Gender
    aadhar_number: str = Field(..., pattern=AADHAR_PATTERN)
    registration_date: datetime | None = None

    @field_validator("full_name", "fathers_name", "mothers_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class Address(CamelModel):
    street: str = Field(..., min_length=1, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    country: str = "India"


class OptionalAddress(CamelModel):
    street: str | None = Field(None, max_length=300)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    pincode: str | None = Field(None, pattern=PINCODE_PATTERN)
    country: str = "India"


class ContactDetails(CamelModel):
    """Contact information section."""

    primary_phone: str = Field(..., pattern=MOBILE_PATTERN)
    whatsapp_number: str | None = Field(None, pattern=MOBILE_PATTERN)
    email: EmailStr
    permanent_address: Address
    current_address: OptionalAddress | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class CourseDetails(CamelModel):
    """Course selection section."""

    selected_course: str = Field(..., min_length=1, max_length=200)
    custom_course: str | None = Field(None, max_length=200)
    stream: str | None = Field(None, max_length=100)
    campus: Campus = Campus.SARGIGUDA


class GuardianDetails(CamelModel):
    """Guardian information section."""

    guardian_name: str = Field(..., min_length=1, max_length=200)
    relationship: GuardianRelationship
    guardian_phone: str = Field(..., pattern=MOBILE_PATTERN)
    guardian_email: EmailStr | None = None

    @field_validator("guardian_email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        return v.strip().lower() if v else v


class FinancialDetails(CamelModel):
    bank_account_number: str | None = Field(None, max_length=30)
    ifsc_code: str | None = Field(None, max_length=11)
    account_holder_name: str | None = Field(None, max_length=200)
    bank_name: str | None = Field(None, max_length=200)


class ApplicationCreate(CamelModel):
    """Request body for POST /applications."""

    personal_details: PersonalDetails
    contact_details: ContactDetails
    course_details: CourseDetails
    guardian_details: GuardianDetails
    financial_details: FinancialDetails | None = None

    # Required when an agent or staff member submits for a student
    student_user_id: UUID | None = None
    save_as_draft: bool = False


# ============================================
# Verification actions
# ============================================


class ApproveRequest(CamelModel):
    remarks: str | None = Field(None, max_length=1000)


class RejectionDetail(CamelModel):
    section: str = Field(..., min_length=1, max_length=100)
    issue: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    requires_resubmission: bool = True


class RejectRequest(CamelModel):
    """
    Request body for PUT /verification/{id}/reject.

    Reason and message are checked by the workflow so that a missing value
    is reported as a 400 with the standard error body.
    """

    rejection_reason: str | None = Field(None, max_length=200)
    rejection_message: str | None = Field(None, max_length=2000)
    rejection_details: list[RejectionDetail] = Field(default_factory=list)
    remarks: str | None = Field(None, max_length=1000)


class ResubmitRequest(CamelModel):
    resubmission_reason: str | None = Field(None, max_length=1000)


# ============================================
# Responses
# ============================================


class ApiResponse(BaseModel, Generic[T]):
    """Standard success envelope."""

    success: bool = True
    message: str | None = None
    data: T


class WorkflowHistoryItem(CamelModel):
    action: WorkflowAction
    stage: str
    status: ApplicationStatus
    actor_id: UUID
    remarks: str | None = None
    timestamp: datetime


class ReviewInfo(CamelModel):
    reviewed_by: UUID
    reviewed_at: datetime
    remarks: str | None = None
    rejection_reason: str | None = None
    rejection_message: str | None = None
    rejection_details: list[dict[str, Any]] | None = None


class ResubmissionInfo(CamelModel):
    is_resubmission: bool
    resubmission_count: int
    resubmitted_at: datetime | None = None
    resubmission_reason: str | None = None


class ApplicationListItem(CamelModel):
    application_id: str
    user_id: UUID
    full_name: str
    email: str
    primary_phone: str
    selected_course: str
    status: ApplicationStatus
    current_stage: str
    submitter_role: SubmitterRole
    submitted_by: UUID
    submitted_at: datetime | None = None
    registration_date: datetime | None = None
    created_at: datetime
    is_resubmission: bool
    resubmission_count: int
    reviewed_at: datetime | None = None


class ApplicationDetail(ApplicationListItem):
    personal_details: dict[str, Any]
    contact_details: dict[str, Any]
    course_details: dict[str, Any]
    guardian_details: dict[str, Any]
    financial_details: dict[str, Any] | None = None
    review_info: ReviewInfo | None = None
    resubmission_info: ResubmissionInfo
    workflow_history: list[WorkflowHistoryItem]


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class FilterOptions(CamelModel):
    submitter_roles: list[str]
    courses: list[str]
    statuses: list[str]


class ApplicationListData(CamelModel):
    applications: list[ApplicationListItem]
    pagination: Pagination
    filters: FilterOptions | None = None


class StudentListData(CamelModel):
    students: list[ApplicationListItem]
    pagination: Pagination


class TransitionData(CamelModel):
    application_id: str
    status: ApplicationStatus
    current_stage: str
    updated_at: datetime


class ApproveData(CamelModel):
    status: ApplicationStatus
    current_stage: str
    approved_at: datetime


class RejectData(CamelModel):
    status: ApplicationStatus
    current_stage: str
    rejected_at: datetime
    rejection_message: str
    rejection_details: list[dict[str, Any]]


class ResubmitData(CamelModel):
    status: ApplicationStatus
    current_stage: str
    resubmitted_at: datetime
    resubmission_count: int


class VerificationStats(CamelModel):
    status_stats: list[dict[str, Any]]
    submitter_role_stats: list[dict[str, Any]]
    resubmission_stats: list[dict[str, Any]]
    monthly_stats: list[dict[str, Any]]
    course_stats: list[dict[str, Any]]
    total_applications: int
    pending_verification: int
    approved: int
    rejected: int
    agent_applications: int
    student_applications: int


class ProcessingStats(CamelModel):
    total_students: int
    pending_verification: int
    approved_in_session: int
    rejected_in_session: int
    draft_in_session: int
    submitted_in_session: int
    under_review_in_session: int
    average_processing_time: int
    session: str
    session_start_date: datetime
    session_end_date: datetime


def paginate(page: int, limit: int, total: int) -> Pagination:
    """Pagination block; total_pages = ceil(total / limit)."""
    return Pagination(
        current_page=page,
        total_pages=-(-total // limit) if limit else 0,
        total_items=total,
        items_per_page=limit,
    )
