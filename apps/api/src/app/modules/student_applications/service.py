"""
Student Applications Service

Business logic between the routers and the persistence layer: building new
applications from validated input, session-scoped listings, and dashboard
statistics. Status changes are delegated to `VerificationWorkflow`.
"""

import logging
import math
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from statistics import mean
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser, Role
from app.modules.sessions.service import (
    InvalidSessionFormatError,
    SessionRange,
    resolve_session,
)
from app.modules.student_applications import repository
from app.modules.student_applications.exceptions import (
    ApplicationNotFoundError,
    ApplicationValidationError,
)
from app.modules.student_applications.filters import ApplicationFilter
from app.modules.student_applications.models import (
    ApplicationStatus,
    StudentApplication,
    SubmitterRole,
    WorkflowAction,
)
from app.modules.student_applications.schemas import ApplicationCreate
from app.modules.student_applications.store import ApplicationStore
from app.modules.student_applications.workflow import VerificationWorkflow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_STATUSES = (ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW)
PENDING_STATUSES = (ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW)

# Processing-time samples outside [0, one year) are discarded
MAX_PLAUSIBLE_HOURS = 8760
DEFAULT_PROCESSING_HOURS = 24

ALL = "all"


# ============================================
# Input helpers
# ============================================


def _parse_status(value: str | None) -> ApplicationStatus | None:
    if value is None or value == ALL:
        return None
    try:
        return ApplicationStatus(value.upper())
    except ValueError as e:
        raise ApplicationValidationError(f"Unknown status '{value}'.") from e


def _parse_submitter_role(value: str | None) -> SubmitterRole | None:
    if value is None or value == ALL:
        return None
    try:
        return SubmitterRole(value.lower())
    except ValueError as e:
        raise ApplicationValidationError(f"Unknown submitter role '{value}'.") from e


def _resolve_session_or_400(label: str | None) -> SessionRange:
    try:
        return resolve_session(label)
    except InvalidSessionFormatError as e:
        logger.warning(f"Invalid session label: {e.label!r}")
        raise ApplicationValidationError(str(e)) from e


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


# ============================================
# Submission
# ============================================


def build_application(
    data: ApplicationCreate,
    student_user_id: UUID,
    now: datetime | None = None,
) -> StudentApplication:
    """Map validated input onto a new (unsaved) application."""
    now = now or datetime.now(UTC)
    registration_date = _as_utc(data.personal_details.registration_date or now)

    personal = data.personal_details.model_dump(mode="json", by_alias=True, exclude_none=True)
    personal["registrationDate"] = registration_date.isoformat()

    return StudentApplication(
        user_id=student_user_id,
        personal_details=personal,
        contact_details=data.contact_details.model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
        course_details=data.course_details.model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
        guardian_details=data.guardian_details.model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
        financial_details=(
            data.financial_details.model_dump(mode="json", by_alias=True, exclude_none=True)
            if data.financial_details
            else None
        ),
        full_name=data.personal_details.full_name,
        aadhar_number=data.personal_details.aadhar_number,
        primary_phone=data.contact_details.primary_phone,
        email=data.contact_details.email,
        selected_course=data.course_details.selected_course,
        registration_date=registration_date,
    )


async def submit_application(
    workflow: VerificationWorkflow,
    data: ApplicationCreate,
    user: CurrentUser,
) -> StudentApplication:
    """
    Create an application for the current user or, for agents and staff,
    on behalf of the student named in `student_user_id`.

    Raises:
        ApplicationValidationError: On-behalf submission without a student,
            or a student naming someone else
    """
    if user.role == Role.STUDENT:
        if data.student_user_id is not None and data.student_user_id != user.id:
            raise ApplicationValidationError("Students can only submit their own application.")
        student_id = user.id
    else:
        if data.student_user_id is None:
            raise ApplicationValidationError(
                "studentUserId is required when submitting on a student's behalf."
            )
        student_id = data.student_user_id

    application = build_application(data, student_id)
    return await workflow.create_application(
        application,
        actor_id=user.id,
        submitter_role=SubmitterRole(user.role.value),
        save_as_draft=data.save_as_draft,
    )


async def list_my_applications(
    store: ApplicationStore,
    user: CurrentUser,
    *,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StudentApplication], int]:
    """Students see their own applications; everyone else sees what they submitted."""
    parsed = _parse_status(status)
    criteria = ApplicationFilter(
        statuses=(parsed,) if parsed else (),
        user_id=user.id if user.role == Role.STUDENT else None,
        submitted_by=None if user.role == Role.STUDENT else user.id,
    )
    return await store.list_applications(criteria, skip=(page - 1) * limit, limit=limit)


# ============================================
# Verification queue
# ============================================


async def get_application_detail(
    store: ApplicationStore, application_id: str
) -> StudentApplication:
    application = await store.get(application_id)
    if application is None:
        raise ApplicationNotFoundError(application_id)
    return application


async def list_verification_queue(
    db: AsyncSession,
    store: ApplicationStore,
    *,
    status: str | None = None,
    submitter_role: str | None = None,
    course: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """
    Applications awaiting verification.

    Without a status filter the queue holds SUBMITTED and UNDER_REVIEW
    applications; status "all" lists every status.
    """
    if status is None:
        statuses: tuple[ApplicationStatus, ...] = DEFAULT_QUEUE_STATUSES
    else:
        parsed = _parse_status(status)
        statuses = (parsed,) if parsed else ()

    criteria = ApplicationFilter(
        statuses=statuses,
        submitter_role=_parse_submitter_role(submitter_role),
        course=None if course in (None, ALL) else course,
        search=search,
    )
    # Filter options first, so a failed option query cannot disturb loaded rows
    roles = await _guarded(
        db, "submitter roles", lambda: repository.get_distinct_submitter_roles(db), []
    )
    courses = await _guarded(db, "courses", lambda: repository.get_distinct_courses(db), [])

    applications, total = await store.list_applications(
        criteria, skip=(page - 1) * limit, limit=limit
    )

    return {
        "applications": applications,
        "total": total,
        "filters": {
            "submitter_roles": [r.value for r in roles],
            "courses": courses,
            "statuses": [s.value for s in ApplicationStatus if s != ApplicationStatus.DRAFT],
        },
    }


async def list_rejected(
    db: AsyncSession,
    *,
    submitter_role: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StudentApplication], int]:
    return await repository.get_rejected_applications(
        db,
        submitter_role=_parse_submitter_role(submitter_role),
        skip=(page - 1) * limit,
        limit=limit,
    )


async def list_session_students(
    store: ApplicationStore,
    *,
    session: str | None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StudentApplication], int]:
    """
    Applications registered in an academic session.

    Raises:
        ApplicationValidationError: If `session` is missing or malformed
    """
    if session is None or not session.strip():
        raise ApplicationValidationError("Session parameter is required (format: YYYY-YY).")

    session_range = _resolve_session_or_400(session)
    parsed = _parse_status(status)

    criteria = ApplicationFilter(
        statuses=(parsed,) if parsed else (),
        search=search,
        session=session_range,
    )
    return await store.list_applications(criteria, skip=(page - 1) * limit, limit=limit)


# ============================================
# Statistics
# ============================================


async def _guarded(
    db: AsyncSession,
    name: str,
    query: Callable[[], Awaitable[T]],
    default: T,
) -> T:
    """
    Run one statistics query; on failure log it and fall back to `default`.

    Each query runs in its own savepoint so a failure only unwinds that
    query. Rolling back the whole session would expire rows already loaded
    for the response.
    """
    try:
        async with db.begin_nested():
            return await query()
    except SQLAlchemyError as e:
        logger.error(f"Statistics query '{name}' failed: {e}", exc_info=True)
        return default


async def get_verification_stats(db: AsyncSession) -> dict[str, Any]:
    """Dashboard counters. Each figure degrades to zero / empty on its own failure."""
    status_counts = await _guarded(db, "status counts", lambda: repository.count_by_status(db), {})

    return {
        "status_stats": [
            {"status": status.value, "count": count} for status, count in status_counts.items()
        ],
        "submitter_role_stats": await _guarded(
            db, "submitter roles", lambda: repository.get_submitter_role_stats(db), []
        ),
        "resubmission_stats": await _guarded(
            db, "resubmissions", lambda: repository.get_resubmission_stats(db), []
        ),
        "monthly_stats": await _guarded(
            db, "monthly", lambda: repository.get_monthly_stats(db), []
        ),
        "course_stats": await _guarded(db, "courses", lambda: repository.get_course_stats(db), []),
        "total_applications": await _guarded(
            db, "total", lambda: repository.count_applications(db), 0
        ),
        "pending_verification": status_counts.get(ApplicationStatus.UNDER_REVIEW, 0),
        "approved": status_counts.get(ApplicationStatus.APPROVED, 0),
        "rejected": status_counts.get(ApplicationStatus.REJECTED, 0),
        "agent_applications": await _guarded(
            db,
            "agent applications",
            lambda: repository.count_applications(
                db, StudentApplication.submitter_role == SubmitterRole.AGENT
            ),
            0,
        ),
        "student_applications": await _guarded(
            db,
            "student applications",
            lambda: repository.count_applications(
                db, StudentApplication.submitter_role == SubmitterRole.STUDENT
            ),
            0,
        ),
    }


def resolve_approval_time(application: StudentApplication) -> datetime | None:
    """reviewed_at, else the last APPROVE history entry, else None."""
    if application.reviewed_at is not None:
        return application.reviewed_at
    for entry in reversed(application.workflow_history):
        if entry.action == WorkflowAction.APPROVE:
            return entry.timestamp
    return None


def _plausible_hours(start: datetime, end: datetime) -> float | None:
    hours = (_as_utc(end) - _as_utc(start)).total_seconds() / 3600
    if hours < 0 or hours >= MAX_PLAUSIBLE_HOURS:
        return None
    return hours


def _round_half_up(hours: float) -> int:
    # 2.5 reports as 3, not banker's rounding
    return math.floor(hours + 0.5)


def compute_average_processing_time(
    approved_samples: list[tuple[datetime, datetime | None]],
    pending_submitted: list[datetime],
    now: datetime,
) -> int:
    """
    Average hours from submission to approval.

    Falls back to the average time UNDER_REVIEW applications have been
    waiting (at most 100 samples), then to 24.

    Args:
        approved_samples: (submitted_at, approved_at) pairs; approved_at may be None
        pending_submitted: submitted_at of UNDER_REVIEW applications
        now: Reference time for the pending fallback
    """
    approved_hours = [
        hours
        for submitted_at, approved_at in approved_samples
        if approved_at is not None
        and (hours := _plausible_hours(submitted_at, approved_at)) is not None
    ]
    if approved_hours:
        return _round_half_up(mean(approved_hours))

    pending_hours = [
        hours
        for submitted_at in pending_submitted[: repository.PENDING_SAMPLE_LIMIT]
        if (hours := _plausible_hours(submitted_at, now)) is not None
    ]
    if pending_hours:
        return _round_half_up(mean(pending_hours))

    return DEFAULT_PROCESSING_HOURS


async def get_processing_stats(
    db: AsyncSession,
    session_label: str | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Session-scoped processing counters and average processing time.

    A missing label means the current session.

    Raises:
        ApplicationValidationError: If `session_label` is malformed
    """
    session_range = _resolve_session_or_400(session_label)
    criteria = ApplicationFilter(session=session_range)
    now = now or datetime.now(UTC)

    counts = await _guarded(
        db, "session status counts", lambda: repository.count_by_status(db, criteria), {}
    )
    approved = await _guarded(
        db, "approved in session", lambda: repository.get_approved_in_session(db, criteria), []
    )
    samples = [(app.submitted_at, resolve_approval_time(app)) for app in approved]

    pending_times = await _guarded(
        db,
        "pending submission times",
        lambda: repository.get_pending_submission_times(db, criteria),
        [],
    )

    return {
        "total_students": sum(counts.values()),
        "pending_verification": sum(counts.get(s, 0) for s in PENDING_STATUSES),
        "approved_in_session": counts.get(ApplicationStatus.APPROVED, 0),
        "rejected_in_session": counts.get(ApplicationStatus.REJECTED, 0),
        "draft_in_session": counts.get(ApplicationStatus.DRAFT, 0),
        "submitted_in_session": counts.get(ApplicationStatus.SUBMITTED, 0),
        "under_review_in_session": counts.get(ApplicationStatus.UNDER_REVIEW, 0),
        "average_processing_time": compute_average_processing_time(samples, pending_times, now),
        "session": session_range.label,
        "session_start_date": session_range.start_date,
        "session_end_date": session_range.end_date,
    }
