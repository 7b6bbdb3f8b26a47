"""
Student Applications Repository

Read-side queries used by listings and dashboard statistics. Guarded
status changes go through `store.SqlApplicationStore` instead.
"""

from sqlalchemy import ColumnElement, String, cast, desc, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.student_applications.filters import ApplicationFilter
from app.modules.student_applications.models import (
    ApplicationStatus,
    NotificationEvent,
    StudentApplication,
    SubmitterRole,
)

# Samples used for the elapsed-time fallback of the processing average
PENDING_SAMPLE_LIMIT = 100


async def count_applications(db: AsyncSession, *clauses: ColumnElement[bool]) -> int:
    """Count applications matching all `clauses`."""
    result = await db.execute(
        select(func.count()).select_from(StudentApplication).where(*clauses)
    )
    return result.scalar() or 0


async def count_by_status(
    db: AsyncSession, criteria: ApplicationFilter | None = None
) -> dict[ApplicationStatus, int]:
    """Application counts grouped by status, optionally restricted by `criteria`."""
    query = select(StudentApplication.status, func.count()).group_by(StudentApplication.status)
    if criteria is not None:
        query = query.where(*criteria.clauses())
    result = await db.execute(query)
    return {status: count for status, count in result.all()}


async def get_distinct_submitter_roles(db: AsyncSession) -> list[SubmitterRole]:
    result = await db.execute(select(StudentApplication.submitter_role).distinct())
    return list(result.scalars().all())


async def get_distinct_courses(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(StudentApplication.selected_course)
        .distinct()
        .order_by(StudentApplication.selected_course)
    )
    return list(result.scalars().all())


async def get_rejected_applications(
    db: AsyncSession,
    *,
    submitter_role: SubmitterRole | None = None,
    skip: int = 0,
    limit: int = 20,
) -> tuple[list[StudentApplication], int]:
    """
    Rejected applications awaiting resubmission, most recently reviewed first.

    Returns:
        Tuple of (applications, total count)
    """
    clauses: list[ColumnElement[bool]] = [
        StudentApplication.status == ApplicationStatus.REJECTED
    ]
    if submitter_role is not None:
        clauses.append(StudentApplication.submitter_role == submitter_role)

    total = await count_applications(db, *clauses)

    result = await db.execute(
        select(StudentApplication)
        .where(*clauses)
        .order_by(StudentApplication.reviewed_at.desc().nulls_last())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all()), total


# ============================================
# Statistics
# ============================================


async def get_submitter_role_stats(db: AsyncSession) -> list[dict]:
    result = await db.execute(
        select(
            StudentApplication.submitter_role,
            func.count(),
            func.array_agg(cast(StudentApplication.status, String)),
        ).group_by(StudentApplication.submitter_role)
    )
    return [
        {
            "submitterRole": role.value,
            "count": count,
            "statuses": list(statuses or []),
        }
        for role, count, statuses in result.all()
    ]


async def get_resubmission_stats(db: AsyncSession) -> list[dict]:
    result = await db.execute(
        select(StudentApplication.resubmission_count, func.count())
        .where(StudentApplication.is_resubmission.is_(True))
        .group_by(StudentApplication.resubmission_count)
        .order_by(StudentApplication.resubmission_count)
    )
    return [{"resubmissionCount": n, "count": count} for n, count in result.all()]


async def get_monthly_stats(db: AsyncSession, months: int = 12) -> list[dict]:
    """Applications created per month, newest month first."""
    year = extract("year", StudentApplication.created_at).label("year")
    month = extract("month", StudentApplication.created_at).label("month")
    result = await db.execute(
        select(year, month, func.count())
        .group_by(year, month)
        .order_by(desc(year), desc(month))
        .limit(months)
    )
    return [{"year": int(y), "month": int(m), "count": count} for y, m, count in result.all()]


async def get_course_stats(db: AsyncSession) -> list[dict]:
    count = func.count().label("count")
    result = await db.execute(
        select(StudentApplication.selected_course, count)
        .group_by(StudentApplication.selected_course)
        .order_by(desc(count))
    )
    return [{"course": course, "count": n} for course, n in result.all()]


async def get_approved_in_session(
    db: AsyncSession, criteria: ApplicationFilter
) -> list[StudentApplication]:
    """Approved applications in scope, with workflow history loaded."""
    result = await db.execute(
        select(StudentApplication).where(
            StudentApplication.status == ApplicationStatus.APPROVED,
            StudentApplication.submitted_at.is_not(None),
            *criteria.clauses(),
        )
    )
    return list(result.scalars().all())


async def get_pending_submission_times(
    db: AsyncSession,
    criteria: ApplicationFilter,
    limit: int = PENDING_SAMPLE_LIMIT,
) -> list:
    """Submission timestamps of UNDER_REVIEW applications in scope, newest first."""
    result = await db.execute(
        select(StudentApplication.submitted_at)
        .where(
            StudentApplication.status == ApplicationStatus.UNDER_REVIEW,
            StudentApplication.submitted_at.is_not(None),
            *criteria.clauses(),
        )
        .order_by(StudentApplication.submitted_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ============================================
# Notification outbox
# ============================================


async def get_pending_notification_events(
    db: AsyncSession,
    *,
    max_attempts: int,
    limit: int,
) -> list[NotificationEvent]:
    """
    Undispatched outbox events below the attempt limit, oldest first.

    Rows are locked (skipping rows locked by another worker) until the
    caller's transaction ends.
    """
    result = await db.execute(
        select(NotificationEvent)
        .where(
            NotificationEvent.dispatched_at.is_(None),
            NotificationEvent.attempts < max_attempts,
        )
        .order_by(NotificationEvent.created_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return list(result.scalars().all())
