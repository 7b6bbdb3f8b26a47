"""
Staff Router

Session-scoped listings and processing statistics for staff dashboards.

Endpoints:
- GET /staff/students?session=YYYY-YY - Applications registered in a session
- GET /staff/processing-stats?session=YYYY-YY - Session processing counters
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import REVIEWER_ROLES, CurrentUser, require_roles
from app.core.database import get_db
from app.modules.student_applications import service
from app.modules.student_applications.exceptions import ApplicationServiceError
from app.modules.student_applications.helpers import (
    get_store,
    handle_service_error,
    internal_error,
    to_list_items,
)
from app.modules.student_applications.schemas import (
    ApiResponse,
    ProcessingStats,
    StudentListData,
    paginate,
)
from app.modules.student_applications.store import ApplicationStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/students",
    response_model=ApiResponse[StudentListData],
    summary="List Students in Session",
    description="""
Applications registered in the given academic session (April to March).
An application belongs to a session by its registration date, or by its
creation date when it has none.

`session` is required.
""",
    responses={400: {"description": "Session missing or malformed"}},
)
async def list_students(
    session: str | None = Query(None, description="Academic session, e.g. 2025-26"),
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None, min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: ApplicationStore = Depends(get_store),
    user: CurrentUser = Depends(require_roles(*REVIEWER_ROLES)),
) -> ApiResponse[StudentListData]:
    try:
        students, total = await service.list_session_students(
            store,
            session=session,
            status=status_filter,
            search=search,
            page=page,
            limit=limit,
        )
        logger.info(f"Staff {user.id} listed session {session}: total={total}")
        return ApiResponse(
            data=StudentListData(
                students=to_list_items(students),
                pagination=paginate(page, limit, total),
            )
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to get students", e)


@router.get(
    "/processing-stats",
    response_model=ApiResponse[ProcessingStats],
    summary="Processing Statistics",
    description="""
Counters for one academic session (the current one when `session` is
omitted) and the average hours from submission to approval.
""",
    responses={400: {"description": "Session malformed"}},
)
async def processing_stats(
    session: str | None = Query(None, description="Academic session, e.g. 2025-26"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_roles(*REVIEWER_ROLES)),
) -> ApiResponse[ProcessingStats]:
    try:
        stats = await service.get_processing_stats(db, session)
        return ApiResponse(data=ProcessingStats(**stats))
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to get processing statistics", e)
