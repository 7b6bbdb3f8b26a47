"""
Application Verification Router

Endpoints for staff to review student applications and for submitters to
resubmit rejected ones.

Endpoints:
- GET /verification/pending - Verification queue with filters and pagination
- GET /verification/rejected/list - Rejected applications awaiting resubmission
- GET /verification/stats/overview - Dashboard statistics
- GET /verification/{id} - Application details
- PUT /verification/{id}/start-review - SUBMITTED -> UNDER_REVIEW
- PUT /verification/{id}/approve - UNDER_REVIEW -> APPROVED
- PUT /verification/{id}/reject - UNDER_REVIEW -> REJECTED
- PUT /verification/{id}/resubmit - REJECTED -> UNDER_REVIEW (original submitter only)

Security:
- Review endpoints require staff or super_admin role
- Resubmission requires the original submitter
- Rate limiting on action endpoints to prevent abuse
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import REVIEWER_ROLES, CurrentUser, get_current_user, require_roles
from app.core.database import get_db
from app.modules.student_applications import service
from app.modules.student_applications.exceptions import ApplicationServiceError
from app.modules.student_applications.helpers import (
    check_action_rate_limit,
    get_store,
    get_workflow,
    handle_service_error,
    internal_error,
    to_list_items,
)
from app.modules.student_applications.schemas import (
    ApiResponse,
    ApplicationDetail,
    ApplicationListData,
    ApproveData,
    ApproveRequest,
    FilterOptions,
    RejectData,
    RejectRequest,
    ResubmitData,
    ResubmitRequest,
    TransitionData,
    VerificationStats,
    paginate,
)
from app.modules.student_applications.store import ApplicationStore
from app.modules.student_applications.workflow import VerificationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()

require_reviewer = require_roles(*REVIEWER_ROLES)


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_APPROVE = (10, 60)  # 10 approvals per minute
RATE_LIMIT_REJECT = (10, 60)  # 10 rejections per minute
RATE_LIMIT_RESUBMIT = (5, 60)  # 5 resubmissions per minute
RATE_LIMIT_START_REVIEW = (30, 60)  # 30 review starts per minute


# ============================================
# Listing
# ============================================


@router.get(
    "/pending",
    response_model=ApiResponse[ApplicationListData],
    summary="List Applications Pending Verification",
    description="""
Paginated verification queue, newest submission first.

**Filters:**
- `status`: One status, or `all`. Default: SUBMITTED and UNDER_REVIEW
- `submitterRole`: student, agent, staff, super_admin or `all`
- `course`: Exact course name or `all`
- `search`: Case-insensitive match on name, Aadhaar, phone, email or application id

**Access:** Staff and super admin
""",
)
async def list_pending(
    status_filter: str | None = Query(None, alias="status"),
    submitter_role: str | None = Query(None, alias="submitterRole"),
    course: str | None = Query(None, max_length=200),
    search: str | None = Query(None, min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    store: ApplicationStore = Depends(get_store),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[ApplicationListData]:
    try:
        result = await service.list_verification_queue(
            db,
            store,
            status=status_filter,
            submitter_role=submitter_role,
            course=course,
            search=search,
            page=page,
            limit=limit,
        )
        logger.info(f"Reviewer {user.id} listed verification queue: total={result['total']}")

        return ApiResponse(
            data=ApplicationListData(
                applications=to_list_items(result["applications"]),
                pagination=paginate(page, limit, result["total"]),
                filters=FilterOptions(**result["filters"]),
            )
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to fetch pending verifications", e)


@router.get(
    "/rejected/list",
    response_model=ApiResponse[ApplicationListData],
    summary="List Rejected Applications",
)
async def list_rejected(
    submitter_role: str | None = Query(None, alias="submitterRole"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[ApplicationListData]:
    try:
        applications, total = await service.list_rejected(
            db, submitter_role=submitter_role, page=page, limit=limit
        )
        return ApiResponse(
            data=ApplicationListData(
                applications=to_list_items(applications),
                pagination=paginate(page, limit, total),
            )
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to fetch rejected applications", e)


@router.get(
    "/stats/overview",
    response_model=ApiResponse[VerificationStats],
    summary="Verification Statistics",
    description="""
Aggregated counts for the verification dashboard. Each figure is computed
independently; a failing query reports zero (or an empty list) for that
figure only.
""",
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[VerificationStats]:
    try:
        stats = await service.get_verification_stats(db)
        return ApiResponse(data=VerificationStats(**stats))
    except Exception as e:
        internal_error("Failed to fetch verification statistics", e)


@router.get(
    "/{application_id}",
    response_model=ApiResponse[ApplicationDetail],
    summary="Get Application Details",
)
async def get_application(
    application_id: str,
    store: ApplicationStore = Depends(get_store),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[ApplicationDetail]:
    try:
        application = await service.get_application_detail(store, application_id)
        return ApiResponse(data=ApplicationDetail.model_validate(application))
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to fetch application details", e)


# ============================================
# Workflow actions
# ============================================


@router.put(
    "/{application_id}/start-review",
    response_model=ApiResponse[TransitionData],
    summary="Start Review",
    description="Move a SUBMITTED application to UNDER_REVIEW.",
)
async def start_review(
    application_id: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[TransitionData]:
    await check_action_rate_limit(user, "start_review", *RATE_LIMIT_START_REVIEW)

    try:
        application = await workflow.begin_review(application_id, user.id)
        return ApiResponse(
            message="Review started",
            data=TransitionData(
                application_id=application.application_id,
                status=application.status,
                current_stage=application.current_stage,
                updated_at=application.workflow_history[-1].timestamp,
            ),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to start review", e)


@router.put(
    "/{application_id}/approve",
    response_model=ApiResponse[ApproveData],
    summary="Approve Application",
    description="""
Approve an application that is UNDER_REVIEW.

**Effects:**
- Status changes to `APPROVED`
- Review info records the reviewer, time and remarks
- An approval notification is queued for the student

**Access:** Staff and super admin
""",
    responses={
        400: {"description": "Application is not UNDER_REVIEW"},
        404: {"description": "Application not found"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def approve_application(
    application_id: str,
    data: ApproveRequest | None = None,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[ApproveData]:
    await check_action_rate_limit(user, "approve", *RATE_LIMIT_APPROVE)

    try:
        application = await workflow.approve(
            application_id, user.id, data.remarks if data else None
        )
        logger.info(f"Reviewer {user.id} approved application {application_id}")

        return ApiResponse(
            message="Application approved successfully",
            data=ApproveData(
                status=application.status,
                current_stage=application.current_stage,
                approved_at=application.reviewed_at,
            ),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to approve application", e)


@router.put(
    "/{application_id}/reject",
    response_model=ApiResponse[RejectData],
    summary="Reject Application",
    description="""
Reject an application that is UNDER_REVIEW.

`rejectionReason` and `rejectionMessage` are required; the message is what
the student or agent sees. `rejectionDetails` lists per-section issues.

**Access:** Staff and super admin
""",
    responses={
        400: {"description": "Missing reason/message or application not UNDER_REVIEW"},
        404: {"description": "Application not found"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def reject_application(
    application_id: str,
    data: RejectRequest,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(require_reviewer),
) -> ApiResponse[RejectData]:
    await check_action_rate_limit(user, "reject", *RATE_LIMIT_REJECT)

    try:
        details = [d.model_dump(by_alias=True) for d in data.rejection_details]
        application = await workflow.reject(
            application_id,
            user.id,
            data.rejection_reason,
            data.rejection_message,
            details,
            data.remarks,
        )
        logger.info(f"Reviewer {user.id} rejected application {application_id}")

        return ApiResponse(
            message="Application rejected successfully",
            data=RejectData(
                status=application.status,
                current_stage=application.current_stage,
                rejected_at=application.reviewed_at,
                rejection_message=application.rejection_message,
                rejection_details=application.rejection_details or [],
            ),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to reject application", e)


@router.put(
    "/{application_id}/resubmit",
    response_model=ApiResponse[ResubmitData],
    summary="Resubmit Rejected Application",
    description="""
Return a REJECTED application to UNDER_REVIEW after fixing the issues.

Only the user who originally submitted the application may resubmit it.
""",
    responses={
        400: {"description": "Application is not REJECTED"},
        403: {"description": "Caller is not the original submitter"},
        404: {"description": "Application not found"},
    },
)
async def resubmit_application(
    application_id: str,
    data: ResubmitRequest | None = None,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[ResubmitData]:
    await check_action_rate_limit(user, "resubmit", *RATE_LIMIT_RESUBMIT)

    try:
        application = await workflow.resubmit(
            application_id, user.id, data.resubmission_reason if data else None
        )
        logger.info(f"User {user.id} resubmitted application {application_id}")

        return ApiResponse(
            message="Application resubmitted successfully",
            data=ResubmitData(
                status=application.status,
                current_stage=application.current_stage,
                resubmitted_at=application.resubmitted_at,
                resubmission_count=application.resubmission_count,
            ),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to resubmit application", e)
