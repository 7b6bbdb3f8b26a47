"""
Student Applications Router

Endpoints for students, agents and staff to create and track applications.

Endpoints:
- POST /applications - Create (or save as draft) an application
- GET /applications/mine - Applications of / submitted by the current user
- PUT /applications/{id}/submit - Submit a draft
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from app.core.auth import CurrentUser, get_current_user
from app.modules.student_applications import service
from app.modules.student_applications.exceptions import ApplicationServiceError
from app.modules.student_applications.helpers import (
    get_store,
    get_workflow,
    handle_service_error,
    internal_error,
    to_list_items,
)
from app.modules.student_applications.schemas import (
    ApiResponse,
    ApplicationCreate,
    ApplicationDetail,
    ApplicationListData,
    TransitionData,
    paginate,
)
from app.modules.student_applications.store import ApplicationStore
from app.modules.student_applications.workflow import VerificationWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[ApplicationDetail],
    status_code=status.HTTP_201_CREATED,
    summary="Create Application",
    description="""
Create a student application.

- Students submit for themselves; the application starts as `SUBMITTED`.
- Agents and staff submit on a student's behalf (`studentUserId` required);
  the application goes straight to `UNDER_REVIEW`.
- `saveAsDraft: true` stores a `DRAFT` to be submitted later.
""",
    responses={
        400: {"description": "Missing studentUserId for on-behalf submission"},
        422: {"description": "Validation error in application details"},
    },
)
async def create_application(
    data: ApplicationCreate,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[ApplicationDetail]:
    try:
        application = await service.submit_application(workflow, data, user)
        return ApiResponse(
            message=(
                "Application saved as draft"
                if data.save_as_draft
                else "Application submitted successfully"
            ),
            data=ApplicationDetail.model_validate(application),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to create application", e)


@router.get(
    "/mine",
    response_model=ApiResponse[ApplicationListData],
    summary="My Applications",
)
async def list_my_applications(
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: ApplicationStore = Depends(get_store),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[ApplicationListData]:
    try:
        applications, total = await service.list_my_applications(
            store, user, status=status_filter, page=page, limit=limit
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
        internal_error("Failed to fetch applications", e)


@router.put(
    "/{application_id}/submit",
    response_model=ApiResponse[TransitionData],
    summary="Submit Draft",
    responses={
        400: {"description": "Application is not a DRAFT"},
        403: {"description": "Caller did not create the draft"},
        404: {"description": "Application not found"},
    },
)
async def submit_draft(
    application_id: str,
    workflow: VerificationWorkflow = Depends(get_workflow),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[TransitionData]:
    try:
        application = await workflow.submit(application_id, user.id)
        return ApiResponse(
            message="Application submitted successfully",
            data=TransitionData(
                application_id=application.application_id,
                status=application.status,
                current_stage=application.current_stage,
                updated_at=application.submitted_at,
            ),
        )
    except ApplicationServiceError as e:
        handle_service_error(e)
    except Exception as e:
        internal_error("Failed to submit application", e)
