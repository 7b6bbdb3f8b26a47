"""
Student Applications Shared Helpers

Dependencies and error translation shared by the applications,
verification and staff routers.
"""

import logging
from typing import NoReturn

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentUser
from app.core.database import get_db
from app.core.rate_limit import RateLimitExceeded, check_rate_limit
from app.modules.student_applications.exceptions import ApplicationServiceError
from app.modules.student_applications.models import StudentApplication
from app.modules.student_applications.schemas import ApplicationListItem
from app.modules.student_applications.store import ApplicationStore, SqlApplicationStore
from app.modules.student_applications.workflow import VerificationWorkflow

logger = logging.getLogger(__name__)


# ============================================
# Dependencies
# ============================================


def get_store(db: AsyncSession = Depends(get_db)) -> ApplicationStore:
    return SqlApplicationStore(db)


def get_workflow(store: ApplicationStore = Depends(get_store)) -> VerificationWorkflow:
    return VerificationWorkflow(store)


# ============================================
# Error translation
# ============================================


def handle_service_error(e: ApplicationServiceError) -> NoReturn:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "success": False,
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def internal_error(message: str, e: Exception) -> NoReturn:
    """Log an unexpected failure and raise a generic 500."""
    logger.exception(f"{message}: {e}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "success": False,
            "error": str(e),
            "message": message,
        },
    ) from e


async def check_action_rate_limit(
    user: CurrentUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for a workflow action.

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    key = f"applications:{action}:{user.id}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for user {user.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


def to_list_items(applications: list[StudentApplication]) -> list[ApplicationListItem]:
    return [ApplicationListItem.model_validate(app) for app in applications]
