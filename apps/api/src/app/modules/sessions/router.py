"""
Academic Sessions Router

- GET /sessions - Current session and the selectable session labels
"""

import logging

from fastapi import APIRouter, Depends, Query

from app.core.auth import CurrentUser, get_current_user
from app.modules.sessions.schemas import SessionInfo, SessionListResponse
from app.modules.sessions.service import get_available_sessions, resolve_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=SessionListResponse,
    response_model_by_alias=True,
    summary="List Academic Sessions",
    description="""
Return the current academic session (April to March) and a list of session
labels for filter dropdowns, newest first.
""",
)
async def list_sessions(
    years_back: int = Query(5, alias="yearsBack", ge=0, le=50),
    years_forward: int = Query(2, alias="yearsForward", ge=0, le=10),
    user: CurrentUser = Depends(get_current_user),
) -> SessionListResponse:
    current = resolve_session(None)
    logger.debug(f"User {user.id} listed sessions (back={years_back}, forward={years_forward})")
    return SessionListResponse(
        current=SessionInfo(
            label=current.label,
            start_year=current.start_year,
            start_date=current.start_date,
            end_date=current.end_date,
        ),
        sessions=get_available_sessions(years_back, years_forward),
    )
