from fastapi import APIRouter

from app.modules.sessions import router as sessions_router
from app.modules.student_applications import router as student_applications_router
from app.modules.student_applications.staff_router import router as staff_router
from app.modules.student_applications.verification_router import router as verification_router

api_router = APIRouter()

api_router.include_router(
    student_applications_router, prefix="/applications", tags=["Student Applications"]
)

api_router.include_router(
    verification_router,
    prefix="/verification",
    tags=["Verification"],
)

api_router.include_router(staff_router, prefix="/staff", tags=["Staff"])

api_router.include_router(sessions_router, prefix="/sessions", tags=["Sessions"])
