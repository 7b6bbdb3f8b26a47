"""
Student Applications Errors

Service-level exceptions. Routers translate these into HTTP responses
using `status_code` and `error_code`.
"""

from fastapi import status

from app.modules.student_applications.models import ApplicationStatus


class ApplicationServiceError(Exception):
    """Base exception for application service errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "APPLICATION_ERROR",
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ApplicationValidationError(ApplicationServiceError):
    """Required input missing or malformed."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR", status.HTTP_400_BAD_REQUEST)


class IllegalTransitionError(ApplicationServiceError):
    """Operation not permitted from the application's current status."""

    def __init__(
        self,
        current: ApplicationStatus,
        required: ApplicationStatus,
        action: str,
    ):
        self.current = current
        self.required = required
        super().__init__(
            f"Cannot {action} application: status is {current.value}, "
            f"only {required.value} applications can be {_past_tense(action)}.",
            "ILLEGAL_TRANSITION",
            status.HTTP_400_BAD_REQUEST,
        )


class ForbiddenActionError(ApplicationServiceError):
    """Actor lacks rights over this specific application."""

    def __init__(self, message: str):
        super().__init__(message, "FORBIDDEN", status.HTTP_403_FORBIDDEN)


class ApplicationNotFoundError(ApplicationServiceError):
    """Application does not exist."""

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(
            "Application not found.",
            "APPLICATION_NOT_FOUND",
            status.HTTP_404_NOT_FOUND,
        )


class StoreError(ApplicationServiceError):
    """Underlying persistence failure."""

    def __init__(self, message: str = "A storage error occurred."):
        super().__init__(message, "STORE_ERROR", status.HTTP_500_INTERNAL_SERVER_ERROR)


_PAST_TENSE = {
    "submit": "submitted",
    "begin review of": "reviewed",
    "approve": "approved",
    "reject": "rejected",
    "resubmit": "resubmitted",
}


def _past_tense(action: str) -> str:
    return _PAST_TENSE.get(action, f"{action}ed")
