"""
Verification Workflow

State machine over `StudentApplication.status`:

    DRAFT        --submit-->       SUBMITTED
    SUBMITTED    --begin_review--> UNDER_REVIEW
    UNDER_REVIEW --approve-->      APPROVED
    UNDER_REVIEW --reject-->       REJECTED
    REJECTED     --resubmit-->     UNDER_REVIEW

Every operation checks its preconditions before anything is written, then
hands the store a single guarded `Transition`. If another request changed
the status in between, the store reports the lost race and the operation
fails with `IllegalTransitionError` naming the status it found.

Approve and reject queue an outbox event in the same transaction. The
event is delivered later by the notification job, so delivery failures
never affect the transition.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from app.modules.student_applications.exceptions import (
    ApplicationNotFoundError,
    ApplicationValidationError,
    ForbiddenActionError,
    IllegalTransitionError,
    StoreError,
)
from app.modules.student_applications.models import (
    ApplicationStatus,
    NotificationEventType,
    StudentApplication,
    SubmitterRole,
    WorkflowAction,
)
from app.modules.student_applications.store import (
    ApplicationStore,
    DuplicateApplicationIdError,
    HistoryRecord,
    OutboundEvent,
    Transition,
)

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_REMARKS = "Application approved by staff"

# Verbs used in error messages
SUBMIT = "submit"
BEGIN_REVIEW = "begin review of"
APPROVE = "approve"
REJECT = "reject"
RESUBMIT = "resubmit"

APPLICATION_ID_ATTEMPTS = 10


def generate_application_id(now: datetime) -> str:
    """APP + two-digit year + six random digits, e.g. APP25004217."""
    return f"APP{now.year % 100:02d}{secrets.randbelow(1_000_000):06d}"


def _required(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class VerificationWorkflow:
    """
    Guarded status transitions for student applications.

    Args:
        store: Persistence backend
        clock: Returns the current time (timezone-aware); defaults to UTC now
    """

    def __init__(
        self,
        store: ApplicationStore,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _load(self, application_id: str) -> StudentApplication:
        application = await self.store.get(application_id)
        if application is None:
            logger.warning(f"Application not found: {application_id}")
            raise ApplicationNotFoundError(application_id)
        return application

    def _timestamp(self, application: StudentApplication) -> datetime:
        # History timestamps never go backwards
        now = self._clock()
        if application.workflow_history:
            last = application.workflow_history[-1].timestamp
            if last.tzinfo is None:
                last = last.replace(tzinfo=UTC)
            if last > now:
                return last
        return now

    def _require_status(
        self,
        application: StudentApplication,
        required: ApplicationStatus,
        action: str,
    ) -> None:
        if application.status != required:
            logger.warning(
                f"Rejected '{action}' on {application.application_id}: "
                f"status is {application.status.value}"
            )
            raise IllegalTransitionError(application.status, required, action)

    async def _commit(self, transition: Transition, action: str) -> StudentApplication:
        updated = await self.store.apply_transition(transition)
        if updated is not None:
            return updated

        # Lost the race: report what the winner left behind
        current = await self._load(transition.application_id)
        logger.warning(
            f"Concurrent update on {transition.application_id}: expected "
            f"{transition.expected_status.value}, found {current.status.value}"
        )
        raise IllegalTransitionError(current.status, transition.expected_status, action)

    # ------------------------------------------------------------------
    # Creation and submission
    # ------------------------------------------------------------------

    async def create_application(
        self,
        application: StudentApplication,
        *,
        actor_id: UUID,
        submitter_role: SubmitterRole,
        save_as_draft: bool = False,
    ) -> StudentApplication:
        """
        Persist a new application.

        Drafts start in DRAFT. Students submitting for themselves start in
        SUBMITTED; agents and staff submitting on a student's behalf go
        straight to UNDER_REVIEW.
        """
        now = self._clock()

        if save_as_draft:
            application.status = ApplicationStatus.DRAFT
            application.submitted_at = None
            action = WorkflowAction.SAVE_DRAFT
        else:
            application.status = (
                ApplicationStatus.SUBMITTED
                if submitter_role == SubmitterRole.STUDENT
                else ApplicationStatus.UNDER_REVIEW
            )
            application.submitted_at = now
            action = WorkflowAction.SUBMIT

        application.id = application.id or uuid4()
        application.submitter_role = submitter_role
        application.submitted_by = actor_id
        application.is_resubmission = False
        application.resubmission_count = 0

        history = HistoryRecord(action=action, actor_id=actor_id, timestamp=now)

        for _ in range(APPLICATION_ID_ATTEMPTS):
            candidate = generate_application_id(now)
            if await self.store.get(candidate) is not None:
                continue
            application.application_id = candidate
            try:
                created = await self.store.add(application, history)
            except DuplicateApplicationIdError:
                logger.debug(f"Application id collision on {candidate}, retrying")
                continue
            logger.info(
                f"Application {created.application_id} created by {submitter_role.value} "
                f"{actor_id} in status {created.status.value}"
            )
            return created

        logger.error("Could not allocate a unique application id")
        raise StoreError("Could not allocate an application id. Please retry.")

    async def submit(self, application_id: str, actor_id: UUID) -> StudentApplication:
        """DRAFT -> SUBMITTED. Only the submitter may submit their draft."""
        application = await self._load(application_id)

        if application.submitted_by != actor_id:
            raise ForbiddenActionError("Only the creator of a draft can submit it.")
        self._require_status(application, ApplicationStatus.DRAFT, SUBMIT)

        ts = self._timestamp(application)
        logger.info(f"Submitting application {application_id}")
        return await self._commit(
            Transition(
                application_id=application_id,
                expected_status=ApplicationStatus.DRAFT,
                new_status=ApplicationStatus.SUBMITTED,
                changes={"submitted_at": ts},
                history=HistoryRecord(WorkflowAction.SUBMIT, actor_id, ts),
            ),
            SUBMIT,
        )

    async def begin_review(self, application_id: str, reviewer_id: UUID) -> StudentApplication:
        """SUBMITTED -> UNDER_REVIEW."""
        application = await self._load(application_id)
        self._require_status(application, ApplicationStatus.SUBMITTED, BEGIN_REVIEW)

        ts = self._timestamp(application)
        logger.info(f"Reviewer {reviewer_id} starting review of {application_id}")
        return await self._commit(
            Transition(
                application_id=application_id,
                expected_status=ApplicationStatus.SUBMITTED,
                new_status=ApplicationStatus.UNDER_REVIEW,
                history=HistoryRecord(WorkflowAction.BEGIN_REVIEW, reviewer_id, ts),
            ),
            BEGIN_REVIEW,
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def approve(
        self,
        application_id: str,
        reviewer_id: UUID,
        remarks: str | None = None,
    ) -> StudentApplication:
        """UNDER_REVIEW -> APPROVED, recording review info and queueing an APPROVED event."""
        application = await self._load(application_id)
        self._require_status(application, ApplicationStatus.UNDER_REVIEW, APPROVE)

        remarks = _required(remarks) or DEFAULT_APPROVAL_REMARKS
        ts = self._timestamp(application)

        logger.info(f"Reviewer {reviewer_id} approving {application_id}")
        return await self._commit(
            Transition(
                application_id=application_id,
                expected_status=ApplicationStatus.UNDER_REVIEW,
                new_status=ApplicationStatus.APPROVED,
                changes={
                    "reviewed_by": reviewer_id,
                    "reviewed_at": ts,
                    "review_remarks": remarks,
                    "rejection_reason": None,
                    "rejection_message": None,
                    "rejection_details": None,
                },
                history=HistoryRecord(WorkflowAction.APPROVE, reviewer_id, ts, remarks),
                event=OutboundEvent(
                    event_type=NotificationEventType.APPROVED,
                    payload={
                        "applicationId": application_id,
                        "studentName": application.full_name,
                        "course": application.selected_course,
                        "remarks": remarks,
                    },
                    recipient_email=application.email,
                ),
            ),
            APPROVE,
        )

    async def reject(
        self,
        application_id: str,
        reviewer_id: UUID,
        rejection_reason: str | None,
        rejection_message: str | None,
        rejection_details: list[dict[str, Any]] | None = None,
        remarks: str | None = None,
    ) -> StudentApplication:
        """UNDER_REVIEW -> REJECTED. Reason and message are both required."""
        rejection_reason = _required(rejection_reason)
        rejection_message = _required(rejection_message)
        if rejection_reason is None or rejection_message is None:
            logger.warning(f"Reject on {application_id} missing reason or message")
            raise ApplicationValidationError("Rejection reason and message are required.")

        application = await self._load(application_id)
        self._require_status(application, ApplicationStatus.UNDER_REVIEW, REJECT)

        details = list(rejection_details or [])
        remarks = _required(remarks)
        ts = self._timestamp(application)

        logger.info(f"Reviewer {reviewer_id} rejecting {application_id}")
        return await self._commit(
            Transition(
                application_id=application_id,
                expected_status=ApplicationStatus.UNDER_REVIEW,
                new_status=ApplicationStatus.REJECTED,
                changes={
                    "reviewed_by": reviewer_id,
                    "reviewed_at": ts,
                    "review_remarks": remarks,
                    "rejection_reason": rejection_reason,
                    "rejection_message": rejection_message,
                    "rejection_details": details,
                },
                history=HistoryRecord(
                    WorkflowAction.REJECT, reviewer_id, ts, remarks or rejection_message
                ),
                event=OutboundEvent(
                    event_type=NotificationEventType.REJECTED,
                    payload={
                        "applicationId": application_id,
                        "studentName": application.full_name,
                        "rejectionReason": rejection_reason,
                        "rejectionMessage": rejection_message,
                        "rejectionDetails": details,
                        "remarks": remarks,
                    },
                    recipient_email=application.email,
                ),
            ),
            REJECT,
        )

    async def resubmit(
        self,
        application_id: str,
        actor_id: UUID,
        resubmission_reason: str | None = None,
    ) -> StudentApplication:
        """
        REJECTED -> UNDER_REVIEW, only by the original submitter.

        Clears the previous review info and bumps the resubmission counter.
        """
        application = await self._load(application_id)

        if application.submitted_by != actor_id:
            logger.warning(f"User {actor_id} attempted to resubmit {application_id}")
            raise ForbiddenActionError("Only the original submitter can resubmit this application.")
        self._require_status(application, ApplicationStatus.REJECTED, RESUBMIT)

        reason = _required(resubmission_reason)
        ts = self._timestamp(application)

        logger.info(f"User {actor_id} resubmitting {application_id}")
        return await self._commit(
            Transition(
                application_id=application_id,
                expected_status=ApplicationStatus.REJECTED,
                new_status=ApplicationStatus.UNDER_REVIEW,
                changes={
                    "is_resubmission": True,
                    "resubmitted_at": ts,
                    "resubmitted_by": actor_id,
                    "resubmission_reason": reason,
                    "reviewed_by": None,
                    "reviewed_at": None,
                    "review_remarks": None,
                    "rejection_reason": None,
                    "rejection_message": None,
                    "rejection_details": None,
                },
                increment_resubmission=True,
                history=HistoryRecord(WorkflowAction.RESUBMIT, actor_id, ts, reason),
            ),
            RESUBMIT,
        )
