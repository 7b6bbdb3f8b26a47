"""
Student Applications Background Jobs

Delivers the notification outbox written by workflow decisions:
- APPROVED events send the approval email (with remarks)
- REJECTED events send the rejection email (with the human-readable
  message and per-section details)

Design Principles:
- Jobs handle their own database sessions
- Individual event failures don't stop the job
- A failed send is recorded on the outbox row only; the application row
  is never touched
- Delivery is at-least-once; events are retried until the attempt limit
"""

import logging
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import async_session_maker
from app.core.email import send_application_approved, send_application_rejected
from app.core.scheduler import register_job
from app.modules.student_applications import repository
from app.modules.student_applications.models import NotificationEvent, NotificationEventType

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_DISPATCH_NOTIFICATIONS = "student_applications_dispatch_notifications"


class UndeliverableEventError(Exception):
    """The event can never be delivered (e.g. no recipient)."""


async def _deliver(event: NotificationEvent) -> str | None:
    """Send the email for one outbox event; returns the provider message id."""
    if not event.recipient_email:
        raise UndeliverableEventError("Event has no recipient email")

    payload = event.payload or {}
    application_id = payload.get("applicationId", "")
    student_name = payload.get("studentName") or "Student"

    if event.event_type == NotificationEventType.APPROVED:
        return await send_application_approved(
            to_email=event.recipient_email,
            student_name=student_name,
            application_id=application_id,
            course=payload.get("course"),
            remarks=payload.get("remarks"),
        )

    if event.event_type == NotificationEventType.REJECTED:
        return await send_application_rejected(
            to_email=event.recipient_email,
            student_name=student_name,
            application_id=application_id,
            rejection_reason=payload.get("rejectionReason") or "",
            rejection_message=payload.get("rejectionMessage") or "",
            rejection_details=payload.get("rejectionDetails") or [],
        )

    raise UndeliverableEventError(f"Unsupported event type: {event.event_type}")


async def _process_event(event: NotificationEvent, max_attempts: int) -> dict[str, Any]:
    """Deliver one event and record the outcome on the row."""
    event.attempts += 1
    try:
        message_id = await _deliver(event)
    except UndeliverableEventError as e:
        logger.warning(f"Notification event {event.id} is undeliverable: {e}")
        event.last_error = str(e)
        event.attempts = max_attempts
        return {"event_id": str(event.id), "status": "undeliverable", "error": str(e)}
    except Exception as e:
        logger.error(
            f"Failed to deliver notification event {event.id} "
            f"(attempt {event.attempts}/{max_attempts}): {e}",
            exc_info=True,
        )
        event.last_error = str(e)
        return {"event_id": str(event.id), "status": "error", "error": str(e)}

    event.dispatched_at = datetime.now(UTC)
    event.last_error = None
    logger.info(f"Notification event {event.id} ({event.event_type.value}) dispatched")
    return {"event_id": str(event.id), "status": "dispatched", "message_id": message_id}


async def dispatch_pending_notifications() -> dict[str, Any]:
    """
    Deliver undispatched outbox events, oldest first.

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - events: Per-event results
        - total_dispatched: Events delivered
        - total_errors: Events that failed (and will be retried or abandoned)
    """
    executed_at = datetime.now(UTC)
    max_attempts = settings.notification_max_attempts

    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "events": [],
        "total_dispatched": 0,
        "total_errors": 0,
    }

    async with async_session_maker() as db:
        events = await repository.get_pending_notification_events(
            db,
            max_attempts=max_attempts,
            limit=settings.notification_batch_size,
        )
        logger.info(f"Found {len(events)} pending notification events")

        for event in events:
            result = await _process_event(event, max_attempts)
            results["events"].append(result)
            if result["status"] == "dispatched":
                results["total_dispatched"] += 1
            else:
                results["total_errors"] += 1

        await db.commit()

    logger.info(
        f"Notification dispatch completed. "
        f"Dispatched: {results['total_dispatched']}, Errors: {results['total_errors']}"
    )
    return results


def register_student_application_jobs() -> None:
    """
    Register student application background jobs with the scheduler.

    Registered jobs:
    1. dispatch_pending_notifications - every NOTIFICATION_DISPATCH_INTERVAL_SECONDS
    """
    interval = settings.notification_dispatch_interval_seconds
    register_job(
        job_id=JOB_ID_DISPATCH_NOTIFICATIONS,
        func=dispatch_pending_notifications,
        trigger=IntervalTrigger(seconds=interval),
    )
    logger.info(f"Registered job: {JOB_ID_DISPATCH_NOTIFICATIONS} (interval: {interval}s)")
