"""
Student Applications Module

Handles the student admission verification workflow:
1. Submission by students, or by agents and staff on a student's behalf
2. Review by staff (start review, approve, reject)
3. Resubmission of rejected applications by the original submitter
4. Session-scoped listings and processing statistics

API Endpoints:
- POST /applications - Create an application (or draft)
- GET /applications/mine - Current user's applications
- PUT /applications/{id}/submit - Submit a draft
- GET /verification/pending - Verification queue
- GET /verification/rejected/list - Rejected applications
- GET /verification/stats/overview - Dashboard statistics
- GET /verification/{id} - Application details
- PUT /verification/{id}/start-review | approve | reject | resubmit
- GET /staff/students - Session-scoped listing
- GET /staff/processing-stats - Session processing statistics

Background Jobs (via APScheduler):
- dispatch_pending_notifications: delivers approval/rejection emails
  from the notification outbox
"""

from .jobs import register_student_application_jobs
from .router import router

__all__ = [
    "router",
    "register_student_application_jobs",
]
