"""
HTTP tests for the student applications routers.

These tests cover:
- Status codes for each service error
- The {success, message, error} error body
- Role checks and rate limiting
- camelCase response bodies

The database-backed store is replaced with the in-memory store through
FastAPI dependency overrides.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.core.auth import get_current_user
from app.core.database import get_db
from app.main import app
from app.modules.student_applications.helpers import get_store, get_workflow
from app.modules.student_applications.models import ApplicationStatus, SubmitterRole
from app.modules.student_applications.verification_router import RATE_LIMIT_APPROVE
from app.modules.student_applications.workflow import VerificationWorkflow

API = "/api/v1"


class Actor:
    """Mutable holder for the user returned by the auth override."""

    def __init__(self, user):
        self.user = user

    def __call__(self):
        return self.user


@pytest.fixture
def actor(staff):
    return Actor(staff)


@pytest.fixture
def client(store, clock, actor, mock_db):
    async def _db():
        yield mock_db

    app.dependency_overrides[get_current_user] = actor
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_workflow] = lambda: VerificationWorkflow(store, clock=clock)
    app.dependency_overrides[get_db] = _db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestVerificationEndpoints:
    @pytest.mark.asyncio
    async def test_get_application(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.UNDER_REVIEW)

        response = client.get(f"{API}/verification/{app_row.application_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["applicationId"] == app_row.application_id
        assert data["currentStage"] == "UNDER_REVIEW"
        assert data["reviewInfo"] is None
        assert data["resubmissionInfo"]["resubmissionCount"] == 0
        assert len(data["workflowHistory"]) == 1

    def test_get_application_not_found(self, client):
        response = client.get(f"{API}/verification/APP25999999")

        assert response.status_code == 404
        body = response.json()
        assert body == {
            "success": False,
            "message": "Application not found.",
            "error": "APPLICATION_NOT_FOUND",
        }

    @pytest.mark.asyncio
    async def test_approve(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.UNDER_REVIEW)

        response = client.put(
            f"{API}/verification/{app_row.application_id}/approve",
            json={"remarks": "Documents verified"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "APPROVED"
        assert data["currentStage"] == "APPROVED"
        assert data["approvedAt"] is not None

    @pytest.mark.asyncio
    async def test_approve_without_body(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.UNDER_REVIEW)

        response = client.put(f"{API}/verification/{app_row.application_id}/approve")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_approve_wrong_status(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.SUBMITTED)

        response = client.put(f"{API}/verification/{app_row.application_id}/approve", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "ILLEGAL_TRANSITION"
        assert "SUBMITTED" in body["message"]
        assert "UNDER_REVIEW" in body["message"]

    @pytest.mark.asyncio
    async def test_reject(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.UNDER_REVIEW)

        response = client.put(
            f"{API}/verification/{app_row.application_id}/reject",
            json={
                "rejectionReason": "Incomplete Documents",
                "rejectionMessage": "missing aadhar",
                "rejectionDetails": [
                    {
                        "section": "documents",
                        "issue": "missing",
                        "message": "aadhar missing",
                        "requiresResubmission": True,
                    }
                ],
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "REJECTED"
        assert data["rejectionMessage"] == "missing aadhar"
        assert data["rejectionDetails"][0]["requiresResubmission"] is True

    @pytest.mark.asyncio
    async def test_reject_missing_message(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.UNDER_REVIEW)

        response = client.put(
            f"{API}/verification/{app_row.application_id}/reject",
            json={"rejectionReason": "Incomplete Documents"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert app_row.status == ApplicationStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_resubmit_by_submitter(self, client, actor, seed_app, agent):
        app_row = await seed_app(
            status=ApplicationStatus.REJECTED,
            submitted_by=agent.id,
            submitter_role=SubmitterRole.AGENT,
        )
        actor.user = agent

        response = client.put(
            f"{API}/verification/{app_row.application_id}/resubmit",
            json={"resubmissionReason": "fixed"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "UNDER_REVIEW"
        assert data["resubmissionCount"] == 1

    @pytest.mark.asyncio
    async def test_resubmit_by_other_user(self, client, actor, seed_app, agent):
        app_row = await seed_app(status=ApplicationStatus.REJECTED)
        actor.user = agent

        response = client.put(f"{API}/verification/{app_row.application_id}/resubmit")

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_start_review(self, client, seed_app):
        app_row = await seed_app(status=ApplicationStatus.SUBMITTED)

        response = client.put(f"{API}/verification/{app_row.application_id}/start-review")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "UNDER_REVIEW"

    def test_reviewer_role_required(self, client, actor, student):
        actor.user = student

        response = client.get(f"{API}/verification/APP25000001")

        assert response.status_code == 403
        assert response.json()["error"] == "ROLE_NOT_PERMITTED"

    def test_approve_rate_limited(self, client):
        limit, _ = RATE_LIMIT_APPROVE
        for _ in range(limit):
            assert client.put(f"{API}/verification/APP25000001/approve").status_code == 404

        response = client.put(f"{API}/verification/APP25000001/approve")

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "RATE_LIMIT_EXCEEDED"
        assert response.headers["Retry-After"] == "60"

    @pytest.mark.asyncio
    async def test_pending_queue(self, client, seed_app):
        await seed_app(status=ApplicationStatus.SUBMITTED)
        await seed_app(status=ApplicationStatus.APPROVED)

        with patch("app.modules.student_applications.service.repository") as mock_repo:
            mock_repo.get_distinct_submitter_roles = AsyncMock(return_value=[])
            mock_repo.get_distinct_courses = AsyncMock(return_value=["B.Sc Nursing"])

            response = client.get(f"{API}/verification/pending", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {
            "currentPage": 1,
            "totalPages": 1,
            "totalItems": 1,
            "itemsPerPage": 10,
        }
        assert data["filters"]["courses"] == ["B.Sc Nursing"]

    def test_stats_overview(self, client):
        with patch("app.modules.student_applications.service.repository") as mock_repo:
            mock_repo.count_by_status = AsyncMock(return_value={})
            for name in (
                "get_submitter_role_stats",
                "get_resubmission_stats",
                "get_monthly_stats",
                "get_course_stats",
            ):
                setattr(mock_repo, name, AsyncMock(return_value=[]))
            mock_repo.count_applications = AsyncMock(return_value=0)

            response = client.get(f"{API}/verification/stats/overview")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalApplications"] == 0
        assert data["pendingVerification"] == 0


class TestApplicationEndpoints:
    def test_student_creates_application(self, client, actor, student):
        actor.user = student
        payload = {
            "personalDetails": {
                "fullName": "Asha Patel",
                "fathersName": "Ravi Patel",
                "mothersName": "Meera Patel",
                "dateOfBirth": "2006-05-14",
                "gender": "Female",
                "aadharNumber": "123456789012",
            },
            "contactDetails": {
                "primaryPhone": "9876543210",
                "email": "asha@test.com",
                "permanentAddress": {
                    "street": "12 Station Road",
                    "city": "Koraput",
                    "state": "Odisha",
                    "pincode": "764020",
                },
            },
            "courseDetails": {"selectedCourse": "B.Sc Nursing"},
            "guardianDetails": {
                "guardianName": "Ravi Patel",
                "relationship": "Father",
                "guardianPhone": "9123456780",
            },
        }

        response = client.post(f"{API}/applications", json=payload)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "SUBMITTED"
        assert data["submitterRole"] == "student"
        assert data["applicationId"].startswith("APP")

    def test_invalid_aadhar_rejected(self, client, actor, student):
        actor.user = student

        response = client.post(
            f"{API}/applications",
            json={"personalDetails": {"aadharNumber": "12"}},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_my_applications(self, client, actor, seed_app, agent):
        await seed_app(submitted_by=agent.id, submitter_role=SubmitterRole.AGENT)
        actor.user = agent

        response = client.get(f"{API}/applications/mine")

        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["totalItems"] == 1


class TestStaffEndpoints:
    def test_students_requires_session(self, client):
        response = client.get(f"{API}/staff/students")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "Session parameter is required" in body["message"]

    def test_students_malformed_session(self, client):
        response = client.get(f"{API}/staff/students", params={"session": "2025-27"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_students_in_session(self, client, seed_app):
        await seed_app()

        response = client.get(f"{API}/staff/students", params={"session": "2025-26"})

        assert response.status_code == 200
        assert len(response.json()["data"]["students"]) == 1

    def test_processing_stats(self, client):
        with patch("app.modules.student_applications.service.repository") as mock_repo:
            mock_repo.count_by_status = AsyncMock(return_value={ApplicationStatus.DRAFT: 2})
            mock_repo.get_approved_in_session = AsyncMock(return_value=[])
            mock_repo.get_pending_submission_times = AsyncMock(return_value=[])
            mock_repo.PENDING_SAMPLE_LIMIT = 100

            response = client.get(f"{API}/staff/processing-stats", params={"session": "2025-26"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalStudents"] == 2
        assert data["draftInSession"] == 2
        assert data["averageProcessingTime"] == 24
        assert data["session"] == "2025-26"

    def test_unexpected_error_is_500(self, client):
        with patch(
            "app.modules.student_applications.service.get_processing_stats",
            new=AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = client.get(f"{API}/staff/processing-stats")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Failed to get processing statistics"


class TestMisc:
    def test_sessions(self, client):
        response = client.get(f"{API}/sessions")

        assert response.status_code == 200
        body = response.json()
        assert len(body["sessions"]) == 7
        assert body["current"]["label"] in body["sessions"]

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_error_detail_hidden_in_production(self, client):
        with patch("app.main.settings") as mock_settings:
            mock_settings.is_production = True
            response = client.get(f"{API}/verification/APP25999999")

        assert response.status_code == 404
        assert "error" not in response.json()
