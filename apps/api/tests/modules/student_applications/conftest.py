"""
Fixtures for student applications tests.
"""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.core.auth import CurrentUser, Role
from app.core.rate_limit import reset_memory_store
from app.modules.student_applications.models import (
    ApplicationStatus,
    StudentApplication,
    SubmitterRole,
    WorkflowAction,
)
from app.modules.student_applications.schemas import (
    Address,
    ApplicationCreate,
    ContactDetails,
    CourseDetails,
    GuardianDetails,
    PersonalDetails,
)
from app.modules.student_applications.store import HistoryRecord, InMemoryApplicationStore
from app.modules.student_applications.workflow import VerificationWorkflow

FIXED_NOW = datetime(2025, 7, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    """Clock advancing one minute per reading."""

    def __init__(self, start: datetime = FIXED_NOW, step: timedelta = timedelta(minutes=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


def make_user(role: Role = Role.STUDENT) -> CurrentUser:
    user_id = uuid4()
    return CurrentUser(id=user_id, email=f"{role.value}@test.com", role=role)


def make_application(**overrides) -> StudentApplication:
    """Unsaved application with realistic details; any column can be overridden."""
    values = {
        "id": uuid4(),
        "application_id": f"APP25{uuid4().int % 1_000_000:06d}",
        "user_id": uuid4(),
        "submitter_role": SubmitterRole.STUDENT,
        "submitted_by": uuid4(),
        "submitted_at": FIXED_NOW,
        "status": ApplicationStatus.SUBMITTED,
        "personal_details": {"fullName": "Asha Patel", "aadharNumber": "123456789012"},
        "contact_details": {"primaryPhone": "9876543210", "email": "asha@test.com"},
        "course_details": {"selectedCourse": "B.Sc Nursing"},
        "guardian_details": {"guardianName": "Ravi Patel"},
        "financial_details": None,
        "full_name": "Asha Patel",
        "aadhar_number": "123456789012",
        "primary_phone": "9876543210",
        "email": "asha@test.com",
        "selected_course": "B.Sc Nursing",
        "registration_date": FIXED_NOW,
        "is_resubmission": False,
        "resubmission_count": 0,
        "created_at": FIXED_NOW,
        "updated_at": FIXED_NOW,
    }
    values.update(overrides)
    return StudentApplication(**values)


async def seed(
    store: InMemoryApplicationStore,
    application: StudentApplication | None = None,
    **overrides,
) -> StudentApplication:
    """Put an application into the store as if it had been created earlier."""
    application = application or make_application(**overrides)
    history = HistoryRecord(
        action=WorkflowAction.SUBMIT,
        actor_id=application.submitted_by,
        timestamp=application.submitted_at or application.created_at,
    )
    return await store.add(application, history)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryApplicationStore()


@pytest.fixture
def workflow(store, clock):
    return VerificationWorkflow(store, clock=clock)


@pytest.fixture
def student():
    return make_user(Role.STUDENT)


@pytest.fixture
def agent():
    return make_user(Role.AGENT)


@pytest.fixture
def staff():
    return make_user(Role.STAFF)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()

    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=savepoint)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    db.begin_nested = MagicMock(return_value=savepoint)
    return db


@pytest.fixture
def sample_create():
    """A valid student self-submission."""
    return ApplicationCreate(
        personal_details=PersonalDetails(
            full_name="Asha Patel",
            fathers_name="Ravi Patel",
            mothers_name="Meera Patel",
            date_of_birth=date(2006, 5, 14),
            gender="Female",
            aadhar_number="123456789012",
        ),
        contact_details=ContactDetails(
            primary_phone="9876543210",
            email="Asha@Test.com",
            permanent_address=Address(
                street="12 Station Road",
                city="Koraput",
                state="Odisha",
                pincode="764020",
            ),
        ),
        course_details=CourseDetails(selected_course="B.Sc Nursing"),
        guardian_details=GuardianDetails(
            guardian_name="Ravi Patel",
            relationship="Father",
            guardian_phone="9123456780",
        ),
    )


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def make_app():
    """Factory for unsaved applications."""
    return make_application


@pytest.fixture
def seed_app(store):
    """Factory that stores an application and returns it."""

    async def _seed(**overrides) -> StudentApplication:
        return await seed(store, **overrides)

    return _seed


@pytest.fixture
def make_actor():
    """Factory for authenticated users."""
    return make_user
