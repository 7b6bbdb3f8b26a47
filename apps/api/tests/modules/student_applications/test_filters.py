"""
Unit tests for application filters and the in-memory listing.

These tests cover:
- Session predicate with the created_at fallback
- Conjunction of status / role / course / search predicates
- Case-insensitive search over the promoted columns
- SQL compilation of the same predicates
- Listing order and pagination
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from app.modules.sessions.service import resolve_session
from app.modules.student_applications.filters import ApplicationFilter
from app.modules.student_applications.models import (
    ApplicationStatus,
    StudentApplication,
    SubmitterRole,
)

SESSION = resolve_session("2025-26")
INSIDE = datetime(2025, 9, 1, tzinfo=UTC)
OUTSIDE = datetime(2024, 9, 1, tzinfo=UTC)


def _compile(criteria: ApplicationFilter) -> str:
    query = select(StudentApplication.id).where(*criteria.clauses())
    return str(query.compile(dialect=postgresql.dialect()))


class TestSessionPredicate:
    """An application belongs to a session by registration date, else creation date."""

    def test_registration_date_inside(self, make_app):
        app = make_app(registration_date=INSIDE, created_at=OUTSIDE)
        assert ApplicationFilter(session=SESSION).matches(app)

    def test_registration_date_outside_ignores_created_at(self, make_app):
        app = make_app(registration_date=OUTSIDE, created_at=INSIDE)
        assert not ApplicationFilter(session=SESSION).matches(app)

    def test_falls_back_to_created_at(self, make_app):
        app = make_app(registration_date=None, created_at=INSIDE)
        assert ApplicationFilter(session=SESSION).matches(app)

    def test_created_at_outside_without_registration_date(self, make_app):
        app = make_app(registration_date=None, created_at=OUTSIDE)
        assert not ApplicationFilter(session=SESSION).matches(app)

    @pytest.mark.asyncio
    async def test_listing_uses_fallback(self, store, seed_app):
        registered = await seed_app(registration_date=INSIDE, created_at=OUTSIDE)
        legacy = await seed_app(registration_date=None, created_at=INSIDE)
        await seed_app(registration_date=None, created_at=OUTSIDE)

        items, total = await store.list_applications(ApplicationFilter(session=SESSION))

        assert total == 2
        assert {a.application_id for a in items} == {
            registered.application_id,
            legacy.application_id,
        }

    def test_session_clause_from_range(self):
        clause = ApplicationFilter.session_clause(SESSION)
        sql = str(clause.compile(dialect=postgresql.dialect()))

        assert "student_applications.registration_date BETWEEN" in sql
        assert "student_applications.created_at BETWEEN" in sql

    def test_sql_contains_fallback(self):
        sql = _compile(ApplicationFilter(session=SESSION))

        assert "student_applications.registration_date BETWEEN" in sql
        assert "student_applications.registration_date IS NULL" in sql
        assert "student_applications.created_at BETWEEN" in sql
        assert " OR " in sql


class TestPredicates:
    def test_empty_filter_matches_everything(self, make_app):
        assert ApplicationFilter().matches(make_app())
        assert ApplicationFilter().clauses() == []

    def test_status(self, make_app):
        criteria = ApplicationFilter(
            statuses=(ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW)
        )
        assert criteria.matches(make_app(status=ApplicationStatus.UNDER_REVIEW))
        assert not criteria.matches(make_app(status=ApplicationStatus.APPROVED))

    def test_predicates_are_conjoined(self, make_app):
        criteria = ApplicationFilter(
            statuses=(ApplicationStatus.REJECTED,),
            submitter_role=SubmitterRole.AGENT,
            course="B.Sc Nursing",
        )

        assert criteria.matches(
            make_app(status=ApplicationStatus.REJECTED, submitter_role=SubmitterRole.AGENT)
        )
        assert not criteria.matches(
            make_app(status=ApplicationStatus.REJECTED, submitter_role=SubmitterRole.STUDENT)
        )
        assert not criteria.matches(
            make_app(
                status=ApplicationStatus.REJECTED,
                submitter_role=SubmitterRole.AGENT,
                selected_course="BBA",
            )
        )

    @pytest.mark.parametrize(
        "term",
        ["asha", "PATEL", "1234567890", "98765", "ASHA@TEST", "app25"],
    )
    def test_search_fields(self, make_app, term):
        app = make_app(application_id="APP25123456")
        assert ApplicationFilter(search=term).matches(app)

    def test_search_miss(self, make_app):
        assert not ApplicationFilter(search="zzz").matches(make_app())

    def test_blank_search_ignored(self, make_app):
        criteria = ApplicationFilter(search="   ")
        assert criteria.search_term is None
        assert criteria.clauses() == []
        assert criteria.matches(make_app())

    def test_search_sql_escapes_wildcards(self):
        criteria = ApplicationFilter(search="50%_off")
        clause = criteria.clauses()[0]
        params = clause.compile(dialect=postgresql.dialect()).params

        assert any(value == "%50\\%\\_off%" for value in params.values())
        assert "ILIKE" in _compile(criteria)

    def test_sql_status_and_role(self):
        sql = _compile(
            ApplicationFilter(
                statuses=(ApplicationStatus.APPROVED,),
                submitter_role=SubmitterRole.AGENT,
            )
        )
        assert "student_applications.status IN" in sql
        assert "student_applications.submitter_role =" in sql


class TestInMemoryListing:
    @pytest.mark.asyncio
    async def test_newest_submission_first_then_unsubmitted(self, store, seed_app, now):
        older = await seed_app(submitted_at=now - timedelta(days=2))
        draft = await seed_app(status=ApplicationStatus.DRAFT, submitted_at=None)
        newer = await seed_app(submitted_at=now)

        items, total = await store.list_applications(ApplicationFilter())

        assert total == 3
        assert [a.application_id for a in items] == [
            newer.application_id,
            older.application_id,
            draft.application_id,
        ]

    @pytest.mark.asyncio
    async def test_pagination(self, store, seed_app, now):
        for day in range(5):
            await seed_app(submitted_at=now - timedelta(days=day))

        first, total = await store.list_applications(ApplicationFilter(), skip=0, limit=2)
        last, _ = await store.list_applications(ApplicationFilter(), skip=4, limit=2)

        assert total == 5
        assert len(first) == 2
        assert len(last) == 1
        assert first[0].submitted_at == now
