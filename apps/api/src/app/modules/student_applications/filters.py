"""
Application Filters

`ApplicationFilter` is a typed description of a listing query. It compiles
to SQLAlchemy clauses for the database store and can also be evaluated in
Python against a loaded application (used by the in-memory store).
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from app.modules.sessions.service import SessionRange
from app.modules.student_applications.models import (
    ApplicationStatus,
    StudentApplication,
    SubmitterRole,
)

SEARCH_COLUMNS = (
    StudentApplication.full_name,
    StudentApplication.aadhar_number,
    StudentApplication.primary_phone,
    StudentApplication.email,
    StudentApplication.application_id,
)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class ApplicationFilter:
    """
    Conjunction of optional predicates over student applications.

    The session predicate matches on registration_date when it is set,
    otherwise on created_at.
    """

    statuses: tuple[ApplicationStatus, ...] = ()
    submitter_role: SubmitterRole | None = None
    submitted_by: UUID | None = None
    user_id: UUID | None = None
    course: str | None = None
    search: str | None = None
    session: SessionRange | None = None

    @property
    def search_term(self) -> str | None:
        if self.search is None:
            return None
        term = self.search.strip()
        return term or None

    @staticmethod
    def session_clause(session: SessionRange) -> ColumnElement[bool]:
        start, end = session.start_date, session.end_date
        return or_(
            StudentApplication.registration_date.between(start, end),
            and_(
                StudentApplication.registration_date.is_(None),
                StudentApplication.created_at.between(start, end),
            ),
        )

    def clauses(self) -> list[ColumnElement[bool]]:
        """Compile to a list of WHERE clauses (to be AND-ed)."""
        clauses: list[ColumnElement[bool]] = []

        if self.statuses:
            clauses.append(StudentApplication.status.in_(self.statuses))
        if self.submitter_role is not None:
            clauses.append(StudentApplication.submitter_role == self.submitter_role)
        if self.submitted_by is not None:
            clauses.append(StudentApplication.submitted_by == self.submitted_by)
        if self.user_id is not None:
            clauses.append(StudentApplication.user_id == self.user_id)
        if self.course:
            clauses.append(StudentApplication.selected_course == self.course)

        term = self.search_term
        if term:
            pattern = f"%{_escape_like(term)}%"
            clauses.append(or_(*(col.ilike(pattern, escape="\\") for col in SEARCH_COLUMNS)))

        if self.session is not None:
            clauses.append(self.session_clause(self.session))

        return clauses

    def matches(self, application: StudentApplication) -> bool:
        """Evaluate the filter against a loaded application."""
        if self.statuses and application.status not in self.statuses:
            return False
        if self.submitter_role is not None and application.submitter_role != self.submitter_role:
            return False
        if self.submitted_by is not None and application.submitted_by != self.submitted_by:
            return False
        if self.user_id is not None and application.user_id != self.user_id:
            return False
        if self.course and application.selected_course != self.course:
            return False

        term = self.search_term
        if term:
            needle = term.lower()
            haystack = (
                application.full_name,
                application.aadhar_number,
                application.primary_phone,
                application.email,
                application.application_id,
            )
            if not any(value and needle in value.lower() for value in haystack):
                return False

        if self.session is not None:
            reference = application.registration_date or application.created_at
            if reference is None or not self.session.contains(reference):
                return False

        return True
