"""
Application Store

Persistence boundary for the verification workflow. The workflow engine
only talks to an `ApplicationStore`; `SqlApplicationStore` backs it with
PostgreSQL and `InMemoryApplicationStore` keeps everything in a dict.

A transition is applied as one atomic unit: the status change is
conditional on the expected current status, and the history entry and
outbox event are written with it or not at all.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.student_applications.exceptions import StoreError
from app.modules.student_applications.filters import ApplicationFilter
from app.modules.student_applications.models import (
    ApplicationStatus,
    NotificationEvent,
    NotificationEventType,
    StudentApplication,
    WorkflowAction,
    WorkflowHistoryEntry,
    stage_for_status,
)

logger = logging.getLogger(__name__)


class DuplicateApplicationIdError(Exception):
    """The human-visible application id is already taken."""


@dataclass(frozen=True)
class HistoryRecord:
    action: WorkflowAction
    actor_id: UUID
    timestamp: datetime
    remarks: str | None = None


@dataclass(frozen=True)
class OutboundEvent:
    event_type: NotificationEventType
    payload: dict[str, Any]
    recipient_email: str | None


@dataclass(frozen=True)
class Transition:
    """A guarded status change and everything that must be written with it."""

    application_id: str
    expected_status: ApplicationStatus
    new_status: ApplicationStatus
    history: HistoryRecord
    changes: dict[str, Any] = field(default_factory=dict)
    increment_resubmission: bool = False
    event: OutboundEvent | None = None


class ApplicationStore(Protocol):
    async def get(self, application_id: str) -> StudentApplication | None: ...

    async def add(
        self, application: StudentApplication, history: HistoryRecord
    ) -> StudentApplication: ...

    async def apply_transition(self, transition: Transition) -> StudentApplication | None:
        """Apply `transition`; return None if the expected status no longer holds."""
        ...

    async def list_applications(
        self,
        criteria: ApplicationFilter,
        *,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[StudentApplication], int]: ...


def _history_row(record: HistoryRecord, status: ApplicationStatus) -> WorkflowHistoryEntry:
    return WorkflowHistoryEntry(
        id=uuid4(),
        action=record.action,
        stage=stage_for_status(status),
        status=status,
        actor_id=record.actor_id,
        remarks=record.remarks,
        timestamp=record.timestamp,
    )


def _event_row(event: OutboundEvent, application_pk: UUID) -> NotificationEvent:
    return NotificationEvent(
        id=uuid4(),
        application_id=application_pk,
        event_type=event.event_type,
        payload=event.payload,
        recipient_email=event.recipient_email,
        attempts=0,
    )


class SqlApplicationStore:
    """ApplicationStore backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, pk: UUID) -> StudentApplication:
        result = await self.db.execute(
            select(StudentApplication)
            .where(StudentApplication.id == pk)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def get(self, application_id: str) -> StudentApplication | None:
        try:
            result = await self.db.execute(
                select(StudentApplication).where(
                    StudentApplication.application_id == application_id
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load application {application_id}: {e}", exc_info=True)
            raise StoreError() from e

    async def add(
        self, application: StudentApplication, history: HistoryRecord
    ) -> StudentApplication:
        entry = _history_row(history, application.status)
        application.workflow_history.append(entry)
        self.db.add(application)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # The caller retries with the same object under a new id
            application.workflow_history.remove(entry)
            raise DuplicateApplicationIdError(application.application_id) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            application.workflow_history.remove(entry)
            logger.error(f"Failed to store application: {e}", exc_info=True)
            raise StoreError() from e
        return await self._load(application.id)

    async def apply_transition(self, transition: Transition) -> StudentApplication | None:
        values = dict(transition.changes)
        values["status"] = transition.new_status
        values["updated_at"] = func.now()
        if transition.increment_resubmission:
            values["resubmission_count"] = StudentApplication.resubmission_count + 1

        stmt = (
            update(StudentApplication)
            .where(
                StudentApplication.application_id == transition.application_id,
                StudentApplication.status == transition.expected_status,
            )
            .values(**values)
            .returning(StudentApplication.id)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            pk = result.scalar_one_or_none()
            if pk is None:
                await self.db.rollback()
                return None

            history = _history_row(transition.history, transition.new_status)
            history.application_id = pk
            self.db.add(history)
            if transition.event is not None:
                self.db.add(_event_row(transition.event, pk))

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Failed to apply {transition.history.action.value} to "
                f"{transition.application_id}: {e}",
                exc_info=True,
            )
            raise StoreError() from e

        return await self._load(pk)

    async def list_applications(
        self,
        criteria: ApplicationFilter,
        *,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[StudentApplication], int]:
        query = select(StudentApplication).where(*criteria.clauses())

        try:
            count_query = select(func.count()).select_from(query.subquery())
            total = (await self.db.execute(count_query)).scalar() or 0

            query = (
                query.order_by(
                    StudentApplication.submitted_at.desc().nulls_last(),
                    StudentApplication.created_at.desc(),
                )
                .offset(skip)
                .limit(limit)
            )
            result = await self.db.execute(query)
            return list(result.scalars().all()), total
        except SQLAlchemyError as e:
            logger.error(f"Failed to list applications: {e}", exc_info=True)
            raise StoreError() from e


class InMemoryApplicationStore:
    """
    ApplicationStore that keeps applications in process memory.

    There is no await between the status check and the mutation in
    `apply_transition`, so transitions are atomic within one event loop.
    """

    def __init__(self) -> None:
        self._applications: dict[str, StudentApplication] = {}
        self.events: list[NotificationEvent] = []

    async def get(self, application_id: str) -> StudentApplication | None:
        return self._applications.get(application_id)

    async def add(
        self, application: StudentApplication, history: HistoryRecord
    ) -> StudentApplication:
        if application.application_id in self._applications:
            raise DuplicateApplicationIdError(application.application_id)

        now = datetime.now(UTC)
        if application.id is None:
            application.id = uuid4()
        if application.created_at is None:
            application.created_at = now
        application.updated_at = now

        application.workflow_history.append(_history_row(history, application.status))
        self._applications[application.application_id] = application
        return application

    async def apply_transition(self, transition: Transition) -> StudentApplication | None:
        application = self._applications.get(transition.application_id)
        if application is None or application.status != transition.expected_status:
            return None

        for key, value in transition.changes.items():
            setattr(application, key, value)
        application.status = transition.new_status
        if transition.increment_resubmission:
            application.resubmission_count += 1
        application.updated_at = datetime.now(UTC)

        application.workflow_history.append(
            _history_row(transition.history, transition.new_status)
        )
        if transition.event is not None:
            event = _event_row(transition.event, application.id)
            event.created_at = transition.history.timestamp
            self.events.append(event)

        return application

    async def list_applications(
        self,
        criteria: ApplicationFilter,
        *,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[StudentApplication], int]:
        matched = [app for app in self._applications.values() if criteria.matches(app)]
        submitted = [app for app in matched if app.submitted_at is not None]
        unsubmitted = [app for app in matched if app.submitted_at is None]
        # Newest submission first; ties keep insertion order
        submitted.sort(key=lambda app: app.submitted_at, reverse=True)
        ordered = submitted + unsubmitted
        return ordered[skip : skip + limit], len(matched)
