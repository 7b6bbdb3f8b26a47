"""
Unit tests for the SQL application store.

These tests cover:
- The guarded UPDATE keyed on application id and expected status
- A lost race rolling back and writing nothing
- History and outbox rows written in the transition's transaction
- Database failures surfacing as StoreError
- Id collisions on insert leaving no stray history entries
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from app.modules.student_applications.exceptions import IllegalTransitionError, StoreError
from app.modules.student_applications.models import (
    ApplicationStatus,
    NotificationEvent,
    NotificationEventType,
    SubmitterRole,
    WorkflowAction,
    WorkflowHistoryEntry,
)
from app.modules.student_applications.service import build_application
from app.modules.student_applications.store import (
    DuplicateApplicationIdError,
    HistoryRecord,
    OutboundEvent,
    SqlApplicationStore,
    Transition,
)
from app.modules.student_applications.workflow import VerificationWorkflow

NOW = datetime(2025, 7, 1, 9, 0, tzinfo=UTC)


def _result(scalar=None):
    """Stand-in for an execute() result."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    return result


def _approve_transition(application_id: str, with_event: bool = True) -> Transition:
    return Transition(
        application_id=application_id,
        expected_status=ApplicationStatus.UNDER_REVIEW,
        new_status=ApplicationStatus.APPROVED,
        changes={"review_remarks": "ok"},
        history=HistoryRecord(WorkflowAction.APPROVE, uuid4(), NOW, "ok"),
        event=(
            OutboundEvent(
                event_type=NotificationEventType.APPROVED,
                payload={"applicationId": application_id},
                recipient_email="asha@test.com",
            )
            if with_event
            else None
        ),
    )


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception("duplicate key value"))


class TestApplyTransition:
    @pytest.mark.asyncio
    async def test_update_is_guarded_on_expected_status(self, mock_db, make_app):
        approved = make_app(status=ApplicationStatus.APPROVED)
        mock_db.execute.side_effect = [_result(approved.id), _result(approved)]
        store = SqlApplicationStore(mock_db)

        await store.apply_transition(_approve_transition(approved.application_id))

        stmt = mock_db.execute.await_args_list[0].args[0]
        compiled = stmt.compile(dialect=postgresql.dialect())
        where = str(compiled).split("WHERE", 1)[1]

        assert "student_applications.application_id =" in where
        assert "student_applications.status =" in where
        assert "RETURNING student_applications.id" in where
        assert approved.application_id in compiled.params.values()
        assert ApplicationStatus.UNDER_REVIEW in compiled.params.values()
        assert ApplicationStatus.APPROVED in compiled.params.values()

    @pytest.mark.asyncio
    async def test_no_matching_row_rolls_back(self, mock_db):
        mock_db.execute.return_value = _result(None)
        store = SqlApplicationStore(mock_db)

        result = await store.apply_transition(_approve_transition("APP25000001"))

        assert result is None
        mock_db.rollback.assert_awaited_once()
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_and_event_written_with_transition(self, mock_db, make_app):
        approved = make_app(status=ApplicationStatus.APPROVED)
        mock_db.execute.side_effect = [_result(approved.id), _result(approved)]
        store = SqlApplicationStore(mock_db)

        result = await store.apply_transition(_approve_transition(approved.application_id))

        assert result is approved
        added = [c.args[0] for c in mock_db.add.call_args_list]
        assert len(added) == 2

        history, event = added
        assert isinstance(history, WorkflowHistoryEntry)
        assert history.application_id == approved.id
        assert history.action == WorkflowAction.APPROVE
        assert history.status == ApplicationStatus.APPROVED
        assert isinstance(event, NotificationEvent)
        assert event.application_id == approved.id
        assert event.attempts == 0

        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transition_without_event(self, mock_db, make_app):
        application = make_app(status=ApplicationStatus.UNDER_REVIEW)
        mock_db.execute.side_effect = [_result(application.id), _result(application)]
        store = SqlApplicationStore(mock_db)

        await store.apply_transition(
            _approve_transition(application.application_id, with_event=False)
        )

        assert mock_db.add.call_count == 1

    @pytest.mark.asyncio
    async def test_execute_failure_raises_store_error(self, mock_db):
        mock_db.execute.side_effect = OperationalError("UPDATE", {}, Exception("gone"))
        store = SqlApplicationStore(mock_db)

        with pytest.raises(StoreError):
            await store.apply_transition(_approve_transition("APP25000001"))

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_commit_failure_raises_store_error(self, mock_db):
        mock_db.execute.return_value = _result(uuid4())
        mock_db.commit.side_effect = OperationalError("COMMIT", {}, Exception("gone"))
        store = SqlApplicationStore(mock_db)

        with pytest.raises(StoreError):
            await store.apply_transition(_approve_transition("APP25000001"))

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lost_race_reports_current_status(self, mock_db, make_app, clock):
        """The workflow sees UNDER_REVIEW, but another reviewer decides first."""
        reviewing = make_app(status=ApplicationStatus.UNDER_REVIEW)
        rejected = make_app(
            application_id=reviewing.application_id, status=ApplicationStatus.REJECTED
        )
        mock_db.execute.side_effect = [
            _result(reviewing),  # precondition read
            _result(None),  # guarded UPDATE matches nothing
            _result(rejected),  # reload for the error message
        ]
        workflow = VerificationWorkflow(SqlApplicationStore(mock_db), clock=clock)

        with pytest.raises(IllegalTransitionError) as exc_info:
            await workflow.approve(reviewing.application_id, uuid4(), "ok")

        assert exc_info.value.current == ApplicationStatus.REJECTED
        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()


class TestAdd:
    @pytest.mark.asyncio
    async def test_collision_leaves_no_history_behind(self, mock_db, make_app):
        application = make_app()
        mock_db.commit.side_effect = _integrity_error()
        store = SqlApplicationStore(mock_db)
        history = HistoryRecord(WorkflowAction.SUBMIT, application.submitted_by, NOW)

        with pytest.raises(DuplicateApplicationIdError):
            await store.add(application, history)

        mock_db.rollback.assert_awaited_once()
        assert application.workflow_history == []

    @pytest.mark.asyncio
    async def test_failure_raises_store_error(self, mock_db, make_app):
        application = make_app()
        mock_db.commit.side_effect = OperationalError("INSERT", {}, Exception("gone"))
        store = SqlApplicationStore(mock_db)
        history = HistoryRecord(WorkflowAction.SUBMIT, application.submitted_by, NOW)

        with pytest.raises(StoreError):
            await store.add(application, history)

        assert application.workflow_history == []

    @pytest.mark.asyncio
    async def test_retry_after_collision_records_one_submit(
        self, mock_db, clock, sample_create, student
    ):
        """create_application retries under a new id; only one SUBMIT entry survives."""
        application = build_application(sample_create, student.id, now=NOW)
        mock_db.commit.side_effect = [_integrity_error(), None]
        # Every id looks free on read; the first insert still collides
        mock_db.execute.side_effect = [_result(None), _result(None), _result(application)]
        workflow = VerificationWorkflow(SqlApplicationStore(mock_db), clock=clock)

        with patch(
            "app.modules.student_applications.workflow.generate_application_id",
            side_effect=["APP25000001", "APP25999999"],
        ):
            created = await workflow.create_application(
                application, actor_id=student.id, submitter_role=SubmitterRole.STUDENT
            )

        assert created.application_id == "APP25999999"
        assert [entry.action for entry in created.workflow_history] == [WorkflowAction.SUBMIT]
