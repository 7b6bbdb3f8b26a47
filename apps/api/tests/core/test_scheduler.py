"""
Unit tests for the job registry and manual triggering.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from app.core import scheduler


@pytest.fixture(autouse=True)
def clean_registry(monkeypatch):
    monkeypatch.setattr(scheduler, "_job_registry", {})
    monkeypatch.setattr(scheduler, "_scheduler", None)


class TestRegistry:
    def test_register_without_running_scheduler(self):
        job = AsyncMock()
        scheduler.register_job("dispatch", job, IntervalTrigger(seconds=60))

        jobs = scheduler.list_registered_jobs()

        assert jobs == [{"job_id": "dispatch", "registered": True}]

    def test_register_replaces_existing(self):
        first, second = AsyncMock(), AsyncMock()
        scheduler.register_job("dispatch", first, IntervalTrigger(seconds=60))
        scheduler.register_job("dispatch", second, IntervalTrigger(seconds=30))

        assert len(scheduler.list_registered_jobs()) == 1


class TestTriggerJobManually:
    @pytest.mark.asyncio
    async def test_success_includes_result(self):
        job = AsyncMock(return_value={"total_dispatched": 3})
        scheduler.register_job("dispatch", job, IntervalTrigger(seconds=60))

        result = await scheduler.trigger_job_manually("dispatch")

        job.assert_awaited_once()
        assert result["status"] == "success"
        assert result["result"] == {"total_dispatched": 3}

    @pytest.mark.asyncio
    async def test_failure_is_reported(self):
        job = AsyncMock(side_effect=RuntimeError("db down"))
        scheduler.register_job("dispatch", job, IntervalTrigger(seconds=60))

        result = await scheduler.trigger_job_manually("dispatch")

        assert result["status"] == "error"
        assert result["error"] == "db down"

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError, match="not found"):
            await scheduler.trigger_job_manually("missing")

    def test_scheduling_requires_running_scheduler(self):
        job = scheduler._RegisteredJob(func=AsyncMock(), trigger=IntervalTrigger(seconds=60))

        with pytest.raises(RuntimeError, match="not running"):
            scheduler._add_to_scheduler("dispatch", job)
