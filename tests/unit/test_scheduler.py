import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.exceptions import StorageUnavailable
from ingestion.scheduler import RetrySweepScheduler


def test_scheduler_initialization():
    orchestrator = MagicMock()
    scheduler = RetrySweepScheduler(orchestrator, interval_minutes=5, max_attempts=4)

    assert scheduler.scheduler is not None
    assert scheduler.interval_minutes == 5
    assert scheduler.max_attempts == 4


def test_scheduler_defaults_from_settings():
    with patch("ingestion.scheduler.settings") as mock_settings:
        mock_settings.RETRY_SWEEP_MINUTES = 30
        mock_settings.RETRY_SWEEP_MAX_ATTEMPTS = 3

        scheduler = RetrySweepScheduler(MagicMock())

    assert scheduler.interval_minutes == 30
    assert scheduler.max_attempts == 3


@pytest.mark.asyncio
async def test_retry_sweep_job_execution():
    orchestrator = MagicMock()
    result = MagicMock(succeeded=[MagicMock()], failed=[])
    orchestrator.retry_failed = AsyncMock(return_value=result)

    scheduler = RetrySweepScheduler(orchestrator, interval_minutes=5, max_attempts=4)

    assert await scheduler.run_retry_sweep() is result
    orchestrator.retry_failed.assert_awaited_once_with(max_attempts=4)


@pytest.mark.asyncio
async def test_retry_sweep_survives_storage_outage():
    orchestrator = MagicMock()
    orchestrator.retry_failed = AsyncMock(side_effect=StorageUnavailable("database down"))

    scheduler = RetrySweepScheduler(orchestrator)

    assert await scheduler.run_retry_sweep() is None


@pytest.mark.asyncio
async def test_start_registers_single_job():
    scheduler = RetrySweepScheduler(MagicMock(), interval_minutes=5)

    scheduler.start()
    try:
        jobs = scheduler.scheduler.get_jobs()
        assert [job.id for job in jobs] == ["retry_sweep"]
        assert jobs[0].max_instances == 1
        assert scheduler.scheduler.running
    finally:
        scheduler.stop()
